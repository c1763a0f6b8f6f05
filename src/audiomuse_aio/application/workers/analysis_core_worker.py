"""Handler for sonicAnalysis, clustering and cleaning: mirror a job of the analysis core."""

import asyncio
import logging

from audiomuse_aio.application.tasks.cancellation import TaskContext
from audiomuse_aio.domain.entities import TaskStatus, TaskType
from audiomuse_aio.domain.exceptions import ExternalServiceError, TaskCancelled
from audiomuse_aio.infrastructure.integrations.analysis_core_client import (
    AnalysisCoreClient,
)

logger = logging.getLogger(__name__)


# Hey future me - the real work runs inside the analysis core's own queue. This handler
# only starts it, copies status/progress into our task every poll_interval, and forwards
# a cancel. The wait between polls is on the cancellation token, so a cancel request is
# forwarded right away instead of after the next full interval.
class AnalysisCoreWorker:
    """Runs one task type on the analysis core."""

    def __init__(
        self,
        client: AnalysisCoreClient,
        task_type: TaskType,
        poll_interval: float = 3.0,
    ) -> None:
        self.client = client
        self.task_type = task_type
        self.poll_interval = poll_interval

    async def _forward_cancel(self, context: TaskContext, remote_id: str) -> None:
        try:
            known = await self.client.cancel(remote_id)
        except ExternalServiceError as e:
            logger.warning(f"Forwarding cancel of {remote_id} failed: {e}")
        else:
            if not known:
                logger.warning(f"Analysis core does not know task {remote_id}")
        context.checkpoint()

    async def _wait(self, context: TaskContext) -> None:
        try:
            await asyncio.wait_for(context.token.wait(), timeout=self.poll_interval)
        except TimeoutError:
            pass

    async def __call__(self, context: TaskContext) -> str:
        context.checkpoint()
        remote_id = await self.client.start(self.task_type, context.params)
        await context.report_progress(0.0, f"Queued on analysis core ({remote_id})")

        last_seen: tuple[float, str] | None = None
        while True:
            if context.cancel_requested:
                await self._forward_cancel(context, remote_id)

            remote = await self.client.get_status(remote_id)
            if remote is None:
                raise ExternalServiceError(f"Analysis core lost task {remote_id}")

            if remote.status == TaskStatus.SUCCESS:
                return remote.message or f"{self.task_type.value} finished"
            if remote.status == TaskStatus.FAILURE:
                raise ExternalServiceError(
                    remote.message or f"{self.task_type.value} failed on analysis core"
                )
            if remote.status == TaskStatus.CANCELLED:
                raise TaskCancelled(context.task_id, "Cancelled on analysis core")

            current = (remote.progress, remote.message)
            if current != last_seen:
                await context.report_progress(remote.progress, remote.message or None)
                last_seen = current

            await self._wait(context)
