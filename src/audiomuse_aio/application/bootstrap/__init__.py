"""Container bootstrap: datastore init, readiness probing, credential handoff."""

from audiomuse_aio.application.bootstrap.credentials import (
    ConsumerEnvironment,
    CredentialExchange,
    CredentialHandoff,
    EnvFileCredentialStore,
)
from audiomuse_aio.application.bootstrap.policy import RetryPolicy
from audiomuse_aio.application.bootstrap.prober import ProbeOutcome, ReadinessProber
from audiomuse_aio.application.bootstrap.sequencer import (
    BootstrapResult,
    BootstrapSequencer,
    BootstrapState,
    build_consumer_descriptors,
    build_service_descriptors,
)

__all__ = [
    "BootstrapResult",
    "BootstrapSequencer",
    "BootstrapState",
    "ConsumerEnvironment",
    "CredentialExchange",
    "CredentialHandoff",
    "EnvFileCredentialStore",
    "ProbeOutcome",
    "ReadinessProber",
    "RetryPolicy",
    "build_consumer_descriptors",
    "build_service_descriptors",
]
