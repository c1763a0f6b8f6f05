"""Library path endpoints. Scans themselves run through the ``scan`` task."""

from fastapi import APIRouter, Depends, status

from audiomuse_aio.api.dependencies import get_library_paths
from audiomuse_aio.api.schemas.tasks import AddLibraryPathRequest, LibraryPathResponse
from audiomuse_aio.domain.ports import ILibraryPathRepository

router = APIRouter(prefix="/library")


@router.get("/paths", response_model=list[LibraryPathResponse])
async def list_library_paths(
    repository: ILibraryPathRepository = Depends(get_library_paths),
) -> list[LibraryPathResponse]:
    """Configured folders with the song count of their last completed scan."""
    return [LibraryPathResponse.from_entity(p) for p in await repository.list_all()]


@router.post(
    "/paths", response_model=LibraryPathResponse, status_code=status.HTTP_201_CREATED
)
async def add_library_path(
    body: AddLibraryPathRequest,
    repository: ILibraryPathRepository = Depends(get_library_paths),
) -> LibraryPathResponse:
    return LibraryPathResponse.from_entity(await repository.add(body.path))
