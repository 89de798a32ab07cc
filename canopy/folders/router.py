"""FastAPI routes for folders."""

from fastapi import APIRouter, Depends, HTTPException, status

from canopy.errors import NotFoundError, ValidationError
from canopy.folders.schemas import CreateFolderRequest, FolderResponse, PatchFolderRequest
from canopy.folders.service import FolderService
from canopy.owner import get_owner_id

router = APIRouter(prefix="/api/folders", tags=["folders"])


def get_folder_service() -> FolderService:
    """Dependency placeholder, overridden at app startup."""
    raise RuntimeError("FolderService not initialized")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_folder(
    request: CreateFolderRequest,
    owner_id: str = Depends(get_owner_id),
    service: FolderService = Depends(get_folder_service),
) -> FolderResponse:
    try:
        return await service.create_folder(owner_id, request)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("")
async def list_folders(
    owner_id: str = Depends(get_owner_id),
    service: FolderService = Depends(get_folder_service),
) -> list[FolderResponse]:
    return await service.list_folders(owner_id)


@router.patch("/{folder_id}")
async def update_folder(
    folder_id: str,
    request: PatchFolderRequest,
    owner_id: str = Depends(get_owner_id),
    service: FolderService = Depends(get_folder_service),
) -> FolderResponse:
    try:
        return await service.update_folder(
            owner_id, folder_id, request.model_dump(exclude_unset=True)
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
