"""Request and response schemas for folder endpoints."""

from pydantic import BaseModel


class CreateFolderRequest(BaseModel):
    name: str
    parent_id: str | None = None


class PatchFolderRequest(BaseModel):
    """Fields to update on a folder. Only fields present in the request body are changed."""

    name: str | None = None
    parent_id: str | None = None


class FolderResponse(BaseModel):
    folder_id: str
    owner_id: str
    name: str
    parent_id: str | None = None
    created_at: str
    updated_at: str
