"""Avatar storage endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Response, Security, UploadFile, status

from auth import get_current_user, get_optional_user
from models import StorageObject
from storage import avatar_store

router = APIRouter(
    prefix="/storage/avatars",
    tags=["Storage"]
)

@router.put("/{filename}", response_model=StorageObject)
async def upload_avatar(
    filename: str,
    file: UploadFile = File(...),
    user_id: str = Security(get_current_user)
):
    """Upload an image to the caller's avatar folder."""
    content = await file.read()
    return await avatar_store.upload(user_id, filename, content, file.content_type)

@router.get("/{owner_id}/{filename}")
async def download_avatar(
    owner_id: UUID,
    filename: str,
    user_id: Optional[str] = Depends(get_optional_user)
):
    """Serve an avatar image; avatars are public."""
    content, stored = await avatar_store.download(user_id, f"{owner_id}/{filename}")
    return Response(content=content, media_type=stored['content_type'])

@router.delete("/{owner_id}/{filename}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_avatar(
    owner_id: UUID,
    filename: str,
    user_id: str = Security(get_current_user)
):
    """Delete one of the caller's avatars."""
    await avatar_store.delete(user_id, f"{owner_id}/{filename}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# Export the router
__all__ = ['router']
