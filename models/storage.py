from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class StorageObject(BaseModel):
    id: UUID
    bucket_id: str
    name: str
    owner: Optional[UUID] = None
    content_type: Optional[str] = None
    size: int
    created_at: datetime
    updated_at: datetime
    public_url: Optional[str] = None
