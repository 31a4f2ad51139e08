"""Avatar object storage.

Objects live in the `avatars` bucket under `{owner_id}/{filename}`. Metadata
rows in `storage_objects` are guarded by the bucket policies (public read,
owner-path writes); object bytes are written to disk under the configured
storage root.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import aiofiles

from config import settings_conf
from database.manager import BaseManager
from errors import ConstraintViolation, NotFoundError

logger = logging.getLogger(__name__)

AVATAR_BUCKET = 'avatars'
FILENAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$')

def validate_filename(filename: str) -> str:
    """Check a single path segment.

    Raises:
        ConstraintViolation: If the name is empty, hidden, too long or has a separator
    """
    if not filename or not FILENAME_PATTERN.match(filename) or '..' in filename:
        raise ConstraintViolation(
            "Invalid file name",
            field='name',
            value=filename,
            constraint='storage_objects_name'
        )
    return filename

def object_path(owner_id: str, filename: str) -> str:
    """Object name for an owner's file: `{owner_id}/{filename}`."""
    return f"{str(owner_id).lower()}/{validate_filename(filename)}"

def split_path(name: str) -> Tuple[str, str]:
    """Split and validate an object name into (owner segment, filename)."""
    owner, _, filename = (name or '').partition('/')
    if not owner or not re.match(r'^[0-9A-Fa-f-]{36}$', owner):
        raise ConstraintViolation(
            "Object name must start with the owner id",
            field='name',
            value=name,
            constraint='storage_objects_name'
        )
    return owner.lower(), validate_filename(filename)

class AvatarStore(BaseManager):
    """Stores avatar images and their metadata."""

    table = 'storage_objects'

    def __init__(
        self,
        pool=None,
        root: Optional[str] = None,
        public_url: Optional[str] = None,
        max_bytes: Optional[int] = None
    ):
        """Initialize avatar store.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            root: Directory holding bucket files, defaults to the storage_root setting
            public_url: Base URL objects are served from
            max_bytes: Largest accepted upload
        """
        super().__init__(pool)
        self.root = Path(root or settings_conf['storage_root'])
        self.base_url = (public_url or settings_conf['storage_public_url']).rstrip('/')
        self.max_bytes = max_bytes or settings_conf['max_avatar_bytes']

    def _file_path(self, name: str) -> Path:
        owner, filename = split_path(name)
        return self.root / AVATAR_BUCKET / owner / filename

    def public_url(self, name: str) -> str:
        """Public URL of an avatar object."""
        split_path(name)
        return f"{self.base_url}/{AVATAR_BUCKET}/{name}"

    def _view(self, row) -> Dict[str, Any]:
        obj = dict(row)
        obj['public_url'] = self.public_url(obj['name'])
        return obj

    async def upload(
        self,
        caller_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str],
        upsert: bool = True
    ) -> Dict[str, Any]:
        """Store an avatar under the caller's path.

        Args:
            caller_id: Authenticated caller, owner of the path
            filename: File name within the caller's folder
            content: Image bytes
            content_type: MIME type, must be an image type
            upsert: Replace an existing object with the same name

        Returns:
            The storage object metadata with its public_url

        Raises:
            ConstraintViolation: If the name, type or size is invalid, or the
                object exists and upsert is False
        """
        name = object_path(caller_id, filename)
        if not content_type or not content_type.startswith('image/'):
            raise ConstraintViolation(
                "File must be an image",
                field='content_type',
                value=content_type,
                constraint='storage_objects_content_type'
            )
        if len(content) > self.max_bytes:
            raise ConstraintViolation(
                f"File exceeds {self.max_bytes} bytes",
                field='size',
                value=len(content),
                constraint='storage_objects_size_check'
            )

        row = {'bucket_id': AVATAR_BUCKET, 'name': name, 'owner': caller_id}
        self.authorize_insert(caller_id, row)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            existing = await conn.fetchrow(
                'SELECT * FROM storage_objects WHERE bucket_id = $1 AND name = $2',
                AVATAR_BUCKET,
                name
            )

            if existing and not upsert:
                raise ConstraintViolation(
                    "Object already exists",
                    field='name',
                    value=name,
                    constraint='storage_objects_bucket_id_name_key'
                )

            if existing:
                self.authorize_update(caller_id, dict(existing), row)
                stored = await conn.fetchrow(
                    '''
                    UPDATE storage_objects
                    SET content_type = $2, size = $3
                    WHERE id = $1
                    RETURNING *
                    ''',
                    existing['id'],
                    content_type,
                    len(content)
                )
            else:
                stored = await conn.fetchrow(
                    '''
                    INSERT INTO storage_objects (bucket_id, name, owner, content_type, size)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                    ''',
                    AVATAR_BUCKET,
                    name,
                    caller_id,
                    content_type,
                    len(content)
                )

            # Written inside the transaction so a failed write leaves no metadata
            file_path = self._file_path(name)
            os.makedirs(file_path.parent, exist_ok=True)
            async with aiofiles.open(file_path, 'wb') as f:
                await f.write(content)

        logger.info(f"Stored avatar {name} ({len(content)} bytes)")
        return self._view(stored)

    async def download(self, caller_id: Optional[str], name: str) -> Tuple[bytes, Dict[str, Any]]:
        """Read an avatar; avatars are public.

        Returns:
            Tuple of (content, metadata)

        Raises:
            NotFoundError: If the object does not exist
        """
        file_path = self._file_path(name)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            stored = await self.fetch_visible(
                conn,
                'SELECT * FROM storage_objects WHERE bucket_id = $1 AND name = $2',
                AVATAR_BUCKET,
                name
            )

        try:
            async with aiofiles.open(file_path, 'rb') as f:
                content = await f.read()
        except FileNotFoundError:
            logger.error(f"Avatar {name} has metadata but no file")
            raise NotFoundError()

        return content, self._view(stored)

    async def delete(self, caller_id: str, name: str) -> None:
        """Delete one of the caller's avatars.

        Raises:
            NotFoundError: If the object does not exist
            AuthorizationDenied: If the object is under another user's path
        """
        file_path = self._file_path(name)
        await self.ensure_pool()

        async with self.acting_as(caller_id) as conn:
            stored = await self.fetch_visible(
                conn,
                'SELECT * FROM storage_objects WHERE bucket_id = $1 AND name = $2',
                AVATAR_BUCKET,
                name
            )
            self.authorize_delete(caller_id, stored)
            await conn.execute('DELETE FROM storage_objects WHERE id = $1', stored['id'])

            try:
                os.remove(file_path)
            except FileNotFoundError:
                logger.warning(f"Avatar {name} had no file to delete")

        logger.info(f"Deleted avatar {name}")

# Create global instance
avatar_store = AvatarStore()

__all__ = [
    'AvatarStore',
    'avatar_store',
    'AVATAR_BUCKET',
    'object_path',
    'split_path',
    'validate_filename'
]
