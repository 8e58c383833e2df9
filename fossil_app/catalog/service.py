"""
Create, update, delete and look up single fossils.

Images go to object storage before any row is written, so a row never
references an image that failed to upload. Ownership is enforced by the
mutation itself (``id`` and ``user_id`` are both part of the predicate),
not only by a check in this process. Removing an image that is no
longer referenced is best effort: the row mutation already succeeded
and is never rolled back because of it.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..errors import FossilNotFoundError, FossilPermissionError
from ..models import AuthUser, ImageUpload
from .events import Invalidate, InvalidationBus
from .schemas import Fossil, FossilCreate, FossilUpdate

logger = logging.getLogger(__name__)

FOSSILS_TABLE = "fossils"
DEFAULT_BUCKET = "fossil-images"
IMAGE_CACHE_CONTROL = "3600"
PERMISSION_MESSAGE = "You do not have permission to modify this fossil"


def build_image_path(user_id: str, filename: str, now_ms: int) -> str:
    """Storage path for a new image: ``<user_id>/<epoch millis>.<ext>``."""
    ext = filename.rsplit(".", 1)[-1]
    return f"{user_id}/{now_ms}.{ext}"


def image_path_from_url(url: Optional[str], bucket: str = DEFAULT_BUCKET) -> Optional[str]:
    """Recover the storage path from a public image URL.

    Everything after the bucket segment is the path. Returns ``None``
    for URLs that do not point into ``bucket``.
    """
    if not url:
        return None
    parts = url.split("/")
    if bucket not in parts:
        return None
    index = parts.index(bucket)
    if index >= len(parts) - 1:
        return None
    return "/".join(parts[index + 1:])


class FossilService:
    def __init__(
        self,
        client,
        bus: Optional[InvalidationBus] = None,
        bucket: str = DEFAULT_BUCKET,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.bus = bus
        self.bucket = bucket
        self._clock = clock

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    def _changed(self) -> None:
        if self.bus is not None:
            self.bus.publish(Invalidate())

    async def _upload(self, user: AuthUser, image: ImageUpload) -> tuple:
        path = build_image_path(user.id, image.filename, int(self._clock() * 1000))
        bucket = self._bucket()
        await bucket.upload(
            path,
            image.content,
            content_type=image.content_type,
            cache_control=IMAGE_CACHE_CONTROL,
            upsert=False,
        )
        return path, bucket.get_public_url(path)

    async def _remove_quietly(self, path: Optional[str]) -> None:
        if not path:
            return
        try:
            await self._bucket().remove([path])
        except Exception as exc:
            logger.warning("Failed to delete image %s: %s", path, exc)

    async def _missing_or_forbidden(self, fossil_id: str) -> Exception:
        result = await self.client.table(FOSSILS_TABLE).select("id").eq("id", fossil_id).execute()
        if not result.data:
            return FossilNotFoundError(f"Fossil {fossil_id} not found")
        return FossilPermissionError(PERMISSION_MESSAGE)

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get_fossil(self, fossil_id: str) -> Fossil:
        result = await self.client.table(FOSSILS_TABLE).select("*").eq("id", fossil_id).execute()
        if not result.data:
            raise FossilNotFoundError(f"Fossil {fossil_id} not found")
        return Fossil.model_validate(result.data[0])

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    async def create_fossil(self, user: AuthUser, payload: FossilCreate, image: ImageUpload) -> Fossil:
        """
        Upload the image, then insert the fossil row.

        If the insert fails the uploaded image is removed again.
        """
        path, public_url = await self._upload(user, image)

        row = payload.to_row()
        row.update(user_id=user.id, image_url=public_url)
        try:
            result = await self.client.table(FOSSILS_TABLE).insert(row).execute()
        except Exception:
            await self._remove_quietly(path)
            raise

        fossil = Fossil.model_validate(result.data[0])
        logger.info("User %s created fossil %s", user.id, fossil.id)
        self._changed()
        return fossil

    async def update_fossil(
        self,
        user: AuthUser,
        fossil_id: str,
        payload: FossilUpdate,
        image: Optional[ImageUpload] = None,
    ) -> Fossil:
        """
        Update a fossil owned by ``user``, optionally replacing its image.

        Raises:
            FossilPermissionError: the fossil belongs to someone else
            FossilNotFoundError: no fossil has this id
        """
        old_image_url = None
        new_path = None
        values = payload.to_row()

        if image is not None:
            owned = await (
                self.client.table(FOSSILS_TABLE)
                .select("image_url")
                .eq("id", fossil_id)
                .eq("user_id", user.id)
                .execute()
            )
            if not owned.data:
                raise await self._missing_or_forbidden(fossil_id)
            old_image_url = owned.data[0].get("image_url")
            new_path, values["image_url"] = await self._upload(user, image)

        try:
            result = await (
                self.client.table(FOSSILS_TABLE)
                .update(values)
                .eq("id", fossil_id)
                .eq("user_id", user.id)
                .execute()
            )
        except Exception:
            await self._remove_quietly(new_path)
            raise

        if not result.data:
            await self._remove_quietly(new_path)
            raise await self._missing_or_forbidden(fossil_id)

        if new_path is not None:
            await self._remove_quietly(image_path_from_url(old_image_url, self.bucket))

        logger.info("User %s updated fossil %s", user.id, fossil_id)
        self._changed()
        return Fossil.model_validate(result.data[0])

    async def delete_fossil(self, user: AuthUser, fossil_id: str) -> None:
        result = await (
            self.client.table(FOSSILS_TABLE)
            .delete()
            .eq("id", fossil_id)
            .eq("user_id", user.id)
            .execute()
        )
        if not result.data:
            raise await self._missing_or_forbidden(fossil_id)

        await self._remove_quietly(image_path_from_url(result.data[0].get("image_url"), self.bucket))
        logger.info("User %s deleted fossil %s", user.id, fossil_id)
        self._changed()
