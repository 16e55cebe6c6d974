"""Image storage for plant photos, kept on local disk and served under /uploads."""
import logging
import os
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@dataclass
class StoredImage:
    url: str
    key: str


class ImageStore:
    def __init__(self, directory: str, base_url: str, max_bytes: int):
        self.directory = directory
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes
        os.makedirs(self.directory, exist_ok=True)

    def save(self, content_type: Optional[str], data: bytes) -> StoredImage:
        extension = ALLOWED_IMAGE_TYPES.get((content_type or "").lower())
        if extension is None:
            raise ValidationError("Only image files allowed")
        if len(data) > self.max_bytes:
            raise ValidationError("Image is too large")
        key = f"{uuid4().hex}{extension}"
        with open(os.path.join(self.directory, key), "wb") as fh:
            fh.write(data)
        return StoredImage(url=f"{self.base_url}/uploads/{key}", key=key)

    def delete(self, key: str) -> None:
        # keys are bare file names we generated; refuse anything path-like
        if not key or os.path.basename(key) != key:
            raise ValueError(f"Invalid image key: {key!r}")
        os.remove(os.path.join(self.directory, key))
        logger.info("Deleted image %s", key)


_store: Optional[ImageStore] = None


def get_image_store() -> ImageStore:
    global _store
    if _store is None:
        _store = ImageStore(config.UPLOAD_DIR, config.PUBLIC_BASE_URL, config.MAX_UPLOAD_MB * 1024 * 1024)
    return _store
