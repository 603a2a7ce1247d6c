"""
Blob Store for EventHub.
Keeps uploaded event images in a local directory served under /uploads.
"""

import logging
import os
import uuid
import aiofiles
import aiofiles.os
from pathlib import Path
from typing import Dict

from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES: Dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}

UPLOADS_PATH = "/uploads"


class LocalBlobStore:
    """
    Stores image bytes on disk and returns a public URL for them.
    """

    def __init__(self, upload_dir: str, public_base_url: str, max_bytes: int = 5 * 1024 * 1024):
        self.upload_dir = Path(upload_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.max_bytes = max_bytes

    def ensure_directory(self):
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    async def store(self, data: bytes, mime_type: str) -> str:
        """
        Store an image and return its public URL.

        Raises:
            ValidationError: If the file is empty, too large or not jpeg/png/gif
        """
        extension = ALLOWED_IMAGE_TYPES.get((mime_type or "").lower())
        if extension is None:
            raise ValidationError(
                "Only image files are allowed",
                details={"allowed_types": sorted(ALLOWED_IMAGE_TYPES)}
            )
        if not data:
            raise ValidationError("Uploaded file is empty")
        if len(data) > self.max_bytes:
            raise ValidationError(
                "Uploaded file is too large",
                details={"max_bytes": self.max_bytes}
            )

        filename = f"{uuid.uuid4().hex}{extension}"
        await aiofiles.os.makedirs(self.upload_dir, exist_ok=True)
        async with aiofiles.open(self.upload_dir / filename, "wb") as f:
            await f.write(data)

        logger.info(f"Stored {len(data)} bytes as {filename}")
        return f"{self.public_base_url}{UPLOADS_PATH}/{filename}"

    def path_for(self, url: str) -> Path:
        """Local path of a URL returned by store."""
        return self.upload_dir / os.path.basename(url)
