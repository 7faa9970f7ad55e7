"""
Photo storage for meal photos and profile pictures.

Uploads are written under a media directory and addressed by a URL built from
the configured base URL, so the URL stored in a document stays valid for as long
as the file exists.
"""
# campuscare/storage.py

import logging
import mimetypes
import os
import uuid

from campuscare.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class PhotoStorage:
    """Stores uploaded images and returns their URLs."""

    def __init__(self, media_dir: str, base_url: str = ""):
        self.media_dir = media_dir
        self.base_url = base_url.rstrip("/")

    def upload(self, folder: str, data: bytes, content_type: str, name: str = None) -> str:
        """Saves an image and returns its URL.

        Args:
            folder: Sub-folder such as 'mess-photos' or 'profile-pictures'.
            data: The raw image bytes.
            content_type: The MIME type reported by the browser.
            name: Optional file name without extension; a random one is used otherwise.

        Raises:
            UpstreamServiceError: If the file is not an accepted image or cannot be written.
        """
        if content_type not in ALLOWED_TYPES:
            raise UpstreamServiceError(f"Unsupported image type: {content_type}")
        if not data:
            raise UpstreamServiceError("The uploaded file is empty.")
        if len(data) > MAX_UPLOAD_BYTES:
            raise UpstreamServiceError("Photos must be 5 MB or smaller.")

        extension = mimetypes.guess_extension(content_type) or ".bin"
        filename = f"{name or uuid.uuid4().hex}{extension}"
        directory = os.path.join(self.media_dir, folder)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(os.path.join(directory, filename), "wb") as f:
                f.write(data)
        except OSError as e:
            raise UpstreamServiceError(f"Photo upload failed: {e}") from e
        logger.info("Stored %s/%s (%d bytes)", folder, filename, len(data))
        return self.url_for(folder, filename)

    def url_for(self, folder: str, filename: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{folder}/{filename}"
        return "file://" + os.path.abspath(os.path.join(self.media_dir, folder, filename))

    def path_for(self, url: str):
        """Maps a URL returned by `upload` back to a local path, or None for foreign URLs."""
        prefix = self.base_url + "/" if self.base_url else "file://" + os.path.abspath(self.media_dir) + os.sep
        if not url or not url.startswith(prefix):
            return None
        return os.path.join(self.media_dir, url[len(prefix):])
