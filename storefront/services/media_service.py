import logging
import re
import time
from dataclasses import dataclass

from imagekitio import ImageKit
from imagekitio.models.UploadFileRequestOptions import UploadFileRequestOptions

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class MediaUploadError(RuntimeError):
    pass


@dataclass
class UploadedMedia:
    url: str
    file_id: str
    thumbnail_url: str = ""


class MediaClient:
    """Thin wrapper over the ImageKit SDK. Built once at startup."""

    def __init__(self, private_key: str, public_key: str, url_endpoint: str, root_folder: str = ""):
        self.root_folder = root_folder.strip("/")
        self._imagekit = None
        if private_key and public_key and url_endpoint:
            self._imagekit = ImageKit(private_key=private_key, public_key=public_key, url_endpoint=url_endpoint)

    @property
    def enabled(self) -> bool:
        return self._imagekit is not None

    def _folder(self, folder: str) -> str:
        parts = [p for p in (self.root_folder, folder.strip("/")) if p]
        return "/" + "/".join(parts)

    def upload(self, upload, folder: str, prefix: str = "file") -> UploadedMedia:
        """Upload a FastAPI ``UploadFile``. Raises MediaUploadError on any failure."""
        if not self.enabled:
            raise MediaUploadError("Media CDN is not configured")
        name = _UNSAFE.sub("-", upload.filename or "upload")
        file_name = f"{prefix}-{int(time.time() * 1000)}-{name}"
        try:
            content = upload.file.read()
            result = self._imagekit.upload_file(
                file=content,
                file_name=file_name,
                options=UploadFileRequestOptions(folder=self._folder(folder), use_unique_file_name=True),
            )
        except Exception as e:
            logger.error("Media upload failed for %s: %s", file_name, e)
            raise MediaUploadError(f"Upload failed: {e}") from e
        return UploadedMedia(url=result.url, file_id=result.file_id, thumbnail_url=result.thumbnail_url or "")

    def delete(self, file_id: str) -> bool:
        """Delete a CDN file. Failures are logged, never raised."""
        if not file_id or not self.enabled:
            return False
        try:
            self._imagekit.delete_file(file_id=file_id)
        except Exception as e:
            logger.warning("Media delete failed for %s: %s", file_id, e)
            return False
        return True
