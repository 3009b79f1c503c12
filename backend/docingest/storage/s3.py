"""
S3 Document Uploader — the pipeline's upload collaborator.

Key layout (constructed server-side, never from client input):

    s3://<BUCKET>/projects/<project_id>/<epoch_ms>_<random>.<ext>

The original filename is not part of the key. It is kept in S3 object
metadata and in the document record's title, so two uploads of
"notes.txt" never collide and path-like names can't escape the prefix.

Validation (extension allow-list, size ceiling, non-empty) happens here,
before any AWS call, and is reported as FileValidationError.
"""

from __future__ import annotations

import logging
import mimetypes
import secrets
import time
from uuid import UUID

import aioboto3
from botocore.exceptions import ClientError

from docingest.core.config import settings
from docingest.core.exceptions import FileValidationError, StorageError
from docingest.schemas.documents import ALLOWED_FILE_TYPES
from docingest.services.collaborators import DocumentUploader, IncomingFile, UploadResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_file(file: IncomingFile, max_size_bytes: int | None = None) -> None:
    """Raise FileValidationError if the file can't enter the pipeline."""
    limit = max_size_bytes if max_size_bytes is not None else settings.max_file_size_bytes

    if file.extension not in ALLOWED_FILE_TYPES:
        raise FileValidationError(
            f"Invalid file type. Allowed types: {', '.join(ALLOWED_FILE_TYPES)}"
        )

    if file.size == 0:
        raise FileValidationError("File is empty")

    if file.size > limit:
        raise FileValidationError(f"File size exceeds {limit // (1024 * 1024)}MB limit")


def build_object_key(project_id: UUID, extension: str) -> str:
    """projects/<project_id>/<epoch_ms>_<random>.<ext>"""
    return f"projects/{project_id}/{int(time.time() * 1000)}_{secrets.token_hex(6)}.{extension}"


# ---------------------------------------------------------------------------
# Uploader
# ---------------------------------------------------------------------------

class S3DocumentUploader(DocumentUploader):
    """
    Async S3 upload of raw document files.

    Usage:
        uploader = S3DocumentUploader()
        result   = await uploader.upload(file, project_id)
        result.file_url  → stored on the document record
    """

    def __init__(
        self,
        bucket:          str | None = None,
        region:          str | None = None,
        public_base_url: str | None = None,
        max_size_bytes:  int | None = None,
        endpoint_url:    str | None = None,
    ) -> None:
        self._bucket   = bucket or settings.s3_bucket
        self._region   = region or settings.aws_region
        self._base_url = (public_base_url if public_base_url is not None else settings.s3_public_base_url).rstrip("/")
        self._max_size = max_size_bytes
        self._endpoint = endpoint_url or settings.s3_endpoint_url
        self._session  = aioboto3.Session()

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", region_name=self._region, endpoint_url=self._endpoint)

    def file_url(self, key: str) -> str:
        if self._base_url:
            return f"{self._base_url}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    async def upload(self, file: IncomingFile, project_id: UUID) -> UploadResult:
        validate_file(file, self._max_size)

        key = build_object_key(project_id, file.extension)
        content_type = (
            file.content_type
            or mimetypes.guess_type(file.filename)[0]
            or "application/octet-stream"
        )

        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=file.content,
                    ContentType=content_type,
                    CacheControl="max-age=3600",
                    Metadata={
                        "project_id":        str(project_id),
                        # S3 metadata must be ASCII
                        "original_filename": file.filename.encode("ascii", "replace").decode(),
                    },
                )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            logger.error("S3 upload failed | project=%s key=%s code=%s", project_id, key, code)
            raise StorageError(f"Upload failed ({code})") from exc

        logger.info(
            "S3 upload ok | project=%s key=%s size=%d",
            project_id, key, file.size,
        )
        return UploadResult(file_url=self.file_url(key), storage_key=key)
