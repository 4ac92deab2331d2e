"""
Attachment object storage.

WHAT: Presigned upload/download URLs and existence checks against an
S3 compatible bucket (Cloudflare R2 in production).

WHY: Attachment bytes never pass through the API. The browser PUTs
straight to storage with a short-lived URL; the API only registers the
object once it can see it.

HOW: boto3 S3 client with a custom endpoint. ClientError is translated
to StorageError; a missing object is reported as False, not an error.
"""

import logging
import re
import uuid
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from client_portal.core.config import settings
from client_portal.core.exceptions import StorageError

logger = logging.getLogger(__name__)

ATTACHMENT_FOLDER = "comment-attachments"

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def attachment_scope(proposal_id: int) -> str:
    """Key prefix all attachments of a proposal live under."""
    return f"{ATTACHMENT_FOLDER}/proposal-{proposal_id}/"


def sanitize_file_name(file_name: str) -> str:
    """
    Make a file name safe to embed in a storage key.

    Path separators, control characters and whitespace runs are replaced.
    """
    name = file_name.replace("/", "_").replace("\\", "_").replace("\x00", "")
    name = re.sub(r"[\x00-\x1f]", "", name)
    return re.sub(r"\s+", "_", name.strip()) or "file"


def build_storage_key(proposal_id: int, file_name: str) -> str:
    """Unique key for a new attachment object."""
    return f"{attachment_scope(proposal_id)}{uuid.uuid4().hex[:12]}_{sanitize_file_name(file_name)}"


class StorageService:
    """
    S3 compatible storage client.

    Attributes:
        bucket_name: Target bucket
        expires_in: Lifetime of presigned URLs in seconds
    """

    def __init__(self, client: Any = None, bucket_name: Optional[str] = None, expires_in: Optional[int] = None):
        """
        Args:
            client: Preconfigured boto3 S3 client (built from settings if None)
            bucket_name: Bucket (defaults to settings)
            expires_in: Presigned URL lifetime (defaults to settings)
        """
        self.s3_client = client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT or None,
            aws_access_key_id=settings.S3_ACCESS_KEY or None,
            aws_secret_access_key=settings.S3_SECRET_KEY or None,
            region_name=settings.S3_REGION,
            config=Config(
                signature_version="s3v4",
                connect_timeout=settings.EXTERNAL_REQUEST_TIMEOUT_SECONDS,
                read_timeout=settings.EXTERNAL_REQUEST_TIMEOUT_SECONDS,
            ),
        )
        self.bucket_name = bucket_name or settings.S3_BUCKET
        self.expires_in = expires_in or settings.PRESIGNED_URL_EXPIRY_SECONDS

    def presign_upload(self, key: str, content_type: str) -> str:
        """
        Presigned PUT URL for a new object.

        Raises:
            StorageError: If the URL cannot be generated
        """
        try:
            return self.s3_client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket_name, "Key": key, "ContentType": content_type},
                ExpiresIn=self.expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to presign upload for {key}: {e}")
            raise StorageError(message="Failed to generate upload URL", error=str(e)) from e

    def presign_download(self, key: str, file_name: Optional[str] = None) -> str:
        """
        Presigned GET URL for an existing object.

        Raises:
            StorageError: If the URL cannot be generated
        """
        params: Dict[str, Any] = {"Bucket": self.bucket_name, "Key": key}
        if file_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{file_name}"'
        try:
            return self.s3_client.generate_presigned_url(
                "get_object", Params=params, ExpiresIn=self.expires_in
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to presign download for {key}: {e}")
            raise StorageError(message="Failed to generate download URL", error=str(e)) from e

    def object_exists(self, key: str) -> bool:
        """
        Check whether an object has been uploaded.

        Returns:
            True if HEAD succeeds, False if the object does not exist

        Raises:
            StorageError: Any other storage failure
        """
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return False
            logger.error(f"Failed to check object {key}: {e}")
            raise StorageError(message="Failed to check uploaded file", error=str(e)) from e
        except BotoCoreError as e:
            logger.error(f"Failed to check object {key}: {e}")
            raise StorageError(message="Failed to check uploaded file", error=str(e)) from e


_storage: Optional[StorageService] = None


def get_storage() -> StorageService:
    """FastAPI dependency returning the process-wide storage client."""
    global _storage
    if _storage is None:
        _storage = StorageService()
    return _storage
