# recipeflow/app/infra/storage/r2_provider.py
"""
Cloudflare R2 storage for photo submissions and generated recipe images.
R2 speaks the S3 API, so the provider is a thin boto3 client pointed at the
account endpoint.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone, timedelta
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from recipeflow.app.domain.errors import StorageError, StorageObjectNotFoundError
from recipeflow.app.infra.storage.base import StorageProvider

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

# Photos larger than this are rejected before they reach the vision model.
MAX_SUBMISSION_BYTES = 20 * 1024 * 1024


def build_r2_client(account_id: str, access_key_id: str, secret_access_key: str) -> Any:
    return boto3.client(
        "s3",
        endpoint_url=f"https://{account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        config=Config(
            signature_version="s3v4",
            retries={"max_attempts": 3, "mode": "adaptive"},
        ),
        region_name="auto",  # R2 uses 'auto' as region
    )


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", "Unknown"))


class R2StorageProvider(StorageProvider):
    """
    Photo submissions are written by the browser through a signed PUT URL and
    read back by the OCR step; recipe images are written by the image stage
    and served from ``public_url`` (the bucket's CDN domain when configured).
    """

    def __init__(
        self,
        account_id: Optional[str],
        access_key_id: Optional[str],
        secret_access_key: Optional[str],
        bucket_name: Optional[str],
        public_url: Optional[str] = None,
        client: Any = None,
    ):
        missing = [
            name
            for name, value in (
                ("R2_ACCOUNT_ID", account_id),
                ("R2_ACCESS_KEY_ID", access_key_id),
                ("R2_SECRET_ACCESS_KEY", secret_access_key),
                ("R2_BUCKET_NAME", bucket_name),
            )
            if not value
        ]
        if missing:
            raise StorageError(f"Missing R2 configuration: {', '.join(missing)}")

        self.bucket_name = bucket_name
        self.endpoint_url = f"https://{account_id}.r2.cloudflarestorage.com"
        self.public_base_url = (public_url or f"{self.endpoint_url}/{bucket_name}").rstrip("/")
        self._client = client or build_r2_client(account_id, access_key_id, secret_access_key)

        logger.info("R2 storage ready: bucket=%s, public_base=%s", self.bucket_name, self.public_base_url)

    def generate_signed_put_url(
        self,
        object_key: str,
        content_type: str,
        expires_seconds: int = 3600,
    ) -> tuple[str, datetime]:
        """Signed URL the client uses to upload a recipe photo directly."""
        try:
            url = self._client.generate_presigned_url(
                ClientMethod="put_object",
                Params={"Bucket": self.bucket_name, "Key": object_key, "ContentType": content_type},
                ExpiresIn=expires_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._failure("sign upload", object_key, e) from e

        return url, datetime.now(timezone.utc) + timedelta(seconds=expires_seconds)

    def get_object_bytes(self, object_key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=object_key)
            size = int(response.get("ContentLength") or 0)
            if size > MAX_SUBMISSION_BYTES:
                raise StorageError(f"Object too large: {object_key} ({size} bytes)")
            body = response["Body"].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise StorageObjectNotFoundError(object_key) from e
            raise self._failure("read", object_key, e) from e
        except BotoCoreError as e:
            raise self._failure("read", object_key, e) from e

        logger.info("Read object: key=%s, size=%d bytes", object_key, len(body))
        return body

    def put_object(self, object_key: str, body: bytes, content_type: str) -> None:
        try:
            self._client.put_object(Bucket=self.bucket_name, Key=object_key, Body=body, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise self._failure("upload", object_key, e) from e

        logger.info("Stored object: key=%s, size=%d bytes, type=%s", object_key, len(body), content_type)

    def public_url(self, object_key: str) -> str:
        return f"{self.public_base_url}/{object_key}"

    def _failure(self, action: str, object_key: str, error: Exception) -> StorageError:
        logger.error("R2 %s failed: key=%s, error=%s", action, object_key, error)
        return StorageError(f"Failed to {action} {object_key}: {error}")
