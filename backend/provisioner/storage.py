import logging
import os
import re

from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigurationError, classify_provider_error, client_error_code

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def _safe_key(name: str) -> str:
    value = re.sub(r"[^a-zA-Z0-9._/-]+", "-", (name or "image").strip()).strip("/")
    return value or "image"


class S3StagingStorage:
    """Bucket used to stage raw disk images before a snapshot import."""

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = (bucket or "").strip()

    def _require_bucket(self) -> str:
        if not self.bucket:
            raise ConfigurationError("s3 staging bucket is required (PROVISIONER_BUCKET)")
        return self.bucket

    def upload(self, path: str, key: str = "") -> str:
        bucket = self._require_bucket()
        key = _safe_key(key or os.path.basename(path))
        try:
            self.client.upload_file(path, bucket, key)
        except (ClientError, BotoCoreError) as exc:
            raise classify_provider_error(exc, f"upload of {path} to s3://{bucket}/{key} failed") from exc
        logger.info("Staged %s as s3://%s/%s", path, bucket, key)
        return key

    def delete(self, key: str) -> None:
        bucket = self._require_bucket()
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if client_error_code(exc) in _MISSING_CODES:
                logger.warning("Staging object s3://%s/%s already absent", bucket, key)
                return
            raise classify_provider_error(exc, f"delete of s3://{bucket}/{key} failed") from exc
        except BotoCoreError as exc:
            raise classify_provider_error(exc, f"delete of s3://{bucket}/{key} failed") from exc
