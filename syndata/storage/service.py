"""Project bucket management on S3."""

import logging
import re
import time
from typing import Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from syndata.core.aws import AWSClients, aws_error_code, is_retryable_aws_error
from syndata.core.config import get_settings
from syndata.core.retry import retry_call

settings = get_settings()
logger = logging.getLogger(__name__)

BUCKET_NAME_RE = re.compile(r"[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class StorageError(Exception):
    """Raised when a bucket operation cannot be completed."""


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def slug_part(value: str, size: int) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())[:size] or "x"


def build_bucket_name(customer_id: Optional[str], project_id: str, now: Optional[float] = None) -> str:
    """<prefix>-<customer8>-<project8>-<base36 ms>, trimmed to S3's 63 chars."""
    stamp = _base36(int((now if now is not None else time.time()) * 1000))
    prefix = slug_part(settings.PROJECT_BUCKET_PREFIX, 20)
    name = f"{prefix}-{slug_part(customer_id or 'self', 8)}-{slug_part(project_id, 8)}-{stamp}"
    return name[:63].rstrip("-.")


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """Split s3://bucket/key into (bucket, key)."""
    if not uri or not uri.startswith("s3://"):
        raise ValueError(f"Not an S3 URI: {uri}")
    bucket, _, key = uri[len("s3://"):].partition("/")
    return bucket, key


class StorageService:
    """Handles S3 bucket and object operations for projects."""

    _instance = None

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def client(self):
        """Get S3 client."""
        client = AWSClients().get("s3")
        if client is None:
            raise StorageError("AWS S3 credentials not configured.")
        return client

    @staticmethod
    def _validated(bucket: str) -> str:
        if not bucket or not BUCKET_NAME_RE.fullmatch(bucket):
            raise StorageError(f"Invalid bucket name '{bucket}'.")
        return bucket

    def _call(self, description: str, fn):
        try:
            return retry_call(fn, is_retryable=is_retryable_aws_error, description=description)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 {description} failed: {e}")
            raise StorageError(f"{description} failed: {aws_error_code(e) or type(e).__name__}") from e

    # ==================== Buckets ====================

    def create_project_bucket(
        self,
        project_id: str,
        customer_id: Optional[str] = None,
        region: Optional[str] = None,
    ) -> Dict[str, str]:
        """Create a private, tagged bucket for a project and return its descriptor."""
        region = region or settings.AWS_REGION
        bucket = self._validated(build_bucket_name(customer_id, project_id))
        params = {"Bucket": bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}

        self._call("create_bucket", lambda: self.client.create_bucket(**params))
        self._call(
            "put_public_access_block",
            lambda: self.client.put_public_access_block(
                Bucket=bucket,
                PublicAccessBlockConfiguration={
                    "BlockPublicAcls": True,
                    "IgnorePublicAcls": True,
                    "BlockPublicPolicy": True,
                    "RestrictPublicBuckets": True,
                },
            ),
        )
        tags = [{"Key": "project-id", "Value": project_id}, {"Key": "managed-by", "Value": "syndatagen"}]
        if customer_id:
            tags.append({"Key": "customer-id", "Value": customer_id})
        self._call("put_bucket_tagging", lambda: self.client.put_bucket_tagging(Bucket=bucket, Tagging={"TagSet": tags}))

        logger.info(f"Created bucket {bucket} for project {project_id}")
        return {"bucket_name": bucket, "region": region}

    def delete_project_bucket(self, bucket: str, force: bool = False) -> None:
        """Delete a bucket; with `force`, empty it first."""
        bucket = self._validated(bucket)
        if force:
            for batch in self._iter_key_batches(bucket):
                self._call(
                    "delete_objects",
                    lambda batch=batch: self.client.delete_objects(
                        Bucket=bucket,
                        Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                    ),
                )
        self._call("delete_bucket", lambda: self.client.delete_bucket(Bucket=bucket))
        logger.info(f"Deleted bucket {bucket}")

    def set_retention(self, bucket: str, days: int) -> None:
        """Expire objects after `days`; 0 removes the rule."""
        bucket = self._validated(bucket)
        if not days:
            self._call("delete_bucket_lifecycle", lambda: self.client.delete_bucket_lifecycle(Bucket=bucket))
            return
        rules = [
            {
                "ID": "data-retention",
                "Status": "Enabled",
                "Filter": {"Prefix": ""},
                "Expiration": {"Days": int(days)},
                "AbortIncompleteMultipartUpload": {"DaysAfterInitiation": 1},
            }
        ]
        self._call(
            "put_bucket_lifecycle_configuration",
            lambda: self.client.put_bucket_lifecycle_configuration(
                Bucket=bucket, LifecycleConfiguration={"Rules": rules}
            ),
        )
        logger.info(f"Set {days}-day retention on bucket {bucket}")

    def get_bucket_usage(self, bucket: str) -> Tuple[int, int]:
        """Return (total bytes, object count)."""
        total_bytes = 0
        count = 0
        for obj in self.list_objects(self._validated(bucket)):
            total_bytes += int(obj["size"])
            count += 1
        return total_bytes, count

    # ==================== Objects ====================

    def list_objects(self, bucket: str, prefix: str = "", limit: Optional[int] = None) -> List[dict]:
        bucket = self._validated(bucket)
        items: List[dict] = []
        token = None
        while True:
            params = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": 1000}
            if token:
                params["ContinuationToken"] = token
            page = self._call("list_objects_v2", lambda params=params: self.client.list_objects_v2(**params))
            for obj in page.get("Contents", []):
                items.append(
                    {"key": obj["Key"], "size": int(obj.get("Size") or 0), "last_modified": obj.get("LastModified")}
                )
                if limit and len(items) >= limit:
                    return items
            if not page.get("IsTruncated"):
                return items
            token = page.get("NextContinuationToken")

    def _iter_key_batches(self, bucket: str, size: int = 1000):
        keys = [obj["key"] for obj in self.list_objects(bucket)]
        for start in range(0, len(keys), size):
            yield keys[start:start + size]

    def read_object_head(self, bucket: str, key: str, max_bytes: int) -> bytes:
        """Read at most `max_bytes` from the start of an object."""
        bucket = self._validated(bucket)
        response = self._call(
            "get_object",
            lambda: self.client.get_object(Bucket=bucket, Key=key, Range=f"bytes=0-{int(max_bytes) - 1}"),
        )
        return response["Body"].read(max_bytes)

    def generate_presigned_get_url(self, bucket: str, key: str, expiration: int = 300) -> str:
        """Generate a presigned URL for reading private objects."""
        return self._call(
            "generate_presigned_url",
            lambda: self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self._validated(bucket), "Key": key},
                ExpiresIn=expiration,
            ),
        )

    def generate_presigned_put_url(self, bucket: str, key: str, content_type: str, expiration: int = 300) -> str:
        """Generate a presigned URL for PUT upload."""
        return self._call(
            "generate_presigned_url",
            lambda: self.client.generate_presigned_url(
                ClientMethod="put_object",
                Params={"Bucket": self._validated(bucket), "Key": key, "ContentType": content_type},
                ExpiresIn=expiration,
            ),
        )
