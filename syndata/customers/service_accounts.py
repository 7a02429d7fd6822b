"""
Per-customer cloud identities.

Each customer gets a dedicated IAM user whose inline policy only reaches
that customer's project buckets. Its access key lives in Secrets Manager;
Mongo only keeps a reference to the secret.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from syndata.core.aws import AWSClients, aws_error_code, is_retryable_aws_error
from syndata.core.config import get_settings
from syndata.core.documents import utcnow
from syndata.core.exceptions import BadGatewayException, BadRequestException, ConflictException, NotFoundException
from syndata.core.retry import retry_call
from syndata.customers.audit import AuditService
from syndata.customers.service import CustomerService
from syndata.storage.service import slug_part

settings = get_settings()
logger = logging.getLogger(__name__)

POLICY_NAME = "syndatagen-project-buckets"
MAX_ACCESS_KEYS = 2


class ServiceAccountError(Exception):
    """The cloud provider rejected or failed a service-account operation."""


def service_account_name(customer_id: str, customer_name: str) -> str:
    normalized = re.sub(r"[^a-z0-9-]+", "-", (customer_name or "").lower()).strip("-")[:20].strip("-")
    return f"customer-{normalized or 'account'}-{customer_id[-6:]}"


def bucket_policy(customer_id: str) -> Dict[str, Any]:
    pattern = f"arn:aws:s3:::{slug_part(settings.PROJECT_BUCKET_PREFIX, 20)}-{slug_part(customer_id, 8)}-*"
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": ["s3:ListBucket", "s3:GetBucketLocation"],
                "Resource": [pattern],
            },
            {
                "Effect": "Allow",
                "Action": ["s3:GetObject", "s3:PutObject", "s3:DeleteObject"],
                "Resource": [f"{pattern}/*"],
            },
        ],
    }


class ServiceAccountProvider:
    """Blocking boto3 calls; the async service runs them in a thread pool."""

    @staticmethod
    def _client(name: str):
        client = AWSClients().get(name)
        if client is None:
            raise ServiceAccountError(f"AWS {name} client is not configured")
        return client

    def _call(self, description: str, fn):
        try:
            return retry_call(fn, is_retryable=is_retryable_aws_error, description=description)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"{description} failed: {e}")
            raise ServiceAccountError(f"{description} failed: {aws_error_code(e) or type(e).__name__}") from e

    # ==================== Identity ====================

    def create_identity(self, user_name: str, customer_id: str) -> Dict[str, str]:
        iam = self._client("iam")
        user = self._call(
            "iam.create_user",
            lambda: iam.create_user(
                UserName=user_name,
                Path=settings.SERVICE_ACCOUNT_PATH,
                Tags=[{"Key": "customer-id", "Value": customer_id}, {"Key": "managed-by", "Value": "syndatagen"}],
            ),
        )["User"]
        try:
            self._call(
                "iam.put_user_policy",
                lambda: iam.put_user_policy(
                    UserName=user_name,
                    PolicyName=POLICY_NAME,
                    PolicyDocument=json.dumps(bucket_policy(customer_id)),
                ),
            )
        except ServiceAccountError:
            # A user without its policy would block every later provision attempt.
            self._call("iam.delete_user", lambda: iam.delete_user(UserName=user_name))
            raise
        logger.info(f"Created service account {user_name} for customer {customer_id}")
        return {"account_id": user["UserName"], "email": user["Arn"]}

    def delete_identity(self, user_name: str) -> None:
        """Remove keys and inline policies, then the user itself."""
        iam = self._client("iam")
        for key in self.list_keys(user_name):
            self.delete_key(user_name, key["AccessKeyId"])
        policies = self._call("iam.list_user_policies", lambda: iam.list_user_policies(UserName=user_name))
        for policy_name in policies.get("PolicyNames", []):
            self._call(
                "iam.delete_user_policy",
                lambda policy_name=policy_name: iam.delete_user_policy(UserName=user_name, PolicyName=policy_name),
            )
        self._call("iam.delete_user", lambda: iam.delete_user(UserName=user_name))
        logger.info(f"Deleted service account {user_name}")

    # ==================== Keys ====================

    def create_key(self, user_name: str) -> Dict[str, str]:
        iam = self._client("iam")
        key = self._call("iam.create_access_key", lambda: iam.create_access_key(UserName=user_name))["AccessKey"]
        return {"access_key_id": key["AccessKeyId"], "secret_access_key": key["SecretAccessKey"]}

    def list_keys(self, user_name: str) -> List[dict]:
        """Access keys, oldest first."""
        iam = self._client("iam")
        response = self._call("iam.list_access_keys", lambda: iam.list_access_keys(UserName=user_name))
        return sorted(response.get("AccessKeyMetadata", []), key=lambda k: str(k.get("CreateDate") or ""))

    def delete_key(self, user_name: str, key_id: str) -> None:
        iam = self._client("iam")
        self._call(
            "iam.delete_access_key",
            lambda: iam.delete_access_key(UserName=user_name, AccessKeyId=key_id),
        )

    # ==================== Secrets ====================

    def store_secret(self, name: str, payload: Dict[str, Any]) -> str:
        secrets = self._client("secretsmanager")
        response = self._call(
            "secretsmanager.create_secret",
            lambda: secrets.create_secret(Name=name, SecretString=json.dumps(payload)),
        )
        return response["ARN"]

    def read_secret(self, ref: str) -> Dict[str, Any]:
        secrets = self._client("secretsmanager")
        response = self._call("secretsmanager.get_secret_value", lambda: secrets.get_secret_value(SecretId=ref))
        return json.loads(response["SecretString"])

    def delete_secret(self, ref: str) -> None:
        secrets = self._client("secretsmanager")
        self._call(
            "secretsmanager.delete_secret",
            lambda: secrets.delete_secret(SecretId=ref, ForceDeleteWithoutRecovery=True),
        )


class ServiceAccountService:
    provider = ServiceAccountProvider()

    @staticmethod
    def _secret_name(customer_id: str, key_id: str) -> str:
        return f"{settings.SERVICE_ACCOUNT_SECRET_PREFIX}/{customer_id}/{key_id}"

    @staticmethod
    def _secret_payload(user_name: str, key: Dict[str, str]) -> Dict[str, Any]:
        return {
            "type": "aws_access_key",
            "user_name": user_name,
            "access_key_id": key["access_key_id"],
            "secret_access_key": key["secret_access_key"],
            "region": settings.AWS_REGION,
            "created_at": utcnow().isoformat() + "Z",
        }

    @staticmethod
    def _require_ref(customer: dict) -> dict:
        ref = customer.get("service_account")
        if not ref:
            raise NotFoundException("Customer has no service account")
        return ref

    @classmethod
    async def _store_key(cls, customer_id: str, user_name: str) -> Dict[str, str]:
        key = await run_in_threadpool(cls.provider.create_key, user_name)
        try:
            key_ref = await run_in_threadpool(
                cls.provider.store_secret,
                cls._secret_name(customer_id, key["access_key_id"]),
                cls._secret_payload(user_name, key),
            )
        except ServiceAccountError:
            # A key nobody can read is useless; don't leave it active.
            await run_in_threadpool(cls.provider.delete_key, user_name, key["access_key_id"])
            raise
        return {"key_id": key["access_key_id"], "key_ref": key_ref}

    @classmethod
    async def get_info(cls, customer_id: str) -> dict:
        customer = await CustomerService._load(customer_id)
        return cls._require_ref(customer)

    @classmethod
    async def provision(cls, customer_id: str, actor: str) -> dict:
        customer = await CustomerService._load(customer_id)
        if customer.get("service_account"):
            raise ConflictException("Customer already has a service account")

        user_name = service_account_name(customer_id, customer.get("name", ""))
        try:
            identity = await run_in_threadpool(cls.provider.create_identity, user_name, customer_id)
            try:
                stored = await cls._store_key(customer_id, user_name)
            except ServiceAccountError:
                await run_in_threadpool(cls.provider.delete_identity, user_name)
                raise
        except ServiceAccountError as e:
            logger.error(f"Service account provisioning failed for customer {customer_id}: {e}")
            raise BadGatewayException("Cloud provider error while provisioning the service account")

        now = utcnow()
        ref = {**identity, **stored, "created_at": now, "last_rotated_at": None}
        await CustomerService._collection().update_one(
            {"_id": customer["_id"]},
            {"$set": {"service_account": ref, "updated_at": now}},
        )
        await AuditService.record(
            customer_id, "service_account_create", actor, {"service_account": {"old": None, "new": identity["account_id"]}}
        )
        return ref

    @classmethod
    async def rotate(cls, customer_id: str, actor: str) -> dict:
        customer = await CustomerService._load(customer_id)
        ref = cls._require_ref(customer)
        user_name = ref["account_id"]
        active_key = ref.get("key_id")

        try:
            keys = await run_in_threadpool(cls.provider.list_keys, user_name)
            if len(keys) >= MAX_ACCESS_KEYS:
                # Make room without touching the key the stored secret belongs to.
                spare = next(k["AccessKeyId"] for k in keys if k["AccessKeyId"] != active_key)
                logger.info(f"{user_name} is at the access key limit; deleting inactive key {spare}")
                await run_in_threadpool(cls.provider.delete_key, user_name, spare)

            stored = await cls._store_key(customer_id, user_name)
        except ServiceAccountError as e:
            logger.error(f"Key rotation failed for customer {customer_id}: {e}")
            raise BadGatewayException("Cloud provider error while rotating the service account key")

        now = utcnow()
        new_ref = {**ref, **stored, "last_rotated_at": now}
        await CustomerService._collection().update_one(
            {"_id": customer["_id"]},
            {"$set": {"service_account": new_ref, "updated_at": now}},
        )
        await AuditService.record(
            customer_id, "service_account_rotate", actor, {"key_id": {"old": active_key, "new": stored["key_id"]}}
        )

        # The new key is live from here on; leftovers are logged, not fatal.
        try:
            for key in await run_in_threadpool(cls.provider.list_keys, user_name):
                if key["AccessKeyId"] != stored["key_id"]:
                    await run_in_threadpool(cls.provider.delete_key, user_name, key["AccessKeyId"])
        except ServiceAccountError as e:
            logger.warning(f"Old access keys for {user_name} were not all deleted: {e}")

        old_ref = ref.get("key_ref")
        if old_ref:
            try:
                await run_in_threadpool(cls.provider.delete_secret, old_ref)
            except ServiceAccountError as e:
                logger.warning(f"Old key secret {old_ref} was not deleted: {e}")

        return new_ref

    @classmethod
    async def get_key(cls, customer_id: str, actor: str, confirmed: bool, reason: Optional[str]) -> dict:
        if not confirmed:
            raise BadRequestException("Key retrieval must be explicitly confirmed")
        if not (reason or "").strip():
            raise BadRequestException("A reason is required to retrieve a service account key")

        customer = await CustomerService._load(customer_id)
        ref = cls._require_ref(customer)
        if not ref.get("key_ref"):
            raise NotFoundException("Service account has no stored key")

        try:
            key = await run_in_threadpool(cls.provider.read_secret, ref["key_ref"])
        except ServiceAccountError as e:
            logger.error(f"Key retrieval failed for customer {customer_id}: {e}")
            raise BadGatewayException("Cloud provider error while reading the service account key")

        await AuditService.record(customer_id, "service_account_key_access", actor, reason=reason.strip())
        return {"customer_id": customer_id, "account_id": ref["account_id"], "key_ref": ref["key_ref"], "key": key}

    @classmethod
    async def delete(cls, customer_id: str, actor: str) -> None:
        customer = await CustomerService._load(customer_id)
        ref = cls._require_ref(customer)

        try:
            await run_in_threadpool(cls.provider.delete_identity, ref["account_id"])
            if ref.get("key_ref"):
                await run_in_threadpool(cls.provider.delete_secret, ref["key_ref"])
        except ServiceAccountError as e:
            logger.error(f"Service account deletion failed for customer {customer_id}: {e}")
            raise BadGatewayException("Cloud provider error while deleting the service account")

        await CustomerService._collection().update_one(
            {"_id": customer["_id"]},
            {"$set": {"service_account": None, "updated_at": utcnow()}},
        )
        await AuditService.record(
            customer_id, "service_account_delete", actor, {"service_account": {"old": ref["account_id"], "new": None}}
        )
