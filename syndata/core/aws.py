"""AWS client bootstrap (S3, IAM, Secrets Manager)."""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from syndata.core.config import get_settings
from syndata.core.retry import is_transient_error

settings = get_settings()
logger = logging.getLogger(__name__)

RETRYABLE_AWS_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "SlowDown",
    "ServiceUnavailable",
    "InternalError",
    "InternalFailure",
    "RequestTimeout",
}


class AWSClients:
    """Lazily created boto3 clients, shared per process."""

    _instance = None
    _clients: dict = None

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._clients = {}
        return cls._instance

    def get(self, service: str):
        """Return a boto3 client for `service`, or None if it cannot be created."""
        if service not in self._clients:
            try:
                kwargs = {"region_name": settings.AWS_REGION}
                if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
                    kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
                    kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
                if service == "s3":
                    kwargs["config"] = Config(s3={"addressing_style": "path"})
                self._clients[service] = boto3.client(service, **kwargs)
            except Exception as e:
                logger.error(f"Failed to initialize {service} client: {e}")
                self._clients[service] = None
        return self._clients[service]

    def set(self, service: str, client) -> None:
        """Install a prebuilt client (used by tests and scripts)."""
        self._clients[service] = client

    def reset(self) -> None:
        self._clients = {}


def aws_error_code(exc: BaseException) -> str:
    if isinstance(exc, ClientError):
        return (exc.response.get("Error") or {}).get("Code", "")
    return ""


def is_retryable_aws_error(exc: BaseException) -> bool:
    if isinstance(exc, ClientError):
        if aws_error_code(exc) in RETRYABLE_AWS_CODES:
            return True
        status = (exc.response.get("ResponseMetadata") or {}).get("HTTPStatusCode") or 0
        return int(status) >= 500
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return True
    if isinstance(exc, BotoCoreError):
        return is_transient_error(exc)
    return False
