"""Status callbacks pushed by the pipeline."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Header, Request
from pydantic import ValidationError

from syndata.core.config import get_settings
from syndata.core.exceptions import BadRequestException, ForbiddenException, UnauthorizedException
from syndata.jobs.models import JobResponse
from syndata.jobs.service import JobsService
from syndata.pipeline.client import parse_status_body
from syndata.pipeline.models import PipelineWebhookEvent

router = APIRouter(prefix="/pipeline", tags=["Pipeline"])
logger = logging.getLogger(__name__)


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    if not signature or not secret:
        return False
    expected = sign_payload(body, secret)
    provided = signature.strip().lower().encode("utf-8", "replace")
    return hmac.compare_digest(expected.encode("ascii"), provided)


@router.post("/webhook", response_model=JobResponse)
async def pipeline_webhook(
    request: Request,
    x_pipeline_signature: str = Header(default="", alias="X-Pipeline-Signature"),
):
    """Apply a signed job status update from the pipeline."""
    secret = (get_settings().PIPELINE_WEBHOOK_SECRET or "").strip()
    if not secret:
        raise ForbiddenException("Webhooks are not enabled")

    body = await request.body()
    if not verify_signature(body, x_pipeline_signature, secret):
        logger.warning("Rejected pipeline webhook with a bad signature")
        raise UnauthorizedException("Invalid signature")

    try:
        event = PipelineWebhookEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError):
        raise BadRequestException("Invalid webhook payload")

    update = parse_status_body(event.model_dump())
    return await JobsService.handle_pipeline_event(event.job_id, update)
