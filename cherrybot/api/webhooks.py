"""
Webhook endpoints for GitHub and GitCode.
"""

from typing import Union

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from cherrybot.config import get_settings
from cherrybot.errors import (
    MalformedPayload,
    MalformedSignature,
    MissingHeader,
    Unauthorized,
    UnsupportedPlatform,
)
from cherrybot.models.api_response import WebhookResponse
from cherrybot.models.events import Platform, PullRequestEvent, PushEvent
from cherrybot.services.authenticator import authenticate, resolve_webhook_secret
from cherrybot.services.event_processor import EventProcessor
from cherrybot.services.normalizer import GITHUB_PULL_REQUEST_EVENT, normalize
from cherrybot.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

GITHUB_DELIVERY_HEADER = "X-GitHub-Delivery"

# Initialize Event Processor
event_processor = EventProcessor()


async def process_event_async(event: Union[PullRequestEvent, PushEvent]) -> None:
    """
    Process a normalized event asynchronously.

    Args:
        event: Event to process
    """
    try:
        await event_processor.process_event(event)
    except Exception as e:
        logger.error(f"Error processing event asynchronously: {e}", exc_info=True)


async def handle_webhook(
    platform: Platform,
    request: Request,
    background_tasks: BackgroundTasks,
) -> WebhookResponse:
    """
    Authenticate, normalize and enqueue one webhook request.

    This function:
    1. Reads the raw body once and verifies its HMAC signature
    2. Normalizes the payload into a canonical event
    3. Schedules processing in the background and returns immediately

    Error responses never carry payload-derived detail.

    Args:
        platform: Platform the endpoint serves
        request: FastAPI request object
        background_tasks: FastAPI background tasks

    Returns:
        WebhookResponse with status and message

    Raises:
        HTTPException: 400 for missing headers or invalid payloads, 401 for bad signatures
    """
    settings = get_settings()
    body = await request.body()
    delivery_id = request.headers.get(GITHUB_DELIVERY_HEADER)

    try:
        verified = authenticate(request.headers, body, resolve_webhook_secret(platform, settings))
    except Unauthorized:
        logger.warning("Invalid webhook signature received", extra={"platform": platform.value})
        raise HTTPException(status_code=401, detail="Unauthorized")
    except (MissingHeader, MalformedSignature) as e:
        logger.warning(f"Rejected webhook: {e}", extra={"platform": platform.value})
        raise HTTPException(status_code=400, detail="Invalid webhook request")

    if platform == Platform.GITHUB and verified.event_type != GITHUB_PULL_REQUEST_EVENT:
        logger.info(
            f"Ignoring event type: {verified.event_type}",
            extra={"platform": platform.value, "delivery_id": delivery_id},
        )
        return WebhookResponse(status="ignored", message=f"Event type {verified.event_type} not processed")

    try:
        event = normalize(platform, verified.event_type, body, settings.branch_label_prefix)
    except (MalformedPayload, UnsupportedPlatform) as e:
        logger.warning(f"Rejected webhook: {e}", extra={"platform": platform.value, "delivery_id": delivery_id})
        raise HTTPException(status_code=400, detail="Invalid webhook request")

    log_webhook_event(logger, platform.value, verified.event_type, event.repo_name, delivery_id)

    if isinstance(event, PullRequestEvent) and event.event_type == "unknown":
        return WebhookResponse(status="ignored", message="Payload is not a pull/merge request event")

    background_tasks.add_task(process_event_async, event)

    return WebhookResponse(
        status="accepted",
        message=f"{verified.event_type} event for {event.repo_name} accepted for processing",
    )


@router.post("/github", response_model=WebhookResponse)
async def handle_github_webhook(request: Request, background_tasks: BackgroundTasks) -> WebhookResponse:
    """Receive GitHub pull request webhooks."""
    return await handle_webhook(Platform.GITHUB, request, background_tasks)


@router.post("/gitcode", response_model=WebhookResponse)
async def handle_gitcode_webhook(request: Request, background_tasks: BackgroundTasks) -> WebhookResponse:
    """Receive GitCode merge request and push webhooks."""
    return await handle_webhook(Platform.GITCODE, request, background_tasks)
