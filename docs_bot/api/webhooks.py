"""GitHub webhook endpoint.

Registered WITHOUT auth middleware; every delivery is verified against the
shared secret (X-Hub-Signature-256). Deliveries are acknowledged immediately
and processed in background tasks.
"""

import hashlib
import hmac
import json
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from docs_bot.api.dependencies import get_services
from docs_bot.core.logging import get_logger
from docs_bot.services.approval_workflow import handle_issue_comment_event, handle_pull_request_event
from docs_bot.services.container import Services
from docs_bot.services.governance_pipeline import handle_push_event

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks")

EventHandler = Callable[[Services, str, dict[str, Any]], Awaitable[Any]]

EVENT_HANDLERS: dict[str, EventHandler] = {
    "push": handle_push_event,
    "pull_request": handle_pull_request_event,
    "issue_comment": handle_issue_comment_event,
}


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Constant-time check of a sha256=<hex> signature over the raw body."""
    expected = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected)


async def run_event_handler(
    handler: EventHandler,
    services: Services,
    event: str,
    delivery_id: str,
    payload: dict[str, Any],
) -> None:
    """Run a handler after the response is sent; failures are logged."""
    try:
        await handler(services, delivery_id, payload)
    except Exception:
        logger.exception(f"Failed to handle {event} event", extra={"delivery_id": delivery_id})


@router.post("/github")
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    """
    Receive a GitHub webhook delivery.

    Handles push, pull_request and issue_comment; other events are
    acknowledged and ignored.
    """
    signature = request.headers.get("x-hub-signature-256")
    event = request.headers.get("x-github-event")
    delivery_id = request.headers.get("x-github-delivery")

    if not signature or not event or not delivery_id:
        raise HTTPException(status_code=401, detail="Missing required headers")

    secret = services.settings.GITHUB_WEBHOOK_SECRET
    if not secret:
        logger.error("GITHUB_WEBHOOK_SECRET is not configured; rejecting webhook")
        raise HTTPException(status_code=401, detail="Invalid signature")

    body = await request.body()
    if not verify_signature(secret, body, signature):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    logger.info(f"Received GitHub event: {event}", extra={"delivery_id": delivery_id})

    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        logger.debug(f"Ignoring unhandled event: {event}", extra={"delivery_id": delivery_id})
    else:
        background_tasks.add_task(run_event_handler, handler, services, event, delivery_id, payload)

    return {"received": True, "event": event, "delivery_id": delivery_id}
