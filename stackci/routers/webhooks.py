"""GitHub webhook listener with HMAC signature verification.

Verified deliveries are written, unparsed, to the event store.  The builder
consumes them from the store's stream, so the listener stays fast and never
touches stacks itself.
"""

import hashlib
import hmac
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from stackci.config import settings
from stackci.dependencies import get_event_store
from stackci.services.event_store import EventStore

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_HASH_FUNCTIONS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


class SignatureError(ValueError):
    """The signature header is missing, malformed, or does not match."""


def validate_signature(signature: str | None, payload: bytes, key: bytes) -> None:
    """Check a GitHub ``<algorithm>=<hexdigest>`` signature against *payload*.

    Raises:
        SignatureError: If the signature is absent, uses an unknown
            algorithm, is not hex, or does not match.
    """
    if not signature:
        raise SignatureError("missing signature")

    prefix, sep, digest = signature.partition("=")
    if not sep:
        raise SignatureError(f"error parsing signature {signature!r}")

    hash_function = _HASH_FUNCTIONS.get(prefix)
    if hash_function is None:
        raise SignatureError(f"unknown hash type prefix: {prefix!r}")

    try:
        provided = bytes.fromhex(digest)
    except ValueError as exc:
        raise SignatureError(f"error decoding signature {signature!r}") from exc

    expected = hmac.new(key, msg=payload, digestmod=hash_function).digest()
    if not hmac.compare_digest(provided, expected):
        raise SignatureError("signature check failed")


async def verify_github_signature(
    request: Request,
    x_hub_signature_256: Annotated[str | None, Header()] = None,
    x_hub_signature: Annotated[str | None, Header()] = None,
) -> bytes:
    """Verify the GitHub webhook HMAC signature.

    Prefers ``X-Hub-Signature-256`` and falls back to the legacy SHA-1
    ``X-Hub-Signature`` header.  Returns the raw body bytes on success so
    the route handler does not read the body stream a second time.

    Raises:
        HTTPException: 401 if the signature is missing or does not match.
    """
    body = await request.body()
    try:
        validate_signature(
            x_hub_signature_256 or x_hub_signature,
            body,
            settings.github_webhook_secret.encode("utf-8"),
        )
    except SignatureError as exc:
        logger.warning("webhook_signature_rejected", reason=str(exc))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        ) from None
    return body


@router.post("/github", status_code=status.HTTP_202_ACCEPTED)
async def github_webhook(
    x_github_delivery: Annotated[str, Header()],
    x_github_event: Annotated[str, Header()],
    raw_body: bytes = Depends(verify_github_signature),
    event_store: Annotated[EventStore, Depends(get_event_store)] = None,  # type: ignore[assignment]
) -> dict:
    """Receive a GitHub webhook delivery and queue it for the builder."""
    try:
        await event_store.put(x_github_delivery, x_github_event, raw_body.decode("utf-8"))
    except Exception:
        logger.exception("webhook_event_write_failed", delivery=x_github_delivery)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="event write error",
        ) from None

    logger.info("webhook_queued", delivery=x_github_delivery, event_type=x_github_event)
    return {"status": "accepted", "delivery": x_github_delivery}
