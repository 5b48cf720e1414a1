"""Staylytics - OAuth ``state`` Parameter Codec.

The state round-trips the project id through the upstream consent screen.
It is URL-safe base64 JSON followed by an HMAC-SHA256 signature so a
callback cannot be replayed against somebody else's project.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Optional

from app.config import settings
from app.core.errors import InvalidOAuthState


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _sign(payload: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).digest()
    return _b64encode(digest)


def encode_state(
    project_id: str,
    source: str,
    secret: Optional[str] = None,
    issued_at: Optional[int] = None,
) -> str:
    """Build a signed state value for ``project_id`` on ``source``."""
    body = {
        "project_id": project_id,
        "source": source,
        "iat": int(issued_at if issued_at is not None else time.time()),
    }
    payload = _b64encode(json.dumps(body, separators=(",", ":")).encode())
    return f"{payload}.{_sign(payload, secret or settings.oauth_state_secret)}"


def decode_state(
    state: str,
    source: str,
    secret: Optional[str] = None,
    max_age: Optional[int] = None,
    now: Optional[float] = None,
) -> str:
    """Verify ``state`` and return the project id it carries."""
    if not state or "." not in state:
        raise InvalidOAuthState("Missing or malformed OAuth state", source)

    payload, signature = state.rsplit(".", 1)
    expected = _sign(payload, secret or settings.oauth_state_secret)
    if not hmac.compare_digest(signature.encode(), expected.encode()):
        raise InvalidOAuthState("OAuth state signature mismatch", source)

    try:
        body = json.loads(_b64decode(payload))
    except (ValueError, json.JSONDecodeError) as e:
        raise InvalidOAuthState(f"Unreadable OAuth state: {e}", source) from e

    if body.get("source") != source:
        raise InvalidOAuthState("OAuth state was issued for another source", source)

    max_age = settings.oauth_state_ttl_seconds if max_age is None else max_age
    age = (now if now is not None else time.time()) - float(body.get("iat", 0))
    if max_age > 0 and age > max_age:
        raise InvalidOAuthState("OAuth state expired; start authorization again", source)

    project_id = body.get("project_id")
    if not project_id:
        raise InvalidOAuthState("OAuth state carries no project", source)
    return str(project_id)
