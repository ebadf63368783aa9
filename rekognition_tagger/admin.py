"""
Admin surface: label previews and per-attachment action tokens.
"""

import hashlib
import hmac
import secrets
import time
from typing import Any, Dict, List, Optional

from .config import settings
from .logging import get_logger
from .models import LabelPreview


UPDATE_LABELS_ACTION = "rekognition-update-labels-{id}"


class InvalidTokenError(Exception):
    """Raised when an admin action token is missing, expired or already used."""
    pass


def format_labels(labels: List[Dict[str, Any]]) -> str:
    """Render labels as 'Name (NN%)' joined by commas; confidence is truncated."""
    rendered = []
    for label in labels:
        name = label.get("Name")
        if not name:
            continue
        confidence = float(label.get("Confidence") or 0)
        rendered.append(f"{name} ({int(round(confidence, 2))}%)")
    return ", ".join(rendered)


class TokenRegistry:
    """HMAC tokens bound to an action, valid for up to one lifetime and usable once."""

    def __init__(self, secret: Optional[str] = None, lifetime: Optional[int] = None):
        self.logger = get_logger("admin")
        self.secret = (secret or settings.token_secret).encode()
        self.lifetime = lifetime or settings.token_lifetime
        self._used: Dict[str, int] = {}  # consumed token -> tick it was consumed in

    def _tick(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return int(now // (self.lifetime / 2))

    def _sign(self, action: str, tick: int, salt: str) -> str:
        digest = hmac.new(self.secret, f"{action}|{tick}|{salt}".encode(), hashlib.sha256).hexdigest()
        return f"{salt}-{digest[-12:]}"

    def create_token(self, action: str, now: Optional[float] = None) -> str:
        return self._sign(action, self._tick(now), secrets.token_hex(4))

    def verify_token(self, action: str, token: Optional[str], now: Optional[float] = None) -> bool:
        """Check a token against the current and previous tick."""
        if not isinstance(token, str) or "-" not in token:
            return False
        salt = token.split("-", 1)[0]
        tick = self._tick(now)
        return any(hmac.compare_digest(self._sign(action, t, salt), token) for t in (tick, tick - 1))

    def consume_token(self, action: str, token: Optional[str], now: Optional[float] = None) -> None:
        """Verify a token and mark it used; raises InvalidTokenError otherwise."""
        if not self.verify_token(action, token, now):
            raise InvalidTokenError(f"Invalid or expired token for {action}")
        tick = self._tick(now)
        # A token consumed two ticks ago no longer verifies
        self._used = {key: used_tick for key, used_tick in self._used.items() if used_tick >= tick - 1}
        used_key = f"{action}|{token}"
        if used_key in self._used:
            raise InvalidTokenError(f"Token already used for {action}")
        self._used[used_key] = tick
        self.logger.debug(f"Token consumed for {action}")


def build_label_preview(enricher, tokens: TokenRegistry, attachment_id: int) -> LabelPreview:
    """Read-only label summary for one attachment plus a token for refreshing it."""
    labels = enricher.get_attachment_labels(attachment_id)
    return LabelPreview(
        post_id=attachment_id,
        labels=format_labels(labels),
        update_labels_nonce=tokens.create_token(UPDATE_LABELS_ACTION.format(id=attachment_id)),
    )
