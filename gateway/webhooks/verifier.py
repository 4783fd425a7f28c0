"""Inbound webhook signature verification.

HMAC-SHA256 over the exact raw request bytes, compared in constant time.
Verification fails closed: no secret, no signature or a mismatch all reject.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping

from gateway.config import PLACEHOLDER_WEBHOOK_SECRET, GatewaySettings

logger = logging.getLogger(__name__)


def compute_signature(raw_body: bytes, secret: str, encoding: str = "hex") -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256)
    if encoding == "base64":
        return base64.b64encode(digest.digest()).decode("ascii")
    return digest.hexdigest()


def normalize_signature(signature: str, encoding: str = "hex") -> str:
    """Hex digests are case-insensitive; base64 is not."""
    signature = signature.strip()
    return signature.lower() if encoding == "hex" else signature


def verify_signature(
    raw_body: bytes,
    signature: str | None,
    secret: str | None,
    encoding: str = "hex",
) -> bool:
    """True iff ``signature`` is the HMAC-SHA256 of ``raw_body`` under ``secret``."""
    if not secret or not signature:
        return False
    expected = compute_signature(raw_body, secret, encoding)
    return hmac.compare_digest(expected.encode("ascii"), normalize_signature(signature, encoding).encode("utf-8"))


class VerificationOutcome(str, Enum):
    VERIFIED = "verified"
    SKIPPED = "skipped"
    NOT_CONFIGURED = "not_configured"
    MISSING_SIGNATURE = "missing_signature"
    INVALID_SIGNATURE = "invalid_signature"
    REPLAYED = "replayed"

    @property
    def accepted(self) -> bool:
        return self in (VerificationOutcome.VERIFIED, VerificationOutcome.SKIPPED)


@dataclass(frozen=True)
class WebhookProvider:
    name: str
    signature_headers: tuple[str, ...]
    secret: str
    encoding: str = "hex"

    @property
    def configured(self) -> bool:
        return bool(self.secret) and self.secret != PLACEHOLDER_WEBHOOK_SECRET

    def signature_from(self, headers: Mapping[str, str]) -> str | None:
        for header in self.signature_headers:
            value = headers.get(header)
            if value:
                return value
        return None


class ReplayWindow:
    """Remembers accepted signatures for ``ttl`` seconds so a captured request can't be replayed."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def seen_before(self, key: str) -> bool:
        """Record ``key``; True if it was already recorded inside the window."""
        if self.ttl <= 0:
            return False
        now = self._clock()
        with self._lock:
            expired = [k for k, ts in self._seen.items() if now - ts > self.ttl]
            for k in expired:
                del self._seen[k]
            if key in self._seen:
                return True
            self._seen[key] = now
            return False

    def __len__(self) -> int:
        return len(self._seen)


class WebhookVerifier:
    """Per-provider signature checks plus replay protection."""

    def __init__(
        self,
        providers: Mapping[str, WebhookProvider],
        *,
        skip_verification: bool = False,
        replay_window: ReplayWindow | None = None,
    ) -> None:
        self.providers = dict(providers)
        self.skip_verification = skip_verification
        self.replay_window = replay_window if replay_window is not None else ReplayWindow(ttl=0)
        if skip_verification:
            logger.warning(
                "SECURITY: webhook signature verification is DISABLED "
                "(WEBHOOK_SKIP_VERIFICATION=true). Do not run like this in production."
            )

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> WebhookVerifier:
        providers = {
            "ghl": WebhookProvider(
                name="ghl",
                signature_headers=("x-ghl-signature", "x-hook-signature"),
                secret=settings.ghl_webhook_secret,
            ),
            "woocommerce": WebhookProvider(
                name="woocommerce",
                signature_headers=("x-wc-webhook-signature",),
                secret=settings.wc_webhook_secret,
                encoding="base64",
            ),
        }
        return cls(
            providers,
            skip_verification=settings.webhook_skip_verification,
            replay_window=ReplayWindow(ttl=settings.webhook_replay_window_seconds),
        )

    def verify(self, provider: WebhookProvider, raw_body: bytes, headers: Mapping[str, str]) -> VerificationOutcome:
        if self.skip_verification:
            logger.warning("SECURITY: accepting unverified %s webhook (verification skipped)", provider.name)
            return VerificationOutcome.SKIPPED
        if not provider.configured:
            logger.error("Webhook secret for %s not configured; rejecting", provider.name)
            return VerificationOutcome.NOT_CONFIGURED
        signature = provider.signature_from(headers)
        if not signature:
            logger.warning("%s webhook without signature", provider.name)
            return VerificationOutcome.MISSING_SIGNATURE
        if not verify_signature(raw_body, signature, provider.secret, provider.encoding):
            logger.warning("Invalid %s webhook signature", provider.name)
            return VerificationOutcome.INVALID_SIGNATURE
        if self.replay_window.seen_before(f"{provider.name}:{normalize_signature(signature, provider.encoding)}"):
            logger.warning("Replayed %s webhook rejected", provider.name)
            return VerificationOutcome.REPLAYED
        return VerificationOutcome.VERIFIED
