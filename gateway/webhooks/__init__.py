"""Inbound webhooks: signature verification and receipt."""

from gateway.webhooks.verifier import VerificationOutcome, WebhookVerifier, verify_signature

__all__ = ["VerificationOutcome", "WebhookVerifier", "verify_signature"]
