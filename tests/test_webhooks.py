"""Tests for webhook signature verification and the webhook endpoint."""

from __future__ import annotations

import json

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from gateway.webhooks.verifier import (
    ReplayWindow,
    VerificationOutcome,
    WebhookProvider,
    WebhookVerifier,
    compute_signature,
    verify_signature,
)

SECRET = "ghl-webhook-secret"


class TestVerifySignature:
    def test_valid_signature(self):
        body = b'{"type":"ContactCreate","id":"c1"}'
        assert verify_signature(body, compute_signature(body, SECRET), SECRET) is True

    def test_known_vector(self):
        # HMAC-SHA256("key", "The quick brown fox jumps over the lazy dog")
        body = b"The quick brown fox jumps over the lazy dog"
        expected = "f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"
        assert verify_signature(body, expected, "key") is True

    def test_wrong_secret(self):
        body = b"payload"
        assert verify_signature(body, compute_signature(body, "other"), SECRET) is False

    def test_missing_secret_or_signature(self):
        body = b"payload"
        sig = compute_signature(body, SECRET)
        assert verify_signature(body, sig, "") is False
        assert verify_signature(body, sig, None) is False
        assert verify_signature(body, None, SECRET) is False
        assert verify_signature(body, "", SECRET) is False

    def test_base64_encoding(self):
        body = b'{"id": 9}'
        sig = compute_signature(body, SECRET, encoding="base64")
        assert verify_signature(body, sig, SECRET, encoding="base64") is True
        assert verify_signature(body, sig, SECRET) is False

    def test_non_ascii_signature_rejected(self):
        assert verify_signature(b"x", "é" * 64, SECRET) is False

    def test_uppercase_hex_signature_accepted(self):
        body = b'{"id": 3}'
        sig = compute_signature(body, SECRET)
        assert verify_signature(body, sig.upper(), SECRET) is True

    def test_base64_signature_stays_case_sensitive(self):
        body = b'{"id": 4}'
        sig = compute_signature(body, SECRET, encoding="base64")
        assert verify_signature(body, sig.swapcase(), SECRET, encoding="base64") is False

    @given(body=st.binary(min_size=1, max_size=256), data=st.data())
    @hyp_settings(max_examples=100)
    def test_single_byte_body_mutation_fails(self, body, data):
        sig = compute_signature(body, SECRET)
        index = data.draw(st.integers(min_value=0, max_value=len(body) - 1))
        delta = data.draw(st.integers(min_value=1, max_value=255))
        mutated = bytearray(body)
        mutated[index] = (mutated[index] + delta) % 256
        assert verify_signature(bytes(mutated), sig, SECRET) is False

    @given(body=st.binary(max_size=256), data=st.data())
    @hyp_settings(max_examples=100)
    def test_single_char_signature_mutation_fails(self, body, data):
        sig = compute_signature(body, SECRET)
        index = data.draw(st.integers(min_value=0, max_value=len(sig) - 1))
        replacement = data.draw(st.sampled_from("0123456789abcdef").filter(lambda c: c != sig[index]))
        mutated = sig[:index] + replacement + sig[index + 1 :]
        assert verify_signature(body, mutated, SECRET) is False


class TestWebhookVerifier:
    def _provider(self, secret=SECRET):
        return WebhookProvider("ghl", ("x-ghl-signature", "x-hook-signature"), secret)

    def test_verified(self):
        verifier = WebhookVerifier({"ghl": self._provider()})
        body = b"{}"
        headers = {"x-hook-signature": compute_signature(body, SECRET)}
        assert verifier.verify(self._provider(), body, headers) == VerificationOutcome.VERIFIED

    def test_missing_signature(self):
        verifier = WebhookVerifier({"ghl": self._provider()})
        assert verifier.verify(self._provider(), b"{}", {}) == VerificationOutcome.MISSING_SIGNATURE

    def test_placeholder_secret_counts_as_unconfigured(self):
        provider = self._provider(secret="your-webhook-secret")
        verifier = WebhookVerifier({"ghl": provider})
        headers = {"x-ghl-signature": compute_signature(b"{}", "your-webhook-secret")}
        assert verifier.verify(provider, b"{}", headers) == VerificationOutcome.NOT_CONFIGURED

    def test_skip_mode_accepts_anything(self):
        verifier = WebhookVerifier({"ghl": self._provider("")}, skip_verification=True)
        outcome = verifier.verify(self._provider(""), b"{}", {})
        assert outcome == VerificationOutcome.SKIPPED
        assert outcome.accepted is True

    def test_replay_rejected_within_window(self):
        now = [0.0]
        window = ReplayWindow(ttl=300, clock=lambda: now[0])
        verifier = WebhookVerifier({"ghl": self._provider()}, replay_window=window)
        body = b'{"id": 1}'
        headers = {"x-ghl-signature": compute_signature(body, SECRET)}
        assert verifier.verify(self._provider(), body, headers) == VerificationOutcome.VERIFIED
        assert verifier.verify(self._provider(), body, headers) == VerificationOutcome.REPLAYED
        now[0] = 301.0
        assert verifier.verify(self._provider(), body, headers) == VerificationOutcome.VERIFIED

    def test_zero_ttl_disables_replay_window(self):
        window = ReplayWindow(ttl=0)
        assert window.seen_before("a") is False
        assert window.seen_before("a") is False

    def test_fresh_window_is_kept(self):
        window = ReplayWindow(ttl=300)
        verifier = WebhookVerifier({"ghl": self._provider()}, replay_window=window)
        assert verifier.replay_window is window

    def test_from_settings_uses_configured_window(self, settings):
        verifier = WebhookVerifier.from_settings(settings)
        assert verifier.replay_window.ttl == settings.webhook_replay_window_seconds > 0

    def test_replay_matches_signature_case_insensitively(self):
        verifier = WebhookVerifier({"ghl": self._provider()}, replay_window=ReplayWindow(ttl=300))
        body = b'{"id": 2}'
        sig = compute_signature(body, SECRET)
        assert verifier.verify(self._provider(), body, {"x-ghl-signature": sig}) == VerificationOutcome.VERIFIED
        replayed = verifier.verify(self._provider(), body, {"x-ghl-signature": sig.upper()})
        assert replayed == VerificationOutcome.REPLAYED


def _post(client, provider, body: bytes, headers=None):
    return client.post(
        f"/api/webhooks/{provider}",
        content=body,
        headers={"Content-Type": "application/json", **(headers or {})},
    )


class TestWebhookEndpoint:
    def test_valid_ghl_webhook_acknowledged(self, client):
        body = json.dumps({"type": "ContactCreate", "id": "c1"}).encode()
        resp = _post(client, "ghl", body, {"x-ghl-signature": compute_signature(body, SECRET)})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["message"] == "Webhook received"
        assert data["provider"] == "ghl"
        assert data["event_type"] == "ContactCreate"
        assert data["correlation_id"] == resp.headers["X-Correlation-Id"]

    def test_woocommerce_base64_signature(self, client):
        body = b'{"id": 77}'
        sig = compute_signature(body, "wc-webhook-secret", encoding="base64")
        resp = _post(
            client,
            "woocommerce",
            body,
            {"x-wc-webhook-signature": sig, "x-wc-webhook-topic": "order.created"},
        )
        assert resp.status_code == 200
        assert resp.json()["event_type"] == "order.created"

    def test_invalid_signature_rejected(self, client):
        body = b'{"type": "ContactCreate"}'
        resp = _post(client, "ghl", body, {"x-ghl-signature": compute_signature(b"other", SECRET)})
        assert resp.status_code == 401
        error = resp.json()["error"]
        assert error["type"] == "AUTHENTICATION_ERROR"
        assert error["message"] == "Invalid webhook signature"

    def test_missing_signature_rejected(self, client):
        resp = _post(client, "ghl", b"{}")
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Missing webhook signature"

    def test_unconfigured_secret_rejected(self, settings_factory, fake_upstream):
        from starlette.testclient import TestClient

        from gateway.serve import create_app

        app = create_app(settings_factory(ghl_webhook_secret=""), transport=fake_upstream.transport)
        client = TestClient(app, raise_server_exceptions=False)
        body = b"{}"
        resp = _post(client, "ghl", body, {"x-ghl-signature": compute_signature(body, "")})
        assert resp.status_code == 401
        assert resp.json()["error"]["message"] == "Webhook secret not configured"

    def test_replay_returns_conflict(self, client):
        body = b'{"type": "ContactUpdate"}'
        headers = {"x-ghl-signature": compute_signature(body, SECRET)}
        assert _post(client, "ghl", body, headers).status_code == 200
        resp = _post(client, "ghl", body, headers)
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "CONFLICT"

    def test_replay_enabled_on_app(self, gateway, settings):
        assert gateway.verifier.replay_window.ttl == settings.webhook_replay_window_seconds

    def test_signed_non_utf8_body_acknowledged(self, client):
        body = b"\xff\xfe\xfa garbage"
        resp = _post(client, "ghl", body, {"x-ghl-signature": compute_signature(body, SECRET)})
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["event_type"] is None

    def test_signed_non_json_body_acknowledged(self, client):
        body = b"not json at all"
        resp = _post(client, "ghl", body, {"x-ghl-signature": compute_signature(body, SECRET)})
        assert resp.status_code == 200
        assert resp.json()["event_type"] is None

    def test_unknown_provider(self, client):
        resp = _post(client, "stripe", b"{}")
        assert resp.status_code == 404
        assert resp.json()["error"]["type"] == "NOT_FOUND"

    def test_oversized_body_rejected(self, settings_factory, fake_upstream):
        from starlette.testclient import TestClient

        from gateway.serve import create_app

        app = create_app(settings_factory(max_body_bytes=64), transport=fake_upstream.transport)
        client = TestClient(app, raise_server_exceptions=False)
        body = json.dumps({"padding": "x" * 200}).encode()
        resp = _post(client, "ghl", body, {"x-ghl-signature": compute_signature(body, SECRET)})
        assert resp.status_code == 413

    def test_webhook_audited(self, client, caplog):
        body = b'{"type": "NoteCreate"}'
        with caplog.at_level("INFO", logger="gateway.audit"):
            _post(client, "ghl", body, {"x-ghl-signature": compute_signature(body, SECRET)})
        audits = [r for r in caplog.records if r.name == "gateway.audit"]
        assert audits
        assert audits[-1].audit_event == "webhook_received"
        assert audits[-1].outcome == "verified"


@pytest.mark.parametrize("header", ["x-ghl-signature", "x-hook-signature"])
def test_either_ghl_signature_header_accepted(client, header):
    body = json.dumps({"type": "OpportunityCreate", "header": header}).encode()
    resp = _post(client, "ghl", body, {header: compute_signature(body, SECRET)})
    assert resp.status_code == 200
