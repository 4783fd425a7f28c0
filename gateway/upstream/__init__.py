"""Outbound HTTP clients for third-party APIs."""

from gateway.upstream.client import UpstreamClient, UpstreamResult, UpstreamSpec

__all__ = ["UpstreamClient", "UpstreamResult", "UpstreamSpec"]
