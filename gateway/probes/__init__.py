"""Upstream connectivity probes."""

from gateway.probes.registry import ProbeRegistry, ProbeResult

__all__ = ["ProbeRegistry", "ProbeResult"]
