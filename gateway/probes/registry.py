"""Named connectivity probes, one per upstream, dispatched by name."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any) -> ProbeResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> ProbeResult:
        return cls(success=False, error=error)

    def as_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}


ProbeFunc = Callable[[], Awaitable[ProbeResult]]


class ProbeRegistry:
    """Runs probes on demand; a probe never raises and never outlives its timeout."""

    def __init__(self, timeout: float = 20.0) -> None:
        self.timeout = timeout
        self._probes: dict[str, ProbeFunc] = {}

    def register(self, name: str, func: ProbeFunc) -> None:
        if name in self._probes:
            raise ValueError(f"Probe {name!r} already registered")
        self._probes[name] = func

    def names(self) -> list[str]:
        return list(self._probes)

    def __contains__(self, name: str) -> bool:
        return name in self._probes

    async def probe(self, name: str) -> ProbeResult:
        func = self._probes.get(name)
        if func is None:
            return ProbeResult.fail(f"unknown probe: {name}")
        try:
            result = await asyncio.wait_for(func(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Probe %s timed out after %.1fs", name, self.timeout)
            return ProbeResult.fail(f"{name} probe timed out after {self.timeout:g}s")
        except Exception as exc:
            logger.exception("Probe %s raised", name)
            return ProbeResult.fail(f"{name} probe failed: {exc}")
        logger.info("Probe %s: success=%s", name, result.success)
        return result
