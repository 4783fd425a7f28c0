"""Method + path dispatch table.

Catalogues every registered endpoint in registration order. Used to answer
"which handler serves this request?" for unmatched-route responses and the
service index, independent of any upstream.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from fastapi.routing import APIRoute, APIRouter


@dataclass(frozen=True)
class Endpoint:
    method: str
    path: str
    name: str
    handler: Callable[..., Any] | None = None
    segments: tuple[str, ...] = field(default=(), compare=False)

    def __str__(self) -> str:
        return f"{self.method} {self.path}"

    def match(self, segments: list[str]) -> dict[str, str] | None:
        if len(segments) != len(self.segments):
            return None
        params: dict[str, str] = {}
        for template, actual in zip(self.segments, segments):
            if template.startswith("{") and template.endswith("}"):
                if not actual:
                    return None
                params[template[1:-1].split(":")[0]] = actual
            elif template != actual:
                return None
        return params


@dataclass(frozen=True)
class RouteMatch:
    endpoint: Endpoint
    path_params: dict[str, str]


def _split(path: str) -> list[str]:
    stripped = path.split("?", 1)[0].strip("/")
    return stripped.split("/") if stripped else []


class RouteDispatcher:
    """First-registered-wins lookup over exact and ``{param}`` segment paths."""

    def __init__(self) -> None:
        self._endpoints: list[Endpoint] = []

    def register(self, method: str, path: str, name: str = "", handler: Callable[..., Any] | None = None) -> Endpoint:
        endpoint = Endpoint(
            method=method.upper(),
            path=path,
            name=name or path,
            handler=handler,
            segments=tuple(_split(path)),
        )
        self._endpoints.append(endpoint)
        return endpoint

    @classmethod
    def from_routes(cls, routes: Iterable[Any]) -> RouteDispatcher:
        """Build from route objects, skipping anything that is not an ``APIRoute``."""
        dispatcher = cls()
        for route in routes:
            if not isinstance(route, APIRoute):
                continue
            for method in sorted(route.methods or ()):
                if method == "HEAD":
                    continue
                dispatcher.register(method, route.path, route.name, route.endpoint)
        return dispatcher

    @classmethod
    def from_routers(cls, *routers: APIRouter) -> RouteDispatcher:
        """Build from routers in mount order.

        Each router's own routes already carry its prefix, so the catalogue
        does not depend on how FastAPI flattens included routers.
        """
        return cls.from_routes(route for router in routers for route in router.routes)

    def dispatch(self, method: str, path: str) -> RouteMatch | None:
        method = method.upper()
        segments = _split(path)
        for endpoint in self._endpoints:
            if endpoint.method != method:
                continue
            params = endpoint.match(segments)
            if params is not None:
                return RouteMatch(endpoint, params)
        return None

    def allowed_methods(self, path: str) -> list[str]:
        segments = _split(path)
        return sorted({e.method for e in self._endpoints if e.match(segments) is not None})

    def known_endpoints(self) -> list[str]:
        seen: list[str] = []
        for endpoint in self._endpoints:
            label = str(endpoint)
            if label not in seen:
                seen.append(label)
        return seen

    def __len__(self) -> int:
        return len(self._endpoints)
