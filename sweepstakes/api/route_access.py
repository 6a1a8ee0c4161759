from __future__ import annotations

from collections.abc import Iterable

import structlog
from fastapi import FastAPI
from fastapi.dependencies.models import Dependant
from fastapi.routing import APIRoute

from sweepstakes.services.internal_auth import require_internal_access

logger = structlog.get_logger(__name__)


def parse_public_paths(raw_paths: str) -> frozenset[str]:
    return frozenset(path.strip() for path in raw_paths.split(",") if path.strip())


def _is_guarded(dependant: Dependant) -> bool:
    for dependency in dependant.dependencies:
        if dependency.call is require_internal_access or _is_guarded(dependency):
            return True
    return False


def find_unguarded_routes(app: FastAPI, public_paths: Iterable[str]) -> list[str]:
    declared_public = set(public_paths)
    unguarded: list[str] = []
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        if route.path in declared_public:
            continue
        if not _is_guarded(route.dependant):
            methods = ",".join(sorted(route.methods or ()))
            unguarded.append(f"{methods} {route.path}")
    return unguarded


def validate_route_access(app: FastAPI, public_paths: Iterable[str]) -> None:
    """Fails app construction when a route is neither guarded nor declared public."""
    declared_public = frozenset(public_paths)
    unguarded = find_unguarded_routes(app, declared_public)
    if unguarded:
        raise RuntimeError(
            "Routes without internal access guard must be declared public: " + "; ".join(unguarded)
        )

    known_paths = {route.path for route in app.routes if isinstance(route, APIRoute)}
    for path in sorted(declared_public - known_paths):
        logger.warning("public_route_path_unknown", path=path)
