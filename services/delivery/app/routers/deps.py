from __future__ import annotations

import math
from collections.abc import Callable
from typing import NoReturn

from fastapi import Header, HTTPException, Request, Response
from packages.shared.schemas.order_v1 import ActorRoleV1

from services.delivery.app.runtime import Runtime
from services.delivery.app.services.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    RateLimitedError,
)
from services.delivery.app.services.lifecycle import Actor
from services.delivery.app.services.rate_limiter import client_identifier, rate_limit_config

ADMIN_ROLES = frozenset(
    {ActorRoleV1.SUPER_ADMIN.value, ActorRoleV1.MIDDLE_ADMIN.value, ActorRoleV1.LOW_ADMIN.value}
)
_KNOWN_ROLES = frozenset(r.value for r in ActorRoleV1)


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_actor(
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing actor headers")

    role = x_actor_role.strip().upper()
    if role not in _KNOWN_ROLES:
        raise HTTPException(status_code=403, detail=f"Unknown role: {x_actor_role}")
    return Actor(id=x_actor_id, role=role)


def require_role(actor: Actor, roles: frozenset[str]) -> None:
    if actor.role not in roles:
        raise HTTPException(status_code=403, detail=f"Role {actor.role} is not permitted")


def rate_limited(kind: str) -> Callable[[Request, Response], None]:
    """Build a dependency that admits the caller against the ``kind`` limiter."""

    rate_limit_config(kind)  # fail fast on an unknown kind

    def _dependency(request: Request, response: Response) -> None:
        config = rate_limit_config(kind)
        runtime = get_runtime(request)
        client_id = client_identifier(
            request.headers, request.client.host if request.client else None
        )
        decision = runtime.limiter.admit(f"{kind}:{client_id}", config)

        if not decision.allowed:
            now_ms = runtime.limiter.now_ms()
            retry_after_s = max(1, math.ceil((decision.reset_at_ms - now_ms) / 1000))
            raise_domain_http_error(
                RateLimitedError(
                    config.message,
                    limit=config.max_requests,
                    reset_at_ms=decision.reset_at_ms,
                    retry_after_s=retry_after_s,
                )
            )
        response.headers["X-RateLimit-Limit"] = str(config.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Reset"] = str(math.ceil(decision.reset_at_ms / 1000))

    return _dependency


def raise_domain_http_error(e: Exception) -> NoReturn:
    if isinstance(e, RateLimitedError):
        raise HTTPException(
            status_code=429,
            detail=str(e),
            headers={
                "Retry-After": str(e.retry_after_s),
                "X-RateLimit-Limit": str(e.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(math.ceil(e.reset_at_ms / 1000)),
            },
        ) from e

    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail=str(e)) from e

    if isinstance(e, ForbiddenError):
        raise HTTPException(status_code=403, detail=str(e)) from e

    if isinstance(e, (InvalidStateError, ConflictError)):
        raise HTTPException(status_code=409, detail=str(e)) from e

    raise HTTPException(status_code=500, detail="Internal Server Error") from e
