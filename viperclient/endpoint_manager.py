"""Lookup and health tracking of RPC endpoints."""

from __future__ import annotations

import contextlib
from datetime import datetime
from typing import Protocol, runtime_checkable

from sqlalchemy import Boolean, DateTime, Integer, String, bindparam, text
from sqlalchemy.engine import Engine

from .models import RpcEndpoint

_ACTIVE_ENDPOINTS = text(
    """
    SELECT id, chain_id, endpoint_url, provider, is_active, priority,
           health_check_timestamp, health_status, created_at, updated_at
    FROM rpc_endpoints
    WHERE chain_id = :chain_id AND is_active = true
    ORDER BY priority DESC
    """
).columns(
    id=Integer,
    chain_id=Integer,
    endpoint_url=String,
    provider=String,
    is_active=Boolean,
    priority=Integer,
    health_check_timestamp=DateTime,
    health_status=String,
    created_at=DateTime,
    updated_at=DateTime,
)

_UPDATE_HEALTH = text(
    """
    UPDATE rpc_endpoints
    SET health_status = :status, health_check_timestamp = :now, updated_at = :now
    WHERE id = :id
    """
).bindparams(bindparam("now", type_=DateTime()))


class NoEndpointsError(LookupError):
    """No active endpoint is available for the requested chain."""

    def __init__(self, message: str = "no active endpoints available for the requested chain"):
        super().__init__(message)


@runtime_checkable
class EndpointManager(Protocol):
    """Source of RPC endpoints and sink for their health status."""

    def get_active_endpoints(self, chain_id: int) -> list[RpcEndpoint]:
        """Return the active endpoints for ``chain_id``, highest priority first."""

    def update_endpoint_health(self, endpoint_id: int, status: str) -> None:
        """Record the health status of an endpoint."""


def _record_health(manager: EndpointManager, endpoint_id: int, status: str) -> None:
    # Health bookkeeping is best effort and never masks the outcome of a request.
    with contextlib.suppress(Exception):
        manager.update_endpoint_health(endpoint_id, status)


class DBEndpointManager:
    """Endpoint manager backed by the ``rpc_endpoints`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_active_endpoints(self, chain_id: int) -> list[RpcEndpoint]:
        """Return active endpoints for ``chain_id`` sorted by descending priority."""
        with self._engine.connect() as conn:
            rows = conn.execute(_ACTIVE_ENDPOINTS, {"chain_id": chain_id}).mappings()
            return [
                RpcEndpoint(
                    id=row["id"],
                    chain_id=row["chain_id"],
                    endpoint_url=row["endpoint_url"],
                    provider=row["provider"] or "",
                    is_active=bool(row["is_active"]),
                    priority=row["priority"],
                    health_check_timestamp=row["health_check_timestamp"],
                    health_status=row["health_status"] or "",
                    created_at=row["created_at"],
                    updated_at=row["updated_at"],
                )
                for row in rows
            ]

    def update_endpoint_health(self, endpoint_id: int, status: str) -> None:
        """Store ``status`` and stamp the check and update times with now."""
        with self._engine.begin() as conn:
            conn.execute(
                _UPDATE_HEALTH,
                {"status": status, "now": datetime.now(), "id": endpoint_id},
            )