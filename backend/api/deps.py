from __future__ import annotations

from fastapi import HTTPException, Request

from workers.registry import WorkerRegistry


def get_worker_registry(request: Request) -> WorkerRegistry:
    registry = getattr(request.app.state, "worker_registry", None)
    if not isinstance(registry, WorkerRegistry):
        raise HTTPException(status_code=503, detail="WORKER_REGISTRY_UNAVAILABLE")
    return registry
