from fastapi import APIRouter

from placeholder_media.api.v1 import media
from placeholder_media.core.metrics import snapshot as metrics_snapshot

api_router = APIRouter()

api_router.include_router(media.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/metrics", tags=["metrics"])
def metrics() -> dict[str, int]:
    return metrics_snapshot()
