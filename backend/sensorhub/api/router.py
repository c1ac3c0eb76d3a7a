"""Top-level API router aggregation."""

from fastapi import APIRouter

from . import sensor

api_router = APIRouter(prefix="/api")

api_router.include_router(sensor.router)


@api_router.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}
