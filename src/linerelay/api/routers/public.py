"""Public routes that need no authentication."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/healthz")
def healthz() -> dict:
    """Health check endpoint for load balancers and probes."""
    return {"ok": True}
