"""Health check endpoints."""

from fastapi import APIRouter

from app.core.config import get_settings

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check():
    """Check if the API is running."""
    return {"status": "healthy", "message": f"{settings.app_name} is running"}
