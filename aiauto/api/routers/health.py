from fastapi import APIRouter, Depends

from aiauto.api.deps import get_generation, get_settings
from aiauto.config import Settings
from aiauto.services.generation.service import GenerationService

router = APIRouter()


@router.get("/api/health")
def api_health(
    settings: Settings = Depends(get_settings),
    generation: GenerationService = Depends(get_generation),
):
    """Liveness + which upstreams are configured (no secrets)."""
    return {
        "ok": True,
        "usage_store": settings.usage_store,
        "upstreams": generation.configured(),
        "billing": bool(settings.stripe_secret_key and settings.stripe_webhook_secret),
    }
