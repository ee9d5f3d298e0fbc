# main.py: Ai-Auto tools API (generation proxy, usage gate, billing webhook)
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aiauto.api.routers import billing, health, tools, usage, webhooks
from aiauto.config import Settings, load_settings
from aiauto.domain.usage.gate import UsageGate
from aiauto.domain.usage.store import UsageStore
from aiauto.infra.memory_store import InMemoryUsageStore
from aiauto.infra.supabase.billing_repo import SupabaseBillingRepo
from aiauto.infra.supabase.client import SupabaseRest
from aiauto.infra.supabase.usage_repo import SupabaseUsageStore
from aiauto.services.billing.stripe_webhook import StripeWebhookHandler
from aiauto.services.billing.subscription_check import SubscriptionChecker
from aiauto.services.generation.service import GenerationService

logger = logging.getLogger("uvicorn.error")


def create_app(
    settings: Optional[Settings] = None,
    usage_store: Optional[UsageStore] = None,
    billing_repo: Optional[SupabaseBillingRepo] = None,
    generation: Optional[GenerationService] = None,
) -> FastAPI:
    """
    Composition root. Every collaborator lives on app.state and is read back
    through the providers in aiauto.api.deps, so tests swap them here.
    """
    settings = settings or load_settings()
    sb = SupabaseRest.from_settings(settings)

    if usage_store is None:
        if settings.usage_store == "memory":
            logger.warning("[startup] USAGE_STORE=memory: usage is process-local and not shared")
            usage_store = InMemoryUsageStore()
        else:
            usage_store = SupabaseUsageStore(sb)
    billing_repo = billing_repo or SupabaseBillingRepo(sb)

    app = FastAPI(
        title="Ai-Auto Tools API",
        description="AI generation tools behind a per-user monthly usage gate",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.sb = sb
    app.state.usage_store = usage_store
    app.state.gate = UsageGate(usage_store, settings.tool_monthly_limits)
    app.state.generation = generation or GenerationService(settings)
    app.state.subscription_checker = SubscriptionChecker(settings, usage_store, billing_repo)
    app.state.webhook_handler = StripeWebhookHandler(settings, billing_repo, usage_store)

    app.include_router(tools.router)
    app.include_router(usage.router)
    app.include_router(billing.router)
    app.include_router(webhooks.router)
    app.include_router(health.router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=9000, reload=True)
