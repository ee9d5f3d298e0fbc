from fastapi import Request
from fastapi.responses import JSONResponse

from aiauto.config import Settings
from aiauto.domain.auth import service as auth_service
from aiauto.domain.auth.models import Identity
from aiauto.domain.usage.gate import UsageGate
from aiauto.domain.usage.models import DenyReason, GateDecision
from aiauto.domain.usage.store import UsageStore
from aiauto.services.billing.stripe_webhook import StripeWebhookHandler
from aiauto.services.billing.subscription_check import SubscriptionChecker
from aiauto.services.generation.service import GenerationService


# ---------- app.state providers (overridable via app.dependency_overrides) ----------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_usage_store(request: Request) -> UsageStore:
    return request.app.state.usage_store


def get_gate(request: Request) -> UsageGate:
    return request.app.state.gate


def get_generation(request: Request) -> GenerationService:
    return request.app.state.generation


def get_subscription_checker(request: Request) -> SubscriptionChecker:
    return request.app.state.subscription_checker


def get_webhook_handler(request: Request) -> StripeWebhookHandler:
    return request.app.state.webhook_handler


def require_authed_user(request: Request) -> Identity:
    """
    Bearer token -> Supabase user.
    - missing / invalid token: 401
    - Supabase env missing: 500
    """
    return auth_service.require_authed_user(request, request.app.state.sb)


# ---------- gate denials ----------
_DENY_STATUS = {
    DenyReason.SUBSCRIPTION_INACTIVE: 403,
    DenyReason.USAGE_LIMIT_EXCEEDED: 403,
    DenyReason.STORE_UNAVAILABLE: 503,
}

_DENY_MESSAGE = {
    DenyReason.SUBSCRIPTION_INACTIVE: "Active subscription required",
    DenyReason.USAGE_LIMIT_EXCEEDED: "Monthly usage limit reached for this tool.",
    DenyReason.STORE_UNAVAILABLE: "Usage service temporarily unavailable. Please try again.",
}


def gate_block_response(decision: GateDecision) -> JSONResponse:
    """Standardized gate denial response."""
    reason = decision.reason or DenyReason.STORE_UNAVAILABLE
    content = {
        "success": False,
        "error": _DENY_MESSAGE[reason],
        "code": reason.value,
    }
    if decision.usage is not None:
        content["usage"] = decision.usage.to_dict()
    return JSONResponse(status_code=_DENY_STATUS[reason], content=content)
