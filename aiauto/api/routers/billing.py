import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from aiauto.api.deps import get_subscription_checker, require_authed_user
from aiauto.domain.auth.models import Identity
from aiauto.domain.usage.store import StoreUnavailableError
from aiauto.services.billing.subscription_check import SubscriptionChecker

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


@router.post("/api/check-subscription")
def api_check_subscription(
    ident: Identity = Depends(require_authed_user),
    checker: SubscriptionChecker = Depends(get_subscription_checker),
):
    try:
        result = checker.check(ident.user_id)
    except StoreUnavailableError as e:
        logger.error("[billing] subscription read failed for user %s: %s", ident.user_id, e)
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Subscription service temporarily unavailable.", "code": "STORE_UNAVAILABLE"},
        )

    logger.info("[billing] subscription check for %s: %s (%s)", ident.user_id, result["status"], result["source"])
    return {"success": True, **result}
