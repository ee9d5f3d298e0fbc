import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from aiauto.api.deps import get_gate, get_usage_store, require_authed_user
from aiauto.domain.auth.models import Identity
from aiauto.domain.usage.gate import UsageGate
from aiauto.domain.usage.models import ToolType, UsageSnapshot
from aiauto.domain.usage.store import StoreUnavailableError, UsageStore

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


@router.get("/api/usage/me")
def api_usage_me(
    ident: Identity = Depends(require_authed_user),
    store: UsageStore = Depends(get_usage_store),
    gate: UsageGate = Depends(get_gate),
):
    """
    Current period usage per tool (read only, nothing is consumed).
    Tools without a row yet report 0 used against the plan limit.
    """
    try:
        records = store.list_usage(ident.user_id)
    except StoreUnavailableError as e:
        logger.error("[usage] usage read failed for user %s: %s", ident.user_id, e)
        return JSONResponse(
            status_code=503,
            content={"success": False, "error": "Usage service temporarily unavailable.", "code": "STORE_UNAVAILABLE"},
        )

    by_tool = {r.tool_type: r for r in records}
    usage = {}
    for tool_type in ToolType:
        record = by_tool.get(tool_type)
        snapshot = record.snapshot() if record else UsageSnapshot(used=0, limit=gate.monthly_limit(tool_type))
        usage[tool_type.value] = snapshot.to_dict()

    return {"success": True, "usage": usage}
