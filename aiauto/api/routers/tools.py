import logging
from typing import Any, Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from aiauto.api.deps import get_gate, get_generation, gate_block_response, require_authed_user
from aiauto.api.schemas.tools import BlogIn, CaptionsIn, EmailIn, ProductIn, UseToolIn
from aiauto.domain.auth.models import Identity
from aiauto.domain.content.models import CaptionsContent, NormalizedContent
from aiauto.domain.content.normalizer import extract_content, fallback_content, parse_payload
from aiauto.domain.usage.gate import UsageGate
from aiauto.domain.usage.models import ToolType, UsageSnapshot
from aiauto.services.generation.errors import UpstreamConfigError, UpstreamError
from aiauto.services.generation.service import GenerationService

logger = logging.getLogger("uvicorn.error")

router = APIRouter()

_CONFIG_ERROR = {
    ToolType.BLOG_GENERATOR: "Webhook configuration error",
    ToolType.SOCIAL_CAPTIONS: "Webhook configuration error",
    ToolType.EMAIL_CAMPAIGNS: "API configuration error",
    ToolType.PRODUCT_DESCRIPTIONS: "API configuration error",
}

_WHAT = {
    ToolType.BLOG_GENERATOR: "blog",
    ToolType.SOCIAL_CAPTIONS: "captions",
    ToolType.EMAIL_CAMPAIGNS: "email campaign",
    ToolType.PRODUCT_DESCRIPTIONS: "product description",
}


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": message})


def _run_tool(
    tool_type: ToolType,
    params: dict[str, Any],
    ident: Identity,
    gate: UsageGate,
    generation: GenerationService,
) -> Union[JSONResponse, tuple[NormalizedContent, UsageSnapshot]]:
    """
    gate -> upstream -> normalize.
    - the gate consumes one generation before the upstream call (a failed call still counts)
    - denial / upstream failure -> JSONResponse, otherwise (content, usage)
    """
    decision = gate.check_and_increment(ident.user_id, tool_type)
    if not decision.admitted:
        logger.info("[tools] %s denied for user %s: %s", tool_type.value, ident.user_id, decision.reason.value)
        return gate_block_response(decision)

    logger.info("[tools] %s admitted for user %s (%s)", tool_type.value, ident.user_id, decision.usage.to_dict())

    try:
        raw = generation.generate(tool_type, params)
    except UpstreamConfigError as e:
        logger.error("[tools] %s: %s", tool_type.value, e)
        return JSONResponse(status_code=500, content={"success": False, "error": _CONFIG_ERROR[tool_type]})
    except UpstreamError as e:
        logger.error("[tools] %s generation failed: %s", tool_type.value, e)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": f"Failed to generate {_WHAT[tool_type]}. Please try again.",
                "details": str(e),
            },
        )

    parsed = parse_payload(raw)
    content = extract_content(parsed, tool_type, params)
    if content is None:
        logger.warning("[tools] %s: unrecognised upstream shape, using fallback content", tool_type.value)
        content = fallback_content(parsed, tool_type, params)

    return content, decision.usage


@router.post("/api/tools/generate-blog")
def api_generate_blog(
    payload: BlogIn,
    ident: Identity = Depends(require_authed_user),
    gate: UsageGate = Depends(get_gate),
    generation: GenerationService = Depends(get_generation),
):
    if not payload.topic.strip():
        return _bad_request("Missing required field: topic")

    result = _run_tool(ToolType.BLOG_GENERATOR, payload.params(), ident, gate, generation)
    if isinstance(result, JSONResponse):
        return result

    content, usage = result
    return {"success": True, **content.to_wire(), "usage": usage.to_dict()}


@router.post("/api/tools/generate-captions")
def api_generate_captions(
    payload: CaptionsIn,
    ident: Identity = Depends(require_authed_user),
    gate: UsageGate = Depends(get_gate),
    generation: GenerationService = Depends(get_generation),
):
    if not payload.topic.strip() or payload.platforms is None:
        return _bad_request("Missing required fields: topic, platforms (array)")
    if not payload.platforms:
        return _bad_request("At least one platform must be selected")

    result = _run_tool(ToolType.SOCIAL_CAPTIONS, payload.params(), ident, gate, generation)
    if isinstance(result, JSONResponse):
        return result

    content, usage = result
    if isinstance(content, CaptionsContent):
        return {"success": True, "captions": content.captions, "usage": usage.to_dict()}
    # raw blob: the client renders it as plain text
    return {"success": True, **content.to_wire(), "usage": usage.to_dict()}


@router.post("/api/tools/generate-email-campaign")
def api_generate_email_campaign(
    payload: EmailIn,
    ident: Identity = Depends(require_authed_user),
    gate: UsageGate = Depends(get_gate),
    generation: GenerationService = Depends(get_generation),
):
    if not payload.subject.strip():
        return _bad_request("Subject line is required")

    result = _run_tool(ToolType.EMAIL_CAMPAIGNS, payload.params(), ident, gate, generation)
    if isinstance(result, JSONResponse):
        return result

    content, usage = result
    return {"success": True, "email": content.to_wire(), "usage": usage.to_dict()}


@router.post("/api/tools/generate-product-description")
def api_generate_product_description(
    payload: ProductIn,
    ident: Identity = Depends(require_authed_user),
    gate: UsageGate = Depends(get_gate),
    generation: GenerationService = Depends(get_generation),
):
    if not payload.product_name.strip():
        return _bad_request("Missing required field: productName")

    result = _run_tool(ToolType.PRODUCT_DESCRIPTIONS, payload.params(), ident, gate, generation)
    if isinstance(result, JSONResponse):
        return result

    content, usage = result
    return {"success": True, "description": content.to_wire(), "usage": usage.to_dict()}


@router.post("/api/tools/use-tool")
def api_use_tool(
    payload: UseToolIn,
    ident: Identity = Depends(require_authed_user),
    gate: UsageGate = Depends(get_gate),
):
    """Gate only: records one use of a tool that generates client-side."""
    try:
        tool_type = ToolType(payload.tool_type)
    except ValueError:
        return _bad_request(f"Invalid tool type. Must be one of: {', '.join(ToolType.values())}")

    decision = gate.check_and_increment(ident.user_id, tool_type)
    if not decision.admitted:
        return gate_block_response(decision)

    return {"success": True, "usage": decision.usage.to_dict()}
