"""
Recover a structured content object from an upstream generation payload.

Upstream shapes drift between workflow revisions: the object may arrive
directly, wrapped in a one-element array, JSON-encoded inside a string (more
than once), nested under `output` / `content` / `json`, inside a workflow
`pinData.<node>.json` dump, or inside a chat-completions envelope. Each tool
type has an ordered chain of extraction rules; the first rule that matches
wins. Nothing here raises for malformed-but-well-typed JSON, and nothing here
does I/O.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Optional

from aiauto.domain.content.models import (
    BlogContent,
    CampaignEmail,
    CaptionsContent,
    EmailCampaignContent,
    KeyFeature,
    NormalizedContent,
    ProductDescriptionContent,
    RawContent,
)
from aiauto.domain.usage.models import ToolType

MAX_PARSE_DEPTH = 10

KNOWN_PLATFORMS = ("instagram", "facebook", "twitter", "linkedin", "tiktok")

WRAPPER_KEYS = ("output", "content", "json")

PRODUCT_FIELDS = (
    "headline",
    "tagline",
    "shortDescription",
    "fullDescription",
    "keyFeatures",
    "benefits",
    "targetAudience",
    "callToAction",
    "seoKeywords",
)

_FENCE_OPEN = re.compile(r"^```(?:json|JSON)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def deep_parse(value: Any, _depth: int = 0) -> Any:
    """
    - str: json-decode and recurse; undecodable text is the leaf
    - non-empty list: recurse into the first element only
    - anything else: unchanged
    """
    if _depth >= MAX_PARSE_DEPTH:
        return value

    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (ValueError, RecursionError):
            return value
        return deep_parse(parsed, _depth + 1)

    if isinstance(value, list) and value:
        return deep_parse(value[0], _depth + 1)

    return value


def strip_code_fences(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned)
        cleaned = _FENCE_CLOSE.sub("", cleaned)
    return cleaned


def parse_payload(value: Any) -> Any:
    """Fence-stripped, fully decoded form of an upstream payload."""
    if isinstance(value, str):
        value = strip_code_fences(value)
    return deep_parse(value)


def _present(obj: Any, key: str) -> bool:
    return isinstance(obj, dict) and bool(obj.get(key))


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, indent=2)


def _as_text_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [_as_text(v) for v in value if v]
    return [_as_text(value)]


def _param(params: Mapping[str, Any], key: str) -> str:
    return _as_text(params.get(key)).strip()


def _wrapped_payloads(obj: Any) -> Iterator[Any]:
    if not isinstance(obj, dict):
        return

    for key in WRAPPER_KEYS:
        if obj.get(key):
            yield parse_payload(obj[key])

    pin = obj.get("pinData")
    if isinstance(pin, dict):
        for node in pin.values():
            node = deep_parse(node)
            if _present(node, "json"):
                yield parse_payload(node["json"])

    # chat-completions envelope: choices[0].message.content
    choices = obj.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message")
        if _present(message, "content"):
            yield parse_payload(message["content"])


Extractor = Callable[[Any, Mapping[str, Any]], Optional[NormalizedContent]]


@dataclass(frozen=True)
class ExtractionRule:
    name: str
    apply: Extractor


def _wrapped(direct: Extractor) -> Extractor:
    def apply(obj: Any, params: Mapping[str, Any]) -> Optional[NormalizedContent]:
        for inner in _wrapped_payloads(obj):
            found = direct(inner, params)
            if found is not None:
                return found
        return None

    return apply


# ---------- blog ----------
def _blog_direct(obj: Any, params: Mapping[str, Any]) -> Optional[BlogContent]:
    if _present(obj, "blogTitle") and _present(obj, "blogContent"):
        return BlogContent(title=_as_text(obj["blogTitle"]), content=_as_text(obj["blogContent"]), is_html=True)
    return None


def _blog_content_passthrough(obj: Any, params: Mapping[str, Any]) -> Optional[BlogContent]:
    if _present(obj, "content"):
        return BlogContent(title="", content=_as_text(obj["content"]), is_html=False)
    return None


# ---------- captions ----------
def _platform_map(mapping: Any) -> dict[str, str]:
    if not isinstance(mapping, dict):
        return {}
    return {p: _as_text(mapping[p]) for p in KNOWN_PLATFORMS if mapping.get(p)}


def _captions_direct(obj: Any, params: Mapping[str, Any]) -> Optional[CaptionsContent]:
    if not _present(obj, "captions"):
        return None
    captions = _platform_map(deep_parse(obj["captions"]))
    return CaptionsContent(captions=captions) if captions else None


def _captions_root_platforms(obj: Any, params: Mapping[str, Any]) -> Optional[CaptionsContent]:
    captions = _platform_map(obj)
    return CaptionsContent(captions=captions) if captions else None


# ---------- email campaigns ----------
def _day(value: Any, default: int) -> int:
    try:
        day = int(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return day if day > 0 else default


def _campaign_email(item: Any, position: int, params: Mapping[str, Any]) -> CampaignEmail:
    if not isinstance(item, dict):
        item = {"body": item}
    return CampaignEmail(
        day=_day(item.get("day"), position),
        subject_line=_as_text(item.get("subjectLine")) or _param(params, "subject"),
        preheader=_as_text(item.get("preheader")),
        body=_as_text(item.get("body")),
        call_to_action=_as_text(item.get("callToAction")) or _param(params, "cta"),
    )


def _email_direct(obj: Any, params: Mapping[str, Any]) -> Optional[EmailCampaignContent]:
    if not isinstance(obj, dict):
        return None
    campaign = obj.get("campaign")
    if not isinstance(campaign, list) or not campaign:
        return None
    return EmailCampaignContent(
        campaign=[_campaign_email(item, i + 1, params) for i, item in enumerate(campaign)],
        strategy=_as_text(obj.get("strategy")),
    )


# ---------- product descriptions ----------
def _key_features(value: Any) -> list[KeyFeature]:
    if not isinstance(value, list):
        value = [value] if value else []
    out = []
    for item in value:
        if isinstance(item, dict):
            out.append(KeyFeature(title=_as_text(item.get("title")), description=_as_text(item.get("description"))))
        elif item:
            out.append(KeyFeature(title=_as_text(item)))
    return out


def _product_direct(obj: Any, params: Mapping[str, Any]) -> Optional[ProductDescriptionContent]:
    if not any(_present(obj, f) for f in PRODUCT_FIELDS):
        return None
    return ProductDescriptionContent(
        headline=_as_text(obj.get("headline")),
        tagline=_as_text(obj.get("tagline")),
        short_description=_as_text(obj.get("shortDescription")),
        full_description=_as_text(obj.get("fullDescription")),
        key_features=_key_features(obj.get("keyFeatures")),
        benefits=_as_text_list(obj.get("benefits")),
        target_audience=_as_text(obj.get("targetAudience")),
        call_to_action=_as_text(obj.get("callToAction")),
        seo_keywords=_as_text_list(obj.get("seoKeywords")),
    )


RULES: dict[ToolType, tuple[ExtractionRule, ...]] = {
    ToolType.BLOG_GENERATOR: (
        ExtractionRule("direct", _blog_direct),
        ExtractionRule("wrapped", _wrapped(_blog_direct)),
        ExtractionRule("content_passthrough", _blog_content_passthrough),
    ),
    ToolType.SOCIAL_CAPTIONS: (
        ExtractionRule("direct", _captions_direct),
        ExtractionRule("wrapped", _wrapped(_captions_direct)),
        ExtractionRule("root_platforms", _captions_root_platforms),
    ),
    ToolType.EMAIL_CAMPAIGNS: (
        ExtractionRule("direct", _email_direct),
        ExtractionRule("wrapped", _wrapped(_email_direct)),
    ),
    ToolType.PRODUCT_DESCRIPTIONS: (
        ExtractionRule("direct", _product_direct),
        ExtractionRule("wrapped", _wrapped(_product_direct)),
    ),
}


def extract_content(
    parsed: Any,
    tool_type: ToolType,
    params: Optional[Mapping[str, Any]] = None,
) -> Optional[NormalizedContent]:
    """First matching rule's result for tool_type, or None (not found)."""
    tool_type = ToolType(tool_type)
    params = params or {}
    obj = parse_payload(parsed)
    for rule in RULES[tool_type]:
        found = rule.apply(obj, params)
        if found is not None:
            return found
    return None


def raw_text(parsed: Any) -> str:
    if isinstance(parsed, str):
        return parsed
    return json.dumps(parsed, ensure_ascii=False, indent=2)


def fallback_content(
    parsed: Any,
    tool_type: ToolType,
    params: Optional[Mapping[str, Any]] = None,
) -> NormalizedContent:
    """Degraded result built from the raw payload text; every required field is filled."""
    tool_type = ToolType(tool_type)
    params = params or {}
    text = raw_text(parsed)

    if tool_type == ToolType.BLOG_GENERATOR:
        return BlogContent(title="", content=text, is_html=False)

    if tool_type == ToolType.EMAIL_CAMPAIGNS:
        return EmailCampaignContent(
            campaign=[
                CampaignEmail(
                    day=1,
                    subject_line=_param(params, "subject"),
                    preheader="Quick update",
                    body=text,
                    call_to_action=_param(params, "cta") or "Click here",
                )
            ],
            strategy="Manual fallback generation",
        )

    if tool_type == ToolType.PRODUCT_DESCRIPTIONS:
        name = _param(params, "productName")
        category = _param(params, "category")
        return ProductDescriptionContent(
            headline=name,
            tagline=f"Premium {category or 'Product'}",
            short_description=text[:200],
            full_description=text,
            key_features=[KeyFeature(title="Quality", description="Premium quality product")],
            benefits=["High quality", "Great value", "Reliable"],
            target_audience=_param(params, "targetAudience") or "Everyone",
            call_to_action="Order Now!",
            seo_keywords=[k for k in (name.lower(), category.lower() or "product") if k],
        )

    return RawContent(content=text, is_html=False)


def extract(
    raw: Any,
    tool_type: ToolType,
    params: Optional[Mapping[str, Any]] = None,
) -> NormalizedContent:
    parsed = parse_payload(raw)
    found = extract_content(parsed, tool_type, params)
    if found is not None:
        return found
    return fallback_content(parsed, tool_type, params)
