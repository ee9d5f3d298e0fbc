import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or "").strip()


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid integer env: {name}={raw!r}")


def require_env(name: str, value: str):
    if not value:
        raise RuntimeError(f"Missing required env: {name}")


@dataclass(frozen=True)
class Settings:
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    usage_store: str = "supabase"

    # plan monthly limit per tool type (keyed by ToolType value)
    tool_monthly_limits: dict[str, int] = field(default_factory=dict)

    n8n_blog_webhook: str = ""
    n8n_captions_webhook: str = ""
    blog_webhook_timeout_sec: int = 60
    captions_webhook_timeout_sec: int = 30

    openrouter_api_key: str = ""
    openrouter_model: str = "x-ai/grok-4.1-fast"
    openrouter_url: str = OPENROUTER_CHAT_URL
    llm_timeout_sec: int = 60
    site_url: str = "https://cd-ai-auto-site.vercel.app"

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    cors_allow_origins: tuple[str, ...] = ("*",)

    def monthly_limit(self, tool_type: str) -> int:
        return int(self.tool_monthly_limits.get(tool_type, 0))


def load_settings() -> Settings:
    origins = tuple(o.strip() for o in _env("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip())

    return Settings(
        supabase_url=_env("SUPABASE_URL"),
        supabase_anon_key=_env("SUPABASE_ANON_KEY"),
        # older deployments name the service key SUPABASE_SERVICE_KEY
        supabase_service_role_key=_env("SUPABASE_SERVICE_ROLE_KEY") or _env("SUPABASE_SERVICE_KEY"),
        usage_store=_env("USAGE_STORE", "supabase").lower(),
        tool_monthly_limits={
            "blog_generator": _env_int("TOOL_LIMIT_BLOG_GENERATOR", 50),
            "social_captions": _env_int("TOOL_LIMIT_SOCIAL_CAPTIONS", 100),
            "email_campaigns": _env_int("TOOL_LIMIT_EMAIL_CAMPAIGNS", 50),
            "product_descriptions": _env_int("TOOL_LIMIT_PRODUCT_DESCRIPTIONS", 100),
        },
        n8n_blog_webhook=_env("N8N_BLOG_GENERATOR_WEBHOOK"),
        n8n_captions_webhook=_env("N8N_SOCIAL_CAPTIONS_WEBHOOK"),
        blog_webhook_timeout_sec=_env_int("BLOG_WEBHOOK_TIMEOUT_SEC", 60),
        captions_webhook_timeout_sec=_env_int("CAPTIONS_WEBHOOK_TIMEOUT_SEC", 30),
        openrouter_api_key=_env("OPENROUTER_API_KEY"),
        openrouter_model=_env("OPENROUTER_MODEL", "x-ai/grok-4.1-fast"),
        openrouter_url=_env("OPENROUTER_URL", OPENROUTER_CHAT_URL),
        llm_timeout_sec=_env_int("LLM_TIMEOUT_SEC", 60),
        site_url=_env("SITE_URL", "https://cd-ai-auto-site.vercel.app"),
        stripe_secret_key=_env("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
        cors_allow_origins=origins or ("*",),
    )
