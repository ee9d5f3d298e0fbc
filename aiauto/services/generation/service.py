from typing import Any

from aiauto.config import Settings
from aiauto.domain.usage.models import ToolType
from aiauto.services.generation.llm_client import LLMGatewayClient
from aiauto.services.generation.prompts import build_email_messages, build_product_messages
from aiauto.services.generation.webhook_client import call_workflow_webhook


class GenerationService:
    """
    Tool request -> raw upstream payload.
    - blog / captions: workflow-automation webhooks
    - email / product: LLM gateway with a JSON response format
    The payload is returned as received; normalization happens in the caller.
    """

    def __init__(self, settings: Settings, llm: LLMGatewayClient | None = None):
        self.settings = settings
        self.llm = llm or LLMGatewayClient(
            url=settings.openrouter_url,
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            site_url=settings.site_url,
            timeout_sec=settings.llm_timeout_sec,
        )

    def configured(self) -> dict[str, bool]:
        s = self.settings
        return {
            ToolType.BLOG_GENERATOR.value: bool(s.n8n_blog_webhook),
            ToolType.SOCIAL_CAPTIONS.value: bool(s.n8n_captions_webhook),
            ToolType.EMAIL_CAMPAIGNS.value: bool(s.openrouter_api_key),
            ToolType.PRODUCT_DESCRIPTIONS.value: bool(s.openrouter_api_key),
        }

    def generate(self, tool_type: ToolType, params: dict) -> Any:
        s = self.settings

        if tool_type == ToolType.BLOG_GENERATOR:
            return call_workflow_webhook(
                s.n8n_blog_webhook, params, s.blog_webhook_timeout_sec, env_name="N8N_BLOG_GENERATOR_WEBHOOK"
            )

        if tool_type == ToolType.SOCIAL_CAPTIONS:
            return call_workflow_webhook(
                s.n8n_captions_webhook, params, s.captions_webhook_timeout_sec, env_name="N8N_SOCIAL_CAPTIONS_WEBHOOK"
            )

        if tool_type == ToolType.EMAIL_CAMPAIGNS:
            return self.llm.complete_json(
                build_email_messages(params),
                title="Ai-Auto Email Campaigns",
                max_tokens=1500,
            )

        if tool_type == ToolType.PRODUCT_DESCRIPTIONS:
            return self.llm.complete_json(
                build_product_messages(params),
                title="Ai-Auto Product Descriptions",
                max_tokens=2000,
            )

        raise ValueError(f"Unknown tool type: {tool_type!r}")
