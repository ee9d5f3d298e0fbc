import logging

import httpx

from aiauto.services.generation.errors import UpstreamConfigError, UpstreamError

logger = logging.getLogger("uvicorn.error")


class LLMGatewayClient:
    """OpenAI-compatible chat-completions gateway (OpenRouter)."""

    def __init__(self, url: str, api_key: str, model: str, site_url: str = "", timeout_sec: float = 60):
        self.url = url
        self.api_key = api_key
        self.model = model
        self.site_url = site_url
        self.timeout_sec = timeout_sec

    def complete_json(
        self,
        messages: list[dict],
        *,
        title: str = "",
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        """Return choices[0].message.content of a json_object completion."""
        if not self.api_key:
            raise UpstreamConfigError("OPENROUTER_API_KEY not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.site_url:
            headers["HTTP-Referer"] = self.site_url
        if title:
            headers["X-Title"] = title

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }

        try:
            r = httpx.post(self.url, headers=headers, json=payload, timeout=self.timeout_sec)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"LLM gateway timed out after {self.timeout_sec}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"LLM gateway request failed: {e}") from e

        if r.status_code >= 300:
            message = ""
            try:
                message = ((r.json() or {}).get("error") or {}).get("message") or ""
            except (ValueError, AttributeError):
                message = ""
            logger.error("[generation] LLM gateway error: %s %s", r.status_code, message)
            raise UpstreamError(message or f"LLM gateway error: {r.status_code}")

        try:
            data = r.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError(f"LLM gateway returned unexpected payload: {e}") from e

        if not content:
            raise UpstreamError("No content generated")

        logger.info("[generation] LLM response received (model=%s, chars=%s)", self.model, len(content))
        return content
