"""
Metadata provider for OpenAI-compatible chat completion APIs
(DeepSeek proxy, OpenRouter, self-hosted endpoints).
"""
import logging
from typing import Any, Dict, List, Optional

from .llm import LlmMetadataProvider, HttpRequest
from ..ai_api import tracker
from ..constants import (
    DEEPSEEK_PROXY_BASE_URL,
    DEEPSEEK_DEFAULT_MODEL,
    OPENROUTER_BASE_URL,
    OPENROUTER_DEFAULT_MODEL,
    OPENROUTER_REFERER,
    OPENROUTER_TITLE,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleMetadataProvider(LlmMetadataProvider):
    name = "custom"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        # OpenRouter specific headers
        if "openrouter" in self.base_url:
            headers["HTTP-Referer"] = OPENROUTER_REFERER
            headers["X-Title"] = OPENROUTER_TITLE
        return headers

    def build_request(self, system_prompt: str, user_prompt: str) -> HttpRequest:
        return HttpRequest(
            method="POST",
            url=f"{self.base_url}/chat/completions",
            headers=self._headers(),
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": 0.2,
                "stream": False,
            },
        )

    def extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        usage = data.get("usage") or {}
        if usage:
            tracker.add_usage(self.model, usage.get("prompt_tokens", 0), usage.get("completion_tokens", 0))
        return data["choices"][0]["message"]["content"]

    def build_models_request(self) -> HttpRequest:
        return HttpRequest(method="GET", url=f"{self.base_url}/models", headers=self._headers())

    def extract_models(self, data: Any) -> List[str]:
        # OpenAI format: {"data": [{"id": "model-name", ...}]}; some proxies return a bare list
        items = data.get("data", []) if isinstance(data, dict) else data
        return [item["id"] for item in items if isinstance(item, dict) and item.get("id")]


class DeepseekProxyMetadataProvider(OpenAICompatibleMetadataProvider):
    name = "deepseek_proxy"
    default_model = DEEPSEEK_DEFAULT_MODEL
    default_base_url = DEEPSEEK_PROXY_BASE_URL


class OpenRouterMetadataProvider(OpenAICompatibleMetadataProvider):
    name = "openrouter"
    default_model = OPENROUTER_DEFAULT_MODEL
    default_base_url = OPENROUTER_BASE_URL
