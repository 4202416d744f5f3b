"""
Google Gemini (generateContent) metadata provider.
"""
import logging
from typing import Any, Dict, List, Optional

from .llm import LlmMetadataProvider, HttpRequest
from ..ai_api import tracker
from ..constants import GEMINI_BASE_URL, GEMINI_DEFAULT_MODEL

logger = logging.getLogger(__name__)


class GeminiMetadataProvider(LlmMetadataProvider):
    name = "gemini"
    default_model = GEMINI_DEFAULT_MODEL
    default_base_url = GEMINI_BASE_URL

    def normalize_model_name(self, model: Optional[str]) -> str:
        # The models endpoint reports names as "models/<id>"
        name = (model or "").strip()
        if name.lower().startswith("models/"):
            name = name[len("models/"):]
        return name or self.default_model

    def build_request(self, system_prompt: str, user_prompt: str) -> HttpRequest:
        return HttpRequest(
            method="POST",
            url=f"{self.base_url}/models/{self.model}:generateContent",
            headers={"Content-Type": "application/json"},
            params={"key": self.api_key},
            json={
                "systemInstruction": {"parts": [{"text": system_prompt}]},
                "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
                "generationConfig": {
                    "temperature": 0.2,
                    "responseMimeType": "application/json",
                },
            },
        )

    def extract_text(self, data: Dict[str, Any]) -> Optional[str]:
        usage = data.get("usageMetadata") or {}
        if usage:
            tracker.add_usage(self.model, usage.get("promptTokenCount", 0), usage.get("candidatesTokenCount", 0))
        return data["candidates"][0]["content"]["parts"][0]["text"]

    def build_models_request(self) -> HttpRequest:
        return HttpRequest(
            method="GET",
            url=f"{self.base_url}/models",
            params={"key": self.api_key, "pageSize": "1000"},
        )

    def extract_models(self, data: Any) -> List[str]:
        models = []
        for item in data.get("models", []):
            methods = item.get("supportedGenerationMethods") or []
            if methods and "generateContent" not in methods:
                continue
            models.append(self.normalize_model_name(item.get("name")))
        return models
