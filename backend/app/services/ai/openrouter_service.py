"""
OpenRouter text generation for insight messages.
The composer treats every output here as untrusted and may discard it.
"""

import json
import re
from typing import Dict, List, Optional

import httpx

from app.core.config import settings
from app.services.ai.prompt_templates import (
    INSIGHT_EMAIL_PROMPT,
    INSIGHT_TEXT_PROMPT,
    TEXT_CHANNEL_LABELS,
)

_CODE_FENCE = re.compile(r"```[a-zA-Z]*\n?")


class OpenRouterClient:
    """Base client for all OpenRouter API calls."""

    def __init__(self):
        self.api_key = settings.openrouter_api_key
        self.base_url = settings.openrouter_base_url
        self.timeout = settings.openrouter_timeout

    async def chat_completion(
        self,
        model: str,
        messages: List[Dict],
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> str:
        """Call OpenRouter chat completions API."""
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        async with httpx.AsyncClient(timeout=float(self.timeout)) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "HTTP-Referer": settings.frontend_url,
                    "X-Title": settings.app_name,
                },
                json=payload,
            )
            response.raise_for_status()
            result = response.json()
            return result["choices"][0]["message"]["content"] or ""

    @staticmethod
    def _strip_code_fences(text: str) -> str:
        return _CODE_FENCE.sub("", text).replace("```", "").strip()


class InsightMessageWriter(OpenRouterClient):
    """Writes the narrative part of insight emails, SMS and WhatsApp messages."""

    def __init__(self):
        super().__init__()
        self.model = settings.message_model

    async def summarize_for_email(self, insights: Dict, customer_name: Optional[str]) -> str:
        """HTML ``<p>`` summary of the insights. No link is included."""
        prompt = INSIGHT_EMAIL_PROMPT.format(
            customer_name=customer_name or "Valued Customer",
            insights_json=json.dumps(insights, default=str),
        )
        content = await self.chat_completion(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=1024,
            temperature=0.7,
        )
        return self._strip_code_fences(content)

    async def summarize_for_text(
        self,
        channel: str,
        vehicle: Dict,
        insights: Dict,
        customer_name: Optional[str],
        tracking_url: str,
    ) -> str:
        """Plain-text summary for SMS or WhatsApp, asked to end with ``tracking_url``."""
        prompt = INSIGHT_TEXT_PROMPT.format(
            channel_label=TEXT_CHANNEL_LABELS.get(channel, "text"),
            customer_name=customer_name or "Valued Customer",
            vehicle_make=vehicle.get("make") or "",
            vehicle_model=vehicle.get("model") or "",
            insights_json=json.dumps(insights, default=str),
            tracking_url=tracking_url,
        )
        content = await self.chat_completion(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=500,
            temperature=0.4,
        )
        return self._strip_code_fences(content).replace("*", "")


message_writer = InsightMessageWriter()
