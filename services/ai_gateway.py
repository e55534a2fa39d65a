"""Predictive analysis and streaming chat over hosted LLM HTTP APIs."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

import httpx

from app.schemas import (
    AIProvider,
    AISettings,
    ChatMessage,
    ChatRole,
    Device,
    PredictiveAnalysis,
    ProviderSettings,
)
from settings import get_settings

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"

NORMAL_RANGES = "Normal operating ranges are: Temperature < 70°C, Pressure < 160 PSI, Vibration < 3.0 G."

ANALYSIS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "riskLevel": {"type": "STRING"},
        "prediction": {"type": "STRING"},
        "recommendations": {"type": "ARRAY", "items": {"type": "STRING"}},
    },
    "required": ["riskLevel", "prediction", "recommendations"],
}


class AIGatewayError(Exception):
    """Raised when a provider request cannot be built or its reply is unusable."""


def analysis_prompt(device: Device) -> str:
    reading = device.current_data
    return f"""
You are a factory maintenance expert AI. Analyze the following real-time data for a piece of factory equipment.

Equipment Name: {device.name}
Communication Protocol: {device.protocol}

Current Sensor Readings:
- Temperature: {reading.temperature:.1f}°C
- Pressure: {reading.pressure:.0f} PSI
- Vibration: {reading.vibration:.2f} G

{NORMAL_RANGES}

Based on this data, provide a predictive maintenance analysis. Identify the risk level, summarize the potential issue, and suggest specific, actionable recommendations.
Return your analysis ONLY as a valid JSON object with the following schema:
{{ "riskLevel": "Low" | "Medium" | "High", "prediction": string, "recommendations": string[] }}
""".strip()


def system_prompt(devices: Iterable[Device], now: Optional[datetime] = None) -> str:
    context = json.dumps(
        [
            device.model_dump(mode="json", include={"id", "name", "protocol", "history"})
            for device in devices
        ]
    )
    current = (now or datetime.now(timezone.utc)).isoformat()
    return (
        "You are an expert AI assistant for factory maintenance and industrial operations. "
        "You are speaking with a factory floor engineer. Provide concise and helpful information. "
        "You have access to the following real-time and historical device data in JSON format. "
        "Use this data to answer user questions about device performance, trends, and specific past events. "
        "The 'time' property in the history is an ISO-8601 UTC timestamp. "
        f"Current time is {current}. Device Data: {context}"
    )


@dataclass
class ProviderRequest:
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]
    params: Dict[str, str] = field(default_factory=dict)


class ProviderAdapter:
    """Translates gateway calls into one provider's HTTP request and reply shapes."""

    requires_base_url = True

    def analysis_request(self, prompt: str, config: ProviderSettings) -> ProviderRequest:
        raise NotImplementedError

    def analysis_text(self, payload: Dict[str, Any]) -> str:
        raise NotImplementedError

    def chat_request(
        self, history: List[ChatMessage], system: str, config: ProviderSettings
    ) -> ProviderRequest:
        raise NotImplementedError

    def chat_delta(self, event: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError


class GeminiAdapter(ProviderAdapter):
    requires_base_url = False

    def _url(self, config: ProviderSettings, method: str) -> str:
        base = (config.base_url or GEMINI_BASE_URL).rstrip("/")
        return f"{base}/models/{config.model}:{method}"

    def _headers(self, config: ProviderSettings) -> Dict[str, str]:
        return {"x-goog-api-key": config.api_key}

    def analysis_request(self, prompt: str, config: ProviderSettings) -> ProviderRequest:
        return ProviderRequest(
            url=self._url(config, "generateContent"),
            headers=self._headers(config),
            body={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "responseMimeType": "application/json",
                    "responseSchema": ANALYSIS_SCHEMA,
                },
            },
        )

    def analysis_text(self, payload: Dict[str, Any]) -> str:
        return payload["candidates"][0]["content"]["parts"][0]["text"]

    def chat_request(
        self, history: List[ChatMessage], system: str, config: ProviderSettings
    ) -> ProviderRequest:
        return ProviderRequest(
            url=self._url(config, "streamGenerateContent"),
            headers=self._headers(config),
            params={"alt": "sse"},
            body={
                "contents": [
                    {"role": message.role.value, "parts": [{"text": message.text}]}
                    for message in history
                ],
                "systemInstruction": {"parts": [{"text": system}]},
            },
        )

    def chat_delta(self, event: Dict[str, Any]) -> Optional[str]:
        candidates = event.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts) or None


def _external_role(role: ChatRole) -> str:
    return "assistant" if role == ChatRole.model else "user"


class OpenAICompatibleAdapter(ProviderAdapter):
    """OpenAI chat completions, also spoken by the IoT Team endpoint."""

    def _url(self, config: ProviderSettings) -> str:
        # _resolve rejects this adapter when base_url is unset.
        return f"{(config.base_url or '').rstrip('/')}/chat/completions"

    def _headers(self, config: ProviderSettings) -> Dict[str, str]:
        return {"Authorization": f"Bearer {config.api_key}"}

    def analysis_request(self, prompt: str, config: ProviderSettings) -> ProviderRequest:
        return ProviderRequest(
            url=self._url(config),
            headers=self._headers(config),
            body={
                "model": config.model,
                "messages": [{"role": "user", "content": prompt}],
                "response_format": {"type": "json_object"},
            },
        )

    def analysis_text(self, payload: Dict[str, Any]) -> str:
        return payload["choices"][0]["message"]["content"]

    def chat_request(
        self, history: List[ChatMessage], system: str, config: ProviderSettings
    ) -> ProviderRequest:
        messages = [{"role": "system", "content": system}]
        messages.extend(
            {"role": _external_role(message.role), "content": message.text} for message in history
        )
        return ProviderRequest(
            url=self._url(config),
            headers=self._headers(config),
            body={"model": config.model, "messages": messages, "stream": True},
        )

    def chat_delta(self, event: Dict[str, Any]) -> Optional[str]:
        choices = event.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("delta") or {}).get("content")


class AnthropicAdapter(ProviderAdapter):
    requires_base_url = False

    def _url(self, config: ProviderSettings) -> str:
        return f"{(config.base_url or ANTHROPIC_BASE_URL).rstrip('/')}/messages"

    def _headers(self, config: ProviderSettings) -> Dict[str, str]:
        return {"x-api-key": config.api_key, "anthropic-version": ANTHROPIC_VERSION}

    def analysis_request(self, prompt: str, config: ProviderSettings) -> ProviderRequest:
        return ProviderRequest(
            url=self._url(config),
            headers=self._headers(config),
            body={
                "model": config.model,
                "max_tokens": 1024,
                "messages": [{"role": "user", "content": prompt}],
            },
        )

    def analysis_text(self, payload: Dict[str, Any]) -> str:
        return payload["content"][0]["text"]

    def chat_request(
        self, history: List[ChatMessage], system: str, config: ProviderSettings
    ) -> ProviderRequest:
        return ProviderRequest(
            url=self._url(config),
            headers=self._headers(config),
            body={
                "model": config.model,
                "max_tokens": 2048,
                "system": system,
                "messages": [
                    {"role": _external_role(message.role), "content": message.text}
                    for message in history
                ],
                "stream": True,
            },
        )

    def chat_delta(self, event: Dict[str, Any]) -> Optional[str]:
        if event.get("type") != "content_block_delta":
            return None
        return (event.get("delta") or {}).get("text")


ADAPTERS: Dict[AIProvider, ProviderAdapter] = {
    AIProvider.gemini: GeminiAdapter(),
    AIProvider.openai: OpenAICompatibleAdapter(),
    AIProvider.iotteam: OpenAICompatibleAdapter(),
    AIProvider.anthropic: AnthropicAdapter(),
}


def _strip_code_fence(text: str) -> str:
    candidate = text.strip()
    if candidate.startswith("```"):
        candidate = candidate.split("\n", 1)[-1] if "\n" in candidate else ""
        candidate = candidate.rsplit("```", 1)[0]
    return candidate.strip()


class AIGateway:
    """Single-shot provider calls; errors are reported in place, never retried."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._clock = clock

    async def aclose(self) -> None:
        await self._client.aclose()

    def _resolve(self, settings: AISettings) -> tuple[ProviderAdapter, ProviderSettings]:
        provider = settings.provider
        config = settings.for_provider()
        adapter = ADAPTERS.get(provider)
        if adapter is None:
            raise AIGatewayError(f"Unsupported AI provider: {provider.value}")
        if not config.api_key:
            raise AIGatewayError(f"{provider.value} API key is not set.")
        if adapter.requires_base_url and not config.base_url:
            raise AIGatewayError(f"{provider.value} Base URL is not set in settings.")
        return adapter, config

    async def get_predictive_analysis(
        self, device: Device, settings: AISettings
    ) -> Optional[PredictiveAnalysis]:
        """Ask the active provider for a JSON risk assessment; ``None`` on any failure."""
        try:
            adapter, config = self._resolve(settings)
            request = adapter.analysis_request(analysis_prompt(device), config)
            response = await self._client.post(
                request.url, headers=request.headers, params=request.params or None, json=request.body
            )
            response.raise_for_status()
            text = adapter.analysis_text(response.json())
            return PredictiveAnalysis.model_validate(json.loads(_strip_code_fence(text)))
        except (AIGatewayError, httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error(
                "Predictive analysis failed",
                extra={"device_id": device.id, "provider": settings.provider, "reason": str(exc)},
            )
            return None

    async def stream_chat(
        self,
        history: List[ChatMessage],
        settings: AISettings,
        devices: Iterable[Device],
    ) -> AsyncIterator[str]:
        """Yield reply text as it streams in; a failure yields one apology chunk."""
        try:
            adapter, config = self._resolve(settings)
            request = adapter.chat_request(history, system_prompt(devices, self._clock()), config)
            async for chunk in self._stream_events(adapter, request):
                yield chunk
        except (AIGatewayError, httpx.HTTPError) as exc:
            logger.error(
                "Chat stream failed",
                extra={"provider": settings.provider, "reason": str(exc)},
            )
            yield (
                f"Sorry, I encountered an error with the {settings.provider.value} provider. "
                "Please check the settings and logs for details."
            )

    async def _stream_events(
        self, adapter: ProviderAdapter, request: ProviderRequest
    ) -> AsyncIterator[str]:
        async with self._client.stream(
            "POST", request.url, headers=request.headers, params=request.params or None, json=request.body
        ) as response:
            if response.is_error:
                await response.aread()
                raise AIGatewayError(
                    f"Provider responded with status {response.status_code}: {response.text[:200]}"
                )
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    return
                try:
                    event = json.loads(data)
                except ValueError:
                    continue
                if not isinstance(event, dict):
                    continue
                chunk = adapter.chat_delta(event)
                if chunk:
                    yield chunk


@lru_cache
def build_default_gateway() -> AIGateway:
    return AIGateway(timeout=get_settings().ai_request_timeout)
