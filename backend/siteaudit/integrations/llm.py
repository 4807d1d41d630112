"""
LLM client for the page analyzer.

Speaks two wire formats:
- OpenAI chat completions (OpenAI itself, or a local LM Studio server)
- Anthropic messages
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel

from siteaudit.config import settings

JSON_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")

ANTHROPIC_VERSION = "2023-06-01"


class LLMProvider(str, Enum):
    LOCAL = "local"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Message(BaseModel):
    role: str  # system, user, assistant
    content: str


class LLMResponse(BaseModel):
    content: str
    model: str
    usage: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None

    @property
    def input_tokens(self) -> int:
        return int((self.usage or {}).get("prompt_tokens") or 0)

    @property
    def output_tokens(self) -> int:
        return int((self.usage or {}).get("completion_tokens") or 0)


@dataclass
class LLMConfig:
    provider: LLMProvider
    base_url: str
    api_key: str
    model: str
    temperature: float = 0.3
    max_tokens: int = 4096
    timeout: float = 120.0

    @classmethod
    def from_settings(cls) -> "LLMConfig":
        return cls(
            provider=LLMProvider(settings.LLM_PROVIDER),
            base_url=settings.LLM_BASE_URL.rstrip("/"),
            api_key=settings.LLM_API_KEY,
            model=settings.LLM_MODEL,
        )


def extract_json(content: str) -> Dict[str, Any]:
    """Pull a JSON object out of a model reply.

    Accepts a bare object, a fenced ```json block, or an object embedded in
    surrounding prose. Raises ValueError when no JSON object is present.
    """
    content = content.strip()
    fenced = JSON_FENCE_RE.search(content)
    if fenced:
        content = fenced.group(1)
    elif not content.startswith("{"):
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("No JSON found in model response")
        content = content[start:end + 1]

    parsed = json.loads(content)
    if not isinstance(parsed, dict):
        raise ValueError("Model response JSON is not an object")
    return parsed


class LLMClient:
    """Chat client for the configured provider.

    Usable as an async context manager; the underlying ``httpx.AsyncClient``
    is created lazily and closed on exit.
    """

    def __init__(self, config: Optional[LLMConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or LLMConfig.from_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_anthropic(self) -> bool:
        return self.config.provider == LLMProvider.ANTHROPIC

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        key = self.config.api_key
        if self.is_anthropic:
            headers["x-api-key"] = key
            headers["anthropic-version"] = ANTHROPIC_VERSION
        elif key and key != "not-needed":
            # LM Studio ignores the key; OpenAI requires it
            headers["Authorization"] = f"Bearer {key}"
        return headers

    async def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                headers=self._headers(),
                transport=self._transport,
            )
        return self._client

    async def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Send one chat turn. HTTP errors propagate as ``httpx.HTTPError``."""
        if temperature is None:
            temperature = self.config.temperature
        max_tokens = max_tokens or self.config.max_tokens

        if self.is_anthropic:
            path, payload = self._anthropic_request(messages, temperature, max_tokens)
        else:
            path, payload = self._openai_request(messages, temperature, max_tokens, json_mode)

        client = await self._http()
        response = await client.post(f"{self.config.base_url}{path}", json=payload)
        response.raise_for_status()
        data = response.json()

        if self.is_anthropic:
            return self._anthropic_response(data)
        return self._openai_response(data)

    def _openai_request(
        self,
        messages: List[Message],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> Tuple[str, Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.model_dump() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return "/chat/completions", payload

    def _openai_response(self, data: Dict[str, Any]) -> LLMResponse:
        choice = data["choices"][0]
        return LLMResponse(
            content=choice["message"]["content"] or "",
            model=data.get("model", self.config.model),
            usage=data.get("usage"),
            finish_reason=choice.get("finish_reason"),
        )

    def _anthropic_request(
        self,
        messages: List[Message],
        temperature: float,
        max_tokens: int,
    ) -> Tuple[str, Dict[str, Any]]:
        # Anthropic takes the system prompt as a top-level field
        system = [m.content for m in messages if m.role == "system"]
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.model_dump() for m in messages if m.role != "system"],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            payload["system"] = "\n\n".join(system)
        return "/messages", payload

    def _anthropic_response(self, data: Dict[str, Any]) -> LLMResponse:
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type", "text") == "text"
        )
        usage = data.get("usage") or {}
        return LLMResponse(
            content=text,
            model=data.get("model", self.config.model),
            usage={
                "prompt_tokens": usage.get("input_tokens", 0),
                "completion_tokens": usage.get("output_tokens", 0),
            },
            finish_reason=data.get("stop_reason"),
        )

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
