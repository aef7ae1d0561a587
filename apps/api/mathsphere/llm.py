from __future__ import annotations

import base64
import itertools
import json
import logging
from typing import Iterable, Optional, Sequence, Union

import httpx

from .config import Settings
from .errors import ProviderError
from .schemas import AttachmentBlock, ContentBlock, TextBlock

logger = logging.getLogger(__name__)


class CredentialPool:
    """Rotating pool of API keys shared by concurrent invocations.

    ``itertools.count`` advances atomically under the GIL, so ``next_index``
    is a lock-free increment-and-read.
    """

    def __init__(self, keys: Iterable[str]) -> None:
        self.keys = [k for k in keys if k] or [""]
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self.keys)

    def next_index(self) -> int:
        return next(self._counter) % len(self.keys)

    def key_at(self, index: int) -> str:
        return self.keys[index % len(self.keys)]


class LLMClient:
    name: str = "base"
    model: str = ""

    def generate(
        self,
        blocks: Sequence[ContentBlock],
        system_instruction: str,
        credential_index: int = 0,
    ) -> str:
        raise NotImplementedError


MOCK_LESSON = {
    "title": "Leçon",
    "introduction": "Introduction générée localement.",
    "definitions": [
        {"term": "Fonction", "definition": "Relation qui associe à chaque $x$ une image $f(x)$.", "example": "$f(x) = x^2$"}
    ],
    "theorems": [
        {"name": "Théorème des valeurs intermédiaires", "statement": "Si $f$ est continue sur $[a,b]$...", "proof": ""}
    ],
    "summary": "Résumé de la leçon.",
}


class MockLLMClient(LLMClient):
    """Scripted provider for tests and local runs.

    ``script`` items are returned in order; an exception item is raised
    instead of returned. Once exhausted, the canned lesson JSON is returned.
    """

    name = "mock"
    model = "mock"

    def __init__(self, script: Optional[Iterable[Union[str, BaseException]]] = None) -> None:
        self.script = list(script or [])
        self.calls: list[dict] = []

    def generate(
        self,
        blocks: Sequence[ContentBlock],
        system_instruction: str,
        credential_index: int = 0,
    ) -> str:
        self.calls.append(
            {
                "blocks": list(blocks),
                "system_instruction": system_instruction,
                "credential_index": credential_index,
            }
        )
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return json.dumps(MOCK_LESSON, ensure_ascii=False)


class GeminiClient(LLMClient):
    name = "gemini"

    def __init__(self, config: Settings, pool: Optional[CredentialPool] = None) -> None:
        self.pool = pool or CredentialPool(config.gemini_key_pool())
        if not any(self.pool.keys):
            raise ValueError("GEMINI_API_KEY is required for GeminiClient")
        self.model = config.gemini_model
        self.base_url = config.gemini_base_url.rstrip("/")
        self.temperature = config.gemini_temperature
        self.client = httpx.Client(
            timeout=httpx.Timeout(config.http_timeout_seconds, connect=10.0),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    @staticmethod
    def to_parts(blocks: Sequence[ContentBlock]) -> list[dict]:
        parts: list[dict] = []
        for block in blocks:
            if isinstance(block, TextBlock):
                parts.append({"text": block.text})
            elif isinstance(block, AttachmentBlock):
                parts.append(
                    {
                        "inline_data": {
                            "mime_type": block.mime_type,
                            "data": base64.b64encode(block.data).decode("ascii"),
                        }
                    }
                )
        return parts

    def generate(
        self,
        blocks: Sequence[ContentBlock],
        system_instruction: str,
        credential_index: int = 0,
    ) -> str:
        payload = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [{"role": "user", "parts": self.to_parts(blocks)}],
            "generationConfig": {"temperature": self.temperature},
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"
        key = self.pool.key_at(credential_index)
        logger.debug("Calling Gemini %s with key index %d", self.model, credential_index)
        try:
            response = self.client.post(url, params={"key": key}, json=payload)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise ProviderError(response.text or response.reason_phrase, status=response.status_code)

        data = response.json()
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            raise ProviderError(f"Gemini returned no candidates (blocked: {feedback.get('blockReason')})")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text_parts = [p.get("text") for p in parts if isinstance(p, dict) and p.get("text")]
        if not text_parts:
            raise ProviderError(
                f"Gemini returned no text parts. Finish reason: {candidates[0].get('finishReason')}"
            )
        return "".join(text_parts)


class OpenAIClient(LLMClient):
    name = "openai"

    def __init__(self, config: Settings) -> None:
        if not config.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for OpenAIClient")
        from openai import OpenAI
        import certifi

        self.model = config.openai_model
        self.timeout = config.openai_timeout_seconds
        timeout = httpx.Timeout(config.openai_timeout_seconds, connect=10.0)
        self.client = OpenAI(
            api_key=config.openai_api_key,
            max_retries=0,
            http_client=httpx.Client(
                timeout=timeout,
                http2=False,
                trust_env=False,
                verify=certifi.where(),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            ),
        )

    @staticmethod
    def to_content(blocks: Sequence[ContentBlock]) -> list[dict]:
        content: list[dict] = []
        for block in blocks:
            if isinstance(block, TextBlock):
                content.append({"type": "text", "text": block.text})
                continue
            encoded = base64.b64encode(block.data).decode("ascii")
            data_url = f"data:{block.mime_type};base64,{encoded}"
            if block.mime_type.startswith("image/"):
                content.append({"type": "image_url", "image_url": {"url": data_url}})
            else:
                content.append(
                    {"type": "file", "file": {"filename": "reference.pdf", "file_data": data_url}}
                )
        return content

    def generate(
        self,
        blocks: Sequence[ContentBlock],
        system_instruction: str,
        credential_index: int = 0,
    ) -> str:
        from openai import APIError, APIStatusError

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                timeout=self.timeout,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": self.to_content(blocks)},
                ],
                temperature=0.4,
            )
        except APIStatusError as exc:
            raise ProviderError(str(exc), status=exc.status_code) from exc
        except APIError as exc:
            raise ProviderError(f"{type(exc).__name__}: {exc}") from exc
        return response.choices[0].message.content or ""


def get_llm_client(config: Settings) -> LLMClient:
    provider = config.llm_provider.lower().strip()
    if provider == "gemini":
        return GeminiClient(config)
    if provider == "openai":
        return OpenAIClient(config)
    if config.is_production() and not config.allow_mock_fallback:
        raise RuntimeError("A real LLM provider is required in production (set LLM_PROVIDER)")
    return MockLLMClient()
