"""
AI provider gateway

One interface over OpenAI, Gemini, Grok and DeepSeek. OpenAI, Grok and
DeepSeek share the chat-completions wire format; Gemini has its own.
"""
import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.config import get_settings
from core.logging import get_logger

from ..base import BaseAPIClient
from ..exceptions import InvalidResponseError, ProviderNotConfiguredError
from ..metrics import GatewayMetrics
from ..types import AIProvider, ChatMessage, CompletionOptions, CompletionResult, ProviderFailure, TokenUsage

logger = get_logger("gateway.llm", domain="d0")

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT = re.compile(r"\{[\s\S]*\}")
_ARRAY = re.compile(r"\[[\s\S]*\]")


class LLMClient(BaseAPIClient):
    """Shared construction for AI provider clients"""

    def __init__(self, provider: str, api_key: Optional[str] = None, model: Optional[str] = None, **kwargs):
        super().__init__(provider=provider, api_key=api_key, **kwargs)
        self.model = model or self.settings.model_for(provider)

    def _get_base_url(self) -> str:
        return self.settings.api_base_urls[self.provider]

    def _get_timeout(self) -> float:
        return float(self.settings.ai_request_timeout)

    async def complete(self, messages: List[ChatMessage], options: CompletionOptions) -> CompletionResult:
        raise NotImplementedError


class OpenAICompatibleClient(LLMClient):
    """Chat-completions client for OpenAI, Grok and DeepSeek"""

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, messages: List[ChatMessage], options: CompletionOptions) -> CompletionResult:
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "max_tokens": options.max_tokens,
        }
        self.logger.debug(f"Sending {len(messages)} messages to {self.provider}/{self.model}")

        data = await self.make_request("POST", "/chat/completions", json=payload)

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise InvalidResponseError(self.provider, "choices[0].message.content", str(data)[:200]) from e

        usage = data.get("usage")
        return CompletionResult(
            content=content,
            provider=self.provider,
            model=self.model,
            usage=TokenUsage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            )
            if usage
            else None,
        )


class GeminiClient(LLMClient):
    """Google Gemini generateContent client"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, **kwargs):
        super().__init__(AIProvider.GEMINI.value, api_key=api_key, model=model, **kwargs)

    def _get_headers(self) -> Dict[str, str]:
        # Key travels as a query parameter
        return {"Content-Type": "application/json"}

    async def complete(self, messages: List[ChatMessage], options: CompletionOptions) -> CompletionResult:
        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m["role"] != "system"
        ]
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": options.temperature,
                "topP": options.top_p,
                "maxOutputTokens": options.max_tokens,
            },
        }
        system = next((m for m in messages if m["role"] == "system"), None)
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system["content"]}]}

        data = await self.make_request(
            "POST", f"/models/{self.model}:generateContent", params={"key": self.api_key}, json=payload
        )

        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            content = ""

        usage = data.get("usageMetadata")
        return CompletionResult(
            content=content,
            provider=self.provider,
            model=self.model,
            usage=TokenUsage(
                prompt_tokens=usage.get("promptTokenCount", 0),
                completion_tokens=usage.get("candidatesTokenCount", 0),
                total_tokens=usage.get("totalTokenCount", 0),
            )
            if usage
            else None,
        )


def create_llm_client(provider: str, **kwargs) -> LLMClient:
    if provider == AIProvider.GEMINI.value:
        return GeminiClient(**kwargs)
    if provider in (AIProvider.OPENAI.value, AIProvider.GROK.value, AIProvider.DEEPSEEK.value):
        return OpenAICompatibleClient(provider, **kwargs)
    raise ValueError(f"Unsupported provider: {provider}")


class AIGateway:
    """Routes completions to configured AI providers"""

    def __init__(self, settings=None, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self.metrics = GatewayMetrics()
        self._http_client = http_client
        self._clients: Dict[str, LLMClient] = {}

    def get_available_providers(self) -> List[str]:
        """Providers with a configured key, in configured order"""
        return list(self.settings.available_ai_providers)

    def _client_for(self, provider: str) -> LLMClient:
        if provider not in self.get_available_providers():
            raise ProviderNotConfiguredError(provider)
        client = self._clients.get(provider)
        if client is None:
            client = create_llm_client(
                provider,
                api_key=self.settings.get_api_key(provider),
                model=self.settings.model_for(provider),
                http_client=self._http_client,
            )
            self._clients[provider] = client
        return client

    async def complete(
        self,
        provider: str,
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """
        Call one provider

        Raises:
            ProviderNotConfiguredError: provider has no key
            APIProviderError: any transport or API failure
        """
        client = self._client_for(provider)
        try:
            return await client.complete(messages, options or CompletionOptions())
        except Exception as e:
            self.metrics.record_ai_failure(provider, e.__class__.__name__)
            logger.error(f"Error calling {provider}: {e}")
            raise

    async def complete_multiple(
        self,
        providers: List[str],
        messages: List[ChatMessage],
        options: Optional[CompletionOptions] = None,
    ) -> Tuple[List[CompletionResult], List[ProviderFailure]]:
        """Call several providers concurrently; results keep the input provider order"""

        async def _one(provider: str):
            try:
                return await self.complete(provider, messages, options)
            except Exception as e:
                return ProviderFailure(provider=provider, error=str(e) or e.__class__.__name__)

        outcomes = await asyncio.gather(*(_one(p) for p in providers))
        results = [o for o in outcomes if isinstance(o, CompletionResult)]
        errors = [o for o in outcomes if isinstance(o, ProviderFailure)]
        return results, errors

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()


def parse_json_response(content: str) -> Optional[Any]:
    """
    Extract JSON from a model reply

    Tries the whole text, then a fenced code block, then the outermost
    object, then the outermost array. Returns None when nothing parses.
    """
    if content is None:
        return None

    try:
        return json.loads(content)
    except ValueError:
        pass

    candidates = []
    block = _CODE_BLOCK.search(content)
    if block:
        candidates.append(block.group(1).strip())
    for pattern in (_OBJECT, _ARRAY):
        match = pattern.search(content)
        if match:
            candidates.append(match.group(0))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue

    logger.warning(f"All JSON parse attempts failed: {content[:200]}")
    return None
