"""LLM Provider Resolution and Chat Completion Client

Picks the first configured provider (AI gateway, then OpenAI, then Groq) and
wraps it in an async chat-completion client with a per-call wall-clock budget.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base error for chat completion failures."""


class LLMNotConfiguredError(LLMError):
    """No provider credential is available."""


class LLMCallError(LLMError):
    """The provider call failed or exceeded its time budget."""


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved provider: endpoint, credential and model name."""
    provider: Optional[str]
    api_url: Optional[str]
    api_key: Optional[str]
    model: Optional[str]

    @property
    def is_configured(self) -> bool:
        return bool(self.provider and self.api_key)


UNCONFIGURED = ProviderConfig(provider=None, api_url=None, api_key=None, model=None)


def resolve_provider(llm_config) -> ProviderConfig:
    """
    Resolve the chat completion provider from configuration.

    Args:
        llm_config: LLMConfig instance

    Returns:
        ProviderConfig for the first provider with a key, or UNCONFIGURED
    """
    if llm_config is None:
        return UNCONFIGURED
    if llm_config.gateway_api_key:
        return ProviderConfig("gateway", llm_config.gateway_url, llm_config.gateway_api_key, llm_config.gateway_model)
    if llm_config.openai_api_key:
        return ProviderConfig("openai", llm_config.openai_url, llm_config.openai_api_key, llm_config.openai_model)
    if llm_config.groq_api_key:
        return ProviderConfig("groq", None, llm_config.groq_api_key, llm_config.groq_model)
    return UNCONFIGURED


class ChatCompletionClient:
    """
    Async chat completion client over Groq or an OpenAI-compatible endpoint.

    The SDK client is created lazily on first use.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        timeout_seconds: float = 30.0,
        temperature: Optional[float] = None
    ):
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self._client = None

    @property
    def is_configured(self) -> bool:
        return self.provider.is_configured

    @property
    def model(self) -> Optional[str]:
        return self.provider.model

    def _get_client(self):
        if self._client is None:
            if self.provider.provider == "groq":
                from groq import AsyncGroq
                self._client = AsyncGroq(api_key=self.provider.api_key, max_retries=0)
            else:
                from openai import AsyncOpenAI
                self._client = AsyncOpenAI(
                    api_key=self.provider.api_key,
                    base_url=self.provider.api_url,
                    max_retries=0
                )
            logger.info(f"LLM client initialized: provider={self.provider.provider}, model={self.provider.model}")
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: Optional[float] = None
    ) -> str:
        """
        Run one chat completion.

        Args:
            messages: Chat messages ({"role", "content"})
            max_tokens: Maximum response tokens
            temperature: Optional sampling temperature override

        Returns:
            Reply text ("" when the provider returned no content)

        Raises:
            LLMNotConfiguredError: No provider is configured
            LLMCallError: Provider error or timeout
        """
        if not self.is_configured:
            raise LLMNotConfiguredError("No AI provider configured")

        params: Dict[str, Any] = {
            "model": self.provider.model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        temp = temperature if temperature is not None else self.temperature
        if temp is not None:
            params["temperature"] = temp

        try:
            response = await asyncio.wait_for(
                self._get_client().chat.completions.create(**params),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise LLMCallError(f"LLM call timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            raise LLMCallError(f"LLM call failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Pull the outermost JSON object out of a model reply.

    Handles code fences and surrounding prose.

    Raises:
        ValueError: No JSON object found or it does not decode to a dict
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ValueError("No JSON object in model reply")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model reply JSON is not an object")
    return data


def create_llm_client(llm_config) -> ChatCompletionClient:
    """
    Factory function to create the chat completion client.

    Args:
        llm_config: LLMConfig instance

    Returns:
        ChatCompletionClient (possibly unconfigured)
    """
    provider = resolve_provider(llm_config)
    if not provider.is_configured:
        logger.warning("No AI provider configured. Set AI_GATEWAY_API_KEY, OPENAI_API_KEY, or GROQ_API_KEY.")
    return ChatCompletionClient(
        provider,
        timeout_seconds=getattr(llm_config, "request_timeout_seconds", 30.0),
        temperature=getattr(llm_config, "temperature", None)
    )
