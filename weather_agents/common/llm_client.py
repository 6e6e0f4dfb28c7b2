"""
Provider-agnostic LLM client for the weather pipeline.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface. ``complete`` is the awaitable entry point used by the pipeline;
it runs the blocking SDK call in a worker thread. No retries are attempted
here: a failed call surfaces to the caller, which owns the fallback.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("weather.common.llm_client")


def _anthropic_sdk(api_key: str) -> Any:
    import anthropic

    return anthropic.Anthropic(api_key=api_key)


def _openai_sdk(api_key: str) -> Any:
    from openai import OpenAI

    return OpenAI(api_key=api_key)


def _google_sdk(api_key: str) -> Any:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    return genai  # the module; models are built per system prompt


# provider -> (SDK factory, pip distribution name)
_SDK_FACTORIES: Dict[str, tuple] = {
    "anthropic": (_anthropic_sdk, "anthropic"),
    "openai": (_openai_sdk, "openai"),
    "google": (_google_sdk, "google-generativeai"),
}


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.timeout = timeout
        self._client = None
        self._google_models: Dict[str, Any] = {}

        if self.provider not in _SDK_FACTORIES:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        api_key = {
            "anthropic": anthropic_api_key,
            "openai": openai_api_key,
            "google": google_api_key,
        }[self.provider]
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        factory, package = _SDK_FACTORIES[self.provider]
        try:
            self._client = factory(api_key)
        except ImportError:
            logger.warning("%s package not installed", package)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, llm_config) -> "LLMClient":
        """Build a client for the provider selected in an ``LLMConfig``."""
        return cls(
            provider=llm_config.provider,
            model=llm_config.model,
            anthropic_api_key=llm_config.anthropic_api_key or None,
            openai_api_key=llm_config.openai_api_key or None,
            google_api_key=llm_config.google_api_key or None,
            timeout=llm_config.timeout,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 512,
        timeout: Optional[float] = None,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        call: Optional[Callable[..., str]] = {
            "anthropic": self._generate_anthropic,
            "openai": self._generate_openai,
            "google": self._generate_google,
        }.get(self.provider)
        if call is None:
            raise RuntimeError(f"Unsupported LLM provider: {self.provider}")
        return call(prompt, system, temperature, max_tokens, timeout or self.timeout)

    def _generate_anthropic(self, prompt, system, temperature, max_tokens, timeout) -> str:
        extra = {"system": system} if system else {}
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **extra,
        )
        return response.content[0].text.strip()

    def _generate_openai(self, prompt, system, temperature, max_tokens, timeout) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=messages,
            timeout=timeout,
        )
        return (response.choices[0].message.content or "").strip()

    def _generate_google(self, prompt, system, temperature, max_tokens, timeout) -> str:
        key = hashlib.md5((system or "").encode()).hexdigest()
        model = self._google_models.get(key)
        if model is None:
            options = {"model_name": self.model}
            if system:
                options["system_instruction"] = system
            model = self._google_models[key] = self._client.GenerativeModel(**options)
        response = model.generate_content(
            prompt,
            generation_config={"max_output_tokens": max_tokens, "temperature": temperature},
            request_options={"timeout": timeout},
        )
        return response.text.strip()

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 512,
    ) -> str:
        """Single-turn completion, awaitable."""
        return await asyncio.to_thread(
            self.generate,
            prompt,
            system=system,
            temperature=temperature,
            max_tokens=max_tokens,
        )
