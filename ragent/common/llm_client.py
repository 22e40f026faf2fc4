"""
Provider-agnostic Language Model Service client.

Supports Anthropic, OpenAI, and Google Gemini with a shared
``complete(prompt, temperature)`` interface. The async variant runs the
blocking SDK call in a worker thread under a hard timeout and reports every
failure as ``ServiceUnavailable`` so callers can apply their own fallback.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Dict, Optional

from .errors import ServiceUnavailable

logger = logging.getLogger("ragent.common.llm_client")

SUPPORTED_PROVIDERS = ("anthropic", "openai", "google")


class LLMClient:
    """Unified text completion client across LLM providers."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_tokens: int = 1024,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client = None
        self._google_models: Dict[str, object] = {}

        if self.provider not in SUPPORTED_PROVIDERS:
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

        try:
            self._client = getattr(self, f"_connect_{self.provider}")(api_key)
        except ImportError as e:
            logger.warning("%s SDK not installed: %s", self.provider, e)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @staticmethod
    def _connect_anthropic(api_key: str):
        import anthropic

        return anthropic.Anthropic(api_key=api_key)

    @staticmethod
    def _connect_openai(api_key: str):
        from openai import OpenAI

        return OpenAI(api_key=api_key)

    @staticmethod
    def _connect_google(api_key: str):
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        return genai  # the module; models are built per system prompt

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def complete(
        self,
        prompt: str,
        temperature: float = 0.3,
        *,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Blocking completion; provider errors propagate unchanged."""
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        complete = getattr(self, f"_complete_{self.provider}")
        return complete(prompt, temperature, system, max_tokens or self.max_tokens)

    def _complete_anthropic(self, prompt, temperature, system, max_tokens) -> str:
        extra = {"system": system} if system else {}
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
            timeout=self.timeout,
            **extra,
        )
        return response.content[0].text.strip()

    def _complete_openai(self, prompt, temperature, system, max_tokens) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=messages,
            timeout=self.timeout,
        )
        return (response.choices[0].message.content or "").strip()

    def _complete_google(self, prompt, temperature, system, max_tokens) -> str:
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
            request_options={"timeout": self.timeout},
        )
        return response.text.strip()

    async def acomplete(
        self,
        prompt: str,
        temperature: float = 0.3,
        *,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Async ``complete``; any failure or timeout raises ServiceUnavailable."""
        if not self.is_available:
            raise ServiceUnavailable(f"LLM provider {self.provider} is not configured")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self.complete, prompt, temperature, system=system, max_tokens=max_tokens
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ServiceUnavailable(f"LLM call timed out after {self.timeout}s") from e
        except Exception as e:
            raise ServiceUnavailable(f"LLM call failed: {e}") from e


def create_llm_client(config) -> LLMClient:
    """Build an LLMClient from an ``LLMConfig`` section."""
    models = {
        "anthropic": config.anthropic_model,
        "openai": config.openai_model,
        "google": config.google_model,
    }
    return LLMClient(
        provider=config.provider,
        model=models.get((config.provider or "").lower(), ""),
        anthropic_api_key=config.anthropic_api_key or None,
        openai_api_key=config.openai_api_key or None,
        google_api_key=config.google_api_key or None,
        timeout=config.timeout,
        max_tokens=config.max_tokens,
    )
