"""
Provider-agnostic LLM client for Sift pipelines.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface. Media understanding (video URLs, document bytes, images) is only
available on the Google provider; image generation only on OpenAI.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, Union

from .config import LLMConfig

logger = logging.getLogger("sift.common.llm_client")


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 60.0,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self.timeout = timeout
        self._client = None
        self._google_models = {}

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.Anthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Anthropic client: %s", e)
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import OpenAI

                self._client = OpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize OpenAI client: %s", e)
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # Store the module, not a model instance
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @classmethod
    def from_config(cls, config: LLMConfig, role: str = "synthesis") -> "LLMClient":
        """Build the client for one pipeline role (extraction, synthesis, vision, image)."""
        provider = getattr(config, f"{role}_provider")
        model = {
            "anthropic": config.anthropic_model,
            "openai": config.openai_model,
            "google": config.google_model,
        }.get(provider, "")
        if role == "image" and provider == "openai":
            model = config.openai_image_model
        return cls(
            provider=provider,
            model=model,
            anthropic_api_key=config.anthropic_api_key,
            openai_api_key=config.openai_api_key,
            google_api_key=config.google_api_key,
            timeout=config.timeout,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    @property
    def supports_media(self) -> bool:
        return self.is_available and self.provider == "google"

    @property
    def supports_image_generation(self) -> bool:
        return self.is_available and self.provider == "openai"

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")
        timeout = timeout or self.timeout

        if self.provider == "anthropic":
            kwargs = {}
            if system:
                kwargs["system"] = system
            if temperature is not None:
                kwargs["temperature"] = temperature
            response = self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
                **kwargs,
            )
            return response.content[0].text.strip()

        if self.provider == "openai":
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            kwargs = {}
            if temperature is not None:
                kwargs["temperature"] = temperature
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=messages,
                timeout=timeout,
                **kwargs,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            model = self._google_model(system)
            response = model.generate_content(
                prompt,
                generation_config=self._google_generation_config(max_tokens, temperature, json_mode),
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")

    def generate_with_media(
        self,
        prompt: str,
        *,
        mime_type: str,
        file_uri: Optional[str] = None,
        data: Optional[Union[bytes, str]] = None,
        max_tokens: int = 8192,
        temperature: Optional[float] = None,
        json_mode: bool = False,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a content-understanding pass over a media file.

        Exactly one of ``file_uri`` (a URL the provider fetches itself) or
        ``data`` (raw bytes) must be given.
        """
        if not self.supports_media:
            raise RuntimeError(f"Media generation is not available for provider {self.provider}")
        if (file_uri is None) == (data is None):
            raise ValueError("Provide exactly one of file_uri or data")

        if file_uri is not None:
            part = {"file_data": {"mime_type": mime_type, "file_uri": file_uri}}
        else:
            part = {"mime_type": mime_type, "data": data}

        model = self._google_model(None)
        response = model.generate_content(
            [part, prompt],
            generation_config=self._google_generation_config(max_tokens, temperature, json_mode),
            request_options={"timeout": timeout or self.timeout},
        )
        return response.text.strip()

    def generate_image(
        self,
        prompt: str,
        *,
        size: str = "1536x1024",
        timeout: Optional[float] = None,
    ) -> Tuple[bytes, str]:
        """Render an image from a text prompt.

        Returns:
            (image bytes, mime type)
        """
        if not self.supports_image_generation:
            raise RuntimeError(f"Image generation is not available for provider {self.provider}")
        import base64

        response = self._client.images.generate(
            model=self.model,
            prompt=prompt,
            size=size,
            n=1,
            timeout=timeout or self.timeout,
        )
        data = response.data[0].b64_json if response.data else None
        if not data:
            raise RuntimeError("Image provider returned no image")
        return base64.b64decode(data), "image/png"

    def _google_model(self, system: Optional[str]):
        import hashlib

        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        return self._google_models[cache_key]

    @staticmethod
    def _google_generation_config(max_tokens: int, temperature: Optional[float], json_mode: bool) -> dict:
        config = {"max_output_tokens": max_tokens}
        if temperature is not None:
            config["temperature"] = temperature
        if json_mode:
            config["response_mime_type"] = "application/json"
        return config
