"""
Provider-agnostic LLM client for reqbridge pipelines.

Supports Anthropic (direct or via AWS Bedrock), OpenAI, and Google Gemini
with a shared text-generation interface. ``generate`` optionally takes a
JSON schema; providers with a native structured-output mode use it, the
others get the schema as a JSON-only instruction. Either way the schema is
a soft contract and callers must parse the text defensively.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("reqbridge.common.llm_client")

SCHEMA_INSTRUCTION = (
    "Respond with JSON only, matching this JSON schema exactly. "
    "Do not wrap the JSON in code fences and do not add any prose.\n"
    "Schema:\n{schema}"
)


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        aws_region: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self._client = None

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

        if self.provider == "bedrock":
            if not aws_region:
                logger.info("%s region not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                # Credentials come from the standard AWS chain
                self._client = anthropic.AnthropicBedrock(aws_region=aws_region)
            except ImportError:
                logger.warning("anthropic[bedrock] package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Bedrock client: %s", e)
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
                self._google_models = {}  # Cache models by system prompt hash
            except ImportError:
                logger.warning("google-generativeai package not installed")
            except Exception as e:
                logger.warning("Failed to initialize Gemini client: %s", e)
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
        max_tokens: int = 4096,
        timeout: float = 60.0,
    ) -> str:
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider in ("anthropic", "bedrock"):
            if schema is not None:
                instruction = SCHEMA_INSTRUCTION.format(schema=json.dumps(schema, ensure_ascii=False))
                system = f"{system}\n\n{instruction}" if system else instruction
            kwargs = {}
            if system:
                kwargs["system"] = system
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
            if schema is not None:
                kwargs["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {"name": "output", "schema": _as_object_schema(schema)},
                }
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=messages,
                timeout=timeout,
                **kwargs,
            )
            return (response.choices[0].message.content or "").strip()

        if self.provider == "google":
            cache_key = hashlib.md5((system or "").encode()).hexdigest()
            if cache_key not in self._google_models:
                kwargs = {"model_name": self.model}
                if system:
                    kwargs["system_instruction"] = system
                self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
            model = self._google_models[cache_key]
            generation_config = {"max_output_tokens": max_tokens}
            if schema is not None:
                generation_config["response_mime_type"] = "application/json"
                generation_config["response_schema"] = schema
            response = model.generate_content(
                prompt,
                generation_config=generation_config,
                request_options={"timeout": timeout},
            )
            return response.text.strip()

        raise RuntimeError(f"Unsupported LLM provider: {self.provider}")


def _as_object_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """OpenAI structured output needs an object at the root; wrap arrays as {"items": [...]}."""
    if schema.get("type") == "object":
        return schema
    return {
        "type": "object",
        "properties": {"items": schema},
        "required": ["items"],
    }


def create_llm_client(llm_config) -> LLMClient:
    """Build an LLMClient from an LLMConfig section."""
    provider = (llm_config.provider or "anthropic").lower()
    models = {
        "anthropic": llm_config.anthropic_model,
        "bedrock": llm_config.bedrock_model,
        "openai": llm_config.openai_model,
        "google": llm_config.google_model,
    }
    return LLMClient(
        provider=provider,
        model=models.get(provider, ""),
        anthropic_api_key=llm_config.anthropic_api_key or None,
        openai_api_key=llm_config.openai_api_key or None,
        google_api_key=llm_config.google_api_key or None,
        aws_region=llm_config.bedrock_region or None,
    )
