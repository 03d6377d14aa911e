"""
Provider Dispatch - one normalized conversation in, one answer out.

This module hides every vendor's request/response shape behind a single
call: `ProviderDispatcher.send(provider, messages) -> str`.

Providers:
- gemini      Google Gemini via google-generativeai
- claude      Anthropic Messages API (REST)
- gpt         OpenAI chat completions (REST)
- grok        xAI chat completions (REST, OpenAI-compatible)
- perplexity  Perplexity chat completions (REST, strict alternation, citations)
- llama       Llama on Groq via the groq SDK

Rules shared by every adapter:
1. Exactly one outbound call per send; no retries and no fallback here
2. Calls are bounded by PROVIDER_TIMEOUT_SECONDS
3. Missing credentials raise ConfigurationError before any network I/O
4. A response without text raises EmptyResponse, never returns ""
"""
import time
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, Optional

import google.generativeai as genai
import requests
from google.api_core import exceptions as google_exceptions
from groq import APIConnectionError, APIError, APIStatusError, Groq

from friction_router.core.config import Settings, get_settings
from friction_router.core.exceptions import ConfigurationError, EmptyResponse, ProviderError
from friction_router.core.logging_config import get_logger
from friction_router.llm.formatting import append_citations, merge_consecutive_roles
from friction_router.llm.prompts import SOURCES_SYSTEM_PROMPT
from friction_router.models.chat import ChatMessage

logger = get_logger(__name__)


class Provider(str, Enum):
    GEMINI = "gemini"
    CLAUDE = "claude"
    GPT = "gpt"
    GROK = "grok"
    PERPLEXITY = "perplexity"
    LLAMA = "llama"

    @classmethod
    def values(cls) -> List[str]:
        return [p.value for p in cls]


ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

# provider -> (display name, endpoint, settings key attr, settings model attr)
OPENAI_COMPATIBLE = {
    Provider.GPT: ("OpenAI", "https://api.openai.com/v1/chat/completions", "openai_api_key", "gpt_model"),
    Provider.GROK: ("Grok", "https://api.x.ai/v1/chat/completions", "xai_api_key", "grok_model"),
    Provider.PERPLEXITY: (
        "Perplexity", "https://api.perplexity.ai/chat/completions", "perplexity_api_key", "perplexity_model"
    ),
}

# Providers that reject two consecutive turns from the same role.
STRICT_ALTERNATION = {Provider.PERPLEXITY}

_RETRYABLE_STATUSES = {408, 429}


def _is_retryable_status(status: Optional[int]) -> bool:
    return status is not None and (status in _RETRYABLE_STATUSES or status >= 500)


def _error_detail(data: Any, limit: int = 300) -> Optional[str]:
    """Short, caller-safe description of an upstream error body."""
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        error = error.get("message") or error.get("type")
    if not error:
        return None
    return str(error)[:limit]


class ProviderDispatcher:
    """
    Routes a normalized conversation to the selected provider.

    Example:
        >>> dispatcher = ProviderDispatcher()
        >>> dispatcher.send("gpt", [ChatMessage(role="user", content="Hi")])
        'Hello! How can I help?'
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.timeout = self.settings.provider_timeout_seconds
        self.temperature = self.settings.llm_temperature
        self.max_tokens = self.settings.llm_max_tokens

    def close(self) -> None:
        self.session.close()

    def send(self, provider: str, messages: List[ChatMessage]) -> str:
        """
        Generate one answer.

        Args:
            provider: Provider selector (see Provider)
            messages: Normalized conversation, last turn from the user

        Returns:
            Generated text (plus an appended source list for perplexity)

        Raises:
            ValueError: Unknown provider selector
            ConfigurationError: Provider credential not configured
            ProviderError: Upstream failure, timeout or empty answer
        """
        selected = Provider(provider)

        start = time.time()
        if selected == Provider.GEMINI:
            text = self._send_gemini(messages)
        elif selected == Provider.CLAUDE:
            text = self._send_claude(messages)
        elif selected == Provider.LLAMA:
            text = self._send_llama(messages)
        else:
            text = self._send_openai_compatible(selected, messages)
        logger.info(
            f"Provider call ok: provider={selected.value} turns={len(messages)} "
            f"chars={len(text)} duration={time.time() - start:.2f}s"
        )
        return text

    # ============================================================
    # REST providers
    # ============================================================

    def _post_json(self, provider: Provider, url: str, headers: Dict[str, str], payload: dict) -> dict:
        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise ProviderError(
                provider.value, f"{provider.value} timed out after {self.timeout:.0f}s", retryable=True
            ) from e
        except requests.RequestException as e:
            raise ProviderError(provider.value, f"Could not reach {provider.value}", detail=str(e)[:300],
                                retryable=True) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.ok:
            logger.warning(f"Provider error: provider={provider.value} status={response.status_code}")
            raise ProviderError(
                provider.value,
                f"{provider.value} API error",
                http_status=response.status_code,
                detail=_error_detail(data),
                retryable=_is_retryable_status(response.status_code),
            )
        if not isinstance(data, dict):
            raise EmptyResponse(provider.value, detail="Response was not a JSON object")
        return data

    def _require_key(self, attr: str, provider: Provider) -> str:
        key = getattr(self.settings, attr)
        if not key:
            raise ConfigurationError(f"Server missing {attr.upper()}", details=f"provider={provider.value}")
        return key

    def _send_openai_compatible(self, provider: Provider, messages: List[ChatMessage]) -> str:
        _, url, key_attr, model_attr = OPENAI_COMPATIBLE[provider]
        api_key = self._require_key(key_attr, provider)

        turns = merge_consecutive_roles(messages) if provider in STRICT_ALTERNATION else list(messages)
        payload_messages = [m.to_dict() for m in turns]
        if provider == Provider.PERPLEXITY:
            payload_messages.insert(0, {"role": "system", "content": SOURCES_SYSTEM_PROMPT})

        payload = {"model": getattr(self.settings, model_attr), "messages": payload_messages}
        if provider != Provider.PERPLEXITY:
            payload["temperature"] = self.temperature

        data = self._post_json(
            provider,
            url,
            {"Content-Type": "application/json", "Authorization": f"Bearer {api_key}"},
            payload,
        )
        text = self._extract_choice_text(data)
        if not text:
            raise EmptyResponse(provider.value)

        if provider == Provider.PERPLEXITY:
            citations = data.get("citations")
            if not citations:
                citations = [r.get("url") for r in data.get("search_results") or [] if isinstance(r, dict)]
            text = append_citations(text, citations)
        return text

    @staticmethod
    def _extract_choice_text(data: dict) -> str:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        content = (choices[0].get("message") or {}).get("content")
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        return content.strip() if isinstance(content, str) else ""

    def _send_claude(self, messages: List[ChatMessage]) -> str:
        api_key = self._require_key("anthropic_api_key", Provider.CLAUDE)
        data = self._post_json(
            Provider.CLAUDE,
            ANTHROPIC_URL,
            {
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            {
                "model": self.settings.claude_model,
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
                "messages": [m.to_dict() for m in messages],
            },
        )
        blocks = data.get("content") or []
        text = "".join(
            block.get("text", "") for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ).strip()
        if not text:
            raise EmptyResponse(Provider.CLAUDE.value, detail=f"stop_reason={data.get('stop_reason')}")
        return text

    # ============================================================
    # SDK providers
    # ============================================================

    def _send_gemini(self, messages: List[ChatMessage]) -> str:
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
            for m in messages
        ]
        return self._generate_gemini(contents, temperature=self.temperature, max_tokens=self.max_tokens)

    def _generate_gemini(self, contents: Any, temperature: float, max_tokens: int) -> str:
        api_key = self._require_key("gemini_api_key", Provider.GEMINI)
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name=self.settings.gemini_model)

        try:
            response = model.generate_content(
                contents,
                generation_config=genai.types.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
                request_options={"timeout": self.timeout},
            )
        except google_exceptions.DeadlineExceeded as e:
            raise ProviderError("gemini", f"gemini timed out after {self.timeout:.0f}s", retryable=True) from e
        except google_exceptions.GoogleAPICallError as e:
            status = e.code if isinstance(e.code, int) else None
            raise ProviderError(
                "gemini", "gemini API error", http_status=status,
                detail=str(e.message)[:300], retryable=_is_retryable_status(status),
            ) from e
        except google_exceptions.GoogleAPIError as e:
            raise ProviderError("gemini", "gemini API error", detail=str(e)[:300], retryable=True) from e

        try:
            # .text raises ValueError when the candidate was blocked or has no parts
            text = (response.text or "").strip()
        except ValueError:
            text = ""
        if not text:
            feedback = getattr(response, "prompt_feedback", None)
            raise EmptyResponse("gemini", detail=str(feedback)[:300] if feedback else None)
        return text

    def _send_llama(self, messages: List[ChatMessage]) -> str:
        api_key = self._require_key("groq_api_key", Provider.LLAMA)
        # max_retries=0: this layer makes exactly one attempt.
        client = Groq(api_key=api_key, timeout=self.timeout, max_retries=0)
        try:
            response = client.chat.completions.create(
                model=self.settings.llama_model,
                messages=[m.to_dict() for m in messages],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except APIConnectionError as e:
            raise ProviderError("llama", "Could not reach llama provider", detail=str(e)[:300],
                                retryable=True) from e
        except APIStatusError as e:
            raise ProviderError(
                "llama", "llama API error", http_status=e.status_code,
                detail=str(e.message)[:300], retryable=_is_retryable_status(e.status_code),
            ) from e
        except APIError as e:
            raise ProviderError("llama", "llama API error", detail=str(e)[:300]) from e

        content = response.choices[0].message.content if response.choices else None
        text = (content or "").strip()
        if not text:
            raise EmptyResponse("llama")
        return text

    # ============================================================
    # Structured extraction
    # ============================================================

    def generate_structured(
        self,
        prompt: str,
        image_bytes: Optional[bytes] = None,
        mime_type: Optional[str] = None,
    ) -> str:
        """
        Low-temperature Gemini call for JSON extraction.

        Args:
            prompt: Extraction instructions (and text, if any)
            image_bytes: Optional raw image to read from
            mime_type: MIME type of the image

        Returns:
            Raw model text (expected to contain a JSON object)
        """
        parts: List[Any] = [prompt]
        if image_bytes is not None:
            parts.append({"mime_type": mime_type or "image/jpeg", "data": image_bytes})
        return self._generate_gemini([{"role": "user", "parts": parts}], temperature=0.2, max_tokens=512)


@lru_cache(maxsize=1)
def get_dispatcher() -> ProviderDispatcher:
    """Process-wide dispatcher; its HTTP session is reused across requests."""
    return ProviderDispatcher(get_settings())


def close_dispatcher() -> None:
    """Close the cached dispatcher, if one was built, and forget it."""
    if get_dispatcher.cache_info().currsize:
        get_dispatcher().close()
    get_dispatcher.cache_clear()
