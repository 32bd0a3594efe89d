"""
Text generation across AI providers.

OpenAI-compatible providers are described by a small strategy table and called
over httpx. Anthropic goes through the official SDK.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import anthropic
import httpx

from models import AIConfig, Provider

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0
MAX_TOKENS = 1024
TEMPERATURE = 0.7
ANTHROPIC_DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


class GenerationError(Exception):
    """Base class for failures of the external generation call."""


class NotConfiguredError(GenerationError):
    pass


class TransportError(GenerationError):
    pass


class AuthError(GenerationError):
    pass


class ProviderError(GenerationError):
    pass


@dataclass(frozen=True)
class ProviderSpec:
    endpoint: Optional[str]  # None means the URL comes from the config
    default_model: str
    build_headers: Callable[[AIConfig], dict[str, str]]
    build_payload: Callable[[AIConfig, str, str], dict[str, Any]]
    extract_text: Callable[[dict], str]


def _bearer_headers(config: AIConfig) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {config.api_key.strip()}",
    }


def _chat_payload(config: AIConfig, model: str, prompt: str) -> dict[str, Any]:
    return {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": TEMPERATURE,
    }


def _chat_text(data: dict) -> str:
    choices = data.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("message") or {}).get("content") or ""


PROVIDERS: dict[Provider, ProviderSpec] = {
    Provider.OPENAI: ProviderSpec(
        "https://api.openai.com/v1/chat/completions", "gpt-4o-mini",
        _bearer_headers, _chat_payload, _chat_text,
    ),
    Provider.MOONSHOT: ProviderSpec(
        "https://api.moonshot.cn/v1/chat/completions", "moonshot-v1-8k",
        _bearer_headers, _chat_payload, _chat_text,
    ),
    Provider.ZHIPU: ProviderSpec(
        "https://open.bigmodel.cn/api/paas/v4/chat/completions", "glm-4-flash",
        _bearer_headers, _chat_payload, _chat_text,
    ),
    Provider.CUSTOM: ProviderSpec(
        None, "",
        _bearer_headers, _chat_payload, _chat_text,
    ),
}


def _error_from_response(response: httpx.Response) -> GenerationError:
    """Map a non-2xx response to AuthError or ProviderError with a readable message."""
    body = response.text
    try:
        error = json.loads(body).get("error")
    except (json.JSONDecodeError, AttributeError):
        error = None

    if isinstance(error, dict):
        message = error.get("message") or json.dumps(error)
        error_type = str(error.get("type") or "")
    elif isinstance(error, str):
        message, error_type = error, ""
    else:
        message = body or f"HTTP {response.status_code}: {response.reason_phrase}"
        error_type = ""

    if response.status_code in (401, 403) or "authentication" in error_type.lower() or "Authentication" in message:
        return AuthError(f"API key was rejected: {message}")
    return ProviderError(message)


async def _generate_http(spec: ProviderSpec, prompt: str, config: AIConfig, client: Optional[httpx.AsyncClient]) -> str:
    url = config.api_url or spec.endpoint
    if not url:
        raise NotConfiguredError("Custom provider requires an API URL")
    model = config.model or spec.default_model
    headers = spec.build_headers(config)
    payload = spec.build_payload(config, model, prompt)

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as own_client:
                response = await own_client.post(url, headers=headers, json=payload)
        else:
            response = await client.post(url, headers=headers, json=payload)
    except httpx.TransportError as e:
        logger.error("%s request failed: %s", config.provider.value, e)
        raise TransportError(f"Could not reach {config.provider.value}: {e}") from e

    if not response.is_success:
        logger.error("%s returned HTTP %d", config.provider.value, response.status_code)
        raise _error_from_response(response)

    try:
        data = response.json()
    except json.JSONDecodeError as e:
        raise ProviderError(f"Provider returned a non-JSON body: {response.text[:200]}") from e
    return spec.extract_text(data)


async def _generate_anthropic(prompt: str, config: AIConfig) -> str:
    try:
        async with anthropic.AsyncAnthropic(
            api_key=config.api_key.strip(),
            base_url=config.api_url or None,
            timeout=REQUEST_TIMEOUT,
        ) as client:
            response = await client.messages.create(
                model=config.model or ANTHROPIC_DEFAULT_MODEL,
                max_tokens=MAX_TOKENS,
                messages=[{"role": "user", "content": prompt}],
            )
    except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
        raise AuthError(f"API key was rejected: {e.message}") from e
    except anthropic.APIStatusError as e:
        logger.error("anthropic returned HTTP %d", e.status_code)
        raise ProviderError(e.message) from e
    except anthropic.APIConnectionError as e:
        logger.error("anthropic request failed: %s", e)
        raise TransportError(f"Could not reach anthropic: {e}") from e

    if not response.content:
        return ""
    return getattr(response.content[0], "text", "") or ""


async def generate(prompt: str, config: Optional[AIConfig], client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Send prompt to the configured provider and return the response text.

    Raises a GenerationError subclass on failure. Never retries.
    """
    if config is None or not config.api_key.strip():
        raise NotConfiguredError("AI provider is not configured")

    if config.provider == Provider.ANTHROPIC:
        return await _generate_anthropic(prompt, config)

    spec = PROVIDERS.get(config.provider)
    if spec is None:
        raise NotConfiguredError(f"Unsupported AI provider: {config.provider}")
    return await _generate_http(spec, prompt, config, client)
