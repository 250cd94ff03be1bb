"""LLM API client utilities."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Dict, Optional
from enum import Enum

from openai import (
    AsyncOpenAI,
    APIConnectionError,
    RateLimitError,
    AuthenticationError,
    BadRequestError,
    APIStatusError,
)

from .config import ProviderConfig

logger = logging.getLogger(__name__)

OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://github.com/ai-subtitle-translator",
    "X-Title": "Subtitle Translator",
}


class APIErrorType(Enum):
    """API 错误类型分类。"""
    RATE_LIMIT = "rate_limit"      # 429 - 可重试
    CONNECTION = "connection"       # 网络问题 - 可重试
    AUTH = "auth"                   # 401 - 不可重试
    BAD_REQUEST = "bad_request"     # 400 - 不可重试
    SERVER = "server"               # 500+ - 可重试
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """A whole translation call failed (transport, auth or malformed reply)."""

    def __init__(self, message: str, error_type: APIErrorType = APIErrorType.UNKNOWN):
        super().__init__(message)
        self.error_type = error_type


def classify_error(error: Exception) -> tuple[APIErrorType, bool]:
    """
    分类 API 错误并判断是否可重试。

    Returns:
        (错误类型, 是否可重试)
    """
    if isinstance(error, RateLimitError):
        return APIErrorType.RATE_LIMIT, True
    elif isinstance(error, APIConnectionError):
        return APIErrorType.CONNECTION, True
    elif isinstance(error, AuthenticationError):
        return APIErrorType.AUTH, False
    elif isinstance(error, BadRequestError):
        return APIErrorType.BAD_REQUEST, False
    elif isinstance(error, APIStatusError):
        # 5xx 错误可重试
        if getattr(error, 'status_code', 0) >= 500:
            return APIErrorType.SERVER, True
        return APIErrorType.UNKNOWN, False
    else:
        return APIErrorType.UNKNOWN, False


def retry_delay(error_type: APIErrorType, attempt: int) -> int:
    """Backoff in seconds before retry ``attempt`` (0-based)."""
    if error_type == APIErrorType.RATE_LIMIT:
        # Rate limit 使用更长的退避时间
        return min(2 ** (attempt + 2), 60)  # 4, 8, 16... max 60
    return 2 ** (attempt + 1)  # 2, 4, 8


async def call_llm_async(
    client: AsyncOpenAI,
    model: str,
    messages: List[Dict[str, str]],
    temperature: float = 0.2,
    max_tokens: Optional[int] = None,
    max_retries: int = 3,
    json_mode: bool = False,
) -> str:
    """
    Make async call to LLM API with retry logic.

    Args:
        client: AsyncOpenAI client instance
        model: Model name to use
        messages: List of message dictionaries
        temperature: Sampling temperature
        max_tokens: Completion token limit, None for the server default
        max_retries: Maximum attempts
        json_mode: Whether to request JSON response format

    Returns:
        Response content as string

    Raises:
        ProviderError: when every attempt failed or the reply has no content
    """
    last_error: Optional[Exception] = None
    last_type = APIErrorType.UNKNOWN
    response = None

    params: Dict = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
    }
    if max_tokens:
        params["max_tokens"] = max_tokens
    if json_mode:
        params["response_format"] = {"type": "json_object"}

    for attempt in range(max_retries):
        try:
            response = await client.chat.completions.create(**params)
            break

        except Exception as e:
            last_error = e
            last_type, retryable = classify_error(e)

            if not retryable:
                logger.error(f"Non-retryable error ({last_type.value}): {e}")
                raise ProviderError(str(e) or type(e).__name__, last_type) from e

            if attempt + 1 < max_retries:
                delay = retry_delay(last_type, attempt)
                logger.warning(
                    f"Retryable error ({last_type.value}): {e}. "
                    f"Retry {attempt + 1}/{max_retries} in {delay}s..."
                )
                await asyncio.sleep(delay)

    if response is None:
        logger.error(f"All {max_retries} attempts failed. Last error: {last_error}")
        raise ProviderError(str(last_error) or "Request failed", last_type) from last_error

    choices = getattr(response, "choices", None)
    if not choices or choices[0].message is None:
        raise ProviderError("Invalid response format from API", APIErrorType.INVALID_RESPONSE)

    content = choices[0].message.content
    return content.strip() if content else ""


def create_client(config: ProviderConfig) -> AsyncOpenAI:
    """
    Create an AsyncOpenAI client for an OpenAI-compatible provider.

    Args:
        config: Provider settings (key, base URL, timeout)

    Returns:
        Configured AsyncOpenAI client
    """
    headers = OPENROUTER_HEADERS if config.provider == "openrouter" else None
    return AsyncOpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.timeout,
        default_headers=headers,
        # Retries are handled by call_llm_async
        max_retries=0,
    )
