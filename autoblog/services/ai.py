"""
AI provider client - OpenAI-compatible text and image generation.
Owns retries with exponential backoff, per-model request shaping, error
classification and cost accounting for every call.

The SDK's own retry loop is disabled (max_retries=0) so that every attempt,
backoff and final classification happens here and is logged once.
"""
import asyncio
import logging
import re
import time
from typing import Awaitable, Callable, Optional

from autoblog.config import Settings, get_settings
from autoblog.services.pricing import (
    IMAGE_MODEL_OPTIONS,
    calculate_cost,
    calculate_image_cost,
)
from autoblog.utils.errors import (
    ConfigurationError,
    PermanentProviderError,
    ProviderError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

# Request shape per model family. Longest matching prefix wins.
MODEL_CAPABILITIES: dict[str, dict] = {
    "gpt-5": {"temperature": False, "token_field": "max_completion_tokens", "system_role": True},
    "gpt-4.1": {"temperature": True, "token_field": "max_completion_tokens", "system_role": True},
    "gpt-4o": {"temperature": True, "token_field": "max_completion_tokens", "system_role": True},
    "o1": {"temperature": False, "token_field": "max_completion_tokens", "system_role": False},
    "o3": {"temperature": False, "token_field": "max_completion_tokens", "system_role": False},
    "o4": {"temperature": False, "token_field": "max_completion_tokens", "system_role": False},
}
DEFAULT_CAPABILITIES = {"temperature": True, "token_field": "max_tokens", "system_role": True}

RELEVANT_MODEL_PREFIXES = ("gpt-5", "gpt-4", "gpt-3.5", "o1", "o3", "o4", "dall-e")

DEFAULT_TEXT_MODEL = "gpt-5-mini"
DEFAULT_IMAGE_MODEL = "dall-e-3"
DEFAULT_IMAGE_SIZE = "1792x1024"

_DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "could not resolve", "name resolution")
_REFUSED_MARKERS = ("connection refused", "connect call failed", "errno 111")
_SSL_MARKERS = ("ssl", "certificate", "tls")


def get_capabilities(model: str) -> dict:
    """Return the request-shaping capabilities for a model id."""
    best = None
    for prefix in MODEL_CAPABILITIES:
        if model.startswith(prefix) and (best is None or len(prefix) > len(best)):
            best = prefix
    return MODEL_CAPABILITIES[best] if best else DEFAULT_CAPABILITIES


def build_chat_params(
    model: str,
    prompt: str,
    system_prompt: str = "",
    max_tokens: int = 2000,
    temperature: float = 0.7,
) -> dict:
    """Build chat.completions.create kwargs adapted to the model's capabilities."""
    caps = get_capabilities(model)
    messages = []
    if system_prompt:
        if caps["system_role"]:
            messages.append({"role": "system", "content": system_prompt})
        else:
            prompt = f"Instructions: {system_prompt}\n\n{prompt}"
    messages.append({"role": "user", "content": prompt})

    params = {"model": model, "messages": messages, caps["token_field"]: max_tokens}
    if caps["temperature"]:
        params["temperature"] = temperature
    return params


def build_image_params(
    model: str,
    prompt: str,
    size: str,
    quality: str = "standard",
    style: str = "natural",
) -> dict:
    """Build images.generate kwargs; quality/style only for models that accept them."""
    params = {"model": model, "prompt": prompt, "n": 1, "size": size}
    options = IMAGE_MODEL_OPTIONS.get(model, {})
    if options.get("quality"):
        params["quality"] = quality
    if options.get("style"):
        params["style"] = style
    return params


def _sanitize_output_text(text: Optional[str]) -> str:
    """Remove hidden reasoning blocks returned by some providers."""
    if not text:
        return ""
    cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL | re.IGNORECASE)
    return cleaned.strip()


def _error_detail(exc) -> tuple[str, str, str]:
    """Extract (message, code, type) from an SDK status error body."""
    body = getattr(exc, "body", None)
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        body = body["error"]
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or getattr(exc, "message", "") or str(exc)
    code = body.get("code") or getattr(exc, "code", None) or ""
    err_type = body.get("type") or getattr(exc, "type", None) or ""
    return str(message), str(code), str(err_type)


def classify_status_error(exc) -> ProviderError:
    """Map an HTTP status failure from the provider to a ProviderError."""
    status = getattr(exc, "status_code", None) or 0
    message, code, err_type = _error_detail(exc)

    if status == 429:
        if "insufficient_quota" in (code, err_type):
            return PermanentProviderError(
                f"API quota exceeded: {message}", kind="quota_exceeded", status_code=status,
            )
        return TransientProviderError(
            f"Rate limited: {message}", kind="rate_limited", status_code=status,
        )
    if status >= 500:
        return TransientProviderError(
            f"Provider server error ({status}): {message}", kind="server_error", status_code=status,
        )
    if status == 401:
        return PermanentProviderError(
            f"Invalid API key: {message}", kind="invalid_api_key", status_code=status,
        )
    if status == 403:
        return PermanentProviderError(
            f"Access denied: {message}", kind="access_denied", status_code=status,
        )
    if status == 404:
        return PermanentProviderError(
            f"Model not found: {message}", kind="model_not_found", status_code=status,
        )
    return PermanentProviderError(
        f"API error ({status}): {message}", kind="api_error", status_code=status,
    )


def classify_transport_error(exc: BaseException) -> TransientProviderError:
    """Map a connection/timeout failure to a TransientProviderError."""
    import openai

    if isinstance(exc, openai.APITimeoutError):
        return TransientProviderError("Request to provider timed out", kind="timeout_error")

    # The SDK wraps the httpx error; its text names the real cause
    chain = []
    current: Optional[BaseException] = exc
    while current is not None and len(chain) < 5:
        chain.append(str(current).lower())
        current = current.__cause__ or current.__context__
    detail = " | ".join(chain)

    if any(marker in detail for marker in _DNS_MARKERS):
        return TransientProviderError(f"Could not resolve provider host: {exc}", kind="connection_error")
    if any(marker in detail for marker in _REFUSED_MARKERS):
        return TransientProviderError(f"Connection refused by provider: {exc}", kind="connection_refused")
    if any(marker in detail for marker in _SSL_MARKERS):
        return TransientProviderError(f"TLS error talking to provider: {exc}", kind="ssl_error")
    if "timed out" in detail or "timeout" in detail:
        return TransientProviderError("Request to provider timed out", kind="timeout_error")
    return TransientProviderError(f"Network error: {exc}", kind="network_error")


def _retry_after_seconds(exc) -> Optional[float]:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class AIClient:
    """
    Text and image generation against an OpenAI-compatible API.

    Usage:
        client = AIClient(api_key)
        result = await client.generate_text(prompt, system_prompt, model="gpt-5-mini")
    """

    def __init__(
        self,
        api_key: str,
        org_id: str = "",
        base_url: str = "",
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        max_backoff: Optional[float] = None,
        client=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        config: Optional[Settings] = None,
    ):
        settings = config or get_settings()

        self.api_key = api_key
        self.org_id = org_id
        self.base_url = base_url or settings.openai_base_url
        self.timeout = timeout if timeout is not None else settings.openai_timeout_seconds
        self.max_attempts = max_attempts or settings.ai_max_attempts
        self.max_backoff = max_backoff if max_backoff is not None else settings.ai_max_backoff_seconds
        self._client = client
        self._sleep = sleep

    def _get_client(self):
        if not self.api_key:
            raise ConfigurationError("OpenAI API key is not configured", kind="missing_api_key")
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                organization=self.org_id or None,
                base_url=self.base_url or None,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _backoff(self, attempt: int, exc=None) -> float:
        retry_after = _retry_after_seconds(exc) if exc is not None else None
        delay = retry_after if retry_after is not None else 2 ** attempt
        return min(delay, self.max_backoff)

    async def _request(self, operation: str, call: Callable[[], Awaitable]):
        """Run one provider call with the retry policy. Raises ProviderError."""
        import openai

        last_error: Optional[ProviderError] = None
        for attempt in range(1, self.max_attempts + 1):
            exc_for_backoff = None
            try:
                return await call()
            except openai.APIStatusError as exc:
                error = classify_status_error(exc)
                if not error.retryable:
                    logger.error(
                        "%s failed without retry: %s", operation, error.message,
                        extra={"error_kind": error.kind},
                    )
                    raise error from exc
                exc_for_backoff = exc
            except openai.APIConnectionError as exc:
                error = classify_transport_error(exc)

            last_error = error
            if attempt < self.max_attempts:
                delay = self._backoff(attempt, exc_for_backoff)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    operation, attempt, self.max_attempts, error.kind, delay,
                    extra={"error_kind": error.kind},
                )
                await self._sleep(delay)

        logger.error(
            "%s failed after %d attempts: %s", operation, self.max_attempts, last_error.message,
            extra={"error_kind": last_error.kind},
        )
        raise last_error

    async def generate_text(
        self,
        prompt: str,
        system_prompt: str = "",
        model: str = DEFAULT_TEXT_MODEL,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ) -> dict:
        """
        Generate a chat completion.

        Returns:
            {
                "content": str,
                "model": str,
                "prompt_tokens": int,
                "completion_tokens": int,
                "total_tokens": int,
                "cost_usd": float,
                "finish_reason": str|None,
                "latency_ms": int,
            }
        """
        client = self._get_client()
        params = build_chat_params(model, prompt, system_prompt, max_tokens, temperature)

        start = time.monotonic()
        response = await self._request(
            f"Text generation ({model})",
            lambda: client.chat.completions.create(**params),
        )
        latency_ms = int((time.monotonic() - start) * 1000)

        choice = response.choices[0] if response.choices else None
        content = _sanitize_output_text(choice.message.content if choice else "")
        prompt_tokens = response.usage.prompt_tokens if response.usage else 0
        completion_tokens = response.usage.completion_tokens if response.usage else 0

        return {
            "content": content,
            "model": model,
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
            "cost_usd": calculate_cost(model, prompt_tokens, completion_tokens),
            "finish_reason": choice.finish_reason if choice else None,
            "latency_ms": latency_ms,
        }

    async def generate_image(
        self,
        prompt: str,
        model: str = DEFAULT_IMAGE_MODEL,
        size: str = DEFAULT_IMAGE_SIZE,
        quality: str = "standard",
        style: str = "natural",
    ) -> dict:
        """Generate one image. Returns url, revised_prompt, model, size, cost_usd, latency_ms."""
        client = self._get_client()
        params = build_image_params(model, prompt, size, quality, style)

        start = time.monotonic()
        response = await self._request(
            f"Image generation ({model})",
            lambda: client.images.generate(**params),
        )
        latency_ms = int((time.monotonic() - start) * 1000)

        image = response.data[0] if response.data else None
        if image is None or not image.url:
            raise PermanentProviderError("Provider returned no image", kind="api_error")

        return {
            "url": image.url,
            "revised_prompt": getattr(image, "revised_prompt", None) or prompt,
            "model": model,
            "size": size,
            "cost_usd": calculate_image_cost(model, size, quality),
            "latency_ms": latency_ms,
        }

    async def list_models(self) -> list[str]:
        """List model ids available to the key, filtered to relevant families."""
        client = self._get_client()
        page = await self._request("Model listing", lambda: client.models.list())
        seen = []
        for model in page.data:
            model_id = getattr(model, "id", "") or ""
            if model_id.startswith(RELEVANT_MODEL_PREFIXES) and model_id not in seen:
                seen.append(model_id)
        return seen

    async def verify_api_key(self) -> dict:
        """Check the key against the provider. Never raises."""
        try:
            models = await self.list_models()
        except (ProviderError, ConfigurationError) as e:
            return {"success": False, "message": e.message, "kind": e.kind, "models": []}
        return {
            "success": True,
            "message": f"API key verified ({len(models)} models available)",
            "kind": None,
            "models": models,
        }
