"""
AI client for CV analysis.

Sends the composed prompt to a LangChain chat model, retries transient
failures with capped exponential backoff, and parses the reply into an
AIAnalysis. Malformed replies degrade to a low-confidence result instead of
failing the run.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import openai
from langchain_core.messages import HumanMessage
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from cv_analyzer.config import settings
from cv_analyzer.errors import AIServiceError
from cv_analyzer.models import AIAnalysis, AIUsage, Summary
from cv_analyzer.utils.parser import extract_json

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50

# USD per 1K tokens: (input, output). Longest matching prefix wins.
MODEL_RATES: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4o": (0.0025, 0.01),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-4": (0.03, 0.06),
    "gpt-3.5-turbo": (0.0005, 0.0015),
    "deepseek-chat": (0.00027, 0.0011),
}
FALLBACK_RATE = MODEL_RATES["gpt-4"]

JSON_MODE_MODELS = (
    "gpt-4o",
    "gpt-4o-mini",
    "gpt-4-turbo",
    "gpt-4-turbo-preview",
    "gpt-3.5-turbo",
    "deepseek-chat",
)

RETRYABLE_STATUS = {408, 409, 429}
NON_RETRYABLE_STATUS = {400, 401, 403, 404, 422}


@dataclass
class AnalysisOutcome:
    """Parsed analysis plus usage metadata for one AI call."""

    analysis: AIAnalysis
    usage: AIUsage


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Estimated USD cost from the per-model rate table."""
    rate = FALLBACK_RATE
    for prefix in sorted(MODEL_RATES, key=len, reverse=True):
        if model.startswith(prefix):
            rate = MODEL_RATES[prefix]
            break
    input_rate, output_rate = rate
    return round(prompt_tokens / 1000 * input_rate + completion_tokens / 1000 * output_rate, 6)


def classify_error(exc: Exception) -> AIServiceError:
    """Map a provider exception onto AIServiceError with its retry class."""
    if isinstance(exc, AIServiceError):
        return exc
    if isinstance(exc, (openai.APITimeoutError, TimeoutError)):
        return AIServiceError(f"AI service timed out: {exc}", retryable=True)
    if isinstance(exc, openai.APIConnectionError):
        return AIServiceError(f"AI service unreachable: {exc}", retryable=True)

    status = exc.status_code if isinstance(exc, openai.APIStatusError) else getattr(exc, "status_code", None)
    if isinstance(status, int):
        if status in NON_RETRYABLE_STATUS:
            return AIServiceError(f"AI service rejected the request ({status}): {exc}", upstream_status=status)
        retryable = status >= 500 or status in RETRYABLE_STATUS
        return AIServiceError(f"AI service error ({status}): {exc}", retryable=retryable, upstream_status=status)

    return AIServiceError(f"AI service call failed: {exc}")


def build_chat_model(model_name: str | None = None):
    """Default ChatOpenAI model from settings. Retries are handled by AIClient."""
    from langchain_openai import ChatOpenAI

    model_name = model_name or settings.ai_model
    kwargs: dict[str, Any] = {
        "model": model_name,
        "temperature": settings.ai_temperature,
        "max_tokens": settings.ai_max_tokens,
        "timeout": settings.ai_timeout,
        "max_retries": 0,
    }
    if settings.openai_api_key:
        kwargs["api_key"] = settings.openai_api_key
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url

    llm = ChatOpenAI(**kwargs)
    if model_name in JSON_MODE_MODELS:
        return llm.bind(response_format={"type": "json_object"})
    return llm


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(str(part.get("text", "")))
            else:
                parts.append(str(part))
        return "".join(parts)
    return str(content or "")


def _token_counts(response: Any) -> tuple[int, int, int]:
    """(prompt, completion, total) tokens reported by the provider."""
    usage = getattr(response, "usage_metadata", None) or {}
    if not usage:
        metadata = getattr(response, "response_metadata", None) or {}
        token_usage = metadata.get("token_usage") or {}
        usage = {
            "input_tokens": token_usage.get("prompt_tokens", 0),
            "output_tokens": token_usage.get("completion_tokens", 0),
            "total_tokens": token_usage.get("total_tokens", 0),
        }

    prompt = int(usage.get("input_tokens") or 0)
    completion = int(usage.get("output_tokens") or 0)
    total = int(usage.get("total_tokens") or 0) or prompt + completion
    if total and not (prompt or completion):
        # Provider only reported a total; split it 70/30 for the estimate
        prompt = int(total * 0.7)
        completion = total - prompt
    return prompt, completion, total


def degraded_analysis(reason: str) -> AIAnalysis:
    """Valid but low-information result used when the reply cannot be parsed."""
    return AIAnalysis(
        summary=Summary(
            strengths="",
            areas_of_improvement="",
            key_findings=f"Automated analysis could not be fully parsed ({reason}). Please try reanalyzing.",
        ),
    ).with_defaults(DEFAULT_SCORE)


def parse_analysis(text: str) -> tuple[AIAnalysis, bool]:
    """
    Parse a model reply into an AIAnalysis.

    Returns:
        (analysis, degraded) where degraded is True when no JSON object
        could be recovered from the text
    """
    payload = None
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        payload = extract_json(text)

    if not isinstance(payload, dict):
        logger.warning("AI response did not contain a JSON object; using degraded result")
        return degraded_analysis("no JSON object in response"), True

    try:
        analysis = AIAnalysis.model_validate(payload)
    except PydanticValidationError as e:
        logger.warning(f"AI response failed strict validation, salvaging fields: {e.error_count()} error(s)")
        analysis = _salvage(payload)

    return analysis.with_defaults(DEFAULT_SCORE), False


def _salvage(payload: dict) -> AIAnalysis:
    """Validate each top-level field alone, keeping whichever ones parse."""
    kept = {}
    for name, field in AIAnalysis.model_fields.items():
        key = field.alias or to_camel(name)
        if key not in payload:
            continue
        try:
            AIAnalysis.model_validate({key: payload[key]})
        except PydanticValidationError:
            logger.warning(f"Dropping unparseable AI field {key!r}")
            continue
        kept[key] = payload[key]
    return AIAnalysis.model_validate(kept)


class AIClient:
    """Calls the language model with retry and lenient parsing."""

    def __init__(
        self,
        model=None,
        *,
        model_name: str | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.model_name = model_name or settings.ai_model
        self._model = model
        self.max_attempts = max(1, max_attempts or settings.ai_max_attempts)
        self.base_delay = base_delay if base_delay is not None else settings.ai_retry_base_delay
        self.max_delay = max_delay if max_delay is not None else settings.ai_retry_max_delay
        self._sleep = sleep

    @property
    def model(self):
        if self._model is None:
            self._model = build_chat_model(self.model_name)
        return self._model

    @property
    def configured(self) -> bool:
        return self._model is not None or bool(settings.openai_api_key)

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before retry `retry_number` (0-based): base * 2**n, capped."""
        return min(self.base_delay * (2 ** retry_number), self.max_delay)

    def _invoke_with_retry(self, prompt: str) -> tuple[Any, int]:
        messages = [HumanMessage(content=prompt)]
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.model.invoke(messages), attempt
            except Exception as e:  # noqa: BLE001 - classified below
                error = classify_error(e)
                if not error.retryable:
                    logger.error(f"AI call failed with non-retryable error: {error.message}")
                    raise error from e
                if attempt == self.max_attempts:
                    logger.error(f"AI call failed after {attempt} attempt(s): {error.message}")
                    raise AIServiceError(
                        f"AI service unavailable after {attempt} attempts: {error.message}",
                        retryable=True,
                        upstream_status=error.upstream_status,
                    ) from e

                delay = self.backoff_delay(attempt - 1)
                logger.warning(
                    f"AI call attempt {attempt}/{self.max_attempts} failed ({error.message}); "
                    f"retrying in {delay:g}s"
                )
                self._sleep(delay)

        raise AIServiceError("AI service was not called")  # max_attempts >= 1

    def analyze(self, prompt: str) -> AnalysisOutcome:
        """
        Run one analysis prompt.

        Raises:
            AIServiceError: non-retryable provider error or retries exhausted
        """
        started = time.monotonic()
        response, attempts = self._invoke_with_retry(prompt)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        analysis, degraded = parse_analysis(_response_text(response))
        prompt_tokens, completion_tokens, total_tokens = _token_counts(response)

        usage = AIUsage(
            model=self.model_name,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            tokens_used=total_tokens,
            processing_time_ms=elapsed_ms,
            cost=estimate_cost(self.model_name, prompt_tokens, completion_tokens),
            attempts=attempts,
            degraded=degraded,
        )
        logger.info(
            f"AI analysis done in {elapsed_ms}ms: {total_tokens} tokens, "
            f"${usage.cost:.4f}, attempts={attempts}, degraded={degraded}"
        )
        return AnalysisOutcome(analysis=analysis, usage=usage)
