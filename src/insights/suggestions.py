"""Narrative operating suggestions from a hosted language model.

Builds a prompt from derived metrics only (never raw detections) and
sends it to a configured provider. Providers are constructed explicitly
through ``create_provider``, which returns the provider or the reason it
is unavailable instead of raising, so callers can show the reason and
carry on with the engine's own results.
"""

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Optional

import httpx

from ..analytics.timeseries import traffic_extremes
from ..utils.config import InsightsConfig

logger = logging.getLogger(__name__)

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class SuggestionError(RuntimeError):
    """Raised when a provider fails to return suggestions."""


class SuggestionProvider:
    """Base class for hosted language model providers.

    Args:
        api_key: Provider API key.
        model: Model identifier.
        timeout: Request timeout in seconds.
        client: Optional preconfigured ``httpx.Client``.
    """

    name = "provider"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.client = client or httpx.Client(timeout=timeout)

    def generate(self, prompt: str) -> str:
        """Send a prompt and return the generated text.

        Raises:
            SuggestionError: On transport errors, HTTP errors or an
                unexpected response body.
        """
        try:
            response = self._send(prompt)
            response.raise_for_status()
            return self._extract_text(response.json())
        except httpx.HTTPError as e:
            raise SuggestionError(f"{self.name} API error: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise SuggestionError(f"{self.name} returned an unexpected response: {e}") from e

    def _send(self, prompt: str) -> httpx.Response:
        raise NotImplementedError

    def _extract_text(self, body: dict) -> str:
        raise NotImplementedError


class AnthropicProvider(SuggestionProvider):
    """Anthropic Messages API provider."""

    name = "Anthropic (Claude)"

    def __init__(self, *args, max_tokens: int = 1024, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.max_tokens = max_tokens

    def _send(self, prompt: str) -> httpx.Response:
        return self.client.post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json={
                "model": self.model,
                "max_tokens": self.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            },
        )

    def _extract_text(self, body: dict) -> str:
        parts = [c["text"] for c in body["content"] if c.get("type") == "text"]
        return parts[0] if parts else ""


class GeminiProvider(SuggestionProvider):
    """Google Gemini generateContent provider."""

    name = "Gemini"

    def _send(self, prompt: str) -> httpx.Response:
        return self.client.post(
            GEMINI_URL.format(model=self.model),
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
        )

    def _extract_text(self, body: dict) -> str:
        parts = body["candidates"][0]["content"]["parts"]
        return "".join(p.get("text", "") for p in parts)


@dataclass
class ProviderResult:
    """Outcome of provider construction: a provider or the reason it is missing."""

    provider: Optional[SuggestionProvider] = None
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.provider is not None


def create_provider(
    config: InsightsConfig,
    env: Optional[Mapping[str, str]] = None,
    client: Optional[httpx.Client] = None,
) -> ProviderResult:
    """Construct the configured suggestion provider.

    Args:
        config: Insights settings.
        env: Environment to read API keys from; defaults to ``os.environ``.
        client: Optional ``httpx.Client`` shared with the provider.

    Returns:
        ProviderResult holding either the provider or an error message.
    """
    env = os.environ if env is None else env

    if config.provider == "anthropic":
        api_key = env.get("ANTHROPIC_API_KEY")
        if not api_key:
            return ProviderResult(
                error="Anthropic provider not available. Please check ANTHROPIC_API_KEY."
            )
        provider: SuggestionProvider = AnthropicProvider(
            api_key,
            config.anthropic_model,
            timeout=config.timeout_seconds,
            client=client,
            max_tokens=config.max_tokens,
        )
    elif config.provider == "gemini":
        api_key = env.get("GEMINI_API_KEY") or env.get("API_KEY")
        if not api_key:
            return ProviderResult(
                error="Gemini provider not available. Please check GEMINI_API_KEY."
            )
        provider = GeminiProvider(
            api_key, config.gemini_model, timeout=config.timeout_seconds, client=client
        )
    else:
        return ProviderResult(error=f"Unknown AI provider: {config.provider}")

    logger.info("Suggestion provider ready: %s (%s)", provider.name, provider.model)
    return ProviderResult(provider=provider)


def _traffic_summary(points: Sequence[dict]) -> str:
    if not points:
        return "Not available"
    busiest, quietest = traffic_extremes(points)

    def describe(selected: Sequence[dict]) -> str:
        return ", ".join(f"{p['time']} ({p['totalPersons']} cust.)" for p in selected)

    return (
        f"Busiest times appear to be: {describe(busiest) or 'N/A'}. "
        f"Quieter periods observed around: {describe(quietest) or 'N/A'}."
    )


def _group_summary(distribution: Sequence[dict]) -> str:
    if not distribution:
        return "Not available"
    top = sorted(distribution, key=lambda g: g["frequency"], reverse=True)[:3]
    described = "; ".join(
        f"{g['groupSize']} person{'s' if g['groupSize'] > 1 else ''} "
        f"(observed {g['frequency']} times)"
        for g in top
    )
    return f"Most common group sizes: {described}."


def build_prompt(
    summary: Mapping[str, object],
    series: Sequence[dict],
    group_sizes: Sequence[dict],
    source_name: str = "uploaded data",
) -> str:
    """Build the consultant prompt from derived metrics.

    Args:
        summary: Serialized summary metrics (``summaryMetrics``).
        series: Serialized occupancy series at the chosen granularity.
        group_sizes: Serialized group size distribution.
        source_name: Name of the data source shown in the prompt.

    Returns:
        Prompt text.
    """
    return f"""
You are an expert restaurant business consultant. Analyze the following data for a restaurant and provide 3-5 actionable suggestions to help them improve profitability, optimize staffing, and enhance customer experience.
Be specific with your suggestions and briefly explain the reasoning behind each. Present your suggestions as a clear, easy-to-read list.

Restaurant Data Snapshot:
- Data Source File: {source_name}
- Latest Customer Count: {summary["currentTotalCustomers"]}
- Latest Occupied Tables: {summary["currentOccupiedTables"]}
- Overall Average Group Size: {float(summary["averageGroupSizeOverall"]):.2f}
- Recorded Peak Occupancy: {summary["peakOccupancyCount"]} customers at {summary["peakOccupancyTime"]}
- Unique Visitors: {summary["totalUniqueVisitors"]}, Unique Groups: {summary["totalUniqueGroups"]}
- Average Stay Time: {summary["averageStayTime"]} min
- Customer Traffic Patterns Observed: {_traffic_summary(series)}
- Predominant Group Configurations: {_group_summary(group_sizes)}

Based on this data, here are your recommendations:
""".strip()
