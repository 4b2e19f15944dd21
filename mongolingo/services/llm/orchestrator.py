"""
Ordered fallback across model providers.

Providers are tried in priority order. A rate-limited provider is retried
with a growing delay (attempt x retry_delay) up to max_attempts; any other
failure moves straight on to the next provider. Only when every provider has
failed is AllProvidersExhausted raised, naming each provider's last failure.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from mongolingo.config import settings
from mongolingo.core.exceptions import AllProvidersExhausted, ProviderError, RateLimitError
from mongolingo.services.llm.providers import ModelProvider, build_providers

logger = logging.getLogger(__name__)

DIAGNOSTIC_PROMPT = "Say 'OK'"

@dataclass
class Completion:
    """Completion text and where it came from."""
    text: str
    provider: str
    attempts: int

class ModelOrchestrator:
    """
    Sends prompts to the first provider in the chain that answers.
    """

    def __init__(
        self,
        providers: List[ModelProvider],
        max_attempts: int = settings.LLM_MAX_ATTEMPTS,
        retry_delay: float = settings.LLM_RETRY_DELAY_SECONDS,
        health_timeout: float = settings.LLM_HEALTH_TIMEOUT_SECONDS,
        temperature: float = settings.LLM_TEMPERATURE,
        max_output_tokens: int = settings.LLM_MAX_OUTPUT_TOKENS,
    ):
        """
        Args:
            providers: Provider adapters, highest priority first
            max_attempts: Calls per provider while it keeps reporting rate limits
            retry_delay: Base backoff; attempt n waits n * retry_delay seconds
            health_timeout: Bound on each provider's health probe
            temperature: Sampling temperature passed to every provider
            max_output_tokens: Completion length cap passed to every provider
        """
        self.providers = list(providers)
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.health_timeout = health_timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    @classmethod
    def from_settings(cls) -> "ModelOrchestrator":
        return cls(build_providers())

    @property
    def provider_names(self) -> List[str]:
        return [provider.name for provider in self.providers]

    async def invoke(self, prompt: str) -> str:
        """Return the raw completion text of the first provider that answers."""
        completion = await self.complete(prompt)
        return completion.text

    async def complete(self, prompt: str) -> Completion:
        """
        Run the prompt through the fallback chain.

        Args:
            prompt: Prompt text

        Returns:
            The first non-empty completion

        Raises:
            AllProvidersExhausted: If every provider failed or was skipped
        """
        failures: List[Tuple[str, str]] = []

        for provider in self.providers:
            if provider.probe_before_use and not await self._is_available(provider):
                logger.warning(f"Skipping {provider.name}: health check failed")
                failures.append((provider.name, "skipped: health check failed"))
                continue

            try:
                text, attempts = await self._call_with_retry(provider, prompt)
            except ProviderError as e:
                logger.warning(f"Provider {provider.name} failed, falling back: {e.message}")
                failures.append((provider.name, e.message))
                continue

            logger.info(f"Completion received from {provider.name} after {attempts} attempt(s)")
            return Completion(text=text, provider=provider.name, attempts=attempts)

        logger.error(f"All LLM providers exhausted: {failures}")
        raise AllProvidersExhausted(failures)

    async def _call_with_retry(self, provider: ModelProvider, prompt: str) -> Tuple[str, int]:
        last_error: Optional[ProviderError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await asyncio.wait_for(
                    provider.generate(
                        prompt,
                        temperature=self.temperature,
                        max_output_tokens=self.max_output_tokens,
                    ),
                    timeout=provider.timeout,
                )
            except RateLimitError as e:
                last_error = e
                if attempt < self.max_attempts:
                    delay = attempt * self.retry_delay
                    logger.warning(f"{provider.name} rate limited (attempt {attempt}/{self.max_attempts}), retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                continue
            except asyncio.TimeoutError:
                raise ProviderError(provider.name, f"timed out after {provider.timeout}s")
            except ProviderError:
                raise
            except Exception as e:
                raise ProviderError(provider.name, f"{type(e).__name__}: {str(e)}") from e

            if not text or not text.strip():
                raise ProviderError(provider.name, "returned an empty completion")
            return text, attempt

        raise ProviderError(provider.name, f"rate limited after {self.max_attempts} attempts ({last_error.message})")

    async def _is_available(self, provider: ModelProvider) -> bool:
        try:
            return bool(await asyncio.wait_for(provider.health_check(), timeout=self.health_timeout))
        except asyncio.TimeoutError:
            logger.warning(f"{provider.name} health check timed out after {self.health_timeout}s")
            return False
        except Exception as e:
            logger.warning(f"{provider.name} health check raised {type(e).__name__}: {str(e)}")
            return False

    async def diagnose(self) -> List[Dict[str, Any]]:
        """
        Report each provider's configuration, liveness and a tiny live completion.

        Returns:
            One entry per provider in chain order
        """
        report = []
        for provider in self.providers:
            entry: Dict[str, Any] = dict(provider.describe())
            entry["healthy"] = await self._is_available(provider)

            if entry["healthy"]:
                try:
                    text = await asyncio.wait_for(
                        provider.generate(DIAGNOSTIC_PROMPT, temperature=0.0, max_output_tokens=10),
                        timeout=min(provider.timeout, 10.0),
                    )
                    entry["status"] = "connected"
                    entry["response_length"] = len(text or "")
                except asyncio.TimeoutError:
                    entry["status"] = "failed"
                    entry["error"] = "probe completion timed out"
                except Exception as e:
                    entry["status"] = "failed"
                    entry["error"] = str(e)
            else:
                entry["status"] = "unavailable"

            report.append(entry)
        return report
