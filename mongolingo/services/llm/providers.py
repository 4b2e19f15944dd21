"""
Model provider adapters.

Every provider exposes the same capability: turn a prompt into completion
text. Providers translate their own failure signals into RateLimitError
(retry the same provider later) or ProviderError (move on to the next one).
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

import httpx
from langchain_core.messages import HumanMessage

from mongolingo.config import settings
from mongolingo.core.exceptions import ProviderError, RateLimitError

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "ratelimit", "quota", "resource exhausted", "resource_exhausted", "too many requests")

def is_rate_limit_message(message: str) -> bool:
    """Heuristic for SDK errors that only expose a message."""
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)

def _message_text(content) -> str:
    """LangChain message content may be a list of parts."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        parts.append(part.get("text", "") if isinstance(part, dict) else str(part))
    return "".join(parts)

def classify_error(provider: str, error: Exception) -> ProviderError:
    """Map an SDK exception to RateLimitError or ProviderError."""
    status = getattr(error, "status_code", None) or getattr(error, "code", None)
    message = str(error) or type(error).__name__
    if status == 429 or is_rate_limit_message(message):
        return RateLimitError(provider, message)
    return ProviderError(provider, message)

class ModelProvider(ABC):
    """A language model reachable through one API."""

    name: str = "provider"
    # Run health_check before the first attempt; a failed probe skips the provider
    probe_before_use: bool = True

    def __init__(self, model: str, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.model = model
        self.timeout = timeout
        self.transport = transport

    @abstractmethod
    async def generate(self, prompt: str, temperature: float = 0.1, max_output_tokens: int = 800) -> str:
        """
        Generate a completion for the prompt.

        Raises:
            RateLimitError: When the provider signals a rate limit or exhausted quota
            ProviderError: For any other failure
        """

    async def health_check(self) -> bool:
        return True

    def describe(self) -> Dict[str, object]:
        return {"provider": self.name, "model": self.model, "timeout": self.timeout}

    async def _probe(self, url: str, headers: Optional[Dict[str, str]] = None, params: Optional[Dict[str, str]] = None) -> bool:
        try:
            async with httpx.AsyncClient(timeout=settings.LLM_HEALTH_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.get(url, headers=headers, params=params)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"{self.name} health check failed: {str(e)}")
            return False

class OllamaProvider(ModelProvider):
    """Locally hosted model served by Ollama."""

    name = "ollama"

    def __init__(self, base_url: str = None, model: str = None, timeout: float = None, transport: httpx.AsyncBaseTransport = None):
        super().__init__(model or settings.OLLAMA_MODEL, timeout or settings.OLLAMA_TIMEOUT_SECONDS, transport)
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")

    async def health_check(self) -> bool:
        return await self._probe(f"{self.base_url}/api/tags")

    async def generate(self, prompt: str, temperature: float = 0.1, max_output_tokens: int = 800) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_output_tokens},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/api/generate", json=payload)
        except httpx.ConnectError as e:
            raise ProviderError(self.name, f"Ollama is not running at {self.base_url}: {str(e)}")
        except httpx.HTTPError as e:
            raise ProviderError(self.name, str(e) or type(e).__name__)

        if response.status_code == 429:
            raise RateLimitError(self.name, response.text[:200] or "429 Too Many Requests")
        if response.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {response.status_code}: {response.text[:200]}")

        return response.json().get("response", "")

class GroqProvider(ModelProvider):
    """Groq-hosted model through LangChain's ChatGroq."""

    name = "groq"

    def __init__(self, api_key: str = None, model: str = None, timeout: float = None):
        super().__init__(model or settings.GROQ_MODEL_NAME, timeout or settings.GROQ_TIMEOUT_SECONDS)
        self.api_key = api_key or settings.GROQ_API_KEY

    async def health_check(self) -> bool:
        return await self._probe(
            "https://api.groq.com/openai/v1/models",
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def generate(self, prompt: str, temperature: float = 0.1, max_output_tokens: int = 800) -> str:
        from langchain_groq import ChatGroq

        llm = ChatGroq(
            api_key=self.api_key,
            model_name=self.model,
            temperature=temperature,
            max_tokens=max_output_tokens,
            max_retries=0,
        )
        try:
            response = await llm.ainvoke([HumanMessage(content=prompt)])
        except Exception as e:
            raise classify_error(self.name, e) from e
        return _message_text(response.content)

class GeminiProvider(ModelProvider):
    """Google Gemini through the google-genai SDK."""

    name = "gemini"

    def __init__(self, api_key: str = None, model: str = None, timeout: float = None):
        super().__init__(model or settings.GEMINI_MODEL, timeout or settings.GEMINI_TIMEOUT_SECONDS)
        self.api_key = api_key or settings.GEMINI_API_KEY

    async def health_check(self) -> bool:
        return await self._probe(
            "https://generativelanguage.googleapis.com/v1beta/models",
            params={"key": self.api_key, "pageSize": "1"},
        )

    async def generate(self, prompt: str, temperature: float = 0.1, max_output_tokens: int = 800) -> str:
        from google import genai

        client = genai.Client(api_key=self.api_key)
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config={"temperature": temperature, "max_output_tokens": max_output_tokens},
            )
        except Exception as e:
            raise classify_error(self.name, e) from e
        return response.text or ""

class OpenAIProvider(ModelProvider):
    """OpenAI chat model through LangChain's ChatOpenAI."""

    name = "openai"

    def __init__(self, api_key: str = None, model: str = None, timeout: float = None):
        super().__init__(model or settings.OPENAI_MODEL, timeout or settings.OPENAI_TIMEOUT_SECONDS)
        self.api_key = api_key or settings.OPENAI_API_KEY

    async def health_check(self) -> bool:
        return await self._probe(
            "https://api.openai.com/v1/models",
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def generate(self, prompt: str, temperature: float = 0.1, max_output_tokens: int = 800) -> str:
        from langchain_openai import ChatOpenAI

        llm = ChatOpenAI(
            model=self.model,
            api_key=self.api_key,
            temperature=temperature,
            max_tokens=max_output_tokens,
            max_retries=0,
        )
        try:
            response = await llm.ainvoke([HumanMessage(content=prompt)])
        except Exception as e:
            raise classify_error(self.name, e) from e
        return _message_text(response.content)

# name -> factory; a factory returns None when its provider is not configured
PROVIDER_REGISTRY: Dict[str, Callable[[], Optional[ModelProvider]]] = {
    "ollama": lambda: OllamaProvider(),
    "groq": lambda: GroqProvider() if settings.GROQ_API_KEY else None,
    "gemini": lambda: GeminiProvider() if settings.GEMINI_API_KEY else None,
    "openai": lambda: OpenAIProvider() if settings.OPENAI_API_KEY else None,
}

def build_providers(order: Optional[List[str]] = None) -> List[ModelProvider]:
    """
    Instantiate the configured providers in priority order.

    Hosted providers without an API key are left out.

    Args:
        order: Provider names, highest priority first

    Returns:
        Provider adapters in the given order
    """
    providers = []
    for name in order or settings.LLM_PROVIDER_ORDER:
        factory = PROVIDER_REGISTRY.get(name)
        if factory is None:
            logger.warning(f"Unknown LLM provider '{name}' in LLM_PROVIDER_ORDER, ignoring")
            continue
        provider = factory()
        if provider is None:
            logger.info(f"LLM provider '{name}' has no API key configured, skipping")
            continue
        providers.append(provider)

    logger.info(f"LLM fallback chain: {' -> '.join(p.name for p in providers) or '(empty)'}")
    return providers
