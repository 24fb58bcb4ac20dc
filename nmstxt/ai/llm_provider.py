"""
LLM Provider abstraction for NMS.TXT.

The Game Master is an oracle: given system instructions and the
conversation so far it returns free-form text. This module hides which
backend produces that text:

- Anthropic Claude (the remote API)
- Any OpenAI-compatible local server (llama.cpp, Ollama, LM Studio, ...)
- OpenAI
- A mock client for tests

The backend is chosen once, from configuration. Failures are raised, never
retried here: LLMAuthenticationError when the credential is missing or
rejected, LLMRequestError for everything else (network, status, malformed
envelope). Deciding what to do next is up to the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
import logging
import os

logger = logging.getLogger(__name__)


class LLMRequestError(Exception):
    """The oracle call failed (transport, status, or unusable response)."""

    pass


class LLMAuthenticationError(LLMRequestError):
    """The credential is missing or was rejected by the backend."""

    pass


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    LOCAL = "local"  # OpenAI-compatible server on this machine
    MOCK = "mock"  # For testing


class LLMRole(str, Enum):
    """Roles for messages in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class LLMMessage:
    """A message in an LLM conversation."""

    role: LLMRole
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    provider: LLMProvider
    usage: dict[str, int] = field(default_factory=dict)  # tokens used
    raw_response: Optional[Any] = None


DEFAULT_MODELS: dict[LLMProvider, str] = {
    LLMProvider.ANTHROPIC: "claude-3-5-haiku-20241022",
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.LOCAL: "llama3.2:3b",
    LLMProvider.MOCK: "mock",
}

API_KEY_ENV_VARS: dict[LLMProvider, str] = {
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
    LLMProvider.OPENAI: "OPENAI_API_KEY",
}

LOCAL_URL_ENV_VAR = "NMSTXT_LLM_URL"
DEFAULT_LOCAL_URL = "http://localhost:11434/v1"


@dataclass
class LLMConfig:
    """Configuration for LLM provider."""

    provider: LLMProvider = LLMProvider.ANTHROPIC
    model: Optional[str] = None
    max_tokens: int = 1024
    temperature: float = 0.8
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    api_version: Optional[str] = "2023-06-01"  # Anthropic only
    timeout: float = 60.0
    use_env_key: bool = True  # cleared once an environment key is rejected

    def __post_init__(self):
        if isinstance(self.provider, str):
            self.provider = LLMProvider(self.provider)
        if not self.model:
            self.model = DEFAULT_MODELS[self.provider]

    def resolve_api_key(self) -> Optional[str]:
        """Explicit key first, then the provider's environment variable."""
        if self.api_key:
            return self.api_key
        if not self.use_env_key:
            return None
        env_var = API_KEY_ENV_VARS.get(self.provider)
        return os.getenv(env_var) if env_var else None

    def resolve_base_url(self) -> Optional[str]:
        if self.base_url:
            return self.base_url
        if self.provider == LLMProvider.LOCAL:
            return os.getenv(LOCAL_URL_ENV_VAR, DEFAULT_LOCAL_URL)
        return None


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    provider: LLMProvider = LLMProvider.MOCK

    def __init__(self, config: LLMConfig):
        self.config = config

    @abstractmethod
    def complete(
        self,
        messages: list[LLMMessage],
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Raises:
            LLMAuthenticationError: Credential missing or rejected
            LLMRequestError: Any other failure
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is ready to take requests."""
        pass


class AnthropicClient(BaseLLMClient):
    """Client for Anthropic Claude API."""

    provider = LLMProvider.ANTHROPIC

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._client = None
        self._sdk = None
        self._initialize_client()

    def _initialize_client(self) -> None:
        """Initialize the Anthropic client."""
        try:
            import anthropic
        except ImportError:
            logger.warning("anthropic package not installed. Install with: pip install anthropic")
            return

        self._sdk = anthropic
        api_key = self.config.resolve_api_key()
        if not api_key:
            logger.warning(
                "ANTHROPIC_API_KEY not set. Set the environment variable or store a key first."
            )
            return

        kwargs: dict[str, Any] = {"api_key": api_key, "timeout": self.config.timeout}
        base_url = self.config.resolve_base_url()
        if base_url:
            kwargs["base_url"] = base_url
        if self.config.api_version:
            kwargs["default_headers"] = {"anthropic-version": self.config.api_version}
        self._client = anthropic.Anthropic(**kwargs)

    def is_available(self) -> bool:
        return self._client is not None

    def complete(
        self,
        messages: list[LLMMessage],
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """Generate completion using Claude."""
        if self._sdk is None:
            raise LLMRequestError("anthropic package not installed")
        if self._client is None:
            raise LLMAuthenticationError("API key required")

        anthropic_messages = [
            {"role": msg.role.value, "content": msg.content}
            for msg in messages
            if msg.role != LLMRole.SYSTEM
        ]

        try:
            response = self._client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=system_prompt or "",
                messages=anthropic_messages,
            )
        except self._sdk.AuthenticationError as e:
            raise LLMAuthenticationError(f"Invalid API key. Please enter a new one. ({e})") from e
        except self._sdk.APIError as e:
            raise LLMRequestError(f"Anthropic API error: {e}") from e

        content = "".join(
            block.text for block in (response.content or []) if getattr(block, "type", "") == "text"
        )
        if not content:
            raise LLMRequestError("Anthropic API returned no text content")

        return LLMResponse(
            content=content,
            model=self.config.model,
            provider=LLMProvider.ANTHROPIC,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            raw_response=response,
        )


class OpenAIClient(BaseLLMClient):
    """
    Client for the OpenAI chat completions API.

    Also serves LLMProvider.LOCAL: any server that speaks the same protocol
    at config.base_url. Local servers do not check the key, so a
    placeholder is sent when none is configured.
    """

    provider = LLMProvider.OPENAI
    LOCAL_PLACEHOLDER_KEY = "not-needed"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.provider = config.provider
        self._client = None
        self._sdk = None
        self._initialize_client()

    def _initialize_client(self) -> None:
        """Initialize the OpenAI client."""
        try:
            import openai
        except ImportError:
            logger.warning("openai package not installed. Install with: pip install openai")
            return

        self._sdk = openai
        api_key = self.config.resolve_api_key()
        if not api_key and self.provider == LLMProvider.LOCAL:
            api_key = self.LOCAL_PLACEHOLDER_KEY
        if not api_key:
            logger.warning(
                "OPENAI_API_KEY not set. Set the environment variable or store a key first."
            )
            return

        kwargs: dict[str, Any] = {"api_key": api_key, "timeout": self.config.timeout}
        base_url = self.config.resolve_base_url()
        if base_url:
            kwargs["base_url"] = base_url
        self._client = openai.OpenAI(**kwargs)

    def is_available(self) -> bool:
        return self._client is not None

    def complete(
        self,
        messages: list[LLMMessage],
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """Generate completion using a chat completions endpoint."""
        if self._sdk is None:
            raise LLMRequestError("openai package not installed")
        if self._client is None:
            raise LLMAuthenticationError("API key required")

        openai_messages = []
        if system_prompt:
            openai_messages.append({"role": "system", "content": system_prompt})
        for msg in messages:
            openai_messages.append({"role": msg.role.value, "content": msg.content})

        try:
            response = self._client.chat.completions.create(
                model=self.config.model,
                messages=openai_messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except self._sdk.AuthenticationError as e:
            raise LLMAuthenticationError(f"Invalid API key. Please enter a new one. ({e})") from e
        except self._sdk.APIError as e:
            raise LLMRequestError(f"{self.provider.value} API error: {e}") from e

        if not response.choices:
            raise LLMRequestError(f"{self.provider.value} API returned no choices")
        content = response.choices[0].message.content or ""
        if not content:
            raise LLMRequestError(f"{self.provider.value} API returned no text content")

        usage = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
            }

        return LLMResponse(
            content=content,
            model=self.config.model,
            provider=self.provider,
            usage=usage,
            raw_response=response,
        )


class MockLLMClient(BaseLLMClient):
    """Mock LLM client for testing. Records every call it receives."""

    provider = LLMProvider.MOCK

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._responses: list[str] = []
        self._response_index = 0
        self.calls: list[tuple[list[LLMMessage], Optional[str]]] = []

    def set_responses(self, responses: list[str]) -> None:
        """Set canned responses, served in order and then cycled."""
        self._responses = responses
        self._response_index = 0

    def is_available(self) -> bool:
        return True

    def complete(
        self,
        messages: list[LLMMessage],
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        self.calls.append((list(messages), system_prompt))
        if self._responses:
            content = self._responses[self._response_index % len(self._responses)]
            self._response_index += 1
        else:
            content = "[Mock LLM response]"

        return LLMResponse(
            content=content,
            model="mock",
            provider=LLMProvider.MOCK,
            usage={"tokens": 100},
        )


_CLIENT_CLASSES: dict[LLMProvider, type[BaseLLMClient]] = {
    LLMProvider.ANTHROPIC: AnthropicClient,
    LLMProvider.OPENAI: OpenAIClient,
    LLMProvider.LOCAL: OpenAIClient,
    LLMProvider.MOCK: MockLLMClient,
}


class LLMManager:
    """
    The oracle as seen by the rest of the game.

    Owns one client, selected from the configured provider, and logs each
    call. Errors propagate unchanged.
    """

    def __init__(self, config: Optional[LLMConfig] = None):
        """
        Initialize the LLM manager.

        Args:
            config: LLM configuration. If None, uses defaults.
        """
        self.config = config or LLMConfig()
        self._client: BaseLLMClient = self._create_client()

    def _create_client(self) -> BaseLLMClient:
        return _CLIENT_CLASSES[self.config.provider](self.config)

    @property
    def provider(self) -> LLMProvider:
        return self.config.provider

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def client(self) -> BaseLLMClient:
        return self._client

    def is_available(self) -> bool:
        return self._client.is_available()

    def set_api_key(self, api_key: Optional[str]) -> None:
        """Swap the credential and rebuild the client."""
        self.config.api_key = api_key
        self._client = self._create_client()

    def revoke_api_key(self) -> None:
        """
        Forget a rejected credential, including one read from the environment.

        The client stays unavailable until set_api_key supplies a new key.
        """
        self.config.api_key = None
        self.config.use_env_key = False
        self._client = self._create_client()

    def complete(
        self,
        messages: list[LLMMessage],
        system_prompt: Optional[str] = None,
    ) -> LLMResponse:
        """
        Send the conversation to the configured backend.

        Args:
            messages: Conversation messages, oldest first
            system_prompt: Game Master instructions

        Returns:
            LLMResponse with the raw text

        Raises:
            LLMAuthenticationError: Credential missing or rejected
            LLMRequestError: Any other failure
        """
        logger.debug(f"Calling {self.provider.value}/{self.model} with {len(messages)} messages")
        try:
            response = self._client.complete(messages, system_prompt)
        except LLMAuthenticationError as e:
            logger.warning(f"{self.provider.value} rejected the credential: {e}")
            raise
        except LLMRequestError as e:
            logger.error(f"{self.provider.value} request failed: {e}")
            raise
        logger.debug(f"Received {len(response.content)} chars from {self.provider.value}")
        return response


def get_llm_manager(config: Optional[LLMConfig] = None) -> LLMManager:
    """Factory function to get an LLM manager instance."""
    return LLMManager(config)
