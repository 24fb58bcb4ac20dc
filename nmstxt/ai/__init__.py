"""
Oracle access for NMS.TXT: LLM backends and the prompts sent to them.
"""

from nmstxt.ai.llm_provider import (
    AnthropicClient,
    BaseLLMClient,
    LLMAuthenticationError,
    LLMConfig,
    LLMManager,
    LLMMessage,
    LLMProvider,
    LLMRequestError,
    LLMResponse,
    LLMRole,
    MockLLMClient,
    OpenAIClient,
    get_llm_manager,
)
from nmstxt.ai.prompts import (
    NarrativeLength,
    build_system_prompt,
    format_inventory_text,
    format_user_message,
)

__all__ = [
    "AnthropicClient",
    "BaseLLMClient",
    "LLMAuthenticationError",
    "LLMConfig",
    "LLMManager",
    "LLMMessage",
    "LLMProvider",
    "LLMRequestError",
    "LLMResponse",
    "LLMRole",
    "MockLLMClient",
    "OpenAIClient",
    "get_llm_manager",
    "NarrativeLength",
    "build_system_prompt",
    "format_inventory_text",
    "format_user_message",
]
