"""
LLM providers.

The engine depends on the LLMClient port; OpenAIChatClient is the adapter.
"""

from campaign_agent.providers.base import LLMClient
from campaign_agent.providers.openai import OpenAIChatClient

__all__ = ["LLMClient", "OpenAIChatClient"]
