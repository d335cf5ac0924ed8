"""
Campaign Agent - conversational agent backend with tool calling.

Routes chat messages through an LLM that can call domain tools (campaign
analytics, book search), caches and coalesces expensive analysis queries,
and keeps short-lived conversational session state across turns.
"""

__version__ = "1.0.0"
