"""
Services Package - Service Layer

Chat turn orchestration (AgentEngine), the AgentService facade, and the
soft-failing durable JSON cache.
"""

from campaign_agent.services.agent import AgentService
from campaign_agent.services.cache import JSONCache
from campaign_agent.services.engine import AgentEngine

__all__ = ["AgentEngine", "AgentService", "JSONCache"]
