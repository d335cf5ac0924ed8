"""Session history persistence."""

from campaign_agent.sessions.store import SessionHistoryStore, SessionStoreError

__all__ = ["SessionHistoryStore", "SessionStoreError"]
