"""Routes Package - API endpoint definitions.

Example: from campaign_agent.api.routes.chat import router as chat_router
"""
