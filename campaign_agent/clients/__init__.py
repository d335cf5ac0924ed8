"""
External clients.

HTTP client factory and the campaign data port with its REST adapter.
"""

from campaign_agent.clients.campaign_data import (
    CampaignDataError,
    CampaignDataSource,
    HTTPCampaignDataSource,
)
from campaign_agent.clients.http import create_http_client

__all__ = [
    "CampaignDataError",
    "CampaignDataSource",
    "HTTPCampaignDataSource",
    "create_http_client",
]
