"""
Campaign Data Source

This module defines the domain data port used by the campaign analyzer
tool and an adapter that reads it from the campaign data REST service.

The data source only filters by scope and time window; joins and
aggregation happen in the analyzer.

Pattern: Ports and Adapters (CampaignDataSource is the port)
Pattern: Client adapter for microservice communication
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional, Sequence, TypeVar

import httpx
from pydantic import BaseModel

from campaign_agent.clients.http import create_http_client
from campaign_agent.core.exceptions import DependencyUnavailableError
from campaign_agent.models.campaign import (
    AttributionRecord,
    CampaignRecord,
    MessageRecord,
    TemplateRecord,
)


logger = logging.getLogger(__name__)

DEPENDENCY_NAME = "campaign-data"

RecordT = TypeVar("RecordT", bound=BaseModel)


class CampaignDataError(Exception):
    """Raised when the campaign data service returns an error response."""

    pass


# =============================================================================
# CampaignDataSource Port
# =============================================================================


class CampaignDataSource(ABC):
    """
    Bulk-query capability over campaign domain records.

    Every method returns records scoped to one widget and created at or
    after `since`.
    """

    @abstractmethod
    async def is_available(self) -> bool:
        """Pre-flight check that the backing data store is reachable."""
        ...

    @abstractmethod
    async def find_campaigns(
        self,
        widget_id: str,
        since: datetime,
        statuses: Sequence[str],
        min_recipients: int = 0,
    ) -> list[CampaignRecord]:
        """Campaigns of a widget in the window, filtered by status and size."""
        ...

    @abstractmethod
    async def find_campaign_messages(
        self,
        campaign_ids: Sequence[str],
        since: datetime,
    ) -> list[MessageRecord]:
        """Template messages sent on behalf of the given campaigns."""
        ...

    @abstractmethod
    async def find_templates(self, since: datetime) -> list[TemplateRecord]:
        """Templates created in the window."""
        ...

    @abstractmethod
    async def find_attributions(
        self,
        widget_id: str,
        since: datetime,
    ) -> list[AttributionRecord]:
        """Orders attributed to a widget in the window."""
        ...

    async def close(self) -> None:
        """Release resources. Default is a no-op."""
        return None


# =============================================================================
# HTTPCampaignDataSource Adapter
# =============================================================================


class HTTPCampaignDataSource(CampaignDataSource):
    """
    CampaignDataSource backed by the campaign data REST service.

    Endpoints (all GET, JSON array responses):
        /health
        /widgets/{widget_id}/campaigns?since=&status=&minRecipients=
        /messages?campaignId=&since=
        /templates?since=
        /widgets/{widget_id}/attributions?since=

    Example:
        >>> source = HTTPCampaignDataSource(base_url="http://campaign-data:8090")
        >>> campaigns = await source.find_campaigns(widget_id, since, ["completed"])
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """
        Initialize HTTPCampaignDataSource.

        Args:
            base_url: Base URL of the campaign data service
            http_client: Optional pre-configured HTTP client (for testing)
            timeout_seconds: Request timeout in seconds
        """
        if http_client is not None:
            self._client = http_client
            self._owns_client = False
        else:
            self._client = create_http_client(
                base_url=base_url or "http://localhost:8090",
                timeout_seconds=timeout_seconds,
            )
            self._owns_client = True

    async def close(self) -> None:
        """Close the HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HTTPCampaignDataSource":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # =========================================================================
    # CampaignDataSource
    # =========================================================================

    async def is_available(self) -> bool:
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError as e:
            logger.warning(f"Campaign data service health check failed: {e}")
            return False
        return response.status_code == 200

    async def find_campaigns(
        self,
        widget_id: str,
        since: datetime,
        statuses: Sequence[str],
        min_recipients: int = 0,
    ) -> list[CampaignRecord]:
        params: list[tuple[str, Any]] = [("since", since.isoformat())]
        params.extend(("status", status) for status in statuses)
        if min_recipients:
            params.append(("minRecipients", min_recipients))
        return await self._get_records(
            f"/widgets/{widget_id}/campaigns", params, CampaignRecord
        )

    async def find_campaign_messages(
        self,
        campaign_ids: Sequence[str],
        since: datetime,
    ) -> list[MessageRecord]:
        if not campaign_ids:
            return []
        params: list[tuple[str, Any]] = [("since", since.isoformat())]
        params.extend(("campaignId", campaign_id) for campaign_id in campaign_ids)
        return await self._get_records("/messages", params, MessageRecord)

    async def find_templates(self, since: datetime) -> list[TemplateRecord]:
        return await self._get_records(
            "/templates", [("since", since.isoformat())], TemplateRecord
        )

    async def find_attributions(
        self,
        widget_id: str,
        since: datetime,
    ) -> list[AttributionRecord]:
        return await self._get_records(
            f"/widgets/{widget_id}/attributions",
            [("since", since.isoformat())],
            AttributionRecord,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_records(
        self,
        path: str,
        params: list[tuple[str, Any]],
        model: type[RecordT],
    ) -> list[RecordT]:
        """
        GET a JSON array and validate each element into `model`.

        Raises:
            DependencyUnavailableError: If the service cannot be reached.
            CampaignDataError: On timeouts and non-2xx responses.
        """
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.ConnectError as e:
            raise DependencyUnavailableError(
                f"Campaign data service unavailable: {e}",
                dependency=DEPENDENCY_NAME,
            ) from e
        except httpx.TimeoutException as e:
            raise CampaignDataError(f"Campaign data request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise CampaignDataError(f"Campaign data error: {e}") from e

        payload = response.json()
        if isinstance(payload, dict):
            payload = payload.get("items", [])
        return [model.model_validate(item) for item in payload]
