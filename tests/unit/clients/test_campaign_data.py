"""
Tests for HTTPCampaignDataSource.

Requests are served by an httpx.MockTransport so no network is touched.

Pattern: Client adapter tested with a fake transport
"""

from datetime import datetime, timezone
from typing import Callable

import httpx
import pytest

from campaign_agent.clients.campaign_data import (
    CampaignDataError,
    CampaignDataSource,
    HTTPCampaignDataSource,
)
from campaign_agent.clients.http import create_http_client
from campaign_agent.core.exceptions import DependencyUnavailableError


BASE_URL = "http://campaign-data.test"
WIDGET = "507f1f77bcf86cd799439011"
SINCE = datetime(2026, 10, 5, tzinfo=timezone.utc)

CAMPAIGN = {
    "id": "c1",
    "name": "Diwali sale",
    "status": "completed",
    "createdAt": "2026-10-06T10:00:00+00:00",
    "templateId": "tpl_1",
    "metrics": {"totalRecipients": 200, "sent": 200, "delivered": 190, "read": 120},
    "unknownField": "ignored",
}


Handler = Callable[[httpx.Request], httpx.Response]


def make_source(handler: Handler) -> HTTPCampaignDataSource:
    client = create_http_client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HTTPCampaignDataSource(http_client=client)


class Recorder:
    """MockTransport handler that records requests and replies with a fixed payload."""

    def __init__(self, payload: object, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    """Paths, query parameters and record validation."""

    def test_implements_port(self) -> None:
        assert isinstance(make_source(Recorder([])), CampaignDataSource)

    async def test_find_campaigns(self) -> None:
        recorder = Recorder([CAMPAIGN])
        source = make_source(recorder)

        campaigns = await source.find_campaigns(
            WIDGET, SINCE, ["completed", "failed"], min_recipients=10
        )

        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == f"/widgets/{WIDGET}/campaigns"
        assert request.url.params.get_list("status") == ["completed", "failed"]
        assert request.url.params["minRecipients"] == "10"
        assert request.url.params["since"] == SINCE.isoformat()

        assert len(campaigns) == 1
        assert campaigns[0].template_id == "tpl_1"
        assert campaigns[0].metrics.total_recipients == 200
        assert campaigns[0].metrics.failed == 0

    async def test_zero_min_recipients_is_omitted(self) -> None:
        recorder = Recorder([])
        source = make_source(recorder)

        await source.find_campaigns(WIDGET, SINCE, ["completed"])

        assert "minRecipients" not in recorder.requests[0].url.params

    async def test_items_envelope(self) -> None:
        source = make_source(Recorder({"items": [CAMPAIGN], "total": 1}))

        campaigns = await source.find_campaigns(WIDGET, SINCE, ["completed"])

        assert [c.id for c in campaigns] == ["c1"]

    async def test_find_campaign_messages(self) -> None:
        recorder = Recorder(
            [
                {
                    "campaignId": "c1",
                    "status": "failed",
                    "errorHistory": [{"code": 131049, "title": "Ecosystem limit"}],
                }
            ]
        )
        source = make_source(recorder)

        messages = await source.find_campaign_messages(["c1", "c2"], SINCE)

        request = recorder.requests[0]
        assert request.url.path == "/messages"
        assert request.url.params.get_list("campaignId") == ["c1", "c2"]
        assert messages[0].error_history[0].code == "131049"

    async def test_no_campaign_ids_skips_request(self) -> None:
        recorder = Recorder([])
        source = make_source(recorder)

        assert await source.find_campaign_messages([], SINCE) == []
        assert recorder.requests == []

    async def test_find_templates(self) -> None:
        recorder = Recorder([{"id": "tpl_1", "name": "Welcome", "category": "MARKETING"}])
        source = make_source(recorder)

        templates = await source.find_templates(SINCE)

        assert recorder.requests[0].url.path == "/templates"
        assert templates[0].name == "Welcome"

    async def test_find_attributions(self) -> None:
        recorder = Recorder([{"totalAmount": 49.5, "campaign": "c1"}])
        source = make_source(recorder)

        attributions = await source.find_attributions(WIDGET, SINCE)

        assert recorder.requests[0].url.path == f"/widgets/{WIDGET}/attributions"
        assert attributions[0].total_amount == 49.5


# =============================================================================
# Errors and Availability
# =============================================================================


class TestErrors:
    """Transport failures map to domain exceptions."""

    async def test_connect_error_is_dependency_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(DependencyUnavailableError) as exc_info:
            await make_source(handler).find_templates(SINCE)

        assert exc_info.value.dependency == "campaign-data"

    async def test_timeout_is_data_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CampaignDataError, match="timed out"):
            await make_source(handler).find_templates(SINCE)

    async def test_error_status_is_data_error(self) -> None:
        source = make_source(Recorder({"error": "boom"}, status_code=500))

        with pytest.raises(CampaignDataError):
            await source.find_attributions(WIDGET, SINCE)


class TestAvailability:
    """is_available never raises."""

    async def test_available(self) -> None:
        recorder = Recorder({"status": "ok"})

        assert await make_source(recorder).is_available() is True
        assert recorder.requests[0].url.path == "/health"

    async def test_unhealthy_status(self) -> None:
        assert await make_source(Recorder({}, status_code=503)).is_available() is False

    async def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await make_source(handler).is_available() is False


class TestLifecycle:
    """Injected clients are left open."""

    async def test_injected_client_not_closed(self) -> None:
        client = create_http_client(base_url=BASE_URL, transport=httpx.MockTransport(Recorder([])))
        source = HTTPCampaignDataSource(http_client=client)

        await source.close()

        assert client.is_closed is False
        await client.aclose()

    async def test_owned_client_closed_on_exit(self) -> None:
        async with HTTPCampaignDataSource(base_url=BASE_URL) as source:
            client = source._client

        assert client.is_closed is True
