"""
Books Search Tool

This module implements the searchBooks tool, a thin proxy to the Google
Books volumes API. Volumes are mapped into BookResult records so the model
only sees the fields it can cite.

Transport failures and non-2xx responses raise ToolExecutionError so that
Tool.execute_with_retry() retries them; an empty query is an input error
and is returned as a failed result without retry.

Pattern: Service Proxy (proxies to an external HTTP API)
Pattern: Async HTTP client for non-blocking calls
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from campaign_agent.core.config import RateLimitPolicy
from campaign_agent.core.exceptions import ToolExecutionError
from campaign_agent.models.tools import RateLimit, ToolKind, ToolMetadata, ToolResult
from campaign_agent.tools.base import DEFAULT_CACHE_MAX_ENTRIES, Tool


logger = logging.getLogger(__name__)

DEFAULT_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"
DEFAULT_MAX_RESULTS = 5
MAX_RESULTS_LIMIT = 40
ORDER_BY_VALUES = ("relevance", "newest")
UNKNOWN_AUTHOR = "Unknown Author"

DESCRIPTION = (
    "Search for books using Google Books API. Find books by title, author, "
    "subject, or any other criteria."
    "\n\nAvailable parameters:"
    "\n- query (required): Search query for books (title, author, subject, etc.)"
    "\n- maxResults (optional): Maximum number of results to return (1-40, default: 5)"
    "\n- language (optional): Language code for results (default: 'en')"
    "\n- orderBy (optional): Sort order - 'relevance' or 'newest' (default: 'relevance')"
)


# =============================================================================
# Result Model
# =============================================================================


class BookResult(BaseModel):
    """One volume as returned to the model."""

    title: str
    authors: list[str] = Field(default_factory=lambda: [UNKNOWN_AUTHOR])
    link: Optional[str] = None
    description: Optional[str] = None
    published_date: Optional[str] = Field(default=None, serialization_alias="publishedDate")
    isbn: Optional[str] = None
    page_count: Optional[int] = Field(default=None, serialization_alias="pageCount")
    categories: list[str] = Field(default_factory=list)
    average_rating: Optional[float] = Field(default=None, serialization_alias="averageRating")
    ratings_count: Optional[int] = Field(default=None, serialization_alias="ratingsCount")

    @classmethod
    def from_volume(cls, item: dict[str, Any]) -> "BookResult":
        info = item.get("volumeInfo") or {}
        return cls(
            title=info.get("title") or "Untitled",
            authors=info.get("authors") or [UNKNOWN_AUTHOR],
            link=info.get("infoLink"),
            description=info.get("description"),
            published_date=info.get("publishedDate"),
            isbn=_first_isbn(info.get("industryIdentifiers") or []),
            page_count=info.get("pageCount"),
            categories=info.get("categories") or [],
            average_rating=info.get("averageRating"),
            ratings_count=info.get("ratingsCount"),
        )


def _first_isbn(identifiers: list[dict[str, Any]]) -> Optional[str]:
    for identifier in identifiers:
        if identifier.get("type") in ("ISBN_13", "ISBN_10"):
            return identifier.get("identifier")
    return None


# =============================================================================
# Tool
# =============================================================================


class BooksTool(Tool):
    """
    searchBooks: Google Books volume search.

    Args:
        http_client: Shared httpx client; requests use absolute URLs.
        api_key: Google API key, sent as the `key` query parameter.
        url: Volumes endpoint.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str = "",
        url: str = DEFAULT_BOOKS_URL,
        rate_limit_policy: RateLimitPolicy = RateLimitPolicy.WAIT,
        cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
    ) -> None:
        metadata = ToolMetadata(
            name=ToolKind.SEARCH_BOOKS.value,
            description=DESCRIPTION,
            version="1.0.0",
            category="search",
            tags=("books", "search", "google", "library"),
            rate_limit=RateLimit(requests=100, window_seconds=3600),
            timeout_seconds=15.0,
        )
        super().__init__(
            metadata,
            {
                "max_retries": 3,
                "retry_delay_seconds": 1.0,
                "timeout_seconds": 15.0,
                "cache_enabled": True,
                "cache_ttl_seconds": 1800.0,
            },
            rate_limit_policy=rate_limit_policy,
            cache_max_entries=cache_max_entries,
        )
        self._http = http_client
        self._api_key = api_key
        self._url = url

    async def execute(self, input: dict[str, Any]) -> ToolResult:
        query = str(input.get("query") or "").strip()
        if not query:
            return ToolResult.fail("Query parameter is required")

        params = {
            "q": query,
            "maxResults": min(int(input.get("maxResults") or DEFAULT_MAX_RESULTS), MAX_RESULTS_LIMIT),
            "langRestrict": input.get("language") or "en",
            "orderBy": input.get("orderBy") or "relevance",
        }
        if self._api_key:
            params["key"] = self._api_key

        logger.debug(f"Searching books: query='{query[:50]}'")

        try:
            response = await self._http.get(self._url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Books API HTTP error: {e.response.status_code}")
            raise ToolExecutionError(
                f"Books API error: HTTP {e.response.status_code}",
                tool_name=self.name,
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Books API request failed: {e}")
            raise ToolExecutionError(
                f"Books API request failed: {e}",
                tool_name=self.name,
            ) from e

        books = [
            BookResult.from_volume(item).model_dump(by_alias=True)
            for item in payload.get("items") or []
        ]
        return ToolResult.ok(
            {
                "query": query,
                "totalItems": payload.get("totalItems", 0),
                "books": books,
            }
        )

    def get_function_spec(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": DESCRIPTION,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Search query for books (title, author, subject, etc.)",
                        },
                        "maxResults": {
                            "type": "integer",
                            "minimum": 1,
                            "maximum": MAX_RESULTS_LIMIT,
                            "default": DEFAULT_MAX_RESULTS,
                        },
                        "language": {
                            "type": "string",
                            "description": "Language code for results",
                            "default": "en",
                        },
                        "orderBy": {
                            "type": "string",
                            "enum": list(ORDER_BY_VALUES),
                            "default": "relevance",
                        },
                    },
                    "required": ["query"],
                    "additionalProperties": False,
                },
            },
        }
