"""
Campaign Models

Records returned by the campaign data source and the structured result
produced by the campaign analyzer tool.

Records accept the camelCase wire format of the campaign data service
(alias generator) and can be built from snake_case names in code.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Data Source Records
# =============================================================================


class DeliveryMetrics(_Record):
    """Delivery counters stored on a campaign."""

    total_recipients: int = 0
    sent: int = 0
    delivered: int = 0
    read: int = 0
    click: int = 0
    failed: int = 0


class CampaignRecord(_Record):
    """A broadcast campaign for one widget."""

    id: str
    name: str = ""
    status: str
    created_at: datetime
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    failure_reason: Optional[str] = None
    error_history: list[dict[str, Any]] = Field(default_factory=list)
    metrics: DeliveryMetrics = Field(default_factory=DeliveryMetrics)


class MessageError(_Record):
    """One entry of a message's error history."""

    code: Optional[str] = None
    title: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def stringify_code(cls, v: Any) -> Optional[str]:
        """Provider error codes arrive as ints or strings."""
        return None if v is None else str(v)


class MessageRecord(_Record):
    """A template message sent on behalf of a campaign."""

    campaign_id: str
    status: str
    failure_reason: Optional[str] = None
    error_history: list[MessageError] = Field(default_factory=list)


class TemplateRecord(_Record):
    """A message template."""

    id: str
    name: str = ""
    category: Optional[str] = None
    created_at: Optional[datetime] = None


class AttributionRecord(_Record):
    """An order attributed to a widget, optionally to a campaign."""

    total_amount: float = 0.0
    campaign: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# Analysis Result
# =============================================================================


class CampaignOverview(BaseModel):
    total_campaigns: int = 0
    successful_campaigns: int = 0
    failed_campaigns: int = 0
    processing_campaigns: int = 0
    total_recipients: int = 0
    total_sent: int = 0
    total_delivered: int = 0
    total_read: int = 0
    total_clicked: int = 0
    total_failed: int = 0
    average_engagement_rate: float = 0.0
    average_delivery_rate: float = 0.0
    average_read_rate: float = 0.0
    average_click_rate: float = 0.0


class CampaignFailure(BaseModel):
    campaign_id: str
    campaign_name: str
    status: str
    failure_reason: Optional[str] = None
    total_recipients: int = 0
    failed_count: int = 0
    error_history: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime


class TemplateUsage(BaseModel):
    template_id: str
    template_name: str
    usage_count: int = 0
    total_recipients: int = 0
    total_sent: int = 0
    total_delivered: int = 0
    total_read: int = 0
    total_clicked: int = 0
    total_failed: int = 0
    success_rate: float = 0.0
    average_engagement: float = 0.0


class MessageSummary(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: str = "0%"


class CampaignMessageAnalytics(BaseModel):
    """Per-campaign grouping of message outcomes."""

    campaign_id: str
    summary: MessageSummary = Field(default_factory=MessageSummary)
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    failure_reasons: dict[str, int] = Field(default_factory=dict)
    error_codes: dict[str, int] = Field(default_factory=dict)
    top_failure_reason: Optional[str] = None
    top_error_code: Optional[str] = None


class CountedItem(BaseModel):
    key: str
    count: int


class MessageAnalysis(BaseModel):
    total_messages: int = 0
    message_status_breakdown: dict[str, int] = Field(default_factory=dict)
    failure_reasons: dict[str, int] = Field(default_factory=dict)
    campaign_analytics: list[CampaignMessageAnalytics] = Field(default_factory=list)
    top_failure_reasons: list[CountedItem] = Field(default_factory=list)
    top_error_codes: list[CountedItem] = Field(default_factory=list)


class TopCampaignRevenue(BaseModel):
    campaign_id: str
    revenue: float
    orders: int


class AttributionSummary(BaseModel):
    total_orders: int
    total_revenue: float
    average_order_value: float
    top_performing_campaigns: list[TopCampaignRevenue] = Field(default_factory=list)


class BestCampaign(BaseModel):
    id: str
    name: str
    engagement_rate: float
    delivery_rate: float


class WorstCampaign(BaseModel):
    id: str
    name: str
    failure_rate: float
    issues: list[str] = Field(default_factory=list)


class PerformanceInsights(BaseModel):
    best_performing_campaign: Optional[BestCampaign] = None
    worst_performing_campaign: Optional[WorstCampaign] = None
    top_templates: list[TemplateUsage] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)


class ErrorCodeAnalysis(BaseModel):
    """Operator guidance for one WhatsApp error code."""

    meaning: str
    cause: str
    retry_strategy: str
    immediate_action: str
    long_term_fix: str
    severity: str


class ErrorCodeIssue(BaseModel):
    code: str
    count: int
    analysis: ErrorCodeAnalysis


class ErrorCodeBreakdown(BaseModel):
    count: int
    meaning: str
    severity: str


class ErrorInsights(BaseModel):
    critical_issues: list[ErrorCodeIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    retry_strategies: list[str] = Field(default_factory=list)
    immediate_actions: list[str] = Field(default_factory=list)
    error_code_breakdown: dict[str, ErrorCodeBreakdown] = Field(default_factory=dict)


class CampaignAnalysisResult(BaseModel):
    """Full output of one campaign analysis."""

    widget_id: str
    time_range: str
    analysis_date: datetime
    overview: CampaignOverview
    failures: list[CampaignFailure] = Field(default_factory=list)
    template_usage: list[TemplateUsage] = Field(default_factory=list)
    message_analysis: MessageAnalysis = Field(default_factory=MessageAnalysis)
    attribution_data: Optional[AttributionSummary] = None
    recommendations: list[str] = Field(default_factory=list)
    performance_insights: PerformanceInsights = Field(default_factory=PerformanceInsights)
    error_insights: Optional[ErrorInsights] = None
