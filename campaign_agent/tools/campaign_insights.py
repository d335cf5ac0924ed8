"""
Campaign Insights

Pure aggregation functions used by the campaign analyzer. They join the
records returned by the campaign data source in memory and derive the
metrics, rankings and recommendations of a CampaignAnalysisResult.

Nothing here performs I/O.
"""

from collections import Counter
from typing import Iterable, Optional, Sequence

from campaign_agent.models.campaign import (
    AttributionRecord,
    AttributionSummary,
    BestCampaign,
    CampaignFailure,
    CampaignMessageAnalytics,
    CampaignOverview,
    CampaignRecord,
    CountedItem,
    ErrorCodeAnalysis,
    ErrorCodeBreakdown,
    ErrorCodeIssue,
    ErrorInsights,
    MessageAnalysis,
    MessageRecord,
    MessageSummary,
    PerformanceInsights,
    TemplateRecord,
    TemplateUsage,
    TopCampaignRevenue,
    WorstCampaign,
)


MAX_RECOMMENDATIONS = 5
MAX_ERROR_RECOMMENDATIONS = 3
TOP_N = 5
LOW_ENGAGEMENT_THRESHOLD = 0.1
LOW_DELIVERY_THRESHOLD = 0.9
LOW_TEMPLATE_SUCCESS_THRESHOLD = 0.8
LOW_MESSAGE_SUCCESS_THRESHOLD = 0.8


# =============================================================================
# WhatsApp Error Codes
# =============================================================================


def _analysis(
    meaning: str,
    cause: str,
    retry_strategy: str,
    immediate_action: str,
    long_term_fix: str,
    severity: str,
) -> ErrorCodeAnalysis:
    return ErrorCodeAnalysis(
        meaning=meaning,
        cause=cause,
        retry_strategy=retry_strategy,
        immediate_action=immediate_action,
        long_term_fix=long_term_fix,
        severity=severity,
    )


ERROR_CODE_ANALYSIS: dict[str, ErrorCodeAnalysis] = {
    "131049": _analysis(
        "Not delivered to maintain a healthy ecosystem",
        "Meta caps marketing template messages per user. Hit per-user cap.",
        "Don't retry immediately. Use exponential backoff and retry later.",
        "Back off for 24-48 hours before retrying to the same user.",
        "Implement user-level throttling and use utility templates when possible.",
        "high",
    ),
    "131026": _analysis(
        "Message Undeliverable (receiver incapable)",
        "User not on WhatsApp, hasn't accepted ToS, or using old client version.",
        "Don't retry. User needs to update WhatsApp or confirm they can message your business.",
        "Contact user via alternate channel (SMS/email) to update WhatsApp.",
        "Validate phone numbers before sending and maintain updated contact lists.",
        "medium",
    ),
    "130472": _analysis(
        "User's number is part of an experiment",
        "Recipient is in a Meta experiment; delivery blocked.",
        "Skip this user. Cannot force delivery.",
        "Remove user from current campaign and retry later.",
        "Implement experiment detection and user exclusion logic.",
        "low",
    ),
    "131048": _analysis(
        "Spam/quality rate limit hit for your number",
        "Your WhatsApp number hit quality/spam rate limits.",
        "Slow down sending rate and improve content quality.",
        "Check WhatsApp Manager for quality issues and reduce send frequency.",
        "Improve targeting and content quality, and implement better rate limiting.",
        "critical",
    ),
    "131056": _analysis(
        "BA/CA pair rate limit (too many messages to same user quickly)",
        "Sending too many messages to the same user in short time.",
        "Add throttling/backoff per user with exponential delays.",
        "Implement per-user rate limiting (max 1 message per 24 hours).",
        "Build user-level throttling system with proper backoff strategies.",
        "high",
    ),
    "131047": _analysis(
        "Re-engagement needed (outside reply window)",
        "User outside the 24-hour reply window for free-form messages.",
        "Use a template message to re-open conversation.",
        "Send a template message to re-engage the user.",
        "Implement proper conversation flow management and template usage.",
        "medium",
    ),
    "131050": _analysis(
        "User opted out of marketing",
        "User has opted out of marketing messages.",
        "Stop marketing to this user immediately.",
        "Remove user from all marketing campaigns and respect opt-out.",
        "Implement proper opt-out management and respect user preferences.",
        "medium",
    ),
    "131000": _analysis(
        "Unknown internal error",
        "Meta's internal system error.",
        "Retry with jitter and exponential backoff.",
        "Wait 5-10 minutes and retry with exponential backoff.",
        "Implement robust retry logic with proper error handling.",
        "medium",
    ),
    "131008": _analysis(
        "Required parameter missing",
        "Missing required parameters in the API request.",
        "Fix the request body and retry.",
        "Check and fix template parameters, components, and phone format.",
        "Implement request validation before sending.",
        "low",
    ),
    "100": _analysis(
        "Invalid parameter",
        "Invalid template name, language, or phone format.",
        "Validate and fix parameters before retrying.",
        "Check template name, language code, and phone number format.",
        "Implement parameter validation and template management system.",
        "low",
    ),
    "132000": _analysis(
        "Template parameter count mismatch",
        "Wrong number of variables passed to template.",
        "Pass exactly the required number of variables.",
        "Count and match template variables exactly.",
        "Build template validation system with parameter counting.",
        "low",
    ),
    "132012": _analysis(
        "Template parameter format mismatch",
        "Wrong format for template variables (currency, date, etc.).",
        "Match placeholder format requirements.",
        "Check variable formats (currency, date, number) and fix.",
        "Implement format validation for template variables.",
        "low",
    ),
    "132001": _analysis(
        "Template doesn't exist or not approved",
        "Template name/language doesn't exist or is not approved.",
        "Verify template name and language, wait for approval.",
        "Check template approval status and language codes.",
        "Implement template management system with approval tracking.",
        "medium",
    ),
    "132015": _analysis(
        "Template paused for quality",
        "Template paused due to quality issues.",
        "Edit template or create new higher-quality template.",
        "Review and improve template content quality.",
        "Implement template quality monitoring and improvement process.",
        "medium",
    ),
    "132016": _analysis(
        "Template disabled for quality",
        "Template disabled due to quality issues.",
        "Create new higher-quality template.",
        "Create new template with better content quality.",
        "Implement template quality standards and review process.",
        "medium",
    ),
    "133010": _analysis(
        "Sender number not registered",
        "Your WhatsApp number is not registered or verified.",
        "Register and verify the WhatsApp number first.",
        "Complete WhatsApp Business API registration and verification.",
        "Ensure proper WhatsApp Business API setup and verification.",
        "critical",
    ),
}

UNKNOWN_ERROR_ANALYSIS = _analysis(
    "Unknown error code",
    "Unrecognized WhatsApp error code",
    "Retry with exponential backoff and monitor for patterns.",
    "Log the error and implement general retry logic.",
    "Monitor error patterns and implement specific handling as needed.",
    "medium",
)


def get_error_analysis(code: str) -> ErrorCodeAnalysis:
    """Operator guidance for a WhatsApp error code (generic for unknown codes)."""
    return ERROR_CODE_ANALYSIS.get(str(code), UNKNOWN_ERROR_ANALYSIS)


# =============================================================================
# Helpers
# =============================================================================


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _percent(numerator: int, denominator: int) -> str:
    if denominator <= 0:
        return "0%"
    return f"{numerator / denominator * 100:.2f}%"


def _top(counter: Counter, n: int = TOP_N) -> list[CountedItem]:
    return [CountedItem(key=key, count=count) for key, count in counter.most_common(n)]


# =============================================================================
# Campaign Aggregations
# =============================================================================


def calculate_overview(campaigns: Sequence[CampaignRecord]) -> CampaignOverview:
    """Campaign counts by status, delivery totals and average rates."""
    statuses = Counter(c.status for c in campaigns)

    total_recipients = sum(c.metrics.total_recipients for c in campaigns)
    total_sent = sum(c.metrics.sent for c in campaigns)
    total_delivered = sum(c.metrics.delivered for c in campaigns)
    total_read = sum(c.metrics.read for c in campaigns)
    total_clicked = sum(c.metrics.click for c in campaigns)
    total_failed = sum(c.metrics.failed for c in campaigns)

    return CampaignOverview(
        total_campaigns=len(campaigns),
        successful_campaigns=statuses.get("completed", 0),
        failed_campaigns=statuses.get("failed", 0),
        processing_campaigns=statuses.get("processing", 0),
        total_recipients=total_recipients,
        total_sent=total_sent,
        total_delivered=total_delivered,
        total_read=total_read,
        total_clicked=total_clicked,
        total_failed=total_failed,
        average_engagement_rate=_ratio(total_read + total_clicked, total_recipients),
        average_delivery_rate=_ratio(total_delivered, total_sent),
        average_read_rate=_ratio(total_read, total_delivered),
        average_click_rate=_ratio(total_clicked, total_read),
    )


def analyze_failures(campaigns: Sequence[CampaignRecord]) -> list[CampaignFailure]:
    """Failed campaigns, newest first."""
    failures = [
        CampaignFailure(
            campaign_id=c.id,
            campaign_name=c.name,
            status=c.status,
            failure_reason=c.failure_reason,
            total_recipients=c.metrics.total_recipients,
            failed_count=c.metrics.failed,
            error_history=c.error_history,
            created_at=c.created_at,
        )
        for c in campaigns
        if c.status == "failed"
    ]
    failures.sort(key=lambda f: f.created_at, reverse=True)
    return failures


def analyze_template_usage(
    campaigns: Sequence[CampaignRecord],
    templates: Iterable[TemplateRecord] = (),
) -> list[TemplateUsage]:
    """
    Delivery totals grouped by template, most used first.

    Template names missing on the campaign are looked up in `templates`.
    """
    names = {t.id: t.name for t in templates if t.name}
    usage: dict[str, TemplateUsage] = {}

    for campaign in campaigns:
        template_id = campaign.template_id
        if not template_id:
            continue

        entry = usage.get(template_id)
        if entry is None:
            entry = TemplateUsage(
                template_id=template_id,
                template_name=campaign.template_name
                or names.get(template_id)
                or "Unknown Template",
            )
            usage[template_id] = entry

        m = campaign.metrics
        entry.usage_count += 1
        entry.total_recipients += m.total_recipients
        entry.total_sent += m.sent
        entry.total_delivered += m.delivered
        entry.total_read += m.read
        entry.total_clicked += m.click
        entry.total_failed += m.failed

    for entry in usage.values():
        entry.success_rate = _ratio(entry.total_sent - entry.total_failed, entry.total_sent)
        entry.average_engagement = _ratio(
            entry.total_read + entry.total_clicked, entry.total_recipients
        )

    return sorted(usage.values(), key=lambda t: t.usage_count, reverse=True)


# =============================================================================
# Message Aggregations
# =============================================================================


def group_messages_by_campaign(
    messages: Sequence[MessageRecord],
) -> list[CampaignMessageAnalytics]:
    """Per-campaign message outcomes, failure reasons and error codes."""
    grouped: dict[str, dict[str, Counter]] = {}
    totals: dict[str, list[int]] = {}

    for message in messages:
        counters = grouped.setdefault(
            message.campaign_id,
            {"status": Counter(), "reasons": Counter(), "codes": Counter()},
        )
        total = totals.setdefault(message.campaign_id, [0, 0])

        total[0] += 1
        if message.status != "failed":
            total[1] += 1

        counters["status"][message.status] += 1
        if message.failure_reason:
            counters["reasons"][message.failure_reason] += 1
        for error in message.error_history:
            if error.code:
                counters["codes"][error.code] += 1

    analytics: list[CampaignMessageAnalytics] = []
    for campaign_id, counters in grouped.items():
        total, successful = totals[campaign_id]
        top_reason = counters["reasons"].most_common(1)
        top_code = counters["codes"].most_common(1)
        analytics.append(
            CampaignMessageAnalytics(
                campaign_id=campaign_id,
                summary=MessageSummary(
                    total=total,
                    successful=successful,
                    failed=total - successful,
                    success_rate=_percent(successful, total),
                ),
                status_breakdown=dict(counters["status"]),
                failure_reasons=dict(counters["reasons"]),
                error_codes=dict(counters["codes"]),
                top_failure_reason=top_reason[0][0] if top_reason else None,
                top_error_code=top_code[0][0] if top_code else None,
            )
        )
    return analytics


def analyze_messages(campaign_analytics: Sequence[CampaignMessageAnalytics]) -> MessageAnalysis:
    """Totals across campaigns plus the top failure reasons and error codes."""
    if not campaign_analytics:
        return MessageAnalysis()

    statuses: Counter = Counter()
    reasons: Counter = Counter()
    codes: Counter = Counter()
    for ca in campaign_analytics:
        statuses.update(ca.status_breakdown)
        reasons.update(ca.failure_reasons)
        codes.update(ca.error_codes)

    return MessageAnalysis(
        total_messages=sum(ca.summary.total for ca in campaign_analytics),
        message_status_breakdown=dict(statuses),
        failure_reasons=dict(reasons),
        campaign_analytics=list(campaign_analytics),
        top_failure_reasons=_top(reasons),
        top_error_codes=_top(codes),
    )


# =============================================================================
# Attribution
# =============================================================================


def summarize_attributions(
    records: Sequence[AttributionRecord],
) -> Optional[AttributionSummary]:
    """Order count, revenue and top campaigns by revenue; None when empty."""
    if not records:
        return None

    revenue: dict[str, float] = {}
    orders: Counter = Counter()
    for record in records:
        campaign_id = record.campaign or "unknown"
        revenue[campaign_id] = revenue.get(campaign_id, 0.0) + record.total_amount
        orders[campaign_id] += 1

    total_revenue = sum(r.total_amount for r in records)
    top = sorted(revenue.items(), key=lambda item: item[1], reverse=True)[:TOP_N]

    return AttributionSummary(
        total_orders=len(records),
        total_revenue=total_revenue,
        average_order_value=total_revenue / len(records),
        top_performing_campaigns=[
            TopCampaignRevenue(campaign_id=cid, revenue=amount, orders=orders[cid])
            for cid, amount in top
        ],
    )


# =============================================================================
# Insights and Recommendations
# =============================================================================


def generate_performance_insights(
    campaigns: Sequence[CampaignRecord],
    template_usage: Sequence[TemplateUsage],
    failures: Sequence[CampaignFailure],
) -> PerformanceInsights:
    best: Optional[BestCampaign] = None
    ranked = sorted(
        (c for c in campaigns if c.metrics.total_recipients > 0),
        key=lambda c: (c.metrics.read + c.metrics.click) / c.metrics.total_recipients,
        reverse=True,
    )
    if ranked:
        top = ranked[0]
        best = BestCampaign(
            id=top.id,
            name=top.name,
            engagement_rate=(top.metrics.read + top.metrics.click) / top.metrics.total_recipients,
            delivery_rate=_ratio(top.metrics.delivered, top.metrics.sent),
        )

    worst: Optional[WorstCampaign] = None
    failed = sorted(
        (c for c in campaigns if c.status == "failed"),
        key=lambda c: c.metrics.failed,
        reverse=True,
    )
    if failed:
        bottom = failed[0]
        worst = WorstCampaign(
            id=bottom.id,
            name=bottom.name,
            failure_rate=_ratio(bottom.metrics.failed, bottom.metrics.total_recipients),
            issues=[bottom.failure_reason or "Unknown failure"],
        )

    critical_issues: list[str] = []
    if failures:
        critical_issues.append(f"{len(failures)} campaigns have failed recently")
    low_engagement = [
        t for t in template_usage if t.average_engagement < LOW_ENGAGEMENT_THRESHOLD
    ]
    if low_engagement:
        critical_issues.append(f"{len(low_engagement)} templates have low engagement rates")

    return PerformanceInsights(
        best_performing_campaign=best,
        worst_performing_campaign=worst,
        top_templates=list(template_usage[:TOP_N]),
        critical_issues=critical_issues,
    )


def generate_recommendations(
    overview: CampaignOverview,
    failures: Sequence[CampaignFailure],
    template_usage: Sequence[TemplateUsage],
    message_analysis: MessageAnalysis,
) -> list[str]:
    """Up to five recommendations, most important first."""
    recommendations: list[str] = []

    if overview.failed_campaigns > 0:
        recommendations.append(
            f"Review {overview.failed_campaigns} failed campaigns to identify common failure patterns"
        )
    if overview.average_engagement_rate < LOW_ENGAGEMENT_THRESHOLD:
        recommendations.append(
            "Consider improving message content and targeting to increase engagement rates"
        )
    if overview.average_delivery_rate < LOW_DELIVERY_THRESHOLD:
        recommendations.append(
            "Investigate delivery issues - check phone number validity and "
            "WhatsApp Business API configuration"
        )

    low_performing = [
        t for t in template_usage if t.success_rate < LOW_TEMPLATE_SUCCESS_THRESHOLD
    ]
    if low_performing:
        recommendations.append(
            f"Review {len(low_performing)} templates with low success rates"
        )

    if message_analysis.failure_reasons:
        recommendations.append(
            "Address common failure reasons in message content and delivery configuration"
        )
    if overview.total_campaigns < 5:
        recommendations.append(
            "Consider running more campaigns to gather better performance data"
        )
    if overview.total_recipients < 100:
        recommendations.append(
            "Increase campaign reach to improve statistical significance of results"
        )

    return recommendations[:MAX_RECOMMENDATIONS]


def generate_error_insights(
    campaign_analytics: Sequence[CampaignMessageAnalytics],
) -> ErrorInsights:
    """Guidance derived from the WhatsApp error codes seen in messages."""
    codes: Counter = Counter()
    for ca in campaign_analytics:
        codes.update(ca.error_codes)

    critical_issues = [
        ErrorCodeIssue(code=code, count=count, analysis=get_error_analysis(code))
        for code, count in codes.most_common(TOP_N)
    ]

    recommendations: list[str] = []
    retry_strategies: list[str] = []
    immediate_actions: list[str] = []

    for issue in critical_issues:
        analysis = issue.analysis
        if analysis.severity == "critical":
            immediate_actions.append(
                f"CRITICAL: {analysis.immediate_action} "
                f"(Error {issue.code}: {analysis.meaning})"
            )
        elif analysis.severity == "high":
            immediate_actions.append(
                f"HIGH PRIORITY: {analysis.immediate_action} (Error {issue.code})"
            )
        recommendations.append(f"{analysis.long_term_fix} (Error {issue.code})")
        retry_strategies.append(f"{analysis.retry_strategy} (Error {issue.code})")

    if sum(codes.values()) > 0:
        total = sum(ca.summary.total for ca in campaign_analytics)
        successful = sum(ca.summary.successful for ca in campaign_analytics)
        if _ratio(successful, total) < LOW_MESSAGE_SUCCESS_THRESHOLD:
            recommendations.append(
                "Overall success rate is low. Consider implementing comprehensive "
                "error handling and retry logic."
            )
        if codes.get("131049"):
            recommendations.append(
                "Implement user-level throttling to avoid hitting per-user marketing caps."
            )
        if codes.get("131048"):
            recommendations.append(
                "Improve content quality and reduce send frequency to avoid spam rate limits."
            )

    breakdown = {
        code: ErrorCodeBreakdown(
            count=count,
            meaning=get_error_analysis(code).meaning,
            severity=get_error_analysis(code).severity,
        )
        for code, count in codes.items()
    }

    return ErrorInsights(
        critical_issues=critical_issues,
        recommendations=recommendations,
        retry_strategies=retry_strategies,
        immediate_actions=immediate_actions,
        error_code_breakdown=breakdown,
    )
