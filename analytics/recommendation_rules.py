"""Threshold rules that turn hierarchy metrics into recommendations.

generate_recommendations() runs every rule over the loaded campaigns (and
the hourly breakdown, when one is supplied) and returns the results in a
fixed order: critical rules first, then warnings, then opportunities,
then account-level and day-parting analyzers. Ids are deterministic per
call (rec-gen-1, rec-gen-2, ...).

Metric keys read by the rules: spend, revenue, roas, ctr, cpa, cvr, clicks,
conversions, frequency, quality_ranking, engagement_rate_ranking.
"""

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from analytics.metrics import metric_value, safe_divide
from analytics.recommendation_models import (
    ACCOUNT_LEVEL_ID,
    ActionType,
    Recommendation,
    RecommendationAction,
    RecommendationCategory,
    RecommendationSeverity,
    RecommendationStatus,
)
from storage.models import (
    AdGroup,
    Campaign,
    EntityLevel,
    EntityStatus,
    HourlyEntry,
    LineItem,
)

logger = logging.getLogger(__name__)

CRITICAL = RecommendationSeverity.CRITICAL
WARNING = RecommendationSeverity.WARNING
OPPORTUNITY = RecommendationSeverity.OPPORTUNITY

HOUR_LABELS = [
    "12am", "1am", "2am", "3am", "4am", "5am", "6am", "7am", "8am", "9am", "10am", "11am",
    "12pm", "1pm", "2pm", "3pm", "4pm", "5pm", "6pm", "7pm", "8pm", "9pm", "10pm", "11pm",
]

_DOLLAR_AMOUNT = re.compile(r"\$([0-9][0-9,]*(?:\.[0-9]+)?)")

SAVINGS_ACTIONS = frozenset({
    ActionType.PAUSE_ENTITY,
    ActionType.DECREASE_BUDGET,
    ActionType.INCREASE_BUDGET,
    ActionType.SCALE_BUDGET,
    ActionType.REALLOCATE_BUDGET,
})


# =============================================================================
# Helpers
# =============================================================================

def _money(n: float) -> str:
    return f"${n:.2f}"


def _pct(n: float) -> str:
    return f"{n:.2f}%"


def _times(n: float) -> str:
    return f"{n:.2f}x"


def _round_half_up(n: float) -> int:
    return math.floor(n + 0.5)


def _budget(entity) -> float:
    return float(entity.daily_budget or 0)


class _RecommendationFactory:
    """Builds recommendations with sequential ids and back-dated timestamps."""

    def __init__(self, now: datetime) -> None:
        self.now = now
        self.counter = 0

    def make(
        self,
        severity: RecommendationSeverity,
        category: RecommendationCategory,
        title: str,
        analysis: str,
        recommended_action: str,
        impact_estimate: str,
        action: RecommendationAction,
        minutes_ago: int,
    ) -> Recommendation:
        self.counter += 1
        return Recommendation(
            id=f"rec-gen-{self.counter}",
            severity=severity,
            category=category,
            title=title,
            analysis=analysis,
            recommended_action=recommended_action,
            impact_estimate=impact_estimate,
            action=action,
            status=RecommendationStatus.PENDING,
            created_at=(self.now - timedelta(minutes=minutes_ago)).isoformat(),
        )


def _active_ad_groups(campaigns: Sequence[Campaign]) -> list[tuple[AdGroup, Campaign]]:
    return [
        (ad_group, campaign)
        for campaign in campaigns
        for ad_group in campaign.ad_groups
        if ad_group.status == EntityStatus.ACTIVE
    ]


def _active_line_items(campaigns: Sequence[Campaign]) -> list[tuple[LineItem, AdGroup, Campaign]]:
    return [
        (item, ad_group, campaign)
        for campaign in campaigns
        for ad_group in campaign.ad_groups
        for item in ad_group.line_items
        if item.status == EntityStatus.ACTIVE
    ]


def _active_spending_campaigns(campaigns: Sequence[Campaign]) -> list[Campaign]:
    return [
        c for c in campaigns
        if c.status == EntityStatus.ACTIVE and metric_value(c.metrics, "spend") > 0
    ]


def _pause_action(level: EntityLevel, entity) -> RecommendationAction:
    return RecommendationAction(
        type=ActionType.PAUSE_ENTITY,
        entity_type=level,
        entity_id=entity.id,
        entity_name=entity.name,
        new_status=EntityStatus.PAUSED,
    )


# =============================================================================
# Critical
# =============================================================================

def check_underperforming_ad_groups(campaigns, make) -> list[Recommendation]:
    """ROAS < 1.0 with more than $200 spent: pause the ad-group."""
    recs = []
    for ad_group, campaign in _active_ad_groups(campaigns):
        m = ad_group.metrics
        roas, spend = metric_value(m, "roas"), metric_value(m, "spend")
        if roas < 1.0 and spend > 200:
            recs.append(make(
                CRITICAL,
                RecommendationCategory.STATUS,
                "Pause Underperforming Ad Group",
                f'Ad group "{ad_group.name}" in "{campaign.name}" has a ROAS of {_times(roas)} '
                f'with {_money(spend)} in spend and only {metric_value(m, "conversions"):g} '
                f'conversions (CPA: {_money(metric_value(m, "cpa"))}). This ad group is losing money.',
                "Pause this ad group immediately and reallocate budget to top-performing ad groups.",
                f"Expected savings: ~{_money(_budget(ad_group))}/day",
                _pause_action(EntityLevel.AD_GROUP, ad_group),
                30,
            ))
    return recs


def check_high_cpa_line_items(campaigns, make) -> list[Recommendation]:
    """CPA more than 3x the campaign's average across converting line items."""
    recs = []
    for campaign in campaigns:
        converting = [
            (item, ad_group)
            for ad_group in campaign.ad_groups
            for item in ad_group.line_items
            if item.status == EntityStatus.ACTIVE and metric_value(item.metrics, "conversions") > 0
        ]
        if len(converting) < 2:
            continue

        average_cpa = sum(metric_value(i.metrics, "cpa") for i, _ in converting) / len(converting)
        for item, ad_group in converting:
            cpa = metric_value(item.metrics, "cpa")
            if cpa > average_cpa * 3:
                spend = metric_value(item.metrics, "spend")
                recs.append(make(
                    CRITICAL,
                    RecommendationCategory.STATUS,
                    "Pause High-CPA Line Item",
                    f'Line item "{item.name}" in ad group "{ad_group.name}" has a CPA of {_money(cpa)}, '
                    f"which is {safe_divide(cpa, average_cpa):.1f}x the campaign average CPA of "
                    f"{_money(average_cpa)}. It has spent {_money(spend)} with only "
                    f'{metric_value(item.metrics, "conversions"):g} conversions.',
                    "Pause this line item immediately to stop budget drain.",
                    f"Expected savings: ~{_money(spend / 7)}/day",
                    _pause_action(EntityLevel.LINE_ITEM, item),
                    25,
                ))
    return recs


def check_quality_ranking(campaigns, make) -> list[Recommendation]:
    """Below-average quality ranking (>= 3): pause until the landing page is fixed."""
    recs = []
    for item, ad_group, _ in _active_line_items(campaigns):
        if metric_value(item.metrics, "quality_ranking") < 3:
            continue
        engagement = metric_value(item.metrics, "engagement_rate_ranking")
        if engagement <= 1:
            engagement_label = "above average"
        elif engagement <= 2:
            engagement_label = "average"
        else:
            engagement_label = "below average"
        recs.append(make(
            CRITICAL,
            RecommendationCategory.STATUS,
            "Quality Score Alert",
            f'Line item "{item.name}" in "{ad_group.name}" has a quality ranking of "Below Average" '
            f'while engagement ranking is "{engagement_label}". This mismatch suggests the landing '
            f"page experience needs improvement, not the creative.",
            "Pause this line item until the landing page is optimized to prevent further quality score degradation.",
            "Preventing quality score drop could reduce CPM by 20-30%",
            _pause_action(EntityLevel.LINE_ITEM, item),
            15,
        ))
    return recs


# =============================================================================
# Warning
# =============================================================================

def check_creative_fatigue(campaigns, make) -> list[Recommendation]:
    """Frequency > 1.8 with CTR < 1.5%: the creative is wearing out."""
    recs = []
    for item, ad_group, _ in _active_line_items(campaigns):
        frequency = metric_value(item.metrics, "frequency")
        ctr = metric_value(item.metrics, "ctr")
        if frequency > 1.8 and ctr < 1.5:
            recs.append(make(
                WARNING,
                RecommendationCategory.CREATIVE,
                "Creative Fatigue Detected",
                f'Line item "{item.name}" in "{ad_group.name}" has a frequency of {frequency:.2f} and '
                f"CTR has dropped to {_pct(ctr)}. The creative is losing effectiveness as the "
                f"audience sees it repeatedly.",
                "Pause this line item and launch fresh creative variants with updated messaging.",
                "Could improve CTR by 30-50% with fresh creative",
                RecommendationAction(
                    type=ActionType.REFRESH_CREATIVE,
                    entity_type=EntityLevel.LINE_ITEM,
                    entity_id=item.id,
                    entity_name=item.name,
                    new_status=EntityStatus.PAUSED,
                ),
                60,
            ))
    return recs


def check_high_frequency(campaigns, make) -> list[Recommendation]:
    """Ad-group frequency > 2.0: cut the budget to 60%."""
    recs = []
    for ad_group, campaign in _active_ad_groups(campaigns):
        frequency = metric_value(ad_group.metrics, "frequency")
        if frequency <= 2.0:
            continue
        budget = _budget(ad_group)
        reduced = _round_half_up(budget * 0.6)
        reduction_pct = _round_half_up((1 - safe_divide(reduced, budget)) * 100) if budget > 0 else 0
        recs.append(make(
            WARNING,
            RecommendationCategory.TARGETING,
            "High Frequency Alert",
            f'Ad group "{ad_group.name}" in "{campaign.name}" has a frequency of {frequency:.2f}. '
            f"The audience is seeing ads too often, which leads to ad fatigue and wasted spend.",
            f"Refresh the audience or decrease daily budget from {_money(budget)} to "
            f"{_money(reduced)} to reduce delivery pressure.",
            f"Could reduce wasted impressions by ~{reduction_pct}%",
            RecommendationAction(
                type=ActionType.DECREASE_BUDGET,
                entity_type=EntityLevel.AD_GROUP,
                entity_id=ad_group.id,
                entity_name=ad_group.name,
                new_budget=reduced,
                current_budget=budget,
            ),
            90,
        ))
    return recs


def check_diminishing_returns(campaigns, make) -> list[Recommendation]:
    """Campaign CPA more than 2x the account average: cut the budget to 70%."""
    recs = []
    converting = [
        c for c in campaigns
        if c.status == EntityStatus.ACTIVE and metric_value(c.metrics, "conversions") > 0
    ]
    if len(converting) < 2:
        return recs

    average_cpa = sum(metric_value(c.metrics, "cpa") for c in converting) / len(converting)
    for campaign in converting:
        cpa = metric_value(campaign.metrics, "cpa")
        if cpa <= average_cpa * 2:
            continue
        budget = _budget(campaign)
        reduced = _round_half_up(budget * 0.7)
        recs.append(make(
            WARNING,
            RecommendationCategory.BUDGET,
            "Diminishing Returns on Spend",
            f'Campaign "{campaign.name}" has a CPA of {_money(cpa)}, which is '
            f"{safe_divide(cpa, average_cpa):.1f}x the account average CPA of {_money(average_cpa)}. "
            f"You're hitting diminishing returns.",
            f"Reduce daily budget from {_money(budget)} to {_money(reduced)} to operate at peak efficiency.",
            f"Save ~{_money(budget - reduced)}/day while maintaining most conversions",
            RecommendationAction(
                type=ActionType.DECREASE_BUDGET,
                entity_type=EntityLevel.CAMPAIGN,
                entity_id=campaign.id,
                entity_name=campaign.name,
                new_budget=reduced,
                current_budget=budget,
            ),
            120,
        ))
    return recs


# =============================================================================
# Opportunity
# =============================================================================

def check_scale_winners(campaigns, make) -> list[Recommendation]:
    """ROAS > 3 on more than $500 spend: raise the budget 30% (50% above 4x)."""
    recs = []
    for ad_group, campaign in _active_ad_groups(campaigns):
        m = ad_group.metrics
        roas, spend, cpa = metric_value(m, "roas"), metric_value(m, "spend"), metric_value(m, "cpa")
        if not (roas > 3.0 and spend > 500 and _budget(campaign) < 10000):
            continue
        budget = _budget(ad_group)
        increase_pct = 50 if roas > 4.0 else 30
        new_budget = _round_half_up(budget * (1 + increase_pct / 100))
        projected = _round_half_up(safe_divide(new_budget - budget, cpa) * 7)
        recs.append(make(
            OPPORTUNITY,
            RecommendationCategory.BUDGET,
            "Scale Top Performer",
            f'Ad group "{ad_group.name}" in "{campaign.name}" has maintained {_times(roas)} ROAS with '
            f"consistent CPA ({_money(cpa)}) on {_money(spend)} total spend. There's room to scale "
            f"without risking performance.",
            f"Increase daily budget from {_money(budget)} to {_money(new_budget)} "
            f"({increase_pct}% increase) to capture more conversions.",
            f"Projected +{projected} conversions/week at similar ROAS",
            RecommendationAction(
                type=ActionType.INCREASE_BUDGET,
                entity_type=EntityLevel.AD_GROUP,
                entity_id=ad_group.id,
                entity_name=ad_group.name,
                new_budget=new_budget,
                current_budget=budget,
            ),
            150,
        ))
    return recs


def check_reallocate_budget(campaigns, make) -> list[Recommendation]:
    """Best campaign ROAS more than 2x the worst: move 30% of the worst's budget."""
    spending = _active_spending_campaigns(campaigns)
    if len(spending) < 2:
        return []

    ranked = sorted(spending, key=lambda c: metric_value(c.metrics, "roas"), reverse=True)
    best, worst = ranked[0], ranked[-1]
    best_roas = metric_value(best.metrics, "roas")
    worst_roas = metric_value(worst.metrics, "roas")
    if not (best_roas > worst_roas * 2 and worst_roas > 0):
        return []

    shift = _round_half_up(_budget(worst) * 0.3)
    return [make(
        OPPORTUNITY,
        RecommendationCategory.BUDGET,
        "Reallocate Budget to Winner",
        f'Campaign "{best.name}" is outperforming with {_times(best_roas)} ROAS while "{worst.name}" '
        f"has only {_times(worst_roas)} ROAS. Shifting budget from the underperformer to the winner "
        f"can improve overall account ROAS.",
        f'Increase "{best.name}" budget by {_money(shift)}/day and decrease "{worst.name}" by the same amount.',
        f"Expected additional revenue: ~{_money(shift * best_roas)}/day at current ROAS",
        RecommendationAction(
            type=ActionType.REALLOCATE_BUDGET,
            entity_type=EntityLevel.CAMPAIGN,
            entity_id=best.id,
            entity_name=best.name,
            new_budget=_budget(best) + shift,
            current_budget=_budget(best),
            target_entity_id=worst.id,
            target_entity_name=worst.name,
        ),
        180,
    )]


# =============================================================================
# Account-level and structural
# =============================================================================

def check_learning_phase_stuck(campaigns, make) -> list[Recommendation]:
    """More than $200 spent with fewer than 10 conversions."""
    recs = []
    for campaign in campaigns:
        if campaign.status != EntityStatus.ACTIVE:
            continue
        spend = metric_value(campaign.metrics, "spend")
        conversions = metric_value(campaign.metrics, "conversions")
        if spend > 200 and conversions < 10:
            recs.append(make(
                WARNING,
                RecommendationCategory.STATUS,
                "Campaign Stuck in Learning Phase",
                f'Campaign "{campaign.name}" may be stuck in learning phase: only {conversions:g} '
                f"conversions on {_money(spend)} spend. Delivery optimization needs ~50 conversions/week. "
                f"Consider broader targeting or lower-funnel events.",
                "Broaden audience targeting, switch to a higher-volume conversion event, or consolidate ad groups.",
                "Exiting learning phase can reduce CPA by 20-30%",
                RecommendationAction(
                    type=ActionType.ADJUST_TARGETING,
                    entity_type=EntityLevel.CAMPAIGN,
                    entity_id=campaign.id,
                    entity_name=campaign.name,
                ),
                100,
            ))
    return recs


def check_budget_concentration(campaigns, make) -> list[Recommendation]:
    """One campaign taking more than 60% of account spend."""
    recs = []
    spending = _active_spending_campaigns(campaigns)
    if len(spending) < 2:
        return recs

    total = sum(metric_value(c.metrics, "spend") for c in spending)
    for campaign in spending:
        share = safe_divide(metric_value(campaign.metrics, "spend"), total) * 100
        if share > 60:
            recs.append(make(
                WARNING,
                RecommendationCategory.BUDGET,
                "Budget Over-Concentrated in One Campaign",
                f'Campaign "{campaign.name}" uses {_pct(share)} of your total ad spend. This '
                f"concentration is risky. Diversify by allocating 20-30% to prospecting campaigns.",
                "Gradually shift 20-30% of this campaign's budget to new prospecting or retargeting "
                "campaigns to reduce dependency on a single campaign.",
                "Diversification reduces risk and often discovers new profitable audiences",
                RecommendationAction(
                    type=ActionType.REALLOCATE_BUDGET,
                    entity_type=EntityLevel.CAMPAIGN,
                    entity_id=campaign.id,
                    entity_name=campaign.name,
                    current_budget=_budget(campaign),
                ),
                130,
            ))
    return recs


def check_bid_cap_too_low(campaigns, make) -> list[Recommendation]:
    """BID_CAP campaigns spending under 60% of their daily budget."""
    recs = []
    for campaign in campaigns:
        if campaign.status != EntityStatus.ACTIVE or campaign.bid_strategy != "BID_CAP":
            continue
        budget = _budget(campaign)
        if budget == 0:
            continue

        daily_spend = metric_value(campaign.metrics, "spend") / 7
        ratio = daily_spend / budget
        if ratio >= 0.6:
            continue

        bidding = [
            ag for ag in campaign.ad_groups
            if ag.status == EntityStatus.ACTIVE and ag.bid_amount is not None
        ]
        if bidding:
            current_bid = sum(ag.bid_amount for ag in bidding) / len(bidding)
        else:
            current_bid = metric_value(campaign.metrics, "cpa")
        suggested_bid = round(current_bid * 1.25, 2)

        recs.append(make(
            CRITICAL,
            RecommendationCategory.BID_STRATEGY,
            "Bid Cap Too Restrictive",
            f'Campaign "{campaign.name}" with BID_CAP is only spending {_money(daily_spend)} of '
            f"{_money(budget)} daily budget ({_round_half_up(ratio * 100)}%). Your bid cap is too "
            f"restrictive, causing you to miss winnable auctions.",
            f"Increase bid cap by 25% to {_money(suggested_bid)}, or switch to COST_CAP to let the "
            f"platform optimize delivery while still controlling costs.",
            f"Could unlock ~{_money(budget - daily_spend)}/day in unspent budget for additional conversions",
            RecommendationAction(
                type=ActionType.CHANGE_BID_STRATEGY,
                entity_type=EntityLevel.CAMPAIGN,
                entity_id=campaign.id,
                entity_name=campaign.name,
                new_bid_strategy="BID_CAP",
                suggested_bid=suggested_bid,
            ),
            85,
        ))
    return recs


def check_stale_line_items(campaigns, make) -> list[Recommendation]:
    """More than $500 spent, CTR under 1% and frequency above 2.5."""
    recs = []
    for item, ad_group, campaign in _active_line_items(campaigns):
        spend = metric_value(item.metrics, "spend")
        ctr = metric_value(item.metrics, "ctr")
        frequency = metric_value(item.metrics, "frequency")
        if spend > 500 and ctr < 1.0 and frequency > 2.5:
            recs.append(make(
                WARNING,
                RecommendationCategory.CREATIVE,
                "Stale Line Item, Time for Fresh Creative",
                f'Line item "{item.name}" in "{ad_group.name}" (campaign "{campaign.name}") has been '
                f"running with {_money(spend)} spend, CTR dropped to {_pct(ctr)} and frequency is at "
                f"{frequency:.2f}. The audience has been over-saturated with this creative.",
                "Pause this line item and launch new creative variants with refreshed messaging, visuals, or format.",
                "Fresh creative typically recovers CTR by 40-60%",
                RecommendationAction(
                    type=ActionType.REFRESH_CREATIVE,
                    entity_type=EntityLevel.LINE_ITEM,
                    entity_id=item.id,
                    entity_name=item.name,
                    new_status=EntityStatus.PAUSED,
                ),
                95,
            ))
    return recs


def check_low_conversion_rate(campaigns, make) -> list[Recommendation]:
    """CVR under 1% with more than $300 spent and 500 clicks."""
    recs = []
    for ad_group, campaign in _active_ad_groups(campaigns):
        m = ad_group.metrics
        cvr, spend, clicks = metric_value(m, "cvr"), metric_value(m, "spend"), metric_value(m, "clicks")
        if cvr < 1.0 and spend > 300 and clicks > 500:
            recs.append(make(
                CRITICAL,
                RecommendationCategory.TARGETING,
                "Low Conversion Rate, Targeting Too Broad",
                f'Ad group "{ad_group.name}" in campaign "{campaign.name}" is getting clicks '
                f"({clicks:,.0f}) but not converting (CVR: {_pct(cvr)}). With {_money(spend)} spent, "
                f"the targeting may be too broad or the landing page isn't resonating.",
                "Narrow targeting with lookalike audiences, add exclusions, or test a different landing page to improve CVR.",
                f"Improving CVR to 2% could generate ~{_round_half_up(clicks * 0.01)} more conversions from existing traffic",
                RecommendationAction(
                    type=ActionType.ADJUST_TARGETING,
                    entity_type=EntityLevel.AD_GROUP,
                    entity_id=ad_group.id,
                    entity_name=ad_group.name,
                ),
                110,
            ))
    return recs


# =============================================================================
# Day-parting
# =============================================================================

def aggregate_by_hour(entries: Iterable[HourlyEntry]) -> list[dict]:
    """Sum the hourly breakdown into 24 buckets with an average ROAS each."""
    buckets = [{"hour": h, "spend": 0.0, "revenue": 0.0, "conversions": 0.0, "count": 0} for h in range(24)]
    for entry in entries:
        if not 0 <= entry.hour < 24:
            continue
        bucket = buckets[entry.hour]
        bucket["spend"] += entry.spend
        bucket["revenue"] += entry.revenue
        bucket["conversions"] += entry.conversions
        bucket["count"] += 1
    for bucket in buckets:
        count = bucket["count"]
        avg_spend = bucket["spend"] / count if count else 0.0
        avg_revenue = bucket["revenue"] / count if count else 0.0
        bucket["avg_roas"] = safe_divide(avg_revenue, avg_spend)
    return buckets


def _overall_roas(buckets: list[dict]) -> float:
    return safe_divide(sum(b["revenue"] for b in buckets), sum(b["spend"] for b in buckets))


def _longest_run(hours: list[int]) -> list[int]:
    """Longest run of consecutive hours. Ties keep the earlier run."""
    runs: list[list[int]] = []
    for hour in hours:
        if runs and hour == runs[-1][-1] + 1:
            runs[-1].append(hour)
        else:
            runs.append([hour])
    best = runs[0]
    for run in runs[1:]:
        if len(run) > len(best):
            best = run
    return best


def format_hour_range(hours: Sequence[int]) -> str:
    if not hours:
        return ""
    if len(hours) == 1:
        return HOUR_LABELS[hours[0]]
    return f"{HOUR_LABELS[hours[0]]}-{HOUR_LABELS[hours[-1]]}"


def _range_totals(buckets: list[dict], hours: list[int]) -> tuple[float, float, float]:
    selected = [buckets[h] for h in hours]
    spend = sum(b["spend"] for b in selected)
    revenue = sum(b["revenue"] for b in selected)
    days = max(selected[0]["count"], 1) if selected else 1
    return spend, revenue / max(spend, 1), spend / days


def check_best_hours(hourly: Sequence[HourlyEntry], make) -> list[Recommendation]:
    """Longest run of hours with ROAS above 1.5x the overall average."""
    buckets = aggregate_by_hour(hourly)
    average = _overall_roas(buckets)
    if average <= 0:
        return []

    peak = [b["hour"] for b in buckets if b["count"] > 0 and b["avg_roas"] > average * 1.5]
    if not peak:
        return []

    best = _longest_run(peak)
    _, range_roas, daily_spend = _range_totals(buckets, best)
    pct_above = (range_roas - average) / average * 100
    return [make(
        OPPORTUNITY,
        RecommendationCategory.DAYPARTING,
        "Scale During Peak Hours",
        f"Hours {format_hour_range(best)} show avg ROAS of {_times(range_roas)}, which is "
        f"{_round_half_up(pct_above)}% above your daily average of {_times(average)}.",
        "Increase budget by 20-30% during these peak hours to capture more high-ROAS conversions.",
        f"Could capture ~{_money(daily_spend * 0.25 * range_roas)} more revenue/day at current ROAS",
        RecommendationAction(
            type=ActionType.ADJUST_DAYPARTING,
            entity_type=EntityLevel.CAMPAIGN,
            entity_id=ACCOUNT_LEVEL_ID,
            entity_name="Day-Parting Schedule",
            hours=best,
            budget_multiplier=1.25,
        ),
        45,
    )]


def check_worst_hours(hourly: Sequence[HourlyEntry], make) -> list[Recommendation]:
    """Longest run of spending hours with ROAS below half the average or below 1."""
    buckets = aggregate_by_hour(hourly)
    average = _overall_roas(buckets)
    if average <= 0:
        return []

    off_peak = [
        b["hour"] for b in buckets
        if b["count"] > 0 and b["spend"] > 0 and (b["avg_roas"] < average * 0.5 or b["avg_roas"] < 1.0)
    ]
    if not off_peak:
        return []

    worst = _longest_run(off_peak)
    _, range_roas, daily_spend = _range_totals(buckets, worst)
    pct_below = (average - range_roas) / average * 100
    return [make(
        WARNING,
        RecommendationCategory.DAYPARTING,
        "Reduce Spend During Off-Peak Hours",
        f"Hours {format_hour_range(worst)} avg ROAS of {_times(range_roas)} "
        f"({_round_half_up(pct_below)}% below average). Budget during these hours is underperforming.",
        "Reduce bids by 30% during off-peak hours to minimize wasted spend.",
        f"Could save ~{_money(daily_spend * 0.3)}/day",
        RecommendationAction(
            type=ActionType.ADJUST_DAYPARTING,
            entity_type=EntityLevel.CAMPAIGN,
            entity_id=ACCOUNT_LEVEL_ID,
            entity_name="Day-Parting Schedule",
            hours=worst,
            budget_multiplier=0.7,
        ),
        55,
    )]


# =============================================================================
# Entry points
# =============================================================================

CAMPAIGN_RULES = (
    # Critical
    check_underperforming_ad_groups,
    check_high_cpa_line_items,
    check_quality_ranking,
    # Warning
    check_creative_fatigue,
    check_high_frequency,
    check_diminishing_returns,
    # Opportunity
    check_scale_winners,
    check_reallocate_budget,
    # Account-level and structural
    check_learning_phase_stuck,
    check_budget_concentration,
    check_stale_line_items,
    check_low_conversion_rate,
    check_bid_cap_too_low,
)

HOURLY_RULES = (
    check_best_hours,
    check_worst_hours,
)


def generate_recommendations(
    campaigns: Sequence[Campaign],
    hourly: Optional[Sequence[HourlyEntry]] = None,
    now: Optional[datetime] = None,
) -> list[Recommendation]:
    """Run every rule and return the recommendations, all pending.

    Args:
        campaigns: The loaded hierarchy.
        hourly: Optional hourly breakdown for the day-parting rules.
        now: Reference time for created_at (defaults to the current time).

    Returns:
        Recommendations in rule order with ids rec-gen-1..N.
    """
    factory = _RecommendationFactory(now or datetime.now(timezone.utc))
    campaigns = list(campaigns)
    recs: list[Recommendation] = []
    for rule in CAMPAIGN_RULES:
        recs.extend(rule(campaigns, factory.make))
    if hourly:
        for rule in HOURLY_RULES:
            recs.extend(rule(hourly, factory.make))
    logger.debug(f"Generated {len(recs)} recommendations for {len(campaigns)} campaigns")
    return recs


def estimate_savings(recommendations: Iterable[Recommendation]) -> float:
    """Sum the first dollar amount in each applied budget or pause impact estimate."""
    total = 0.0
    for rec in recommendations:
        if rec.status != RecommendationStatus.APPLIED or rec.action.type not in SAVINGS_ACTIONS:
            continue
        match = _DOLLAR_AMOUNT.search(rec.impact_estimate)
        if match:
            total += float(match.group(1).replace(",", ""))
    return total
