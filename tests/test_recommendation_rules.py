"""Tests for the threshold recommendation rules.

Run with: pytest tests/test_recommendation_rules.py -v
"""

from datetime import datetime, timezone

from analytics.recommendation_models import (
    ACCOUNT_LEVEL_ID,
    ActionType,
    Recommendation,
    RecommendationAction,
    RecommendationCategory,
    RecommendationSeverity,
    RecommendationStatus,
)
from analytics.recommendation_rules import (
    _longest_run,
    aggregate_by_hour,
    estimate_savings,
    format_hour_range,
    generate_recommendations,
)
from storage.models import EntityLevel, EntityStatus, HourlyEntry
from tests.factories import make_ad_group, make_campaign, make_line_item

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def titled(recs, title):
    return [r for r in recs if r.title == title]


def hourly_day(roas_by_hour: dict[int, float], spend: float = 10.0) -> list[HourlyEntry]:
    """One day of hourly data: every hour spends the same, ROAS 1 unless overridden."""
    return [
        HourlyEntry(date="2026-10-17", hour=h, spend=spend, revenue=spend * roas_by_hour.get(h, 1.0))
        for h in range(24)
    ]


class TestCriticalRules:
    """Tests for the rules that recommend pausing."""

    def test_underperforming_ad_group(self):
        ad_group = make_ad_group("ag1", daily_budget=40.0, roas=0.5, spend=300, conversions=2, cpa=150)
        recs = generate_recommendations([make_campaign("c1", [ad_group])], now=NOW)

        assert len(recs) == 1
        rec = recs[0]
        assert rec.id == "rec-gen-1"
        assert rec.severity == RecommendationSeverity.CRITICAL
        assert rec.title == "Pause Underperforming Ad Group"
        assert rec.impact_estimate == "Expected savings: ~$40.00/day"
        assert rec.action.type == ActionType.PAUSE_ENTITY
        assert rec.action.entity_type == EntityLevel.AD_GROUP
        assert rec.action.new_status == EntityStatus.PAUSED
        assert rec.status == RecommendationStatus.PENDING

    def test_paused_ad_groups_are_ignored(self):
        ad_group = make_ad_group("ag1", status=EntityStatus.PAUSED, roas=0.5, spend=300)
        assert generate_recommendations([make_campaign("c1", [ad_group])], now=NOW) == []

    def test_high_cpa_line_item(self):
        items = [
            make_line_item("li1", conversions=5, cpa=10, spend=50),
            make_line_item("li2", conversions=5, cpa=10, spend=50),
            make_line_item("li3", conversions=5, cpa=10, spend=50),
            make_line_item("li4", conversions=1, cpa=200, spend=200),
        ]
        recs = generate_recommendations([make_campaign("c1", [make_ad_group("ag1", items)])], now=NOW)
        high_cpa = titled(recs, "Pause High-CPA Line Item")
        assert [r.action.entity_id for r in high_cpa] == ["li4"]

    def test_quality_ranking(self):
        item = make_line_item("li1", quality_ranking=3, engagement_rate_ranking=1)
        recs = generate_recommendations([make_campaign("c1", [make_ad_group("ag1", [item])])], now=NOW)
        alert = titled(recs, "Quality Score Alert")[0]
        assert '"above average"' in alert.analysis

    def test_bid_cap_too_low(self):
        campaign = make_campaign(
            "c1",
            [make_ad_group("ag1", bid_amount=2.0)],
            daily_budget=100.0,
            bid_strategy="BID_CAP",
            spend=70,
        )
        rec = titled(generate_recommendations([campaign], now=NOW), "Bid Cap Too Restrictive")[0]
        assert rec.category == RecommendationCategory.BID_STRATEGY
        assert rec.action.suggested_bid == 2.5
        assert "(10%)" in rec.analysis


class TestBudgetRules:
    """Tests for the scale, reduce and reallocate rules."""

    def test_scale_winner_by_thirty_percent(self):
        ad_group = make_ad_group("ag1", daily_budget=100.0, roas=3.5, spend=600, cpa=20)
        rec = titled(generate_recommendations([make_campaign("c1", [ad_group])], now=NOW), "Scale Top Performer")[0]
        assert rec.severity == RecommendationSeverity.OPPORTUNITY
        assert rec.action.new_budget == 130
        assert rec.action.current_budget == 100.0
        assert rec.impact_estimate == "Projected +11 conversions/week at similar ROAS"

    def test_scale_winner_by_fifty_percent_above_4x(self):
        ad_group = make_ad_group("ag1", daily_budget=100.0, roas=4.5, spend=600, cpa=20)
        rec = titled(generate_recommendations([make_campaign("c1", [ad_group])], now=NOW), "Scale Top Performer")[0]
        assert rec.action.new_budget == 150
        assert "(50% increase)" in rec.recommended_action

    def test_reallocate_from_worst_to_best(self):
        best = make_campaign("c1", daily_budget=100.0, spend=100, roas=5)
        worst = make_campaign("c2", daily_budget=50.0, spend=100, roas=2)
        rec = titled(generate_recommendations([worst, best], now=NOW), "Reallocate Budget to Winner")[0]
        assert rec.action.type == ActionType.REALLOCATE_BUDGET
        assert rec.action.entity_id == "c1"
        assert rec.action.target_entity_id == "c2"
        assert rec.action.current_budget == 100.0
        assert rec.action.new_budget == 115.0

    def test_high_frequency_cuts_to_sixty_percent(self):
        ad_group = make_ad_group("ag1", daily_budget=50.0, frequency=2.4)
        rec = titled(generate_recommendations([make_campaign("c1", [ad_group])], now=NOW), "High Frequency Alert")[0]
        assert rec.action.type == ActionType.DECREASE_BUDGET
        assert rec.action.new_budget == 30
        assert rec.impact_estimate == "Could reduce wasted impressions by ~40%"

    def test_budget_concentration(self):
        big = make_campaign("c1", spend=700, roas=1.5)
        small = make_campaign("c2", spend=300, roas=1.5)
        recs = titled(generate_recommendations([big, small], now=NOW), "Budget Over-Concentrated in One Campaign")
        assert [r.action.entity_id for r in recs] == ["c1"]
        assert "70.00%" in recs[0].analysis


class TestOrdering:
    def test_ids_follow_rule_order(self):
        losing = make_ad_group("ag1", daily_budget=40.0, roas=0.5, spend=300)
        winning = make_ad_group("ag2", daily_budget=100.0, roas=3.5, spend=600, cpa=20)
        recs = generate_recommendations([make_campaign("c1", [winning, losing])], now=NOW)
        assert [r.id for r in recs] == [f"rec-gen-{i}" for i in range(1, len(recs) + 1)]
        assert recs[0].severity == RecommendationSeverity.CRITICAL
        assert recs[-1].severity == RecommendationSeverity.OPPORTUNITY

    def test_created_at_is_back_dated(self):
        ad_group = make_ad_group("ag1", daily_budget=40.0, roas=0.5, spend=300)
        rec = generate_recommendations([make_campaign("c1", [ad_group])], now=NOW)[0]
        assert rec.created_at == "2026-10-18T11:30:00+00:00"

    def test_zero_metrics_produce_nothing(self):
        assert generate_recommendations([make_campaign("c1", [make_ad_group("ag1")])], now=NOW) == []


class TestDayParting:
    """Tests for the hourly analyzers."""

    def test_peak_hours(self):
        recs = generate_recommendations([], hourly_day({18: 4.0, 19: 4.0, 20: 4.0}), now=NOW)
        assert len(recs) == 1
        rec = recs[0]
        assert rec.title == "Scale During Peak Hours"
        assert rec.action.entity_id == ACCOUNT_LEVEL_ID
        assert rec.action.hours == [18, 19, 20]
        assert rec.action.budget_multiplier == 1.25
        assert "6pm-8pm" in rec.analysis

    def test_off_peak_hours(self):
        recs = generate_recommendations([], hourly_day({2: 0.2, 3: 0.2}), now=NOW)
        assert [r.title for r in recs] == ["Reduce Spend During Off-Peak Hours"]
        assert recs[0].action.hours == [2, 3]
        assert recs[0].impact_estimate == "Could save ~$6.00/day"

    def test_no_hourly_data_means_no_dayparting(self):
        assert generate_recommendations([], [], now=NOW) == []

    def test_aggregate_averages_over_days(self):
        entries = [
            HourlyEntry(date="2026-10-16", hour=5, spend=10, revenue=20),
            HourlyEntry(date="2026-10-17", hour=5, spend=30, revenue=60),
            HourlyEntry(date="2026-10-17", hour=99, spend=1, revenue=1),
        ]
        bucket = aggregate_by_hour(entries)[5]
        assert bucket["count"] == 2
        assert bucket["spend"] == 40
        assert bucket["avg_roas"] == 2.0

    def test_longest_run_prefers_earlier_on_tie(self):
        assert _longest_run([1, 2, 5, 6]) == [1, 2]
        assert _longest_run([1, 5, 6, 7]) == [5, 6, 7]

    def test_format_hour_range(self):
        assert format_hour_range([0]) == "12am"
        assert format_hour_range([13, 14, 15]) == "1pm-3pm"
        assert format_hour_range([]) == ""


class TestEstimateSavings:
    def _rec(self, action_type, impact, status=RecommendationStatus.APPLIED):
        return Recommendation(
            id="r",
            severity=RecommendationSeverity.WARNING,
            category=RecommendationCategory.BUDGET,
            title="t",
            analysis="",
            recommended_action="",
            impact_estimate=impact,
            action=RecommendationAction(action_type, EntityLevel.CAMPAIGN, "c1", "Campaign c1"),
            status=status,
        )

    def test_sums_applied_budget_and_pause_actions(self):
        recs = [
            self._rec(ActionType.DECREASE_BUDGET, "Save ~$1,234.50/day while maintaining most conversions"),
            self._rec(ActionType.PAUSE_ENTITY, "Expected savings: ~$40.00/day"),
            self._rec(ActionType.PAUSE_ENTITY, "Expected savings: ~$99.00/day", RecommendationStatus.PENDING),
            self._rec(ActionType.ADJUST_TARGETING, "Worth $500"),
            self._rec(ActionType.INCREASE_BUDGET, "Projected +11 conversions/week"),
        ]
        assert estimate_savings(recs) == 1274.5
