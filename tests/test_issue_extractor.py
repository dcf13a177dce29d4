"""Tests for issue detection, merging and remediation.

Run with: pytest tests/test_issue_extractor.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from analytics.issue_extractor import (
    Issue,
    IssueKind,
    IssueSeverity,
    build_issue_index,
    extract_issues,
    filter_issues,
    issue_counts,
    issue_from_dict,
    merge_issues,
    remediation_for,
    sort_issues,
)
from storage.models import EntityLevel, EntityStatus, PolicyInfo
from tests.factories import PAUSED, make_ad_group, make_campaign, make_line_item

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def make_issue(id, reason="Campaign rejected by policy", severity=IssueSeverity.CRITICAL, **kwargs):
    fields = {
        "kind": IssueKind.POLICY_REJECTED,
        "level": EntityLevel.CAMPAIGN,
        "suggestion": "",
        "action_label": "Pause Campaign",
        "campaign_id": "c1",
    }
    fields.update(kwargs)
    return Issue(id=id, severity=severity, reason=reason, **fields)


class TestExtractIssues:
    """Tests for local detection from the tree."""

    def test_disapproved_campaign(self):
        issues = extract_issues([make_campaign("c1", effective_status="DISAPPROVED")])
        assert len(issues) == 1
        issue = issues[0]
        assert issue.kind == IssueKind.POLICY_REJECTED
        assert issue.severity == IssueSeverity.CRITICAL
        assert issue.reason == "Campaign rejected by policy"
        assert issue.action_label == "Pause Campaign"

    def test_paused_entity_gets_enable_label(self):
        issues = extract_issues([make_campaign("c1", status=PAUSED, effective_status="REJECTED")])
        assert issues[0].action_label == "Enable Campaign"

    def test_with_issues_from_review_feedback(self):
        ad_group = make_ad_group("ag1")
        ad_group.policy_info = PolicyInfo(review_feedback="Landing page broken")
        issues = extract_issues([make_campaign("c1", [ad_group])])
        assert issues[0].kind == IssueKind.WITH_ISSUES
        assert issues[0].details == "Landing page broken"
        assert issues[0].action_label == "Pause Ad Group"

    def test_line_item_learning_limited(self):
        item = make_line_item("li1", effective_status="learning_limited")
        issues = extract_issues([make_campaign("c1", [make_ad_group("ag1", [item])])])
        assert issues[0].kind == IssueKind.LEARNING_LIMITED
        assert issues[0].action_label == "Boost Budget +20%"
        assert issues[0].line_item_id == "li1"
        assert issues[0].ad_group_id == "ag1"

    def test_learning_limited_only_for_line_items(self):
        issues = extract_issues([make_campaign("c1", effective_status="LEARNING_LIMITED")])
        assert issues == []

    def test_low_quality_needs_spend(self):
        cheap = make_line_item("li1", quality_ranking=4, spend=5)
        costly = make_line_item("li2", quality_ranking=3, spend=20)
        issues = extract_issues([make_campaign("c1", [make_ad_group("ag1", [cheap, costly])])])
        assert [i.line_item_id for i in issues] == ["li2"]
        assert issues[0].kind == IssueKind.LOW_QUALITY

    def test_first_matching_rule_wins(self):
        item = make_line_item("li1", effective_status="DISAPPROVED", quality_ranking=5, spend=100)
        issues = extract_issues([make_campaign("c1", [make_ad_group("ag1", [item])])])
        assert len(issues) == 1
        assert issues[0].kind == IssueKind.POLICY_REJECTED

    def test_healthy_tree_has_no_issues(self):
        assert extract_issues([make_campaign("c1", [make_ad_group("ag1", [make_line_item("li1")])])]) == []


class TestMergeAndSort:
    """Tests for merging server and local issues."""

    def test_merge_drops_duplicate_keys(self):
        a = make_issue("A", campaign_id="c1")
        b_server = make_issue("B", campaign_id="c2", source="server")
        b_local = make_issue("B-local", campaign_id="c2")
        c = make_issue("C", campaign_id="c3")
        merged = merge_issues([a, b_server], [b_local, c])
        assert [i.id for i in merged] == ["A", "B", "C"]

    def test_different_reason_is_a_different_issue(self):
        merged = merge_issues([make_issue("A")], [make_issue("B", reason="Other")])
        assert len(merged) == 2

    def test_sort_critical_first_then_reason(self):
        issues = [
            make_issue("1", reason="b", severity=IssueSeverity.WARNING),
            make_issue("2", reason="z"),
            make_issue("3", reason="a"),
        ]
        assert [i.id for i in sort_issues(issues)] == ["3", "2", "1"]

    def test_issue_from_dict(self):
        issue = issue_from_dict({
            "id": "srv-1",
            "kind": "with_issues",
            "severity": "critical",
            "level": "adgroup",
            "campaign_id": "c1",
            "ad_group_id": "ag1",
            "reason": "Ad Group has delivery/policy issues",
        })
        assert issue.source == "server"
        assert issue.entity_id == "ag1"


class TestFilters:
    def test_active_campaigns_only(self):
        active = make_issue("A", campaign_status="ACTIVE")
        paused = make_issue("B", campaign_status="PAUSED", campaign_id="c2")
        assert filter_issues([active, paused], active_campaigns_only=True) == [active]

    def test_recent_only_drops_old_and_undated(self):
        fresh = make_issue("A", last_updated_at=(NOW - timedelta(hours=2)).isoformat())
        old = make_issue("B", campaign_id="c2", last_updated_at=(NOW - timedelta(hours=13)).isoformat())
        undated = make_issue("C", campaign_id="c3")
        assert filter_issues([fresh, old, undated], recent_only=True, now=NOW) == [fresh]

    def test_counts(self):
        issues = [
            make_issue("A", last_updated_at="2026-10-18T10:00:00Z"),
            make_issue("B", severity=IssueSeverity.WARNING, campaign_id="c2"),
        ]
        assert issue_counts(issues, now=NOW) == {"critical": 1, "warning": 1, "recent_12h": 1}

    def test_index_groups_by_every_ancestor(self):
        issue = make_issue("A", level=EntityLevel.LINE_ITEM, ad_group_id="ag1", line_item_id="li1")
        index = build_issue_index([issue])
        assert index.for_entity("c1") == [issue]
        assert index.for_entity("ag1") == [issue]
        assert index.for_entity("li1") == [issue]
        assert index.for_entity("nope") == []


class TestRemediation:
    """Tests for remediation_for."""

    def test_pause_label_pauses(self):
        fix = remediation_for(make_issue("A"))
        assert fix.kind == "set_status"
        assert fix.entity_id == "c1"
        assert fix.status == EntityStatus.PAUSED

    def test_enable_label_enables(self):
        fix = remediation_for(make_issue("A", action_label="Enable Campaign"))
        assert fix.status == EntityStatus.ACTIVE

    def test_learning_limited_boosts_budget(self):
        issue = make_issue(
            "L",
            kind=IssueKind.LEARNING_LIMITED,
            level=EntityLevel.LINE_ITEM,
            ad_group_id="ag1",
            line_item_id="li1",
            action_label="Boost Budget +20%",
        )
        fix = remediation_for(issue, ad_group_budget=50.0)
        assert fix.kind == "set_budget"
        assert fix.entity_id == "ag1"
        assert fix.daily_budget == 60.0

    def test_learning_limited_without_budget_floors_at_one(self):
        issue = make_issue("L", kind=IssueKind.LEARNING_LIMITED, level=EntityLevel.LINE_ITEM, ad_group_id="ag1")
        assert remediation_for(issue).daily_budget == 1.0

    def test_missing_entity_id(self):
        with pytest.raises(ValueError):
            remediation_for(make_issue("A", campaign_id=""))
