"""
Tests for the privacy audit log (src/privacy/audit.py).

Covers:
- recording, filtering and the size bound
- dashboard summary and compliance score
- compliance export
- age-based cleanup
"""

import pytest

from src.lib.exceptions import PersistenceError
from src.privacy.audit import DEFAULT_AUDIT_RETENTION_DAYS, PrivacyAuditLog, compliance_score
from src.privacy.models import PrivacyAction


class TestPrivacyAuditLog:
    async def test_record_and_read(self, audit, clock):
        """Test that a recorded event is stored with an id and the clock time."""
        event = await audit.record(
            PrivacyAction.CONSENT_GRANTED,
            "analytics_tracking",
            metadata={"version": "2.0.0"},
        )

        assert event.id.startswith("audit_")
        assert event.timestamp == clock.now
        assert event.success is True
        assert await audit.events() == [event]

    async def test_filter_by_action_and_limit(self, audit):
        """Test filtering events by action and keeping only the most recent."""
        await audit.record(PrivacyAction.CONSENT_GRANTED, "a")
        await audit.record(PrivacyAction.DATA_PURGED, "scheduled")
        await audit.record(PrivacyAction.CONSENT_GRANTED, "b")

        granted = await audit.events(action=PrivacyAction.CONSENT_GRANTED)
        assert [e.resource for e in granted] == ["a", "b"]
        assert [e.resource for e in await audit.events(limit=1)] == ["b"]
        assert await audit.events(limit=0) == []

    async def test_bounded(self, store, clock):
        """Test that the oldest events are dropped beyond the limit."""
        audit = PrivacyAuditLog(store, limit=3, clock=clock)
        for n in range(5):
            await audit.record(PrivacyAction.DATA_PURGED, str(n))

        assert [e.resource for e in await audit.events()] == ["2", "3", "4"]

    async def test_write_failure_is_not_raised(self, audit, store):
        """Test that a failed audit write is swallowed and nothing is stored."""
        store.fail_writes = True
        assert await audit.record(PrivacyAction.PURGE_FAILED, "inventory", success=False) is None
        store.fail_writes = False
        assert await audit.events() == []


class TestSummary:
    async def test_empty_log(self, audit):
        """Test the summary of a log with no events."""
        summary = await audit.summary()

        assert summary.total_events == 0
        assert summary.last_activity is None
        assert summary.compliance_score == 100
        assert summary.risk_events == []
        assert set(summary.events_by_action) == set(PrivacyAction)
        assert all(count == 0 for count in summary.events_by_action.values())

    async def test_counts_and_last_activity(self, audit, clock):
        """Test per-action counts and the timestamp of the newest event."""
        await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")
        clock.advance(minutes=10)
        await audit.record(PrivacyAction.CONSENT_GRANTED, "crash_reporting")
        await audit.record(PrivacyAction.DATA_PURGED, "scheduled")

        summary = await audit.summary()

        assert summary.total_events == 3
        assert summary.events_by_action[PrivacyAction.CONSENT_GRANTED] == 2
        assert summary.events_by_action[PrivacyAction.DATA_PURGED] == 1
        assert summary.events_by_action[PrivacyAction.CONSENT_WITHDRAWN] == 0
        assert summary.last_activity == clock.now

    async def test_risk_events_include_withdrawals_and_failures(self, audit, clock):
        """Test that withdrawals and failed events are listed newest first."""
        await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")
        clock.advance(minutes=1)
        await audit.record(PrivacyAction.CONSENT_WITHDRAWN, "analytics_tracking")
        clock.advance(minutes=1)
        await audit.record(PrivacyAction.DATA_PURGED, "scheduled", success=False, error="inventory offline")

        summary = await audit.summary()

        assert [e.action for e in summary.risk_events] == [
            PrivacyAction.DATA_PURGED,
            PrivacyAction.CONSENT_WITHDRAWN,
        ]

    async def test_risk_events_keep_latest_ten(self, audit, clock):
        """Test that only the ten most recent risk events are returned."""
        for n in range(12):
            clock.advance(seconds=1)
            await audit.record(PrivacyAction.PURGE_FAILED, f"run-{n}", success=False)

        summary = await audit.summary()

        assert len(summary.risk_events) == 10
        assert summary.risk_events[0].resource == "run-11"
        assert summary.risk_events[-1].resource == "run-2"


class TestComplianceScore:
    def test_empty_is_perfect(self):
        """Test that an empty log scores 100."""
        assert compliance_score([]) == 100

    async def test_failures_lower_the_score(self, audit):
        """Test that the base score is the share of successful events."""
        await audit.record(PrivacyAction.DATA_PURGED, "scheduled")
        await audit.record(PrivacyAction.PURGE_FAILED, "scheduled", success=False)

        assert compliance_score(await audit.events()) == 50

    async def test_positive_actions_add_a_bonus(self, audit):
        """Test the two-point bonus for grants and policy updates."""
        await audit.record(PrivacyAction.PURGE_FAILED, "scheduled", success=False)
        await audit.record(PrivacyAction.PURGE_FAILED, "scheduled", success=False)
        await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")
        await audit.record(PrivacyAction.RETENTION_POLICY_UPDATED, "cache_data")
        # 2 of 4 successful, 2 positive events
        assert compliance_score(await audit.events()) == 54

    async def test_bonus_is_capped(self, audit):
        """Test that the positive-action bonus never exceeds twenty points."""
        for _ in range(15):
            await audit.record(PrivacyAction.PURGE_FAILED, "scheduled", success=False)
            await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")

        assert compliance_score(await audit.events()) == 70

    async def test_score_is_capped_at_100(self, audit):
        """Test that a fully successful log with grants never exceeds 100."""
        for _ in range(3):
            await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")

        assert compliance_score(await audit.events()) == 100


class TestExport:
    async def test_export(self, audit, clock):
        """Test that the export carries every event and the framework name."""
        first = await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")
        second = await audit.record(PrivacyAction.DATA_PURGED, "scheduled")
        clock.advance(hours=1)

        export = await audit.export()

        assert export.export_date == clock.now
        assert export.compliance_framework == "PIPEDA"
        assert export.total_events == 2
        assert export.events == [first, second]

    async def test_export_serializes_to_json(self, audit):
        """Test that the export dumps to JSON-compatible data."""
        await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")

        data = (await audit.export()).model_dump(mode="json")

        assert data["total_events"] == 1
        assert data["events"][0]["action"] == "consent_granted"


class TestCleanup:
    async def test_removes_events_older_than_cutoff(self, audit, clock):
        """Test that events older than the age limit are deleted."""
        await audit.record(PrivacyAction.CONSENT_GRANTED, "old")
        clock.advance(days=20)
        await audit.record(PrivacyAction.CONSENT_GRANTED, "recent")
        clock.advance(days=15)

        deleted = await audit.cleanup_older_than(30)

        assert deleted == 1
        assert [e.resource for e in await audit.events()] == ["recent"]

    async def test_event_exactly_at_cutoff_is_deleted(self, audit, clock):
        """Test that only events strictly newer than the cutoff are kept."""
        await audit.record(PrivacyAction.DATA_PURGED, "scheduled")
        clock.advance(days=30)

        assert await audit.cleanup_older_than(30) == 1
        assert await audit.events() == []

    async def test_defaults_to_configured_retention(self, store, clock):
        """Test that the configured retention period applies when no age is given."""
        audit = PrivacyAuditLog(store, clock=clock, retention_days=10)
        await audit.record(PrivacyAction.DATA_PURGED, "scheduled")
        clock.advance(days=9)
        assert await audit.cleanup_older_than() == 0

        clock.advance(days=2)
        assert await audit.cleanup_older_than() == 1

    def test_default_retention_is_seven_years(self, audit):
        """Test the default retention period."""
        assert audit.retention_days == DEFAULT_AUDIT_RETENTION_DAYS == 2555

    async def test_nothing_to_delete_does_not_write(self, audit, store):
        """Test that a cleanup with no aged events leaves the store untouched."""
        await audit.record(PrivacyAction.CONSENT_GRANTED, "analytics_tracking")
        writes = store.write_count

        assert await audit.cleanup_older_than() == 0
        assert store.write_count == writes

    async def test_negative_age_is_rejected(self, audit):
        """Test that a negative age limit is rejected."""
        with pytest.raises(ValueError):
            await audit.cleanup_older_than(-1)

    async def test_write_failure_propagates(self, audit, store, clock):
        """Test that a cleanup that cannot be saved raises and keeps the events."""
        await audit.record(PrivacyAction.DATA_PURGED, "scheduled")
        clock.advance(days=DEFAULT_AUDIT_RETENTION_DAYS + 1)
        store.fail_writes = True

        with pytest.raises(PersistenceError):
            await audit.cleanup_older_than()

        store.fail_writes = False
        assert len(await audit.events()) == 1
