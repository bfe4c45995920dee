"""
Tests for WARDEN Audit Query Engine
===================================

Tests filtered retrieval, lenient filters and export.
"""

import csv
import json
from datetime import datetime, timedelta, timezone
from io import StringIO
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from warden.api.access.audit import AuditEvent, AuditSeverity
from warden.api.access.query import (
    CSV_COLUMNS,
    AuditLogFilter,
    AuditQueryEngine,
    coerce_filter,
    export_csv,
    export_json,
    verify_export,
)
from warden.api.access.store import AuditStore, AuditStoreError
from warden.api.config import settings


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_event(event_type="ORDER_UPDATED", severity=AuditSeverity.LOW, actor_id="u1",
               minutes_ago=0, **details) -> AuditEvent:
    return AuditEvent(
        event_type=event_type,
        severity=severity,
        actor_id=actor_id,
        actor_label=f"{actor_id}@example.com",
        actor_role="admin",
        timestamp=NOW - timedelta(minutes=minutes_ago),
        details=details,
        client_ip="203.0.113.7",
        client_agent="pytest",
        session_id="session_1",
        source="admin_dashboard",
    )


@pytest.fixture
def engine(audit_store) -> AuditQueryEngine:
    return AuditQueryEngine(audit_store)


@pytest_asyncio.fixture
async def seeded(audit_store):
    events = [
        make_event("ORDER_UPDATED", AuditSeverity.LOW, "u1", minutes_ago=50),
        make_event("LOGIN", AuditSeverity.LOW, "u2", minutes_ago=40),
        make_event("ORDER_UPDATED", AuditSeverity.MEDIUM, "u2", minutes_ago=30),
        make_event("USER_ROLE_CHANGED", AuditSeverity.CRITICAL, "u1", minutes_ago=20),
        make_event("ORDER_UPDATED", AuditSeverity.LOW, "u1", minutes_ago=10),
    ]
    return [await audit_store.append(e) for e in events]


class TestAuditLogFilter:
    """Malformed constraints are dropped, not rejected."""

    def test_defaults(self):
        criteria = AuditLogFilter()
        assert criteria.limit == settings.AUDIT_QUERY_DEFAULT_LIMIT
        assert criteria.event_type is None

    def test_invalid_values_become_none(self):
        criteria = AuditLogFilter.model_validate({
            "severity": "apocalyptic",
            "start_date": "yesterday-ish",
            "limit": "lots",
        })
        assert criteria.severity is None
        assert criteria.start_date is None
        assert criteria.limit == settings.AUDIT_QUERY_DEFAULT_LIMIT

    def test_severity_is_case_insensitive(self):
        assert AuditLogFilter(severity="critical").severity is AuditSeverity.CRITICAL

    def test_blank_strings_are_ignored(self):
        criteria = AuditLogFilter(actor_id="  ", event_type="")
        assert criteria.actor_id is None
        assert criteria.event_type is None

    def test_inverted_range_is_dropped(self):
        criteria = AuditLogFilter(start_date=NOW, end_date=NOW - timedelta(days=1))
        assert criteria.start_date is None
        assert criteria.end_date is None

    def test_naive_dates_are_utc(self):
        criteria = AuditLogFilter(start_date=datetime(2024, 1, 1))
        assert criteria.start_date.tzinfo is timezone.utc

    @pytest.mark.parametrize("limit,expected", [(0, 100), (-5, 100), (10, 10), (10**6, 1000)])
    def test_limit_is_clamped(self, limit, expected):
        assert AuditLogFilter(limit=limit).limit == expected

    def test_wrong_type_ids_become_none(self):
        criteria = AuditLogFilter.model_validate({"actor_id": 123, "event_type": ["LOGIN"]})
        assert criteria.actor_id is None
        assert criteria.event_type is None

    @pytest.mark.parametrize("raw", [["actor_id", "u1"], "actor_id=u1", 42])
    def test_non_mapping_input_means_no_constraints(self, raw):
        criteria = coerce_filter(raw)
        assert criteria.actor_id is None
        assert criteria.limit == settings.AUDIT_QUERY_DEFAULT_LIMIT


class TestGetAuditLogs:
    """Tests for get_audit_logs()."""

    @pytest.mark.asyncio
    async def test_newest_first(self, engine, seeded):
        events = await engine.get_audit_logs()
        timestamps = [e.timestamp for e in events]
        assert timestamps == sorted(timestamps, reverse=True)
        assert len(events) == 5

    @pytest.mark.asyncio
    async def test_event_type_filter(self, engine, seeded):
        events = await engine.get_audit_logs({"event_type": "ORDER_UPDATED"})
        assert len(events) == 3
        assert all(e.event_type == "ORDER_UPDATED" for e in events)
        assert events[0].timestamp > events[-1].timestamp

    @pytest.mark.asyncio
    async def test_limit(self, engine, seeded):
        events = await engine.get_audit_logs({"event_type": "ORDER_UPDATED", "limit": 2})
        assert len(events) == 2
        assert events[0].timestamp == NOW - timedelta(minutes=10)

    @pytest.mark.asyncio
    async def test_actor_and_severity(self, engine, seeded):
        assert len(await engine.get_audit_logs({"actor_id": "u2"})) == 2
        [critical] = await engine.get_audit_logs({"severity": "CRITICAL"})
        assert critical.event_type == "USER_ROLE_CHANGED"

    @pytest.mark.asyncio
    async def test_date_range_is_inclusive(self, engine, seeded):
        events = await engine.get_audit_logs(AuditLogFilter(
            start_date=NOW - timedelta(minutes=40),
            end_date=NOW - timedelta(minutes=20),
        ))
        assert [e.event_type for e in events] == ["USER_ROLE_CHANGED", "ORDER_UPDATED", "LOGIN"]

    @pytest.mark.asyncio
    async def test_bad_filter_broadens_query(self, engine, seeded):
        events = await engine.get_audit_logs({"severity": "nope", "event_type": "LOGIN"})
        assert [e.event_type for e in events] == ["LOGIN"]

    @pytest.mark.asyncio
    async def test_wrong_type_actor_is_ignored(self, engine, seeded):
        events = await engine.get_audit_logs({"actor_id": 123, "event_type": "LOGIN"})
        assert [e.actor_id for e in events] == ["u2"]

    @pytest.mark.asyncio
    async def test_non_mapping_filter_returns_everything(self, engine, seeded):
        assert len(await engine.get_audit_logs(["not", "a", "filter"])) == 5

    @pytest.mark.asyncio
    async def test_store_error_yields_empty_list(self, caplog):
        store = AsyncMock(spec=AuditStore)
        store.query.side_effect = AuditStoreError("store unavailable")

        assert await AuditQueryEngine(store).get_audit_logs() == []
        assert "Error getting audit logs" in caplog.text


class TestExport:
    """Tests for CSV and JSON export."""

    def test_csv_columns_and_rows(self):
        event = make_event("LOGIN", AuditSeverity.LOW, "u1", orderId="o1")
        rows = list(csv.reader(StringIO(export_csv([event]))))

        assert rows[0] == CSV_COLUMNS
        assert rows[1] == [
            event.timestamp.isoformat(),
            "LOGIN",
            "LOW",
            "u1@example.com",
            '{"orderId":"o1"}',
        ]

    def test_csv_quotes_commas(self):
        event = make_event(note="a, b")
        rows = list(csv.reader(StringIO(export_csv([event]))))
        assert json.loads(rows[1][4]) == {"note": "a, b"}

    def test_json_export_is_verifiable(self):
        payload = export_json([make_event(), make_event("LOGIN")], AuditLogFilter(limit=5))
        data = json.loads(payload)

        assert data["event_count"] == 2
        assert data["filter"]["limit"] == 5
        assert len(data["integrity_hash"]) == 64
        assert verify_export(payload)

    def test_tampered_export_fails_verification(self):
        data = json.loads(export_json([make_event()]))
        data["events"][0]["severity"] = "LOW" if data["events"][0]["severity"] != "LOW" else "HIGH"
        assert not verify_export(json.dumps(data))

    def test_export_without_hash(self):
        payload = export_json([], include_hash=False)
        assert "integrity_hash" not in json.loads(payload)
        assert not verify_export(payload)
