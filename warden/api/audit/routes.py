"""
Audit Routes

Compliance review endpoints: filtered log retrieval, windowed statistics
and offline export.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from warden.api.access.audit import AuditEventType, AuditLogger
from warden.api.access.identity import Identity
from warden.api.access.query import AuditLogFilter, AuditQueryEngine, export_csv, export_json
from warden.api.access.rbac import MatchMode, Permission, PermissionSet, SinglePermission
from warden.api.access.statistics import (
    AuditStatistics,
    AuditStatisticsAggregator,
    StatisticsWindow,
)
from warden.api.audit.schemas import AuditEventResponse, AuditLogListResponse
from warden.api.dependencies import (
    get_audit_logger,
    get_query_engine,
    get_statistics_aggregator,
    require,
)


router = APIRouter()

VIEW_AUDIT_LOGS = SinglePermission(Permission.VIEW_AUDIT_LOGS)
EXPORT_AUDIT_LOGS = PermissionSet(
    [Permission.VIEW_AUDIT_LOGS, Permission.EXPORT_REPORTS],
    MatchMode.ALL,
)


# Query values are passed through as raw strings; AuditLogFilter drops
# malformed ones instead of rejecting the request.
def get_audit_filter(
    actor_id: Optional[str] = Query(None),
    event_type: Optional[str] = Query(None),
    severity: Optional[str] = Query(None, description="LOW, MEDIUM, HIGH or CRITICAL"),
    start_date: Optional[str] = Query(None, description="ISO-8601, inclusive"),
    end_date: Optional[str] = Query(None, description="ISO-8601, inclusive"),
    limit: Optional[str] = Query(None),
) -> AuditLogFilter:
    return AuditLogFilter.model_validate({
        "actor_id": actor_id,
        "event_type": event_type,
        "severity": severity,
        "start_date": start_date,
        "end_date": end_date,
        "limit": limit,
    })


@router.get(
    "/logs",
    response_model=AuditLogListResponse,
    summary="Query audit logs",
)
async def get_audit_logs(
    audit_filter: AuditLogFilter = Depends(get_audit_filter),
    identity: Identity = Depends(require(VIEW_AUDIT_LOGS)),
    engine: AuditQueryEngine = Depends(get_query_engine),
) -> AuditLogListResponse:
    """Audit events matching the filter, newest first. Requires ViewAuditLogs."""
    events = await engine.get_audit_logs(audit_filter)
    return AuditLogListResponse(
        events=[AuditEventResponse.from_event(e) for e in events],
        count=len(events),
        limit=audit_filter.limit,
    )


@router.get(
    "/statistics",
    response_model=AuditStatistics,
    summary="Audit statistics for a time window",
)
async def get_statistics(
    window: StatisticsWindow = Query(StatisticsWindow.WEEK),
    identity: Identity = Depends(require(VIEW_AUDIT_LOGS)),
    aggregator: AuditStatisticsAggregator = Depends(get_statistics_aggregator),
) -> AuditStatistics:
    """Counts by type, severity, actor and day. Requires ViewAuditLogs."""
    return await aggregator.get_statistics(window)


@router.get(
    "/export",
    summary="Export audit logs",
)
async def export_audit_logs(
    format: str = Query("csv", pattern="^(csv|json)$"),
    audit_filter: AuditLogFilter = Depends(get_audit_filter),
    identity: Identity = Depends(require(EXPORT_AUDIT_LOGS)),
    engine: AuditQueryEngine = Depends(get_query_engine),
    audit: AuditLogger = Depends(get_audit_logger),
) -> Response:
    """
    Download audit logs as CSV or JSON.

    Requires ViewAuditLogs and ExportReports. The export itself is
    recorded as a DATA_EXPORT event.
    """
    events = await engine.get_audit_logs(audit_filter)

    await audit.log_event(
        AuditEventType.DATA_EXPORT,
        {
            "resourceType": "AUDIT_LOGS",
            "format": format,
            "eventCount": len(events),
            "filter": audit_filter.model_dump(mode="json"),
        },
    )

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    if format == "json":
        return Response(
            content=export_json(events, audit_filter),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="audit-logs-{stamp}.json"'},
        )

    return Response(
        content=export_csv(events),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="audit-logs-{stamp}.csv"'},
    )
