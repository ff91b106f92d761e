"""
System Service - Auditoría y tablero
"""

import json
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, func

from workforce.core.timeutils import utcnow, local_day, local_day_bounds
from workforce.db import (
    Database,
    AttendanceEvent,
    FacialPhotoUpload,
    VacationRequest,
    ReviewStatus,
    EmployeeRepository,
    UserRepository,
    PayrollRunRepository,
    AuditLogRepository,
)


class SystemService:
    """
    System management service.
    """

    def __init__(self, db: Database, tz: Optional[tzinfo] = None, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.tz = tz
        self.clock = clock

    def get_audit_logs(
        self,
        limit: int = 100,
        actor: Optional[str] = None,
        action: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            logs = AuditLogRepository.list_all(session, limit=limit, actor=actor, action=action)

            return [
                {
                    "id": log.id,
                    "actor": log.actor,
                    "action": log.action,
                    "result": log.result,
                    "resource_type": log.resource_type,
                    "resource_id": log.resource_id,
                    "metadata": json.loads(log.metadata_json) if log.metadata_json else None,
                    "created_at": log.created_at.isoformat(),
                }
                for log in logs
            ]

    def get_dashboard_stats(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Headline numbers for the home screen."""
        day = day or local_day(self.clock(), self.tz)
        start, end = local_day_bounds(day, self.tz)

        with self.db.session_scope() as session:
            events_today = session.execute(
                select(func.count(AttendanceEvent.id))
                .where(AttendanceEvent.timestamp >= start, AttendanceEvent.timestamp < end)
            ).scalar() or 0
            present_today = session.execute(
                select(func.count(func.distinct(AttendanceEvent.employee_id)))
                .where(AttendanceEvent.timestamp >= start, AttendanceEvent.timestamp < end)
            ).scalar() or 0
            pending_vacations = session.execute(
                select(func.count(VacationRequest.id)).where(VacationRequest.status == ReviewStatus.PENDING)
            ).scalar() or 0
            pending_photos = session.execute(
                select(func.count(FacialPhotoUpload.id)).where(FacialPhotoUpload.status == ReviewStatus.PENDING)
            ).scalar() or 0

            runs = PayrollRunRepository.list_all(session, limit=1)
            latest_run = runs[0] if runs else None

            return {
                "active_employees": EmployeeRepository.count_active(session),
                "total_users": UserRepository.count(session),
                "events_today": events_today,
                "present_today": present_today,
                "pending_vacations": pending_vacations,
                "pending_facial_photos": pending_photos,
                "latest_payroll": {
                    "period": latest_run.period,
                    "total_net": float(latest_run.total_net),
                    "status": latest_run.status.value,
                } if latest_run else None,
            }
