"""
Attendance Service - Fichajes
Records clock events, stores verification photos and builds day reports.
"""

from datetime import date, datetime, tzinfo
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow, local_day, local_day_bounds, to_local
from workforce.db import (
    Database,
    AttendanceEvent,
    AttendanceMethod,
    AttendanceType,
    AttendanceRepository,
    EmployeeRepository,
    VerificationPhotoRepository,
    AuditLogRepository,
)
from .calculations import DayGroup, group_by_day

logger = get_logger(__name__)


class PhotoStorage:
    """
    Local file bucket for photos.

    Paths are relative to ``base_dir`` and may not escape it.
    """

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir).resolve()

    def _resolve(self, relative_path: str) -> Path:
        path = (self.base_dir / relative_path).resolve()
        if self.base_dir not in path.parents:
            raise ValueError(f"Ruta fuera del almacenamiento: {relative_path}")
        return path

    def save(self, relative_path: str, data: bytes) -> str:
        """Write (or overwrite) a file and return its relative path."""
        path = self._resolve(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return relative_path

    def read(self, relative_path: str) -> bytes:
        return self._resolve(relative_path).read_bytes()

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).exists()

    def delete(self, relative_path: str) -> None:
        path = self._resolve(relative_path)
        if path.exists():
            path.unlink()


def next_event_type(last_type: Optional[AttendanceType]) -> AttendanceType:
    """
    Type of the next event given the last event of the day.

    none / exit         -> entrance
    entrance / pause_end -> exit
    pause_start         -> pause_end
    """
    if last_type is None or last_type == AttendanceType.EXIT:
        return AttendanceType.ENTRANCE
    if last_type == AttendanceType.PAUSE_START:
        return AttendanceType.PAUSE_END
    return AttendanceType.EXIT


def _event_to_dict(event: AttendanceEvent, tz: Optional[tzinfo] = None) -> Dict[str, Any]:
    return {
        "id": event.id,
        "employee_id": event.employee_id,
        "event_type": event.event_type.value,
        "timestamp": event.timestamp,
        "local_time": to_local(event.timestamp, tz),
        "method": event.method.value,
        "confidence": event.confidence,
        "latitude": event.latitude,
        "longitude": event.longitude,
        "status": event.status,
        "notes": event.notes,
    }


class AttendanceService:
    """
    Attendance capture and reporting service.
    """

    def __init__(
        self,
        db: Database,
        photo_storage: PhotoStorage,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.photo_storage = photo_storage
        self.tz = tz
        self.clock = clock

    def next_event_type(self, employee_id: int) -> AttendanceType:
        """Event type the kiosk would record now for the employee."""
        now = self.clock()
        start, end = local_day_bounds(local_day(now, self.tz), self.tz)

        with self.db.session_scope() as session:
            last = AttendanceRepository.last_event_between(session, employee_id, start, end)
            return next_event_type(last.event_type if last else None)

    def record_event(
        self,
        employee_id: int,
        method: AttendanceMethod,
        event_type: Optional[AttendanceType] = None,
        confidence: Optional[float] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        """
        Append an attendance event stamped with the current time.

        Without an explicit type, it follows from the last event of the local
        day. A second entrance while one is still open is rejected.

        Returns:
            Tuple of (success, message, event_dict)
        """
        now = self.clock()
        start, end = local_day_bounds(local_day(now, self.tz), self.tz)

        try:
            with self.db.session_scope() as session:
                employee = EmployeeRepository.get_by_id(session, employee_id)
                if not employee or not employee.active:
                    return False, "Empleado no encontrado", None

                last = AttendanceRepository.last_event_between(session, employee_id, start, end)
                last_type = last.event_type if last else None

                if event_type is None:
                    event_type = next_event_type(last_type)

                if event_type == AttendanceType.ENTRANCE and last_type not in (None, AttendanceType.EXIT):
                    return False, "Ya hay una entrada abierta hoy. Registre la salida primero", None

                event = AttendanceRepository.create(
                    session,
                    employee_id=employee_id,
                    event_type=event_type,
                    method=method,
                    timestamp=now,
                    confidence=confidence,
                    latitude=latitude,
                    longitude=longitude,
                    notes=notes,
                )

                if method == AttendanceMethod.MANUAL:
                    AuditLogRepository.create(
                        session,
                        actor=actor or "system",
                        action="manual_attendance",
                        resource_type="attendance_event",
                        resource_id=event.id,
                        metadata={"employee_id": employee_id, "type": event_type.value},
                    )

                label = "Entrada" if event_type == AttendanceType.ENTRANCE else (
                    "Salida" if event_type == AttendanceType.EXIT else "Pausa")
                local_time = to_local(now, self.tz).strftime("%H:%M")
                return True, f"{label} registrada para {employee.full_name} a las {local_time}", _event_to_dict(event, self.tz)
        except Exception:
            logger.exception("Could not record attendance for employee %s", employee_id)
            return False, "Error al registrar el fichaje. Intente nuevamente", None

    def save_verification_photo(
        self,
        event_id: int,
        image: bytes,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Tuple[bool, str, Optional[str]]:
        """
        Store the photo taken at clock-in as ``<event_id>/<timestamp>.jpg``.

        One photo row per event; a new photo replaces the row's path. The file
        is removed again when the row cannot be saved.

        Returns:
            Tuple of (success, message, storage_path)
        """
        if not image:
            return False, "No se recibió la foto", None

        with self.db.session_scope() as session:
            event = AttendanceRepository.get_by_id(session, event_id)
            if event is None:
                return False, "Fichaje no encontrado", None
            employee_id = event.employee_id
            method = event.method

        relative_path = f"{event_id}/{self.clock().strftime('%Y%m%d%H%M%S%f')}.jpg"

        try:
            self.photo_storage.save(relative_path, image)
        except OSError:
            logger.exception("Could not write verification photo for event %s", event_id)
            return False, "Error al guardar la foto", None

        try:
            with self.db.session_scope() as session:
                VerificationPhotoRepository.upsert(
                    session,
                    event_id=event_id,
                    employee_id=employee_id,
                    storage_path=relative_path,
                    method=method,
                    latitude=latitude,
                    longitude=longitude,
                )
        except Exception:
            logger.exception("Could not save verification photo row for event %s", event_id)
            self.photo_storage.delete(relative_path)
            return False, "Error al guardar la foto", None

        return True, "Foto de verificación guardada", relative_path

    def employee_day_report(self, employee_id: int, start_date: date, end_date: date) -> List[DayGroup]:
        """
        Per-day hours of one employee between two local dates (inclusive).

        Days are returned most recent first.
        """
        start, _ = local_day_bounds(start_date, self.tz)
        _, end = local_day_bounds(end_date, self.tz)

        with self.db.session_scope() as session:
            events = AttendanceRepository.list_by_employee_range(session, employee_id, start, end)
            return group_by_day(events, self.tz)

    def daily_report(self, day: date, search: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Events of every employee on a local day, most recent first.

        Args:
            day: Local calendar day
            search: Optional case-insensitive filter on name or legajo
        """
        start, end = local_day_bounds(day, self.tz)
        needle = (search or "").strip().lower()

        with self.db.session_scope() as session:
            rows = []
            for event in AttendanceRepository.list_range(session, start, end):
                employee = event.employee
                if needle and needle not in f"{employee.full_name} {employee.legajo or ''}".lower():
                    continue
                row = _event_to_dict(event, self.tz)
                row["employee_name"] = employee.full_name
                row["legajo"] = employee.legajo
                row["has_photo"] = event.photo is not None
                rows.append(row)
            return rows

    def hours_in_range(self, employee_id: int, start_date: date, end_date: date) -> float:
        """Total hours over a date range, summed from the day report."""
        groups = self.employee_day_report(employee_id, start_date, end_date)
        return round(sum(g.total_hours for g in groups), 1)

