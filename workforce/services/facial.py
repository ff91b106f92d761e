"""
Facial Service - Reconocimiento facial
Reference photo review and descriptor matching for the facial kiosk.

Descriptors come from an external face model; this module only stores and
compares them.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow
from workforce.db import (
    Database,
    AttendanceMethod,
    ReviewStatus,
    EmployeeRepository,
    FacialRepository,
    AuditLogRepository,
)
from .attendance import AttendanceService, PhotoStorage

logger = get_logger(__name__)


@dataclass
class FaceMatch:
    employee_id: int
    distance: float
    confidence: float


def match_confidence(distance: float) -> float:
    """Confidence as 1 - euclidean distance, floored at 0."""
    return max(0.0, 1.0 - float(distance))


class FacialService:
    """
    Facial recognition service.
    """

    DESCRIPTOR_SIZE = 128

    def __init__(
        self,
        db: Database,
        photo_storage: PhotoStorage,
        attendance: AttendanceService,
        threshold: float = 0.60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.photo_storage = photo_storage
        self.attendance = attendance
        self.threshold = threshold
        self.clock = clock

    def _as_vector(self, descriptor: Sequence[float]) -> np.ndarray:
        vector = np.asarray(descriptor, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != self.DESCRIPTOR_SIZE:
            raise ValueError(f"El descriptor debe tener {self.DESCRIPTOR_SIZE} valores")
        if not np.all(np.isfinite(vector)):
            raise ValueError("El descriptor contiene valores inválidos")
        return vector

    # -------------------------------------------------------------------------
    # Reference photos
    # -------------------------------------------------------------------------

    def submit_photo(self, employee_id: int, image: bytes, actor: str) -> Tuple[bool, str, Optional[int]]:
        """Upload a reference photo; it waits for admin review."""
        if not image:
            return False, "No se recibió la foto", None

        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee or not employee.active:
                return False, "Empleado no encontrado", None

        relative_path = f"rostros/{employee_id}/{self.clock().strftime('%Y%m%d%H%M%S%f')}.jpg"
        try:
            self.photo_storage.save(relative_path, image)
        except OSError:
            logger.exception("Could not write facial photo of employee %s", employee_id)
            return False, "Error al guardar la foto", None

        try:
            with self.db.session_scope() as session:
                upload = FacialRepository.create_upload(session, employee_id, relative_path)
                AuditLogRepository.create(
                    session,
                    actor=actor,
                    action="submit_facial_photo",
                    resource_type="facial_upload",
                    resource_id=upload.id,
                )
                upload_id = upload.id
        except Exception:
            logger.exception("Could not register facial photo of employee %s", employee_id)
            self.photo_storage.delete(relative_path)
            return False, "Error al guardar la foto", None

        return True, "Foto enviada para revisión", upload_id

    def list_uploads(self, status: Optional[ReviewStatus] = ReviewStatus.PENDING) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            result = []
            for upload in FacialRepository.list_uploads(session, status):
                employee = EmployeeRepository.get_by_id(session, upload.employee_id)
                result.append({
                    "id": upload.id,
                    "employee_id": upload.employee_id,
                    "employee_name": employee.full_name if employee else None,
                    "storage_path": upload.storage_path,
                    "status": upload.status.value,
                    "rejection_reason": upload.rejection_reason,
                    "created_at": upload.created_at,
                })
            return result

    def approve(self, upload_id: int, descriptor: Sequence[float], actor: str) -> Tuple[bool, str]:
        """
        Approve a reference photo with the descriptor computed from it.

        Earlier descriptors of the employee are deactivated.
        """
        try:
            vector = self._as_vector(descriptor)
        except ValueError as e:
            return False, str(e)

        with self.db.session_scope() as session:
            upload = FacialRepository.get_upload(session, upload_id)
            if upload is None:
                return False, "Foto no encontrada"
            if upload.status != ReviewStatus.PENDING:
                return False, "La foto ya fue revisada"

            FacialRepository.deactivate_descriptors(session, upload.employee_id)
            FacialRepository.add_descriptor(session, upload.employee_id, vector.tolist(), upload_id=upload.id)

            upload.status = ReviewStatus.APPROVED
            upload.reviewed_by = actor
            upload.reviewed_at = self.clock()

            AuditLogRepository.create(
                session,
                actor=actor,
                action="approve_facial_photo",
                resource_type="facial_upload",
                resource_id=upload.id,
                metadata={"employee_id": upload.employee_id},
            )
            return True, "Foto aprobada"

    def reject(self, upload_id: int, reason: str, actor: str) -> Tuple[bool, str]:
        reason = (reason or "").strip()
        if not reason:
            return False, "Indique el motivo del rechazo"

        with self.db.session_scope() as session:
            upload = FacialRepository.get_upload(session, upload_id)
            if upload is None:
                return False, "Foto no encontrada"
            if upload.status != ReviewStatus.PENDING:
                return False, "La foto ya fue revisada"

            upload.status = ReviewStatus.REJECTED
            upload.rejection_reason = reason
            upload.reviewed_by = actor
            upload.reviewed_at = self.clock()

            AuditLogRepository.create(
                session,
                actor=actor,
                action="reject_facial_photo",
                resource_type="facial_upload",
                resource_id=upload.id,
                metadata={"reason": reason},
            )
            return True, "Foto rechazada"

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    def identify(self, descriptor: Sequence[float]) -> Optional[FaceMatch]:
        """
        Closest active descriptor, or None when below the confidence threshold.
        """
        query = self._as_vector(descriptor)

        with self.db.session_scope() as session:
            rows = FacialRepository.list_active_descriptors(session)
            if not rows:
                return None
            employee_ids = [row.employee_id for row in rows]
            known = np.vstack([np.asarray(json.loads(row.descriptor_json), dtype=np.float64) for row in rows])

        distances = np.linalg.norm(known - query, axis=1)
        best = int(np.argmin(distances))
        match = FaceMatch(
            employee_id=employee_ids[best],
            distance=float(distances[best]),
            confidence=match_confidence(distances[best]),
        )

        if match.confidence < self.threshold:
            logger.info("No facial match above threshold (best %.3f)", match.confidence)
            return None
        return match

    def clock_in(
        self,
        descriptor: Sequence[float],
        image: Optional[bytes] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        """Identify the face and record an event with its confidence."""
        try:
            match = self.identify(descriptor)
        except ValueError as e:
            return False, str(e), None

        if match is None:
            return False, "Rostro no reconocido. Intente nuevamente o use su PIN", None

        ok, message, event = self.attendance.record_event(
            match.employee_id,
            method=AttendanceMethod.FACIAL,
            confidence=round(match.confidence, 4),
            latitude=latitude,
            longitude=longitude,
        )
        if ok and image:
            photo_ok, photo_message, _ = self.attendance.save_verification_photo(
                event["id"], image, latitude=latitude, longitude=longitude,
            )
            if not photo_ok:
                message = f"{message}. {photo_message}"
        return ok, message, event
