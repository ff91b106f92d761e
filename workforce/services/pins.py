"""
PIN Service - PIN de fichaje
Kiosk PIN verification with persisted lockout, plus admin maintenance.
"""

import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow
from workforce.db import (
    Database,
    EmployeeRepository,
    PinRepository,
    AuditLogRepository,
)
from workforce.security import EncryptionManager, LockoutPolicy, PasswordManager, SessionContext

logger = get_logger(__name__)

PIN_PATTERN = re.compile(r"^\d{4,6}$")


@dataclass
class PinVerification:
    """Outcome of a kiosk PIN check."""
    valid: bool
    blocked: bool
    message: str
    remaining_attempts: int
    employee_id: Optional[int] = None
    locked_until: Optional[datetime] = None


def validate_pin(pin: str) -> Optional[str]:
    """Return an error message, or None when the PIN is acceptable."""
    if not pin or not PIN_PATTERN.match(pin):
        return "El PIN debe tener entre 4 y 6 dígitos numéricos"
    return None


class PinService:
    """
    Kiosk PIN service.
    """

    def __init__(
        self,
        db: Database,
        password_manager: PasswordManager,
        encryption_manager: EncryptionManager,
        policy: LockoutPolicy,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.password_manager = password_manager
        self.encryption_manager = encryption_manager
        self.policy = policy
        self.clock = clock

    def set_pin(self, employee_id: int, pin: str, actor: str) -> Tuple[bool, str]:
        """Set or replace an employee's PIN; clears any lockout."""
        error = validate_pin(pin)
        if error:
            return False, error

        pin_hash = self.password_manager.hash_password(pin)

        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee or not employee.active:
                return False, "Empleado no encontrado"

            PinRepository.upsert(session, employee_id, pin_hash)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="set_pin",
                resource_type="employee",
                resource_id=employee_id,
            )
            return True, f"PIN actualizado para {employee.full_name}"

    def verify_pin(self, employee_id: int, pin: str) -> PinVerification:
        """
        Check a PIN typed at the kiosk.

        Each failure counts towards the lockout threshold; once reached the
        credential reports ``blocked`` until ``locked_until`` elapses. A
        success resets the counter.
        """
        now = self.clock()

        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee or not employee.active:
                return PinVerification(False, False, "Empleado no encontrado", 0, employee_id)

            credential = PinRepository.get_by_employee(session, employee_id)
            if credential is None or not credential.active:
                return PinVerification(False, False, "El empleado no tiene PIN configurado", 0, employee_id)

            self.policy.release_if_expired(credential, now)
            if self.policy.is_locked(credential, now):
                minutes = -(-self.policy.remaining_seconds(credential, now) // 60)
                return PinVerification(
                    False, True,
                    f"PIN bloqueado. Intente nuevamente en {minutes} minutos",
                    0, employee_id, credential.locked_until,
                )

            if not self.password_manager.verify_password(pin or "", credential.pin_hash):
                locked_until = self.policy.register_failure(credential, now)
                if locked_until is not None:
                    logger.warning("PIN of employee %s locked until %s", employee_id, locked_until)
                    AuditLogRepository.create(
                        session,
                        actor="kiosk",
                        action="pin_locked",
                        result="failure",
                        resource_type="employee",
                        resource_id=employee_id,
                    )
                    return PinVerification(
                        False, True,
                        "PIN bloqueado por demasiados intentos fallidos",
                        0, employee_id, locked_until,
                    )
                remaining = self.policy.remaining_attempts(credential)
                return PinVerification(False, False, "PIN incorrecto", remaining, employee_id)

            self.policy.register_success(credential)
            credential.last_used_at = now
            return PinVerification(True, False, "PIN correcto", self.policy.max_attempts, employee_id)

    def unlock(self, employee_id: int, actor: str) -> Tuple[bool, str]:
        with self.db.session_scope() as session:
            credential = PinRepository.get_by_employee(session, employee_id)
            if credential is None:
                return False, "El empleado no tiene PIN configurado"

            self.policy.register_success(credential)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="unlock_pin",
                resource_type="employee",
                resource_id=employee_id,
            )
            return True, "PIN desbloqueado"

    def generate_bulk(
        self,
        actor: str,
        employee_ids: Optional[Sequence[int]] = None,
        length: int = 4,
        only_missing: bool = True,
        ctx: Optional[SessionContext] = None,
    ) -> Tuple[bool, str, Dict[int, str]]:
        """
        Assign random PINs in one transaction.

        Args:
            actor: Username performing the action
            employee_ids: Restrict to these employees (default: all active)
            length: Digits per PIN (4-6)
            only_missing: Skip employees that already have an active PIN
            ctx: Session of the caller; requires fichado.manage_pins

        Returns:
            Tuple of (success, message, {employee_id: plain_pin}); the plain
            PINs are only returned here so they can be handed out once.
        """
        if ctx is not None:
            ctx.require("fichado.manage_pins")

        if length < 4 or length > 6:
            return False, "El PIN debe tener entre 4 y 6 dígitos", {}

        generated: Dict[int, str] = {}

        try:
            with self.db.session_scope() as session:
                employees = EmployeeRepository.list_active(session)
                if employee_ids is not None:
                    wanted = set(employee_ids)
                    employees = [e for e in employees if e.id in wanted]

                existing = PinRepository.active_employee_ids(session) if only_missing else set()

                for employee in employees:
                    if employee.id in existing:
                        continue
                    pin = f"{secrets.randbelow(10 ** length):0{length}d}"
                    PinRepository.upsert(session, employee.id, self.password_manager.hash_password(pin))
                    generated[employee.id] = pin

                AuditLogRepository.create(
                    session,
                    actor=actor,
                    action="generate_pins",
                    resource_type="employee",
                    metadata={"count": len(generated)},
                )
        except Exception:
            logger.exception("Bulk PIN generation failed")
            return False, "Error al generar PINs. No se modificó ningún PIN", {}

        return True, f"Se generaron {len(generated)} PINs", generated

    def reset_from_dni(
        self,
        actor: str,
        employee_ids: Optional[Sequence[int]] = None,
        ctx: Optional[SessionContext] = None,
    ) -> Tuple[bool, str, int]:
        """
        Reset PINs to the last 4 digits of each employee's DNI.

        Employees without a readable DNI are skipped.

        Returns:
            Tuple of (success, message, reset_count)
        """
        if ctx is not None:
            ctx.require("fichado.manage_pins")

        count = 0
        skipped = 0

        try:
            with self.db.session_scope() as session:
                employees = EmployeeRepository.list_active(session)
                if employee_ids is not None:
                    wanted = set(employee_ids)
                    employees = [e for e in employees if e.id in wanted]

                for employee in employees:
                    dni = None
                    if employee.dni_encrypted:
                        try:
                            dni = self.encryption_manager.decrypt(employee.dni_encrypted)
                        except ValueError:
                            logger.warning("Could not decrypt DNI of employee %s", employee.id)

                    digits = re.sub(r"\D", "", dni or "")
                    if len(digits) < 4:
                        skipped += 1
                        continue

                    PinRepository.upsert(session, employee.id, self.password_manager.hash_password(digits[-4:]))
                    count += 1

                AuditLogRepository.create(
                    session,
                    actor=actor,
                    action="reset_pins_from_dni",
                    resource_type="employee",
                    metadata={"count": count, "skipped": skipped},
                )
        except Exception:
            logger.exception("PIN reset from DNI failed")
            return False, "Error al restablecer PINs. No se modificó ningún PIN", 0

        message = f"Se restablecieron {count} PINs"
        if skipped:
            message += f" ({skipped} empleados sin DNI válido)"
        return True, message, count

    def list_status(self) -> List[Dict[str, Any]]:
        """PIN state of every active employee for the admin screen."""
        now = self.clock()

        with self.db.session_scope() as session:
            credentials = {c.employee_id: c for c in PinRepository.list_all(session)}
            result = []
            for employee in EmployeeRepository.list_active(session):
                credential = credentials.get(employee.id)
                has_pin = credential is not None and credential.active
                result.append({
                    "employee_id": employee.id,
                    "legajo": employee.legajo,
                    "full_name": employee.full_name,
                    "has_pin": has_pin,
                    "failed_attempts": credential.failed_attempts if has_pin else 0,
                    "locked": has_pin and self.policy.is_locked(credential, now),
                    "locked_until": credential.locked_until if has_pin else None,
                    "last_used_at": credential.last_used_at if has_pin else None,
                })
            return result

    def employees_with_pin(self) -> set:
        with self.db.session_scope() as session:
            return PinRepository.active_employee_ids(session)
