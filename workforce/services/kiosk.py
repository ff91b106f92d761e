"""
PIN Kiosk - Fichero por PIN
Linear flow: search -> pin -> photo -> processing -> done.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from workforce.core.logging import get_logger
from workforce.db import AttendanceMethod
from .attendance import AttendanceService
from .employees import EmployeeService
from .pins import PinService

logger = get_logger(__name__)


class KioskStep(enum.Enum):
    SEARCH = "search"
    PIN = "pin"
    PHOTO = "photo"
    PROCESSING = "processing"
    DONE = "done"


@dataclass
class KioskResult:
    """What the last action produced, for the screen to show."""
    ok: bool
    message: str
    remaining_attempts: Optional[int] = None
    event: Optional[Dict[str, Any]] = None


@dataclass
class KioskSession:
    """
    One employee's pass through the PIN kiosk.

    Each public method is a UI callback; it either advances ``step`` or
    leaves it where the user can retry.
    """

    employees: EmployeeService
    pins: PinService
    attendance: AttendanceService

    MIN_SEARCH_LENGTH = 2
    MIN_PIN_LENGTH = 4
    MAX_PIN_LENGTH = 6

    step: KioskStep = KioskStep.SEARCH
    results: List[Dict[str, Any]] = field(default_factory=list)
    employee: Optional[Dict[str, Any]] = None
    pin: str = ""
    photo: Optional[bytes] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_result: Optional[KioskResult] = None

    def _result(self, ok: bool, message: str, **kwargs) -> KioskResult:
        self.last_result = KioskResult(ok, message, **kwargs)
        return self.last_result

    # -- search ---------------------------------------------------------------

    def search(self, query: str) -> List[Dict[str, Any]]:
        """Find employees; every result says whether it has a PIN."""
        query = (query or "").strip()
        if self.step != KioskStep.SEARCH or len(query) < self.MIN_SEARCH_LENGTH:
            self.results = []
            return self.results

        with_pin = self.pins.employees_with_pin()
        self.results = [
            dict(emp, has_pin=emp["id"] in with_pin)
            for emp in self.employees.search_employees(query)
        ]
        return self.results

    def select(self, employee_id: int) -> KioskResult:
        if self.step != KioskStep.SEARCH:
            return self._result(False, "Acción no disponible en este paso")

        employee = next((e for e in self.results if e["id"] == employee_id), None)
        if employee is None:
            return self._result(False, "Empleado no encontrado")
        if not employee.get("has_pin"):
            return self._result(False, "El empleado no tiene PIN configurado. Contacte a RRHH")

        self.employee = employee
        self.pin = ""
        self.step = KioskStep.PIN
        return self._result(True, f"Hola {employee['full_name']}. Ingrese su PIN")

    # -- pin ------------------------------------------------------------------

    def press_digit(self, digit: str) -> None:
        if self.step != KioskStep.PIN:
            return
        if len(digit) == 1 and digit.isdigit() and len(self.pin) < self.MAX_PIN_LENGTH:
            self.pin += digit

    def delete_digit(self) -> None:
        if self.step == KioskStep.PIN:
            self.pin = self.pin[:-1]

    def clear_pin(self) -> None:
        if self.step == KioskStep.PIN:
            self.pin = ""

    def submit_pin(self) -> KioskResult:
        """Verify the typed PIN; on failure the digits are cleared."""
        if self.step != KioskStep.PIN:
            return self._result(False, "Acción no disponible en este paso")
        if len(self.pin) < self.MIN_PIN_LENGTH:
            return self._result(False, f"El PIN debe tener al menos {self.MIN_PIN_LENGTH} dígitos")

        verification = self.pins.verify_pin(self.employee["id"], self.pin)
        if not verification.valid:
            self.pin = ""
            message = verification.message
            if not verification.blocked and verification.remaining_attempts:
                message += f". Intentos restantes: {verification.remaining_attempts}"
            return self._result(False, message, remaining_attempts=verification.remaining_attempts)

        self.step = KioskStep.PHOTO
        return self._result(True, "PIN correcto. Tome la foto de verificación")

    # -- photo / processing ---------------------------------------------------

    def capture_photo(self, image: bytes, latitude: Optional[float] = None, longitude: Optional[float] = None) -> None:
        if self.step != KioskStep.PHOTO:
            return
        self.photo = image
        self.latitude = latitude
        self.longitude = longitude

    def retake_photo(self) -> None:
        if self.step == KioskStep.PHOTO:
            self.photo = None

    def confirm(self) -> KioskResult:
        """
        Record the clock event and store the verification photo.

        The PIN is checked again because the credential may have been
        locked or changed since it was typed. A rejected PIN returns to the
        PIN step with the pad cleared; any other failure returns to the photo
        step.
        """
        if self.step != KioskStep.PHOTO:
            return self._result(False, "Acción no disponible en este paso")
        if not self.photo:
            return self._result(False, "Primero tome la foto de verificación")

        self.step = KioskStep.PROCESSING
        employee_id = self.employee["id"]

        verification = self.pins.verify_pin(employee_id, self.pin)
        if not verification.valid:
            self.pin = ""
            self.photo = None
            self.step = KioskStep.PIN
            return self._result(False, verification.message, remaining_attempts=verification.remaining_attempts)

        ok, message, event = self.attendance.record_event(
            employee_id,
            method=AttendanceMethod.PIN,
            latitude=self.latitude,
            longitude=self.longitude,
        )
        if not ok:
            self.step = KioskStep.PHOTO
            return self._result(False, message)

        photo_ok, photo_message, _ = self.attendance.save_verification_photo(
            event["id"], self.photo, latitude=self.latitude, longitude=self.longitude,
        )
        if not photo_ok:
            logger.warning("Event %s recorded without photo: %s", event["id"], photo_message)
            message = f"{message}. {photo_message}"

        self.step = KioskStep.DONE
        return self._result(True, message, event=event)

    # -- navigation -----------------------------------------------------------

    def back(self) -> None:
        """pin -> search, photo -> pin."""
        if self.step == KioskStep.PIN:
            self.employee = None
            self.pin = ""
            self.step = KioskStep.SEARCH
        elif self.step == KioskStep.PHOTO:
            self.photo = None
            self.pin = ""
            self.step = KioskStep.PIN

    def reset(self) -> None:
        """Start over for the next employee."""
        self.step = KioskStep.SEARCH
        self.results = []
        self.employee = None
        self.pin = ""
        self.photo = None
        self.latitude = None
        self.longitude = None
        self.last_result = None
