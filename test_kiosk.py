"""
PIN Kiosk Tests

The search -> pin -> photo -> done flow, the persisted PIN lockout and the
admin PIN maintenance operations.
"""

from datetime import date

import pytest

from workforce.core.exceptions import PermissionDeniedError
from workforce.db import AttendanceType, EmployeeRole
from workforce.security import SessionContext
from workforce.services import KioskStep


@pytest.fixture
def employee_with_pin(container, make_employee):
    employee_id = make_employee(first_name="Lucía", last_name="Fernández", dni="30111222")
    success, message = container.pins.set_pin(employee_id, "1234", actor="admin")
    assert success, message
    return employee_id


def type_pin(kiosk, pin):
    for digit in pin:
        kiosk.press_digit(digit)


def kiosk_at_pin(container, employee_id):
    kiosk = container.kiosk_session()
    kiosk.search("Lucía")
    result = kiosk.select(employee_id)
    assert result.ok, result.message
    return kiosk


# =============================================================================
# Flow
# =============================================================================

class TestKioskFlow:

    def test_full_pass_records_entrance_with_photo(self, container, employee_with_pin):
        kiosk = container.kiosk_session()

        results = kiosk.search("Fernández")
        assert [r["id"] for r in results] == [employee_with_pin]
        assert results[0]["has_pin"] is True

        assert kiosk.select(employee_with_pin).ok
        assert kiosk.step == KioskStep.PIN

        type_pin(kiosk, "1234")
        assert kiosk.submit_pin().ok
        assert kiosk.step == KioskStep.PHOTO

        kiosk.capture_photo(b"\xff\xd8jpeg", latitude=-34.6, longitude=-58.4)
        result = kiosk.confirm()

        assert result.ok, result.message
        assert kiosk.step == KioskStep.DONE
        assert result.event["event_type"] == AttendanceType.ENTRANCE.value
        assert result.event["method"] == "pin"
        assert "Entrada registrada" in result.message

        rows = container.attendance.daily_report(date(2025, 3, 10))
        assert len(rows) == 1
        assert rows[0]["has_photo"] is True
        assert rows[0]["latitude"] == -34.6

    def test_second_pass_records_exit(self, container, employee_with_pin, clock):
        for _ in range(2):
            kiosk = kiosk_at_pin(container, employee_with_pin)
            type_pin(kiosk, "1234")
            kiosk.submit_pin()
            kiosk.capture_photo(b"jpeg")
            result = kiosk.confirm()
            assert result.ok, result.message
            clock.advance(hours=8)

        groups = container.attendance.employee_day_report(employee_with_pin, date(2025, 3, 10), date(2025, 3, 10))
        assert len(groups) == 1
        assert [e.event_type for e in groups[0].events] == [AttendanceType.ENTRANCE, AttendanceType.EXIT]
        assert groups[0].total_hours == 8.0

    def test_short_search_returns_nothing(self, container, employee_with_pin):
        assert container.kiosk_session().search("L") == []

    def test_employee_without_pin_cannot_continue(self, container, make_employee):
        employee_id = make_employee(first_name="Sinpin")
        kiosk = container.kiosk_session()
        results = kiosk.search("Sinpin")

        assert results[0]["has_pin"] is False
        result = kiosk.select(employee_id)
        assert not result.ok
        assert kiosk.step == KioskStep.SEARCH

    def test_pin_pad(self, container, employee_with_pin):
        kiosk = kiosk_at_pin(container, employee_with_pin)

        type_pin(kiosk, "12345678")
        assert kiosk.pin == "123456"
        kiosk.delete_digit()
        assert kiosk.pin == "12345"
        kiosk.press_digit("x")
        assert kiosk.pin == "12345"
        kiosk.clear_pin()
        assert kiosk.pin == ""

    def test_short_pin_is_not_checked(self, container, employee_with_pin):
        kiosk = kiosk_at_pin(container, employee_with_pin)
        type_pin(kiosk, "12")

        result = kiosk.submit_pin()
        assert not result.ok
        assert kiosk.step == KioskStep.PIN
        assert container.pins.list_status()[0]["failed_attempts"] == 0

    def test_wrong_pin_clears_digits(self, container, employee_with_pin):
        kiosk = kiosk_at_pin(container, employee_with_pin)
        type_pin(kiosk, "9999")

        result = kiosk.submit_pin()
        assert not result.ok
        assert result.remaining_attempts == 2
        assert result.message == "PIN incorrecto. Intentos restantes: 2"
        assert kiosk.pin == ""
        assert kiosk.step == KioskStep.PIN

    def test_confirm_requires_photo(self, container, employee_with_pin):
        kiosk = kiosk_at_pin(container, employee_with_pin)
        type_pin(kiosk, "1234")
        kiosk.submit_pin()

        result = kiosk.confirm()
        assert not result.ok
        assert kiosk.step == KioskStep.PHOTO

        kiosk.capture_photo(b"jpeg")
        kiosk.retake_photo()
        assert kiosk.photo is None

    def test_pin_changed_before_confirm_returns_to_pin_step(self, container, employee_with_pin):
        kiosk = kiosk_at_pin(container, employee_with_pin)
        type_pin(kiosk, "1234")
        assert kiosk.submit_pin().ok
        kiosk.capture_photo(b"jpeg")

        container.pins.set_pin(employee_with_pin, "5678", actor="admin")
        result = kiosk.confirm()

        assert not result.ok
        assert result.remaining_attempts == 2
        assert kiosk.step == KioskStep.PIN
        assert kiosk.pin == ""
        assert kiosk.photo is None

        type_pin(kiosk, "5678")
        assert kiosk.submit_pin().ok
        kiosk.capture_photo(b"jpeg")
        assert kiosk.confirm().ok

    def test_back_and_reset(self, container, employee_with_pin):
        kiosk = kiosk_at_pin(container, employee_with_pin)
        type_pin(kiosk, "1234")
        kiosk.submit_pin()

        kiosk.back()
        assert kiosk.step == KioskStep.PIN
        assert kiosk.pin == ""

        kiosk.back()
        assert kiosk.step == KioskStep.SEARCH
        assert kiosk.employee is None

        kiosk.reset()
        assert kiosk.results == []
        assert kiosk.last_result is None

    def test_actions_out_of_step_are_refused(self, container, employee_with_pin):
        kiosk = container.kiosk_session()
        assert not kiosk.submit_pin().ok
        assert not kiosk.confirm().ok
        kiosk.press_digit("1")
        assert kiosk.pin == ""


# =============================================================================
# Lockout
# =============================================================================

class TestPinLockout:

    def test_third_failure_locks(self, container, employee_with_pin):
        kiosk = kiosk_at_pin(container, employee_with_pin)

        for expected in (2, 1):
            type_pin(kiosk, "0000")
            result = kiosk.submit_pin()
            assert not result.ok
            assert result.remaining_attempts == expected

        type_pin(kiosk, "0000")
        result = kiosk.submit_pin()
        assert result.message == "PIN bloqueado por demasiados intentos fallidos"
        assert result.remaining_attempts == 0

        type_pin(kiosk, "1234")
        result = kiosk.submit_pin()
        assert not result.ok
        assert result.message == "PIN bloqueado. Intente nuevamente en 15 minutos"

    def test_lock_expires(self, container, employee_with_pin, clock):
        for _ in range(3):
            container.pins.verify_pin(employee_with_pin, "0000")
        assert container.pins.verify_pin(employee_with_pin, "1234").blocked

        clock.advance(minutes=15)
        verification = container.pins.verify_pin(employee_with_pin, "1234")
        assert verification.valid
        assert verification.remaining_attempts == 3

    def test_lock_is_persisted_and_audited(self, container, employee_with_pin):
        for _ in range(3):
            container.pins.verify_pin(employee_with_pin, "0000")

        status = container.pins.list_status()[0]
        assert status["locked"] is True
        assert status["failed_attempts"] == 3

        actions = [log["action"] for log in container.system.get_audit_logs()]
        assert "pin_locked" in actions

    def test_success_resets_counter(self, container, employee_with_pin):
        container.pins.verify_pin(employee_with_pin, "0000")
        container.pins.verify_pin(employee_with_pin, "0000")
        assert container.pins.verify_pin(employee_with_pin, "1234").valid
        assert container.pins.verify_pin(employee_with_pin, "0000").remaining_attempts == 2

    def test_admin_unlock(self, container, employee_with_pin):
        for _ in range(3):
            container.pins.verify_pin(employee_with_pin, "0000")

        success, _ = container.pins.unlock(employee_with_pin, actor="admin")
        assert success
        assert container.pins.verify_pin(employee_with_pin, "1234").valid


# =============================================================================
# PIN administration
# =============================================================================

class TestPinAdmin:

    @pytest.mark.parametrize("pin", ["123", "1234567", "12a4", ""])
    def test_invalid_pins_rejected(self, container, make_employee, pin):
        employee_id = make_employee()
        success, _ = container.pins.set_pin(employee_id, pin, actor="admin")
        assert not success

    def test_set_pin_unknown_employee(self, container):
        success, message = container.pins.set_pin(999, "1234", actor="admin")
        assert not success
        assert message == "Empleado no encontrado"

    def test_verify_without_pin(self, container, make_employee):
        verification = container.pins.verify_pin(make_employee(), "1234")
        assert not verification.valid
        assert verification.message == "El empleado no tiene PIN configurado"

    def test_generate_bulk_only_missing(self, container, make_employee, employee_with_pin):
        other = make_employee()

        success, _, generated = container.pins.generate_bulk(actor="admin")
        assert success
        assert list(generated) == [other]
        assert len(generated[other]) == 4
        assert container.pins.verify_pin(other, generated[other]).valid
        assert container.pins.employees_with_pin() == {employee_with_pin, other}

    def test_generate_bulk_length(self, container, make_employee):
        employee_id = make_employee()
        success, _, generated = container.pins.generate_bulk(actor="admin", length=6)
        assert success
        assert len(generated[employee_id]) == 6

        success, _, generated = container.pins.generate_bulk(actor="admin", length=3)
        assert not success
        assert generated == {}

    def test_bulk_operations_require_capability(self, container, make_employee):
        make_employee()
        employee = SessionContext.start(user_id=3, username="empleado", role=EmployeeRole.EMPLEADO)

        with pytest.raises(PermissionDeniedError):
            container.pins.generate_bulk(actor="empleado", ctx=employee)
        with pytest.raises(PermissionDeniedError):
            container.pins.reset_from_dni(actor="empleado", ctx=employee)
        assert container.pins.employees_with_pin() == set()

        manager = SessionContext.start(user_id=2, username="gerente", role=EmployeeRole.GERENTE_SUCURSAL)
        success, _, generated = container.pins.generate_bulk(actor="gerente", ctx=manager)
        assert success
        assert len(generated) == 1

    def test_reset_from_dni(self, container, make_employee):
        with_dni = make_employee(dni="27.555.678")
        without_dni = make_employee(dni=None)

        success, message, count = container.pins.reset_from_dni(actor="admin")
        assert success
        assert count == 1
        assert "sin DNI" in message
        assert container.pins.verify_pin(with_dni, "5678").valid
        assert not container.pins.verify_pin(without_dni, "5678").valid

    def test_deactivated_employee_loses_pin(self, container, employee_with_pin):
        container.employees.deactivate_employee(employee_with_pin, actor="admin")
        assert employee_with_pin not in container.pins.employees_with_pin()
        assert not container.pins.verify_pin(employee_with_pin, "1234").valid
