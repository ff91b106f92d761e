"""
Service Layer Tests

Tests for business logic services including:
- AuthService: login with persisted lockout, user creation
- EmployeeService: CRUD with encrypted DNI, bulk branch moves, spreadsheet import
- AttendanceService: event sequencing, verification photos, day reports
- FacialService: reference photo review and descriptor matching
- PayrollService: monthly liquidation and its idempotence
- VacationService: entitlement, balances and requests
- RewardsService: budgets, points and prize redemption
- ExportService: Excel/CSV exports with sanitization
"""

import logging
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal

import pandas as pd
import pytest

from workforce.container import build_container
from workforce.core.exceptions import PermissionDeniedError
from workforce.db import (
    AttendanceMethod,
    AttendanceType,
    ConceptKind,
    Employee,
    EmployeeRole,
    ReviewStatus,
)
from workforce.security import SessionContext
from workforce.services import PhotoStorage, entitlement_days, match_confidence


# =============================================================================
# AuthService Tests
# =============================================================================

class TestAuthService:

    @pytest.fixture
    def admin(self, container):
        success, message = container.auth.initialize_system("rrhh", "clave-segura-1")
        assert success, message
        return "rrhh"

    def test_initialize_once(self, container, admin):
        assert container.auth.is_initialized()
        success, _ = container.auth.initialize_system("otro", "clave-segura-2")
        assert not success

    def test_login_success(self, container, admin):
        success, ctx, message = container.auth.login("rrhh", "clave-segura-1")

        assert success, message
        assert ctx.username == "rrhh"
        assert ctx.role == EmployeeRole.ADMIN_RRHH
        assert ctx.can("liquidaciones.process")

    def test_unknown_user(self, container, admin):
        success, ctx, message = container.auth.login("nadie", "clave-segura-1")
        assert not success
        assert ctx is None
        assert message == "Usuario o contraseña incorrectos"

    def test_wrong_password_counts_down(self, container, admin):
        success, _, message = container.auth.login("rrhh", "mala")
        assert not success
        assert message == "Usuario o contraseña incorrectos (4 intentos restantes)"

    def test_lockout_and_expiry(self, container, admin, clock):
        for _ in range(4):
            container.auth.login("rrhh", "mala")
        _, _, message = container.auth.login("rrhh", "mala")
        assert message == "Cuenta bloqueada por demasiados intentos fallidos"

        success, _, message = container.auth.login("rrhh", "clave-segura-1")
        assert not success
        assert message == "Cuenta bloqueada. Intente nuevamente en 300 segundos"

        clock.advance(seconds=300)
        success, _, _ = container.auth.login("rrhh", "clave-segura-1")
        assert success

    def test_failed_logins_are_audited(self, container, admin):
        container.auth.login("rrhh", "mala")
        logs = container.system.get_audit_logs(action="login")
        assert logs[0]["result"] == "failure"

    def test_create_user_validation(self, container, admin):
        success, _, _ = container.auth.create_user("ab", "clave-segura-1", EmployeeRole.EMPLEADO, actor="rrhh")
        assert not success
        success, _, _ = container.auth.create_user("gerente", "corta", EmployeeRole.EMPLEADO, actor="rrhh")
        assert not success
        success, _, _ = container.auth.create_user("rrhh", "clave-segura-1", EmployeeRole.EMPLEADO, actor="rrhh")
        assert not success

    def test_manager_session(self, container, admin):
        success, _, _ = container.auth.create_user(
            "gerente", "clave-segura-3", EmployeeRole.GERENTE_SUCURSAL, actor="rrhh")
        assert success

        _, ctx, _ = container.auth.login("gerente", "clave-segura-3")
        assert ctx.can("liquidaciones.view")
        assert not ctx.can("liquidaciones.process")

    def test_change_password(self, container, admin):
        _, ctx, _ = container.auth.login("rrhh", "clave-segura-1")
        success, _ = container.auth.change_password(ctx.user_id, "nueva-clave-1", actor="rrhh")
        assert success

        assert not container.auth.login("rrhh", "clave-segura-1")[0]
        assert container.auth.login("rrhh", "nueva-clave-1")[0]


# =============================================================================
# EmployeeService Tests
# =============================================================================

class TestEmployeeService:

    def test_dni_is_encrypted_and_redacted(self, container, db, make_employee):
        employee_id = make_employee(dni="30.123.456")

        with db.session_scope() as session:
            stored = session.get(Employee, employee_id).dni_encrypted
        assert "30123456" not in stored

        assert container.employees.get_employee(employee_id)["dni"] == "****3456"
        assert container.employees.get_employee(employee_id, can_view_sensitive=True)["dni"] == "30123456"

    @pytest.mark.parametrize("dni", ["123", "123456789", "12A45678"])
    def test_invalid_dni(self, container, dni):
        success, message, _ = container.employees.create_employee(
            {"first_name": "Ana", "last_name": "Paz", "dni": dni}, actor="admin")
        assert not success
        assert message == "El DNI debe tener 7 u 8 dígitos"

    def test_required_names(self, container):
        success, message, _ = container.employees.create_employee({"first_name": "Ana"}, actor="admin")
        assert not success
        assert message == "El apellido es obligatorio"

    def test_invalid_role(self, container):
        success, message, _ = container.employees.create_employee(
            {"first_name": "Ana", "last_name": "Paz", "role": "jefe"}, actor="admin")
        assert not success
        assert message == "Rol inválido: jefe"

    def test_duplicate_legajo(self, container, make_employee):
        make_employee(legajo="100")
        success, message, _ = container.employees.create_employee(
            {"legajo": "100", "first_name": "Ana", "last_name": "Paz"}, actor="admin")
        assert not success
        assert "100" in message

    def test_search(self, container, make_employee):
        make_employee(first_name="Martina", last_name="Rossi", legajo="A-77")
        make_employee(first_name="Julián", last_name="Sosa")

        assert [e["last_name"] for e in container.employees.search_employees("rossi")] == ["Rossi"]
        assert [e["legajo"] for e in container.employees.search_employees("A-77")] == ["A-77"]
        assert container.employees.search_employees("R") == []

    def test_update_and_deactivate(self, container, make_employee):
        employee_id = make_employee()

        success, _ = container.employees.update_employee(employee_id, {"base_salary": "150000"}, actor="admin")
        assert success
        assert container.employees.get_employee(employee_id)["base_salary"] == Decimal("150000")

        success, _ = container.employees.update_employee(employee_id, {"base_salary": "0"}, actor="admin")
        assert not success

        container.employees.deactivate_employee(employee_id, actor="admin")
        assert container.employees.count_active() == 0
        assert container.employees.search_employees("Nombre") == []

    def test_reassign_branch(self, container, make_employee):
        _, _, branch_id = container.employees.create_branch("Centro", actor="admin")
        ids = [make_employee(), make_employee()]

        success, _, count = container.employees.reassign_branch(ids, branch_id, actor="admin")

        assert success
        assert count == 2
        assert {e["branch_id"] for e in container.employees.list_employees(branch_id=branch_id)} == {branch_id}

    def test_reassign_branch_is_all_or_nothing(self, container, make_employee):
        _, _, branch_id = container.employees.create_branch("Norte", actor="admin")
        existing = make_employee()

        success, _, count = container.employees.reassign_branch([existing, 9999], branch_id, actor="admin")

        assert not success
        assert count == 0
        assert container.employees.get_employee(existing)["branch_id"] is None

    def test_reassign_unknown_branch(self, container, make_employee):
        success, message, _ = container.employees.reassign_branch([make_employee()], 42, actor="admin")
        assert not success
        assert message == "Sucursal no encontrada"

    def test_import(self, container):
        df = pd.DataFrame({
            "Legajo": ["200", "201", "202"],
            "Nombre": ["Ana", "Beto", "Carla"],
            "Apellido": ["Paz", "Ríos", "Luna"],
            "DNI": ["20111222", "12", "22333444"],
            "Sucursal": ["Centro", "Centro", "Sur"],
            "Fecha de ingreso": ["2022-05-01", "2022-05-01", "01/02/2021"],
            "Sueldo básico": [250000, 260000, 270000],
        })

        success, message, count = container.employees.import_employees(df, actor="admin")

        assert success
        assert count == 2
        assert "Fila 3" in message
        assert sorted(b["name"] for b in container.employees.list_branches()) == ["Centro", "Sur"]

        carla = container.employees.search_employees("Carla")[0]
        assert carla["hire_date"] == date(2021, 2, 1)

    def test_import_all_rows_invalid(self, container):
        df = pd.DataFrame({"Nombre": ["Ana"], "Apellido": [""]})
        success, _, count = container.employees.import_employees(df, actor="admin")
        assert not success
        assert count == 0


# =============================================================================
# AttendanceService Tests
# =============================================================================

class TestAttendanceService:

    def test_sequence_follows_last_event(self, container, make_employee):
        employee_id = make_employee()
        attendance = container.attendance

        assert attendance.next_event_type(employee_id) == AttendanceType.ENTRANCE
        attendance.record_event(employee_id, AttendanceMethod.PIN)
        assert attendance.next_event_type(employee_id) == AttendanceType.EXIT

        attendance.record_event(employee_id, AttendanceMethod.PIN, event_type=AttendanceType.PAUSE_START)
        assert attendance.next_event_type(employee_id) == AttendanceType.PAUSE_END

    def test_second_open_entrance_rejected(self, container, make_employee):
        employee_id = make_employee()
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)

        success, message, _ = container.attendance.record_event(
            employee_id, AttendanceMethod.MANUAL, event_type=AttendanceType.ENTRANCE, actor="admin")
        assert not success
        assert message.startswith("Ya hay una entrada abierta hoy")

    def test_new_local_day_starts_with_entrance(self, container, make_employee, clock):
        employee_id = make_employee()
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)

        clock.advance(days=1)
        assert container.attendance.next_event_type(employee_id) == AttendanceType.ENTRANCE

    def test_open_entrance_does_not_carry_past_midnight(self, container, make_employee, clock):
        employee_id = make_employee()
        clock.advance(hours=10)
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)

        # 01:00 local on the 11th
        clock.advance(hours=5)
        assert container.attendance.next_event_type(employee_id) == AttendanceType.ENTRANCE

    def test_manual_events_are_audited(self, container, make_employee):
        employee_id = make_employee()
        success, _, event = container.attendance.record_event(
            employee_id, AttendanceMethod.MANUAL, notes="Olvidó fichar", actor="gerente")
        assert success

        logs = container.system.get_audit_logs(action="manual_attendance")
        assert logs[0]["actor"] == "gerente"
        assert logs[0]["resource_id"] == event["id"]

    def test_inactive_employee(self, container, make_employee):
        employee_id = make_employee()
        container.employees.deactivate_employee(employee_id, actor="admin")
        success, message, _ = container.attendance.record_event(employee_id, AttendanceMethod.PIN)
        assert not success
        assert message == "Empleado no encontrado"

    def test_verification_photo_path(self, container, make_employee):
        employee_id = make_employee()
        _, _, event = container.attendance.record_event(employee_id, AttendanceMethod.PIN)

        success, _, path = container.attendance.save_verification_photo(event["id"], b"jpeg")

        assert success
        assert path == f"{event['id']}/20250310130000000000.jpg"
        assert container.photo_storage.read(path) == b"jpeg"

    def test_verification_photo_unknown_event(self, container):
        success, message, _ = container.attendance.save_verification_photo(123, b"jpeg")
        assert not success
        assert message == "Fichaje no encontrado"

    def test_day_report_and_hours(self, container, make_employee, clock):
        employee_id = make_employee()
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)
        clock.advance(hours=4, minutes=30)
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)

        clock.advance(days=1)
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)

        groups = container.attendance.employee_day_report(employee_id, date(2025, 3, 10), date(2025, 3, 11))
        assert [g.day for g in groups] == [date(2025, 3, 11), date(2025, 3, 10)]
        assert [g.total_hours for g in groups] == [0.0, 4.5]
        assert container.attendance.hours_in_range(employee_id, date(2025, 3, 1), date(2025, 3, 31)) == 4.5

    def test_daily_report_search(self, container, make_employee):
        first = make_employee(first_name="Sofía")
        second = make_employee(first_name="Tomás")
        container.attendance.record_event(first, AttendanceMethod.PIN)
        container.attendance.record_event(second, AttendanceMethod.PIN)

        assert len(container.attendance.daily_report(date(2025, 3, 10))) == 2
        rows = container.attendance.daily_report(date(2025, 3, 10), search="sofía")
        assert [r["employee_id"] for r in rows] == [first]

    def test_photo_storage_stays_in_base_dir(self, tmp_path):
        storage = PhotoStorage(str(tmp_path / "fotos"))
        with pytest.raises(ValueError):
            storage.save("../fuera.jpg", b"x")


# =============================================================================
# FacialService Tests
# =============================================================================

class TestFacialService:

    @pytest.fixture
    def enrolled(self, container, make_employee):
        employee_id = make_employee()
        success, _, upload_id = container.facial.submit_photo(employee_id, b"face", actor="admin")
        assert success
        success, message = container.facial.approve(upload_id, [0.0] * 128, actor="admin")
        assert success, message
        return employee_id

    def test_pending_uploads(self, container, make_employee):
        employee_id = make_employee()
        container.facial.submit_photo(employee_id, b"face", actor="admin")

        uploads = container.facial.list_uploads()
        assert len(uploads) == 1
        assert uploads[0]["storage_path"].startswith(f"rostros/{employee_id}/")
        assert container.system.get_dashboard_stats()["pending_facial_photos"] == 1

    def test_identify(self, container, enrolled):
        descriptor = [0.0] * 128
        descriptor[0] = 0.1

        match = container.facial.identify(descriptor)
        assert match.employee_id == enrolled
        assert match.confidence == pytest.approx(0.9)

    def test_identify_below_threshold(self, container, enrolled):
        assert container.facial.identify([0.1] * 128) is None

    def test_identify_without_descriptors(self, container):
        assert container.facial.identify([0.0] * 128) is None

    def test_wrong_descriptor_size(self, container, enrolled):
        with pytest.raises(ValueError):
            container.facial.identify([0.0] * 10)

    def test_clock_in_records_confidence(self, container, enrolled):
        success, _, event = container.facial.clock_in([0.0] * 128, image=b"frame")
        assert success
        assert event["method"] == "facial"
        assert event["confidence"] == 1.0
        assert container.attendance.daily_report(date(2025, 3, 10))[0]["has_photo"] is True

    def test_clock_in_unknown_face(self, container, enrolled):
        success, message, event = container.facial.clock_in([1.0] * 128)
        assert not success
        assert event is None

    def test_new_approval_replaces_descriptor(self, container, enrolled):
        _, _, upload_id = container.facial.submit_photo(enrolled, b"face2", actor="admin")
        container.facial.approve(upload_id, [5.0] * 128, actor="admin")

        assert container.facial.identify([0.0] * 128) is None
        assert container.facial.identify([5.0] * 128).employee_id == enrolled

    def test_review_only_once(self, container, make_employee):
        _, _, upload_id = container.facial.submit_photo(make_employee(), b"face", actor="admin")

        success, _ = container.facial.reject(upload_id, "", actor="admin")
        assert not success
        success, _ = container.facial.reject(upload_id, "Foto borrosa", actor="admin")
        assert success

        success, message = container.facial.approve(upload_id, [0.0] * 128, actor="admin")
        assert not success
        assert message == "La foto ya fue revisada"
        assert container.facial.list_uploads(ReviewStatus.REJECTED)[0]["rejection_reason"] == "Foto borrosa"

    def test_submit_photo_storage_failure(self, container, make_employee, tmp_path, monkeypatch):
        employee_id = make_employee()
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        monkeypatch.setattr(container.facial, "photo_storage", PhotoStorage(str(blocker)))

        result = container.facial.submit_photo(employee_id, b"face", actor="admin")

        assert result == (False, "Error al guardar la foto", None)
        assert container.facial.list_uploads() == []

    def test_match_confidence_floor(self):
        assert match_confidence(0.25) == 0.75
        assert match_confidence(1.7) == 0.0


# =============================================================================
# PayrollService Tests
# =============================================================================

class TestPayrollService:

    def test_process_period(self, container, make_employee):
        make_employee()
        make_employee()
        make_employee(base_salary=None)

        success, message, summary = container.payroll.process("2025-03", actor="admin")

        assert success, message
        assert summary.period == "2025-03"
        assert summary.total_employees == 2
        assert summary.total_gross == Decimal("224000.00")
        assert summary.total_deductions == Decimal("43680.00")
        assert summary.total_net == Decimal("180320.00")
        assert not summary.already_processed

        receipts = container.payroll.list_receipts(summary.run_id)
        assert len(receipts) == 2
        assert [line["code"] for line in receipts[0]["earnings"]] == ["001", "020", "030"]
        assert receipts[0]["net_pay"] == Decimal("90160.00")

    def test_period_processed_once(self, container, make_employee):
        make_employee()
        _, _, first = container.payroll.process_period(2025, 3, actor="admin")

        make_employee()
        success, message, second = container.payroll.process_period(2025, 3, actor="otro")

        assert success
        assert second.already_processed
        assert second.run_id == first.run_id
        assert "ya fue procesada" in message
        assert len(container.payroll.list_receipts(first.run_id)) == 1
        assert len(container.payroll.list_runs()) == 1

    def test_failing_employee_is_skipped(self, container, make_employee):
        make_employee()
        make_employee(base_salary=Decimal("0.001"))

        success, message, summary = container.payroll.process_period(2025, 3, actor="admin")

        assert success, message
        assert summary.total_employees == 1
        assert len(summary.skipped) == 1
        assert message.endswith("(1 omitidos)")
        assert len(container.payroll.list_receipts(summary.run_id)) == 1

    def test_no_employee_could_be_liquidated(self, container, make_employee):
        make_employee(base_salary=Decimal("0.001"))

        success, message, summary = container.payroll.process_period(2025, 3, actor="admin")

        assert not success
        assert message == "No se pudo liquidar ningún empleado"
        assert summary is None
        assert container.payroll.list_runs() == []

    def test_process_requires_capability(self, container, make_employee):
        make_employee()
        manager = SessionContext.start(user_id=2, username="gerente", role=EmployeeRole.GERENTE_SUCURSAL)

        with pytest.raises(PermissionDeniedError):
            container.payroll.process_period(2025, 3, actor="gerente", ctx=manager)
        assert container.payroll.list_runs() == []

        admin = SessionContext.start(user_id=1, username="rrhh", role=EmployeeRole.ADMIN_RRHH)
        success, _, _ = container.payroll.process_period(2025, 3, actor="rrhh", ctx=admin)
        assert success

    @pytest.mark.parametrize("period", ["2025-13", "2025-3", "marzo", ""])
    def test_invalid_period(self, container, period):
        success, _, summary = container.payroll.process(period, actor="admin")
        assert not success
        assert summary is None

    def test_nobody_to_liquidate(self, container):
        success, _, _ = container.payroll.process("2025-03", actor="admin")
        assert not success
        assert container.payroll.list_runs() == []

    def test_employee_receipts(self, container, make_employee):
        employee_id = make_employee()
        container.payroll.process("2025-02", actor="admin")
        container.payroll.process("2025-03", actor="admin")

        assert {r["period"] for r in container.payroll.employee_receipts(employee_id)} == {"2025-02", "2025-03"}

    def test_concepts(self, container):
        assert container.payroll.seed_default_concepts() == 7
        assert container.payroll.seed_default_concepts() == 0

        success, _ = container.payroll.create_concept("001", "Duplicado", ConceptKind.EARNING, actor="admin")
        assert not success
        success, _ = container.payroll.create_concept("050", "Horas extra", ConceptKind.EARNING, actor="admin",
                                                      formula="valor_hora * 1.5 * horas")
        assert success
        assert "050" in [c["code"] for c in container.payroll.list_concepts()]


# =============================================================================
# VacationService Tests
# =============================================================================

class TestVacationEntitlement:

    @pytest.mark.parametrize("hire_date,expected", [
        (date(2023, 1, 15), 14),
        (date(2020, 6, 1), 21),
        (date(2015, 1, 1), 28),
        (date(2005, 1, 1), 35),
        (date(2025, 6, 30), 14),
        (date(2025, 9, 1), 4),
        (date(2026, 1, 1), 0),
        (None, 0),
    ])
    def test_entitlement(self, hire_date, expected):
        assert entitlement_days(hire_date, 2025) == expected


class TestVacationService:

    def test_balance_counts_pending_and_approved(self, container, make_employee):
        employee_id = make_employee()
        success, _, request_id = container.vacations.request(
            employee_id, date(2025, 4, 1), date(2025, 4, 5), actor="empleado")
        assert success

        balance = container.vacations.balance(employee_id, 2025)
        assert balance == {"year": 2025, "entitled": 14, "used": 0, "pending": 5, "available": 9}

        container.vacations.approve(request_id, actor="rrhh")
        balance = container.vacations.balance(employee_id, 2025)
        assert (balance["used"], balance["pending"], balance["available"]) == (5, 0, 9)

    def test_overlap_rejected(self, container, make_employee):
        employee_id = make_employee()
        container.vacations.request(employee_id, date(2025, 4, 1), date(2025, 4, 5), actor="empleado")

        success, message, _ = container.vacations.request(
            employee_id, date(2025, 4, 5), date(2025, 4, 6), actor="empleado")
        assert not success
        assert message.startswith("Se superpone")

    def test_rejected_request_frees_days(self, container, make_employee):
        employee_id = make_employee()
        _, _, request_id = container.vacations.request(
            employee_id, date(2025, 4, 1), date(2025, 4, 14), actor="empleado")
        container.vacations.reject(request_id, actor="rrhh")

        success, _, _ = container.vacations.request(
            employee_id, date(2025, 4, 1), date(2025, 4, 14), actor="empleado")
        assert success

    def test_insufficient_days(self, container, make_employee):
        employee_id = make_employee()
        success, message, _ = container.vacations.request(
            employee_id, date(2025, 6, 1), date(2025, 6, 20), actor="empleado")
        assert not success
        assert message == "Días insuficientes: solicita 20, disponibles 14"

    @pytest.mark.parametrize("start,end", [
        (date(2025, 4, 5), date(2025, 4, 1)),
        (date(2025, 12, 30), date(2026, 1, 2)),
    ])
    def test_invalid_ranges(self, container, make_employee, start, end):
        success, _, _ = container.vacations.request(make_employee(), start, end, actor="empleado")
        assert not success

    def test_review_only_pending(self, container, make_employee):
        employee_id = make_employee()
        _, _, request_id = container.vacations.request(
            employee_id, date(2025, 4, 1), date(2025, 4, 2), actor="empleado")
        container.vacations.approve(request_id, actor="rrhh")

        success, message = container.vacations.reject(request_id, actor="rrhh")
        assert not success
        assert message == "La solicitud ya fue revisada"
        assert container.vacations.list_requests(employee_id)[0]["status"] == "aprobado"


# =============================================================================
# RewardsService Tests
# =============================================================================

class TestRewardsService:

    @pytest.fixture
    def prize_id(self, container):
        success, _, prize_id = container.rewards.create_prize("Voucher", "500", actor="admin", stock=1)
        assert success
        return prize_id

    def test_budget_summary(self, container):
        container.rewards.create_budget(2025, 3, "10000", actor="admin")
        container.rewards.create_budget(2025, 4, "5000", actor="admin")

        summary = container.rewards.budget_summary()
        assert summary["current_month"] == Decimal("10000")
        assert summary["annual"] == Decimal("15000")
        assert summary["used_percentage"] == 0.0

    def test_duplicate_budget(self, container):
        container.rewards.create_budget(2025, 3, "10000", actor="admin")
        success, _, _ = container.rewards.create_budget(2025, 3, "20000", actor="admin")
        assert not success

    def test_redeem(self, container, make_employee, prize_id):
        employee_id = make_employee()
        _, _, budget_id = container.rewards.create_budget(2025, 3, "10000", actor="admin")
        container.rewards.add_points(employee_id, 600, "Presentismo perfecto", actor="admin")

        success, message, assignment_id = container.rewards.redeem_prize(employee_id, prize_id, actor="admin")

        assert success, message
        assert assignment_id is not None
        assert container.rewards.points_balance(employee_id) == 100
        assert container.rewards.list_prizes()[0]["stock"] == 0

        summary = container.rewards.budget_summary()
        assert summary["used_month"] == Decimal("500")
        assert summary["available_month"] == Decimal("9500")
        assert summary["used_percentage"] == 5.0

        success, message, _ = container.rewards.redeem_prize(employee_id, prize_id, actor="admin")
        assert not success
        assert message == "Premio sin stock"

        success, message = container.rewards.update_budget(budget_id, "400", actor="admin")
        assert not success
        success, _ = container.rewards.update_budget(budget_id, "20000", actor="admin")
        assert success
        assert container.rewards.list_budgets()[0]["available_amount"] == Decimal("19500")

    def test_insufficient_points(self, container, make_employee, prize_id):
        employee_id = make_employee()
        container.rewards.add_points(employee_id, 100, "Bono", actor="admin")

        success, message, _ = container.rewards.redeem_prize(employee_id, prize_id, actor="admin")
        assert not success
        assert message == "Puntos insuficientes: tiene 100, necesita 500"

    def test_insufficient_budget(self, container, make_employee, prize_id):
        employee_id = make_employee()
        container.rewards.create_budget(2025, 3, "100", actor="admin")
        container.rewards.add_points(employee_id, 1000, "Bono", actor="admin")

        success, message, _ = container.rewards.redeem_prize(employee_id, prize_id, actor="admin")
        assert not success
        assert message == "Presupuesto del mes insuficiente"
        assert container.rewards.points_balance(employee_id) == 1000


# =============================================================================
# ExportService Tests
# =============================================================================

class TestExportService:

    def test_payroll_excel(self, container, make_employee, tmp_path):
        make_employee(first_name="=cmd")
        make_employee()
        _, _, summary = container.payroll.process("2025-03", actor="admin")

        output = str(tmp_path / "liquidacion.xlsx")
        success, _, path, file_hash = container.exports.export_payroll_summary(summary.run_id, output, actor="admin")

        assert success
        assert len(file_hash) == 64

        df = pd.read_excel(path)
        assert len(df) == 2
        assert "001 Sueldo Básico" in df.columns
        assert df["Neto a cobrar"].tolist() == [90160.0, 90160.0]
        assert "'=cmd Gómez" in df["Empleado"].tolist()

        logs = container.system.get_audit_logs(action="export_payroll_summary")
        assert logs[0]["metadata"]["file_hash"] == file_hash

    def test_payroll_export_without_receipts(self, container, tmp_path):
        success, _, path, _ = container.exports.export_payroll_summary(99, str(tmp_path / "x.xlsx"), actor="admin")
        assert not success
        assert path is None

    def test_attendance_csv(self, container, make_employee, clock, tmp_path):
        employee_id = make_employee()
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)
        clock.advance(hours=8)
        container.attendance.record_event(employee_id, AttendanceMethod.PIN)

        output = str(tmp_path / "fichajes.csv")
        success, _, path, _ = container.exports.export_attendance_report(
            employee_id, date(2025, 3, 1), date(2025, 3, 31), output, actor="admin")

        assert success
        df = pd.read_csv(path)
        assert df.to_dict("records") == [
            {"Fecha": "2025-03-10", "Entrada": "10:00", "Salida": "18:00", "Fichajes": 2, "Horas": 8.0}
        ]

    def test_attendance_csv_empty(self, container, make_employee, tmp_path):
        success, message, _, _ = container.exports.export_attendance_report(
            make_employee(), date(2025, 3, 1), date(2025, 3, 31), str(tmp_path / "f.csv"), actor="admin")
        assert not success
        assert message == "No hay fichajes en el período"


# =============================================================================
# SystemService / container Tests
# =============================================================================

class TestSystemService:

    def test_dashboard_stats(self, container, make_employee, clock):
        first = make_employee()
        make_employee()
        container.attendance.record_event(first, AttendanceMethod.PIN)
        container.attendance.record_event(first, AttendanceMethod.PIN)
        container.payroll.process("2025-02", actor="admin")

        stats = container.system.get_dashboard_stats()
        assert stats["active_employees"] == 2
        assert stats["events_today"] == 2
        assert stats["present_today"] == 1
        assert stats["latest_payroll"]["period"] == "2025-02"

        clock.advance(days=1)
        assert container.system.get_dashboard_stats()["events_today"] == 0

    def test_audit_log_filters(self, container, make_employee):
        make_employee()
        container.employees.create_branch("Oeste", actor="gerente")

        assert {log["action"] for log in container.system.get_audit_logs(actor="gerente")} == {"create_branch"}
        assert len(container.system.get_audit_logs(limit=1)) == 1


def test_container_requires_master_key(settings, db, monkeypatch):
    monkeypatch.delenv("MASTER_KEY", raising=False)
    with pytest.raises(ValueError):
        build_container(settings=settings, db=db)


def test_container_lockout_settings(container):
    assert container.pins.policy.max_attempts == 3
    assert container.pins.policy.lockout == timedelta(minutes=15)
    assert container.auth.policy.max_attempts == 5


def test_container_applies_log_level(settings, db, encryption_manager, tmp_path):
    root = logging.getLogger()
    previous = root.level
    try:
        build_container(
            settings=replace(settings, log_level="ERROR"),
            db=db,
            encryption_manager=encryption_manager,
            photo_storage=PhotoStorage(str(tmp_path / "fotos")),
        )
        assert root.level == logging.ERROR
    finally:
        root.setLevel(previous)
