"""
Payroll Service - Liquidación de sueldos
Monthly liquidation producing one receipt per employee, and the concepts catalog.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow
from workforce.db import (
    Database,
    ConceptKind,
    PayrollRun,
    PayrollReceipt,
    EmployeeRepository,
    PayrollConceptRepository,
    PayrollRunRepository,
    PayrollReceiptRepository,
    AuditLogRepository,
)
from workforce.security import SessionContext
from .calculations import compute_receipt, quantize_money, seniority_years

logger = get_logger(__name__)


DEFAULT_CONCEPTS = [
    ("001", "Sueldo Básico", ConceptKind.EARNING, "base"),
    ("020", "Antigüedad", ConceptKind.EARNING, "base * 0.01 * anios"),
    ("030", "Presentismo", ConceptKind.EARNING, "base * 0.10"),
    ("101", "Jubilación", ConceptKind.DEDUCTION, "bruto * 0.11"),
    ("102", "Ley 19032", ConceptKind.DEDUCTION, "bruto * 0.03"),
    ("103", "Obra Social", ConceptKind.DEDUCTION, "bruto * obra_social / 100"),
    ("104", "Sindicato", ConceptKind.DEDUCTION, "bruto * sindicato / 100"),
]


@dataclass
class PayrollSummary:
    """Summary of a payroll run."""
    run_id: int
    period: str
    total_employees: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    skipped: List[str] = field(default_factory=list)
    already_processed: bool = False


def _summary(run: PayrollRun, skipped=None, already_processed=False) -> PayrollSummary:
    return PayrollSummary(
        run_id=run.id,
        period=run.period,
        total_employees=run.total_employees,
        total_gross=run.total_gross,
        total_deductions=run.total_deductions,
        total_net=run.total_net,
        skipped=list(skipped or []),
        already_processed=already_processed,
    )


def _receipt_to_dict(receipt: PayrollReceipt) -> Dict[str, Any]:
    employee = receipt.employee
    return {
        "id": receipt.id,
        "payroll_run_id": receipt.payroll_run_id,
        "employee_id": receipt.employee_id,
        "legajo": employee.legajo if employee else None,
        "employee_name": employee.full_name if employee else None,
        "period": receipt.period,
        "earnings": json.loads(receipt.earnings_json),
        "deductions": json.loads(receipt.deductions_json),
        "total_earnings": receipt.total_earnings,
        "total_deductions": receipt.total_deductions,
        "net_pay": receipt.net_pay,
    }


class PayrollService:
    """
    Payroll liquidation service.
    """

    PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    @classmethod
    def parse_period(cls, period: str) -> Optional[Tuple[int, int]]:
        """'YYYY-MM' -> (year, month), or None when malformed."""
        match = cls.PERIOD_PATTERN.match((period or "").strip())
        if not match:
            return None
        return int(match.group(1)), int(match.group(2))

    def process_period(
        self,
        year: int,
        month: int,
        actor: str,
        ctx: Optional[SessionContext] = None,
    ) -> Tuple[bool, str, Optional[PayrollSummary]]:
        """
        Liquidate a month for every active employee with a base salary.

        The run, its receipts and totals are written in one transaction. If
        the period was already liquidated, the existing run is returned. An
        employee whose receipt cannot be computed is logged and skipped.

        Raises:
            PermissionDeniedError: if ``ctx`` lacks liquidaciones.process

        Returns:
            Tuple of (success, message, summary)
        """
        if ctx is not None:
            ctx.require("liquidaciones.process")

        if not (1 <= int(month) <= 12) or year < 1900:
            return False, "Período inválido", None

        period = f"{year:04d}-{month:02d}"

        try:
            with self.db.session_scope() as session:
                existing = PayrollRunRepository.get_by_period(session, year, month)
                if existing:
                    return True, f"La liquidación {period} ya fue procesada", _summary(existing, already_processed=True)

                employees = EmployeeRepository.list_payroll_eligible(session)
                if not employees:
                    return False, "No hay empleados activos con sueldo configurado", None

                computed = []
                skipped = []
                for employee in employees:
                    try:
                        calculation = compute_receipt(
                            base_salary=employee.base_salary,
                            years=seniority_years(employee.hire_date, year),
                            health_insurance_rate=employee.health_insurance_rate,
                            union_rate=employee.union_rate,
                            monthly_hours=employee.monthly_hours,
                        )
                    except (ValueError, ArithmeticError):
                        logger.exception("Could not liquidate employee %s for %s", employee.id, period)
                        skipped.append(employee.full_name)
                        continue
                    computed.append((employee, calculation))

                if not computed:
                    return False, "No se pudo liquidar ningún empleado", None

                run = PayrollRunRepository.create(session, year, month, processed_by=actor)

                PayrollReceiptRepository.create_many(session, [
                    {
                        "payroll_run_id": run.id,
                        "employee_id": employee.id,
                        "period": period,
                        "earnings": [line.to_dict() for line in calc.earnings],
                        "deductions": [line.to_dict() for line in calc.deductions],
                        "total_earnings": calc.total_earnings,
                        "total_deductions": calc.total_deductions,
                        "net_pay": calc.net_pay,
                    }
                    for employee, calc in computed
                ])

                total_gross = quantize_money(sum((c.total_earnings for _, c in computed), Decimal("0")))
                total_deductions = quantize_money(sum((c.total_deductions for _, c in computed), Decimal("0")))
                total_net = quantize_money(sum((c.net_pay for _, c in computed), Decimal("0")))

                PayrollRunRepository.update_totals(
                    session,
                    run.id,
                    total_employees=len(computed),
                    total_gross=total_gross,
                    total_deductions=total_deductions,
                    total_net=total_net,
                )
                session.refresh(run)

                AuditLogRepository.create(
                    session,
                    actor=actor,
                    action="process_payroll",
                    resource_type="payroll_run",
                    resource_id=run.id,
                    metadata={"period": period, "employees": len(computed), "skipped": len(skipped)},
                )

                summary = _summary(run, skipped=skipped)
        except IntegrityError:
            # Another operator liquidated the same period concurrently
            logger.warning("Payroll run for %s created concurrently", period)
            with self.db.session_scope() as session:
                existing = PayrollRunRepository.get_by_period(session, year, month)
                if existing:
                    return True, f"La liquidación {period} ya fue procesada", _summary(existing, already_processed=True)
            return False, "Error al procesar la liquidación. Intente nuevamente", None
        except Exception:
            logger.exception("Payroll processing failed for %s", period)
            return False, "Error al procesar la liquidación. Intente nuevamente", None

        message = f"Liquidación {period} procesada: {summary.total_employees} empleados"
        if summary.skipped:
            message += f" ({len(summary.skipped)} omitidos)"
        return True, message, summary

    def process(self, period: str, actor: str) -> Tuple[bool, str, Optional[PayrollSummary]]:
        """Same as process_period with a 'YYYY-MM' string."""
        parsed = self.parse_period(period)
        if parsed is None:
            return False, "Formato de período inválido, use AAAA-MM", None
        return self.process_period(parsed[0], parsed[1], actor)

    def list_runs(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [
                {
                    "id": run.id,
                    "period": run.period,
                    "status": run.status.value,
                    "total_employees": run.total_employees,
                    "total_gross": run.total_gross,
                    "total_deductions": run.total_deductions,
                    "total_net": run.total_net,
                    "processed_by": run.processed_by,
                    "created_at": run.created_at,
                }
                for run in PayrollRunRepository.list_all(session, limit)
            ]

    def get_run(self, run_id: int) -> Optional[PayrollSummary]:
        with self.db.session_scope() as session:
            run = PayrollRunRepository.get_by_id(session, run_id)
            return _summary(run) if run else None

    def list_receipts(self, run_id: int) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [_receipt_to_dict(r) for r in PayrollReceiptRepository.list_by_run(session, run_id)]

    def employee_receipts(self, employee_id: int) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [_receipt_to_dict(r) for r in PayrollReceiptRepository.list_by_employee(session, employee_id)]

    # -------------------------------------------------------------------------
    # Concepts
    # -------------------------------------------------------------------------

    def create_concept(
        self,
        code: str,
        description: str,
        kind: ConceptKind,
        actor: str,
        formula: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Add a concept to the catalog.

        The formula is kept as reference text; liquidation does not evaluate it.
        """
        code = (code or "").strip()
        description = (description or "").strip()
        if not code or not description:
            return False, "Código y descripción son obligatorios"

        with self.db.session_scope() as session:
            if PayrollConceptRepository.get_by_code(session, code):
                return False, f"El concepto {code} ya existe"

            concept = PayrollConceptRepository.create(session, code, description, kind, formula)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="create_payroll_concept",
                resource_type="payroll_concept",
                resource_id=concept.id,
            )
            return True, f"Concepto {code} creado"

    def list_concepts(self) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [
                {
                    "id": c.id,
                    "code": c.code,
                    "description": c.description,
                    "kind": c.kind.value,
                    "formula": c.formula,
                }
                for c in PayrollConceptRepository.list_all(session)
            ]

    def seed_default_concepts(self, actor: str = "system_init") -> int:
        """Insert the built-in concepts that are missing; returns how many."""
        created = 0
        with self.db.session_scope() as session:
            for code, description, kind, formula in DEFAULT_CONCEPTS:
                if PayrollConceptRepository.get_by_code(session, code) is None:
                    PayrollConceptRepository.create(session, code, description, kind, formula)
                    created += 1
            if created:
                AuditLogRepository.create(
                    session,
                    actor=actor,
                    action="seed_payroll_concepts",
                    metadata={"count": created},
                )
        return created
