"""
Rewards Service - Premios y presupuesto
Monthly budgets, prize catalog, points ledger and prize redemption.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple

from workforce.core.logging import get_logger
from workforce.core.timeutils import utcnow
from workforce.db import (
    Database,
    PrizeType,
    EmployeeRepository,
    BudgetRepository,
    PrizeRepository,
    PointsRepository,
    PrizeAssignmentRepository,
    AuditLogRepository,
)
from .calculations import quantize_money

logger = get_logger(__name__)


def _amount(value: Any) -> Optional[Decimal]:
    try:
        amount = quantize_money(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount >= 0 else None


class RewardsService:
    """
    Rewards and budget service.
    """

    def __init__(self, db: Database, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def create_budget(
        self,
        year: int,
        month: int,
        amount: Any,
        actor: str,
        description: Optional[str] = None,
    ) -> Tuple[bool, str, Optional[int]]:
        if not 1 <= int(month) <= 12:
            return False, "Mes inválido", None
        initial = _amount(amount)
        if initial is None or initial == 0:
            return False, "El monto debe ser mayor a cero", None

        with self.db.session_scope() as session:
            if BudgetRepository.get_by_period(session, year, month):
                return False, f"Ya existe un presupuesto para {month:02d}/{year}", None

            budget = BudgetRepository.create(session, year, month, initial, description)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="create_budget",
                resource_type="budget",
                resource_id=budget.id,
                metadata={"amount": str(initial)},
            )
            return True, "Presupuesto creado", budget.id

    def update_budget(
        self,
        budget_id: int,
        amount: Any,
        actor: str,
        description: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """Change the initial amount; used stays and available is recomputed."""
        initial = _amount(amount)
        if initial is None or initial == 0:
            return False, "El monto debe ser mayor a cero"

        with self.db.session_scope() as session:
            budget = BudgetRepository.get_by_id(session, budget_id)
            if budget is None:
                return False, "Presupuesto no encontrado"
            if initial < budget.used_amount:
                return False, f"El monto no puede ser menor a lo ya utilizado ({budget.used_amount})"

            budget.initial_amount = initial
            budget.available_amount = initial - budget.used_amount
            if description is not None:
                budget.description = description

            AuditLogRepository.create(
                session,
                actor=actor,
                action="update_budget",
                resource_type="budget",
                resource_id=budget_id,
                metadata={"amount": str(initial)},
            )
            return True, "Presupuesto actualizado"

    def list_budgets(self) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [
                {
                    "id": b.id,
                    "year": b.year,
                    "month": b.month,
                    "initial_amount": b.initial_amount,
                    "available_amount": b.available_amount,
                    "used_amount": b.used_amount,
                    "description": b.description,
                }
                for b in BudgetRepository.list_all(session)
            ]

    def budget_summary(self) -> Dict[str, Any]:
        """Current month figures and the annual total."""
        now = self.clock()

        with self.db.session_scope() as session:
            budget = BudgetRepository.get_by_period(session, now.year, now.month)
            annual = BudgetRepository.sum_initial_for_year(session, now.year)

            initial = budget.initial_amount if budget else Decimal("0")
            used = budget.used_amount if budget else Decimal("0")
            available = budget.available_amount if budget else Decimal("0")
            percentage = float(round(used / initial * 100, 1)) if initial else 0.0

            return {
                "current_month": initial,
                "annual": annual,
                "available_month": available,
                "used_month": used,
                "used_percentage": percentage,
            }

    # -------------------------------------------------------------------------
    # Prizes and points
    # -------------------------------------------------------------------------

    def create_prize(
        self,
        name: str,
        cost: Any,
        actor: str,
        prize_type: PrizeType = PrizeType.PHYSICAL,
        stock: Optional[int] = None,
    ) -> Tuple[bool, str, Optional[int]]:
        name = (name or "").strip()
        if not name:
            return False, "El nombre del premio es obligatorio", None
        prize_cost = _amount(cost)
        if prize_cost is None or prize_cost == 0:
            return False, "El costo debe ser mayor a cero", None
        if stock is not None and stock < 0:
            return False, "El stock no puede ser negativo", None

        with self.db.session_scope() as session:
            prize = PrizeRepository.create(session, name, prize_cost, prize_type, stock)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="create_prize",
                resource_type="prize",
                resource_id=prize.id,
            )
            return True, f"Premio {name} creado", prize.id

    def list_prizes(self) -> List[Dict[str, Any]]:
        with self.db.session_scope() as session:
            return [
                {
                    "id": p.id,
                    "name": p.name,
                    "prize_type": p.prize_type.value,
                    "cost": p.cost,
                    "stock": p.stock,
                }
                for p in PrizeRepository.list_active(session)
            ]

    def add_points(self, employee_id: int, points: int, reason: str, actor: str) -> Tuple[bool, str]:
        if not points:
            return False, "La cantidad de puntos no puede ser cero"

        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee or not employee.active:
                return False, "Empleado no encontrado"

            entry = PointsRepository.add(session, employee_id, int(points), reason)
            AuditLogRepository.create(
                session,
                actor=actor,
                action="add_points",
                resource_type="points",
                resource_id=entry.id,
                metadata={"employee_id": employee_id, "points": int(points)},
            )
            return True, f"{points} puntos asignados a {employee.full_name}"

    def points_balance(self, employee_id: int) -> int:
        with self.db.session_scope() as session:
            return PointsRepository.balance(session, employee_id)

    def redeem_prize(self, employee_id: int, prize_id: int, actor: str) -> Tuple[bool, str, Optional[int]]:
        """
        Exchange points for a prize.

        Requires enough points and stock (a null stock is unlimited). The
        points ledger gets a negative entry, stock goes down by one and, when
        the month has a budget, its available amount is consumed.

        Returns:
            Tuple of (success, message, assignment_id)
        """
        now = self.clock()

        with self.db.session_scope() as session:
            employee = EmployeeRepository.get_by_id(session, employee_id)
            if not employee or not employee.active:
                return False, "Empleado no encontrado", None

            prize = PrizeRepository.get_by_id(session, prize_id)
            if prize is None or not prize.active:
                return False, "Premio no encontrado", None

            if prize.stock is not None and prize.stock <= 0:
                return False, "Premio sin stock", None

            cost_points = int(prize.cost.to_integral_value())
            balance = PointsRepository.balance(session, employee_id)
            if balance < cost_points:
                return False, f"Puntos insuficientes: tiene {balance}, necesita {cost_points}", None

            budget = BudgetRepository.get_by_period(session, now.year, now.month)
            if budget is not None:
                if budget.available_amount < prize.cost:
                    return False, "Presupuesto del mes insuficiente", None
                budget.used_amount = budget.used_amount + prize.cost
                budget.available_amount = budget.initial_amount - budget.used_amount

            assignment = PrizeAssignmentRepository.create(session, prize.id, employee_id, prize.cost)
            PointsRepository.add(session, employee_id, -cost_points, f"Canje: {prize.name}")
            if prize.stock is not None:
                prize.stock -= 1

            AuditLogRepository.create(
                session,
                actor=actor,
                action="redeem_prize",
                resource_type="prize_assignment",
                resource_id=assignment.id,
                metadata={"employee_id": employee_id, "prize_id": prize.id},
            )
            return True, f"{employee.full_name} canjeó {prize.name}", assignment.id
