"""
Calculations - Cálculos de liquidación y horas trabajadas
Pure functions shared by the payroll and attendance services.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from workforce.core.timeutils import local_day
from workforce.db.models import AttendanceType


# =============================================================================
# Payroll
# =============================================================================

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

PRESENTISMO_RATE = Decimal("10")
SENIORITY_RATE_PER_YEAR = Decimal("1")
PENSION_RATE = Decimal("11")
LAW_19032_RATE = Decimal("3")

DEFAULT_HEALTH_INSURANCE_RATE = Decimal("3")
DEFAULT_UNION_RATE = Decimal("2.5")
DEFAULT_MONTHLY_HOURS = 160


def quantize_money(value: Decimal) -> Decimal:
    """Round an amount to cents, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _percent(amount: Decimal, rate: Decimal) -> Decimal:
    return quantize_money(amount * Decimal(rate) / HUNDRED)


def seniority_years(hire_date: Optional[date], year: int) -> int:
    """Whole years of seniority counted by calendar year, never negative."""
    if hire_date is None:
        return 0
    return max(0, year - hire_date.year)


@dataclass
class ReceiptLine:
    """One earnings or deduction line of a receipt."""
    code: str
    description: str
    amount: Decimal
    quantity: Optional[Decimal] = None
    unit_amount: Optional[Decimal] = None
    rate: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "code": self.code,
            "description": self.description,
            "amount": str(self.amount),
        }
        if self.quantity is not None:
            data["quantity"] = str(self.quantity)
        if self.unit_amount is not None:
            data["unit_amount"] = str(self.unit_amount)
        if self.rate is not None:
            data["rate"] = str(self.rate)
        return data


@dataclass
class ReceiptCalculation:
    """Result of computing one employee's receipt."""
    earnings: List[ReceiptLine]
    deductions: List[ReceiptLine]
    total_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    def line(self, code: str) -> Optional[ReceiptLine]:
        for item in self.earnings + self.deductions:
            if item.code == code:
                return item
        return None


def compute_receipt(
    base_salary: Decimal,
    years: int,
    health_insurance_rate: Decimal = DEFAULT_HEALTH_INSURANCE_RATE,
    union_rate: Decimal = DEFAULT_UNION_RATE,
    monthly_hours: int = DEFAULT_MONTHLY_HOURS,
) -> ReceiptCalculation:
    """
    Compute earnings, deductions and net pay for a month.

    presentismo = base * 10%
    antigüedad  = years * base * 1%
    gross       = base + antigüedad + presentismo
    deductions  = gross * (11% + 3% + health insurance % + union %)

    Args:
        base_salary: Monthly base salary, must be positive
        years: Seniority in whole years (negative values count as 0)
        health_insurance_rate: Obra social percentage
        union_rate: Union dues percentage
        monthly_hours: Hours used to express the base as an hourly value

    Returns:
        ReceiptCalculation with lines quantized to cents
    """
    base = quantize_money(Decimal(str(base_salary)))
    if base <= 0:
        raise ValueError("El sueldo básico debe ser mayor a cero")

    years = max(0, int(years))
    hours = int(monthly_hours or DEFAULT_MONTHLY_HOURS)
    health_insurance_rate = Decimal(str(health_insurance_rate))
    union_rate = Decimal(str(union_rate))

    seniority_unit = _percent(base, SENIORITY_RATE_PER_YEAR)
    seniority = quantize_money(seniority_unit * years)
    presentismo = _percent(base, PRESENTISMO_RATE)

    earnings = [
        ReceiptLine(
            code="001",
            description="Sueldo Básico",
            amount=base,
            quantity=Decimal(hours),
            unit_amount=quantize_money(base / hours),
        ),
    ]
    if seniority > 0:
        earnings.append(ReceiptLine(
            code="020",
            description="Antigüedad",
            amount=seniority,
            quantity=Decimal(years),
            unit_amount=seniority_unit,
        ))
    earnings.append(ReceiptLine(
        code="030",
        description="Presentismo",
        amount=presentismo,
        quantity=Decimal(1),
        unit_amount=presentismo,
    ))

    gross = quantize_money(sum((line.amount for line in earnings), Decimal("0")))

    deductions = [
        ReceiptLine(code="101", description="Jubilación", amount=_percent(gross, PENSION_RATE), rate=PENSION_RATE),
        ReceiptLine(code="102", description="Ley 19032", amount=_percent(gross, LAW_19032_RATE), rate=LAW_19032_RATE),
        ReceiptLine(code="103", description="Obra Social", amount=_percent(gross, health_insurance_rate), rate=health_insurance_rate),
        ReceiptLine(code="104", description="Sindicato", amount=_percent(gross, union_rate), rate=union_rate),
    ]
    total_deductions = quantize_money(sum((line.amount for line in deductions), Decimal("0")))

    return ReceiptCalculation(
        earnings=earnings,
        deductions=deductions,
        total_earnings=gross,
        total_deductions=total_deductions,
        net_pay=quantize_money(gross - total_deductions),
    )


# =============================================================================
# Attendance
# =============================================================================

@dataclass
class DayGroup:
    """Events of one local calendar day and the hours worked."""
    day: date
    events: List[Any] = field(default_factory=list)
    entrance: Optional[datetime] = None
    exit: Optional[datetime] = None
    total_hours: float = 0.0


def _event_type(event) -> AttendanceType:
    value = event.event_type
    return value if isinstance(value, AttendanceType) else AttendanceType(value)


def day_hours(events: Iterable[Any]) -> float:
    """
    Sum exit - entrance over matched pairs of a single day.

    A later entrance replaces an unmatched earlier one; an entrance without
    exit adds nothing. Pause events are ignored.
    """
    total_seconds = 0.0
    open_entrance: Optional[datetime] = None

    for event in sorted(events, key=lambda e: e.timestamp):
        kind = _event_type(event)
        if kind == AttendanceType.ENTRANCE:
            open_entrance = event.timestamp
        elif kind == AttendanceType.EXIT and open_entrance is not None:
            total_seconds += (event.timestamp - open_entrance).total_seconds()
            open_entrance = None

    hours = Decimal(str(total_seconds)) / Decimal(3600)
    return float(hours.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def group_by_day(events: Iterable[Any], tz: Optional[tzinfo] = None) -> List[DayGroup]:
    """
    Bucket events by local calendar day, most recent day first.

    Args:
        events: Objects with ``event_type`` and ``timestamp`` attributes
        tz: Local zone for the day boundary (naive timestamps are UTC)
    """
    buckets: Dict[date, List[Any]] = defaultdict(list)
    for event in events:
        buckets[local_day(event.timestamp, tz)].append(event)

    groups = []
    for day, day_events in buckets.items():
        ordered = sorted(day_events, key=lambda e: e.timestamp)
        entrances = [e.timestamp for e in ordered if _event_type(e) == AttendanceType.ENTRANCE]
        exits = [e.timestamp for e in ordered if _event_type(e) == AttendanceType.EXIT]
        groups.append(DayGroup(
            day=day,
            events=ordered,
            entrance=entrances[0] if entrances else None,
            exit=exits[-1] if exits else None,
            total_hours=day_hours(ordered),
        ))

    groups.sort(key=lambda g: g.day, reverse=True)
    return groups
