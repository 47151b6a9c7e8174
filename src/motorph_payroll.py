"""
MotorPH Payroll Engine
======================
Weekly payroll computation for MotorPH employees: attendance aggregation
over a pay-coverage week, gross wage (regular, overtime, holiday premium,
night differential), SSS / PhilHealth / Pag-IBIG contributions, late
penalties and progressive withholding tax. Read-only CSV data sources.
"""

from __future__ import annotations

import argparse
import calendar
import csv
import logging
import os
import re
import sys
import threading
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

DATA_DIR = Path(os.environ.get("MOTORPH_DATA_DIR", "data"))
EMPLOYEES_CSV = DATA_DIR / "EmployeeData.csv"
ATTENDANCE_CSV = DATA_DIR / "AttendanceRecord.csv"
logging.basicConfig(format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("motorph")

PRECISION = Decimal("0.01")
ZERO = Decimal("0")
MINUTES_PER_HOUR = Decimal("60")
MINUTES_PER_DAY = 24 * 60
LOAD_ATTEMPTS = 3

# ─── Time & Pay Policy ───────────────────────────────────────────────────────
MIN_YEAR = 2000
DAYS_PER_WEEK = 7
WEEKS_PER_MONTH = 4
STANDARD_SHIFT_MINUTES = 8 * 60
MAX_DAILY_OVERTIME_MINUTES = 8 * 60
DEFAULT_SHIFT_START = time(8, 0)
DEFAULT_HOURLY_RATE = Decimal("100.00")
OVERTIME_MULTIPLIER = Decimal("1.25")
HOLIDAY_MULTIPLIER = Decimal("1.00")     # premium on top of regular pay
NIGHT_WINDOW_START = time(22, 0)
NIGHT_WINDOW_END = time(6, 0)
NIGHT_DIFFERENTIAL_RATE = Decimal("0.10")

# ─── Statutory Contributions ─────────────────────────────────────────────────
PHILHEALTH_PREMIUM_RATE = Decimal("0.03")
PHILHEALTH_EMPLOYEE_SHARE = Decimal("0.50")
PHILHEALTH_FLOOR = Decimal("10000")
PHILHEALTH_CEILING = Decimal("60000")

PAGIBIG_LOW_RATE = Decimal("0.01")
PAGIBIG_RATE = Decimal("0.02")
PAGIBIG_LOW_THRESHOLD = Decimal("1500")
PAGIBIG_CAP = Decimal("100")


class SssBracket(NamedTuple):
    lower_bound: Decimal
    contribution: Decimal


class TaxBracket(NamedTuple):
    lower_bound: Decimal
    base_tax: Decimal
    rate: Decimal


def _motorph_sss_table() -> Tuple[SssBracket, ...]:
    # 135.00 below 3,250, then +22.50 for every 500 up to 1,125.00 at 24,750
    rows = [SssBracket(ZERO, Decimal("135.00"))]
    for step in range(44):
        rows.append(SssBracket(
            Decimal("3250") + 500 * step,
            Decimal("157.50") + Decimal("22.50") * step,
        ))
    return tuple(rows)


SSS_TABLE = _motorph_sss_table()

# Monthly-equivalent Philippine withholding schedule (2024)
PH_TAX_BRACKETS_2024 = (
    TaxBracket(Decimal("0"), Decimal("0"), Decimal("0")),
    TaxBracket(Decimal("20833"), Decimal("0"), Decimal("0.20")),
    TaxBracket(Decimal("33333"), Decimal("2500"), Decimal("0.25")),
    TaxBracket(Decimal("66667"), Decimal("10833"), Decimal("0.30")),
    TaxBracket(Decimal("166667"), Decimal("40833.33"), Decimal("0.32")),
    TaxBracket(Decimal("666667"), Decimal("200833.33"), Decimal("0.35")),
)


# ─── Errors ──────────────────────────────────────────────────────────────────
class PayrollError(Exception):
    """Base class for every error raised by the payroll engine."""


class InvalidPeriodError(PayrollError, ValueError):
    pass


class EmployeeNotFoundError(PayrollError, LookupError):
    pass


class InvalidAmountError(PayrollError, ValueError):
    pass


class InvalidArgumentError(PayrollError, ValueError):
    pass


class DataLoadError(PayrollError):
    pass


# ─── Parsing helpers ─────────────────────────────────────────────────────────
_EMPLOYEE_ID = re.compile(r"^\d+$")


def _parse_time(value: str) -> time:
    return datetime.strptime(value.strip(), "%H:%M").time()


def _parse_date(value: str) -> date:
    value = value.strip()
    try:
        return datetime.strptime(value, "%m/%d/%Y").date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidArgumentError(f"Invalid date: {value!r} (expected MM/DD/YYYY or YYYY-MM-DD)") from None


def _parse_amount(value: str) -> Decimal:
    try:
        return Decimal(value.replace(",", "").strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}") from None


def _parse_flag(value: str) -> bool:
    return value.strip().lower() in {"1", "y", "yes", "true", "night"}


def _non_negative(value, label: str) -> Decimal:
    if value is None:
        raise InvalidArgumentError(f"{label} is required")
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if amount < 0:
        raise InvalidAmountError(f"{label} cannot be negative: {amount}")
    return amount


def validate_employee_id(employee_id: str) -> str:
    employee_id = (employee_id or "").strip()
    if not _EMPLOYEE_ID.match(employee_id):
        raise InvalidArgumentError("Employee ID must contain only numbers")
    return employee_id


# ─── Policy ──────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class PayrollPolicy:
    standard_shift_minutes: int = STANDARD_SHIFT_MINUTES
    max_daily_overtime_minutes: int = MAX_DAILY_OVERTIME_MINUTES
    default_hourly_rate: Decimal = DEFAULT_HOURLY_RATE
    overtime_multiplier: Decimal = OVERTIME_MULTIPLIER
    holiday_multiplier: Decimal = HOLIDAY_MULTIPLIER
    night_window_start: time = NIGHT_WINDOW_START
    night_window_end: time = NIGHT_WINDOW_END
    night_differential_rate: Decimal = NIGHT_DIFFERENTIAL_RATE
    holidays: frozenset = frozenset()
    sss_table: Tuple[SssBracket, ...] = SSS_TABLE
    philhealth_rate: Decimal = PHILHEALTH_PREMIUM_RATE
    philhealth_employee_share: Decimal = PHILHEALTH_EMPLOYEE_SHARE
    philhealth_floor: Decimal = PHILHEALTH_FLOOR
    philhealth_ceiling: Decimal = PHILHEALTH_CEILING
    pagibig_rate: Decimal = PAGIBIG_RATE
    pagibig_low_rate: Decimal = PAGIBIG_LOW_RATE
    pagibig_low_threshold: Decimal = PAGIBIG_LOW_THRESHOLD
    pagibig_cap: Decimal = PAGIBIG_CAP
    tax_brackets: Tuple[TaxBracket, ...] = PH_TAX_BRACKETS_2024
    fold_month_end_into_week4: bool = False

    def __post_init__(self):
        for attr in ("default_hourly_rate", "overtime_multiplier", "holiday_multiplier",
                     "night_differential_rate"):
            val = getattr(self, attr)
            if isinstance(val, (int, float, str)):
                object.__setattr__(self, attr, Decimal(str(val)))
            _non_negative(getattr(self, attr), attr.replace("_", " "))
        if not isinstance(self.holidays, frozenset):
            object.__setattr__(self, "holidays", frozenset(
                _parse_date(d) if isinstance(d, str) else d for d in self.holidays
            ))

    def with_holidays(self, *days) -> "PayrollPolicy":
        extra = {_parse_date(d) if isinstance(d, str) else d for d in days}
        return replace(self, holidays=self.holidays | frozenset(extra))


# ─── Data Classes ────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class Employee:
    id: str
    last_name: str
    first_name: str
    shift_start: time = DEFAULT_SHIFT_START
    night_shift: bool = False
    hourly_rate: Optional[Decimal] = None
    birthday: Optional[date] = None
    position: str = ""
    status: str = ""
    basic_salary: Optional[Decimal] = None
    address: str = ""
    phone: str = ""
    sss_number: str = ""
    philhealth_number: str = ""
    tin: str = ""
    pagibig_number: str = ""
    supervisor: str = ""
    rice_subsidy: str = ""
    phone_allowance: str = ""
    clothing_allowance: str = ""
    semi_monthly_rate: str = ""

    def __post_init__(self):
        object.__setattr__(self, "id", validate_employee_id(self.id))
        if isinstance(self.shift_start, str):
            object.__setattr__(self, "shift_start", _parse_time(self.shift_start))
        for attr in ("hourly_rate", "basic_salary"):
            val = getattr(self, attr)
            if isinstance(val, (int, float, str)):
                object.__setattr__(self, attr, Decimal(str(val)))
        if isinstance(self.birthday, str):
            object.__setattr__(self, "birthday", _parse_date(self.birthday))

    @property
    def full_name(self) -> str:
        return f"{self.last_name}, {self.first_name}"


@dataclass(frozen=True)
class AttendancePunch:
    employee_id: str
    work_date: date
    time_in: time
    time_out: Optional[time] = None

    def __post_init__(self):
        if isinstance(self.work_date, str):
            object.__setattr__(self, "work_date", _parse_date(self.work_date))
        if isinstance(self.time_in, str):
            object.__setattr__(self, "time_in", _parse_time(self.time_in))
        if isinstance(self.time_out, str):
            object.__setattr__(self, "time_out", _parse_time(self.time_out) if self.time_out.strip() else None)


@dataclass(frozen=True)
class PayPeriod:
    """A (year, month, week-of-month) pay-coverage period."""
    year: int
    month: int
    week: int

    def __post_init__(self):
        max_year = date.today().year + 1
        if not MIN_YEAR <= self.year <= max_year:
            raise InvalidPeriodError(f"Year must be between {MIN_YEAR} and {max_year}")
        if not 1 <= self.month <= 12:
            raise InvalidPeriodError("Month must be between 1-12")
        if not 1 <= self.week <= WEEKS_PER_MONTH:
            raise InvalidPeriodError(f"Week must be between 1-{WEEKS_PER_MONTH}")

    @property
    def label(self) -> str:
        return f"Week {self.week}, Month {self.month}/{self.year}"


@dataclass(frozen=True)
class DayHours:
    work_date: date
    regular_hours: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    night_hours: Decimal = ZERO
    late_minutes: int = 0
    is_holiday: bool = False

    @property
    def hours_worked(self) -> Decimal:
        return self.regular_hours + self.overtime_hours


@dataclass(frozen=True)
class HoursBreakdown:
    employee_id: str
    period: Optional[PayPeriod]
    days: Tuple[DayHours, ...] = ()

    @property
    def regular_hours(self) -> Decimal:
        return sum((d.regular_hours for d in self.days), ZERO)

    @property
    def overtime_hours(self) -> Decimal:
        return sum((d.overtime_hours for d in self.days), ZERO)

    @property
    def night_hours(self) -> Decimal:
        return sum((d.night_hours for d in self.days), ZERO)

    @property
    def holiday_hours(self) -> Decimal:
        return sum((d.regular_hours for d in self.days if d.is_holiday), ZERO)

    @property
    def total_late_minutes(self) -> int:
        return sum(d.late_minutes for d in self.days)

    @property
    def hours_worked(self) -> Decimal:
        return self.regular_hours + self.overtime_hours

    @property
    def days_present(self) -> int:
        return sum(1 for d in self.days if d.hours_worked > 0)


@dataclass(frozen=True)
class GrossWageResult:
    """Gross pay lines. ``total_gross`` is regular + overtime + holiday pay,
    plus the night differential, which is zero for day-shift employees."""
    breakdown: HoursBreakdown
    hourly_rate: Decimal
    regular_pay: Decimal
    overtime_pay: Decimal
    holiday_pay: Decimal
    night_differential_pay: Decimal = ZERO

    @property
    def total_gross(self) -> Decimal:
        return self.regular_pay + self.overtime_pay + self.holiday_pay + self.night_differential_pay


@dataclass(frozen=True)
class Deductions:
    sss: Decimal
    philhealth: Decimal
    pagibig: Decimal
    late: Decimal

    @property
    def total(self) -> Decimal:
        return self.sss + self.philhealth + self.pagibig + self.late


@dataclass(frozen=True)
class PayLine:
    label: str
    amount: Decimal
    is_deduction: bool = False


@dataclass(frozen=True)
class NetWageResult:
    gross: GrossWageResult
    deductions: Deductions
    withholding_tax: Decimal

    @property
    def total_gross(self) -> Decimal:
        return self.gross.total_gross

    @property
    def sss_deduction(self) -> Decimal:
        return self.deductions.sss

    @property
    def philhealth_deduction(self) -> Decimal:
        return self.deductions.philhealth

    @property
    def pagibig_deduction(self) -> Decimal:
        return self.deductions.pagibig

    @property
    def late_deduction(self) -> Decimal:
        return self.deductions.late

    @property
    def total_deductions(self) -> Decimal:
        return self.deductions.total

    @property
    def net_wage(self) -> Decimal:
        return self.total_gross - self.total_deductions - self.withholding_tax

    def lines(self) -> List[PayLine]:
        """Every figure of the statement, earnings first."""
        g = self.gross
        return [
            PayLine("Regular Pay", g.regular_pay),
            PayLine("Overtime Pay", g.overtime_pay),
            PayLine("Holiday Premium Pay", g.holiday_pay),
            PayLine("Night Differential", g.night_differential_pay),
            PayLine("Gross Wage", g.total_gross),
            PayLine("SSS", self.sss_deduction, True),
            PayLine("PhilHealth", self.philhealth_deduction, True),
            PayLine("Pag-IBIG", self.pagibig_deduction, True),
            PayLine("Late Penalties", self.late_deduction, True),
            PayLine("Total Deductions", self.total_deductions, True),
            PayLine("Withholding Tax", self.withholding_tax, True),
            PayLine("NET WAGE", self.net_wage),
        ]


# ─── Data Sources ────────────────────────────────────────────────────────────
class EmployeeDirectory:
    def __init__(self, employees: Iterable[Employee] = ()):
        index: Dict[str, Employee] = {}
        for emp in employees:
            if emp.id in index:
                logger.warning("Duplicate employee id %s; keeping first record", emp.id)
                continue
            index[emp.id] = emp
        self._by_id: Mapping[str, Employee] = MappingProxyType(index)

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, employee_id: str) -> Optional[Employee]:
        return self._by_id.get(employee_id)

    def find_by_id(self, employee_id: str) -> Employee:
        emp = self.get(employee_id)
        if emp is None:
            raise EmployeeNotFoundError(f"Employee with ID {employee_id} not found")
        return emp

    def all(self) -> List[Employee]:
        return sorted(self._by_id.values(), key=lambda e: int(e.id))


class AttendanceStore:
    def __init__(self, punches: Iterable[AttendancePunch] = ()):
        index: Dict[Tuple[str, date], List[AttendancePunch]] = {}
        count = 0
        for punch in punches:
            index.setdefault((punch.employee_id, punch.work_date), []).append(punch)
            count += 1
        self._index: Mapping[Tuple[str, date], Tuple[AttendancePunch, ...]] = MappingProxyType(
            {key: tuple(rows) for key, rows in index.items()}
        )
        self._employee_ids = frozenset(emp_id for emp_id, _ in index)
        self._count = count

    def __len__(self) -> int:
        return self._count

    def has_employee(self, employee_id: str) -> bool:
        return employee_id in self._employee_ids

    def punches_for(self, employee_id: str, dates: Sequence[date]) -> Tuple[AttendancePunch, ...]:
        return tuple(
            punch
            for day in sorted(dates)
            for punch in self._index.get((employee_id, day), ())
        )


@dataclass(frozen=True)
class PayrollSnapshot:
    directory: EmployeeDirectory = field(default_factory=EmployeeDirectory)
    attendance: AttendanceStore = field(default_factory=AttendanceStore)


def _read_rows(path: Path) -> List[Dict[str, str]]:
    with open(path, newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        return [
            {(k or "").strip(): (v or "").strip() for k, v in row.items()}
            for row in reader
        ]


# MotorPH record columns carried through as text for the details view
EMPLOYEE_DETAIL_COLUMNS = {
    "Address": "address",
    "Phone Number": "phone",
    "SSS #": "sss_number",
    "Philhealth #": "philhealth_number",
    "TIN #": "tin",
    "Pag-ibig #": "pagibig_number",
    "Immediate Supervisor": "supervisor",
    "Rice Subsidy": "rice_subsidy",
    "Phone Allowance": "phone_allowance",
    "Clothing Allowance": "clothing_allowance",
    "Gross Semi-monthly Rate": "semi_monthly_rate",
}


def load_employees_csv(path: Path) -> EmployeeDirectory:
    """Load employee master records. Incomplete rows are skipped."""
    employees = []
    for line_no, row in enumerate(_read_rows(Path(path)), start=2):
        try:
            if not (row.get("Employee #") and row.get("Last Name") and row.get("First Name")):
                raise ValueError("missing employee number or name")
            employees.append(Employee(
                id=row["Employee #"],
                last_name=row["Last Name"],
                first_name=row["First Name"],
                shift_start=row.get("Shift Start") or DEFAULT_SHIFT_START,
                night_shift=_parse_flag(row.get("Night Shift", "")),
                hourly_rate=_parse_amount(row["Hourly Rate"]) if row.get("Hourly Rate") else None,
                birthday=row.get("Birthday") or None,
                position=row.get("Position", ""),
                status=row.get("Status", ""),
                basic_salary=_parse_amount(row["Basic Salary"]) if row.get("Basic Salary") else None,
                **{attr: row.get(column, "") for column, attr in EMPLOYEE_DETAIL_COLUMNS.items()},
            ))
        except ValueError as e:
            logger.warning("Skipping incomplete employee record at line %d: %s", line_no, e)
    directory = EmployeeDirectory(employees)
    logger.info("Loaded %d employees from %s", len(directory), path)
    return directory


def load_attendance_csv(path: Path) -> AttendanceStore:
    punches = []
    for line_no, row in enumerate(_read_rows(Path(path)), start=2):
        try:
            punches.append(AttendancePunch(
                employee_id=validate_employee_id(row.get("Employee #", "")),
                work_date=_parse_date(row.get("Date", "")),
                time_in=_parse_time(row.get("Log In", "")),
                time_out=row.get("Log Out", ""),
            ))
        except ValueError as e:
            logger.warning("Skipping attendance record at line %d: %s", line_no, e)
    store = AttendanceStore(punches)
    logger.info("Loaded %d attendance records from %s", len(store), path)
    return store


class PayrollData:
    """Loads the CSV sources and hands out immutable snapshots."""

    def __init__(self, employees_path: Path = EMPLOYEES_CSV,
                 attendance_path: Path = ATTENDANCE_CSV,
                 max_attempts: int = LOAD_ATTEMPTS):
        self.employees_path = Path(employees_path)
        self.attendance_path = Path(attendance_path)
        self.max_attempts = max_attempts
        self._lock = threading.Lock()
        self._snapshot: Optional[PayrollSnapshot] = None

    def _read(self) -> PayrollSnapshot:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return PayrollSnapshot(
                    directory=load_employees_csv(self.employees_path),
                    attendance=load_attendance_csv(self.attendance_path),
                )
            except (UnicodeDecodeError, csv.Error) as e:
                raise DataLoadError(f"Unreadable payroll data file: {e}") from e
            except OSError as e:
                last_error = e
                logger.warning("Load attempt %d/%d failed: %s", attempt, self.max_attempts, e)
        raise DataLoadError(
            f"Failed to load payroll data after {self.max_attempts} attempts: {last_error}"
        ) from last_error

    def load(self) -> PayrollSnapshot:
        snapshot = self._read()
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    reload = load

    @property
    def snapshot(self) -> PayrollSnapshot:
        with self._lock:
            if self._snapshot is None:
                raise DataLoadError("Payroll data has not been loaded")
            return self._snapshot


# ─── Period Resolution ───────────────────────────────────────────────────────
def resolve_period(period: PayPeriod, policy: Optional[PayrollPolicy] = None) -> Tuple[date, ...]:
    """Calendar dates covered by ``period``, clipped to the month."""
    policy = policy or PayrollPolicy()
    days_in_month = calendar.monthrange(period.year, period.month)[1]
    first = DAYS_PER_WEEK * (period.week - 1) + 1
    last = min(DAYS_PER_WEEK * period.week, days_in_month)
    if period.week == WEEKS_PER_MONTH and policy.fold_month_end_into_week4:
        last = days_in_month
    if first > last:
        raise InvalidPeriodError(f"{period.label} has no days")
    return tuple(date(period.year, period.month, day) for day in range(first, last + 1))


# ─── Hours Aggregation ───────────────────────────────────────────────────────
def _minute_of_day(t: time) -> int:
    return t.hour * 60 + t.minute


def _late_minutes(time_in: time, shift_start: time, night_shift: bool = False) -> int:
    delta = _minute_of_day(time_in) - _minute_of_day(shift_start)
    if not night_shift:
        return max(0, delta)
    # Night shift: a time-in past midnight belongs to the shift that started the day before.
    delta %= MINUTES_PER_DAY
    return delta if delta <= MINUTES_PER_DAY // 2 else 0


def _night_minutes(start: datetime, end: datetime, policy: PayrollPolicy) -> int:
    total = 0.0
    day = start.date() - timedelta(days=1)
    while day <= end.date():
        window_start = datetime.combine(day, policy.night_window_start)
        window_end = datetime.combine(day, policy.night_window_end)
        if window_end <= window_start:
            window_end += timedelta(days=1)
        overlap = (min(end, window_end) - max(start, window_start)).total_seconds()
        if overlap > 0:
            total += overlap
        day += timedelta(days=1)
    return int(total // 60)


def _day_hours(punch: AttendancePunch, employee: Employee, policy: PayrollPolicy) -> DayHours:
    late = _late_minutes(punch.time_in, employee.shift_start, employee.night_shift)
    is_holiday = punch.work_date in policy.holidays
    if punch.time_out is None:
        logger.warning("Punch for %s on %s has no time-out; counting zero hours",
                       punch.employee_id, punch.work_date)
        return DayHours(punch.work_date, late_minutes=late, is_holiday=is_holiday)

    start = datetime.combine(punch.work_date, punch.time_in)
    end = datetime.combine(punch.work_date, punch.time_out)
    if end < start:
        end += timedelta(days=1)
    worked = int((end - start).total_seconds() // 60)
    regular = min(worked, policy.standard_shift_minutes)
    overtime = min(max(0, worked - policy.standard_shift_minutes), policy.max_daily_overtime_minutes)
    return DayHours(
        work_date=punch.work_date,
        regular_hours=Decimal(regular) / MINUTES_PER_HOUR,
        overtime_hours=Decimal(overtime) / MINUTES_PER_HOUR,
        night_hours=Decimal(_night_minutes(start, end, policy)) / MINUTES_PER_HOUR,
        late_minutes=late,
        is_holiday=is_holiday,
    )


def aggregate_hours(
    employee: Employee,
    dates: Sequence[date],
    attendance: AttendanceStore,
    policy: Optional[PayrollPolicy] = None,
    period: Optional[PayPeriod] = None,
) -> HoursBreakdown:
    """Per-day worked, overtime, night and late figures for ``dates``.

    Days without a punch count as absences and contribute zero hours.
    """
    policy = policy or PayrollPolicy()
    if not attendance.has_employee(employee.id):
        raise EmployeeNotFoundError(f"No attendance records for employee {employee.id}")

    by_day: Dict[date, AttendancePunch] = {}
    for punch in attendance.punches_for(employee.id, dates):
        if punch.work_date in by_day:
            logger.warning("Multiple punches for %s on %s; using the first",
                           employee.id, punch.work_date)
            continue
        by_day[punch.work_date] = punch

    days = []
    for day in sorted(dates):
        punch = by_day.get(day)
        if punch is None:
            days.append(DayHours(day, is_holiday=day in policy.holidays))
        else:
            days.append(_day_hours(punch, employee, policy))
    return HoursBreakdown(employee_id=employee.id, period=period, days=tuple(days))


# ─── Gross Wage ──────────────────────────────────────────────────────────────
def calculate_gross(
    breakdown: HoursBreakdown,
    hourly_rate: Decimal,
    policy: Optional[PayrollPolicy] = None,
    night_shift: bool = False,
) -> GrossWageResult:
    policy = policy or PayrollPolicy()
    if breakdown is None:
        raise InvalidArgumentError("Hours breakdown is required")
    rate = _non_negative(hourly_rate, "Hourly rate")
    regular = _non_negative(breakdown.regular_hours, "Regular hours")
    overtime = _non_negative(breakdown.overtime_hours, "Overtime hours")
    holiday = _non_negative(breakdown.holiday_hours, "Holiday hours")
    night = _non_negative(breakdown.night_hours, "Night hours") if night_shift else ZERO

    return GrossWageResult(
        breakdown=breakdown,
        hourly_rate=rate,
        regular_pay=regular * rate,
        overtime_pay=overtime * rate * policy.overtime_multiplier,
        holiday_pay=holiday * rate * policy.holiday_multiplier,
        night_differential_pay=night * rate * policy.night_differential_rate,
    )


# ─── Deductions ──────────────────────────────────────────────────────────────
def sss_contribution(gross: Decimal, table: Sequence[SssBracket] = SSS_TABLE) -> Decimal:
    gross = _non_negative(gross, "Gross pay")
    for bracket in sorted(table, key=lambda b: b.lower_bound, reverse=True):
        if gross >= bracket.lower_bound:
            return bracket.contribution
    return ZERO


def philhealth_contribution(gross: Decimal, policy: Optional[PayrollPolicy] = None) -> Decimal:
    policy = policy or PayrollPolicy()
    gross = _non_negative(gross, "Gross pay")
    base = min(max(gross, policy.philhealth_floor), policy.philhealth_ceiling)
    return base * policy.philhealth_rate * policy.philhealth_employee_share


def pagibig_contribution(gross: Decimal, policy: Optional[PayrollPolicy] = None) -> Decimal:
    policy = policy or PayrollPolicy()
    gross = _non_negative(gross, "Gross pay")
    rate = policy.pagibig_low_rate if gross <= policy.pagibig_low_threshold else policy.pagibig_rate
    return min(gross * rate, policy.pagibig_cap)


def late_penalty(total_late_minutes, hourly_rate: Decimal) -> Decimal:
    minutes = _non_negative(total_late_minutes, "Late minutes")
    return minutes * _non_negative(hourly_rate, "Hourly rate") / MINUTES_PER_HOUR


def calculate_deductions(
    total_gross: Decimal,
    total_late_minutes: int,
    hourly_rate: Decimal,
    policy: Optional[PayrollPolicy] = None,
) -> Deductions:
    """Statutory contributions plus the late penalty.

    Contributions are taken on the period's gross as-is.
    """
    policy = policy or PayrollPolicy()
    gross = _non_negative(total_gross, "Gross pay")
    return Deductions(
        sss=sss_contribution(gross, policy.sss_table),
        philhealth=philhealth_contribution(gross, policy),
        pagibig=pagibig_contribution(gross, policy),
        late=late_penalty(total_late_minutes, hourly_rate),
    )


# ─── Withholding Tax ─────────────────────────────────────────────────────────
def withholding_tax(
    taxable_income: Decimal,
    brackets: Sequence[TaxBracket] = PH_TAX_BRACKETS_2024,
) -> Decimal:
    """Progressive tax: base of the highest bracket reached plus the marginal
    rate on the excess over its lower bound."""
    income = _non_negative(taxable_income, "Taxable income")
    for bracket in sorted(brackets, key=lambda b: b.lower_bound, reverse=True):
        if income >= bracket.lower_bound:
            return bracket.base_tax + (income - bracket.lower_bound) * bracket.rate
    return ZERO


def tax_on_gross(
    gross: Optional[GrossWageResult],
    brackets: Sequence[TaxBracket] = PH_TAX_BRACKETS_2024,
) -> Decimal:
    # Taxable base is gross before statutory deductions.
    if gross is None:
        raise InvalidArgumentError("Gross wage cannot be None")
    return withholding_tax(gross.total_gross, brackets)


# ─── Net Wage ────────────────────────────────────────────────────────────────
def assemble_net(gross: GrossWageResult, deductions: Deductions, tax: Decimal) -> NetWageResult:
    if gross is None or deductions is None:
        raise InvalidArgumentError("Gross wage and deductions are required")
    return NetWageResult(
        gross=gross,
        deductions=deductions,
        withholding_tax=_non_negative(tax, "Withholding tax"),
    )


# ─── Payroll Calculator ──────────────────────────────────────────────────────
class PayrollCalculator:
    def __init__(self, snapshot: PayrollSnapshot, policy: Optional[PayrollPolicy] = None):
        if snapshot is None:
            raise InvalidArgumentError("Payroll snapshot is required")
        self.snapshot = snapshot
        self.policy = policy or PayrollPolicy()

    def employee(self, employee_id: str) -> Employee:
        return self.snapshot.directory.find_by_id(validate_employee_id(employee_id))

    def employees(self) -> List[Employee]:
        return self.snapshot.directory.all()

    def hourly_rate(self, employee: Employee) -> Decimal:
        if employee.hourly_rate is not None:
            return employee.hourly_rate
        return self.policy.default_hourly_rate

    def hours_for(self, employee_id: str, year: int, month: int, week: int) -> HoursBreakdown:
        emp = self.employee(employee_id)
        period = PayPeriod(year, month, week)
        dates = resolve_period(period, self.policy)
        return aggregate_hours(emp, dates, self.snapshot.attendance, self.policy, period)

    def gross_wage(self, employee_id: str, year: int, month: int, week: int) -> GrossWageResult:
        emp = self.employee(employee_id)
        breakdown = self.hours_for(emp.id, year, month, week)
        result = calculate_gross(breakdown, self.hourly_rate(emp), self.policy, emp.night_shift)
        logger.info("Gross wage for %s (%s): %s", emp.id, breakdown.period.label,
                    result.total_gross.quantize(PRECISION, rounding=ROUND_HALF_UP))
        return result

    def net_wage(self, employee_id: str, year: int, month: int, week: int) -> NetWageResult:
        gross = self.gross_wage(employee_id, year, month, week)
        deductions = calculate_deductions(
            gross.total_gross, gross.breakdown.total_late_minutes, gross.hourly_rate, self.policy,
        )
        tax = tax_on_gross(gross, self.policy.tax_brackets)
        result = assemble_net(gross, deductions, tax)
        logger.info("Net wage for %s: %s", employee_id,
                    result.net_wage.quantize(PRECISION, rounding=ROUND_HALF_UP))
        return result


# ─── Presentation ────────────────────────────────────────────────────────────
def format_php(amount: Decimal) -> str:
    return f"PHP {amount.quantize(PRECISION, rounding=ROUND_HALF_UP):,.2f}"


def format_hours(hours: Decimal) -> str:
    return f"{hours.quantize(PRECISION, rounding=ROUND_HALF_UP)} hrs"


def render_employee(emp: Employee) -> str:
    rows = [
        ("Employee ID", emp.id),
        ("Name", emp.full_name),
        ("Birthday", emp.birthday.strftime("%m/%d/%Y") if emp.birthday else ""),
        ("Address", emp.address),
        ("Phone Number", emp.phone),
        ("SSS #", emp.sss_number),
        ("PhilHealth #", emp.philhealth_number),
        ("TIN #", emp.tin),
        ("Pag-IBIG #", emp.pagibig_number),
        ("Position", emp.position),
        ("Status", emp.status),
        ("Supervisor", emp.supervisor),
        ("Basic Salary", format_php(emp.basic_salary) if emp.basic_salary is not None else "-"),
        ("Rice Subsidy", emp.rice_subsidy),
        ("Phone Allowance", emp.phone_allowance),
        ("Clothing Allowance", emp.clothing_allowance),
        ("Semi-monthly Rate", emp.semi_monthly_rate),
        ("Shift Start", emp.shift_start.strftime("%H:%M")),
        ("Night Shift", "Yes" if emp.night_shift else "No"),
        ("Hourly Rate", format_php(emp.hourly_rate) if emp.hourly_rate is not None else "-"),
    ]
    return "\n".join(f"  {label:<20}: {value}" for label, value in rows)


def render_gross(result: GrossWageResult) -> str:
    b = result.breakdown
    out = [
        "\n=== GROSS WAGE DETAILS ===",
        f"  {b.period.label if b.period else ''}",
        f"{'─' * 45}",
        f"  {'Regular Hours':<25}: {format_hours(b.regular_hours)}",
        f"  {'Overtime Hours':<25}: {format_hours(b.overtime_hours)}",
        f"  {'Regular Pay':<25}: {format_php(result.regular_pay)}",
        f"  {'Overtime Pay':<25}: {format_php(result.overtime_pay)}",
        f"  {'Holiday Premium Pay':<25}: {format_php(result.holiday_pay)}",
        f"  {'Night Differential':<25}: {format_php(result.night_differential_pay)}",
        f"  {'Total Gross Wage':<25}: {format_php(result.total_gross)}",
    ]
    return "\n".join(out)


def render_net(emp: Employee, result: NetWageResult) -> str:
    b = result.gross.breakdown
    out = [
        "\n=== PAYROLL RESULTS ===",
        f"  {b.period.label if b.period else ''}",
        f"{'─' * 45}",
        f"  {'Employee ID':<20}: {emp.id}",
        f"  {'Employee Name':<20}: {emp.full_name}",
        f"  {'Regular Hours':<20}: {format_hours(b.regular_hours)}",
        f"  {'Overtime Hours':<20}: {format_hours(b.overtime_hours)}",
        f"  {'Late Minutes':<20}: {b.total_late_minutes}",
        f"{'─' * 45}",
    ]
    for line in result.lines():
        if line.label == "SSS":
            out.append("  Deductions:")
        if line.label == "NET WAGE":
            out.append(f"{'─' * 45}")
        out.append(f"  {line.label:<20}: {format_php(line.amount)}")
    return "\n".join(out)


# ─── CLI ─────────────────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="motorph-payroll", description="MotorPH Payroll System")
    parser.add_argument("--employees", default=str(EMPLOYEES_CSV))
    parser.add_argument("--attendance", default=str(ATTENDANCE_CSV))
    parser.add_argument("--holiday", action="append", default=[], metavar="YYYY-MM-DD",
                        help="Holiday date (repeatable)")
    parser.add_argument("--default-rate", default=None, help="Hourly rate when the record has none")
    parser.add_argument("--overtime-multiplier", default=None)
    parser.add_argument("--night-differential", default=None)
    parser.add_argument("--fold-month-end", action="store_true",
                        help="Week 4 runs to the end of the month")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("employees", help="List employees")

    p = sub.add_parser("employee", help="Show employee details")
    p.add_argument("employee_id")

    for name, help_text in (("gross", "Calculate gross wage"), ("net", "Calculate net wage")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("employee_id")
        p.add_argument("--year", type=int, default=date.today().year)
        p.add_argument("--month", type=int, required=True)
        p.add_argument("--week", type=int, required=True)

    return parser


def policy_from_args(args: argparse.Namespace) -> PayrollPolicy:
    overrides = {"fold_month_end_into_week4": args.fold_month_end}
    if args.default_rate is not None:
        overrides["default_hourly_rate"] = Decimal(args.default_rate)
    if args.overtime_multiplier is not None:
        overrides["overtime_multiplier"] = Decimal(args.overtime_multiplier)
    if args.night_differential is not None:
        overrides["night_differential_rate"] = Decimal(args.night_differential)
    return PayrollPolicy(**overrides).with_holidays(*args.holiday)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    try:
        policy = policy_from_args(args)
        data = PayrollData(Path(args.employees), Path(args.attendance))
        calc = PayrollCalculator(data.load(), policy)

        if args.command == "employees":
            print(f"{'ID':<10} {'Last Name':<20} {'First Name':<20}")
            print("─" * 50)
            for emp in calc.employees():
                print(f"{emp.id:<10} {emp.last_name:<20} {emp.first_name:<20}")

        elif args.command == "employee":
            print("\n=== EMPLOYEE DETAILS ===")
            print(render_employee(calc.employee(args.employee_id)))

        elif args.command == "gross":
            emp = calc.employee(args.employee_id)
            print(f"Employee: {emp.full_name}")
            print(render_gross(calc.gross_wage(emp.id, args.year, args.month, args.week)))

        elif args.command == "net":
            emp = calc.employee(args.employee_id)
            print(render_net(emp, calc.net_wage(emp.id, args.year, args.month, args.week)))

    except (PayrollError, InvalidOperation) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
