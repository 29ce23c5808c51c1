import asyncio
import calendar
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from config import BATCH_CONCURRENCY, REFERENCE_TZ
from models.errors import DataUnavailable, InvalidRange
from models.schema import (
    BatchItem,
    DayStatus,
    DaySummary,
    DuplicateEntrancePolicy,
    LunchPolicy,
    MonthSummary,
    PunchEvent,
    PunchKind,
    RawPunch,
    TimesheetConfig,
    WorkInterval,
)
from utils.helper import fetch_punches

MIN_YEAR = 1900
MAX_YEAR = 2100

FetchFn = Callable[[str, datetime, datetime], List[RawPunch]]


def _check_year(year: int) -> None:
    if year < MIN_YEAR or year > MAX_YEAR:
        raise InvalidRange(f"year out of range: {year}")


def parse_day(iso_date: str) -> date:
    try:
        day = datetime.strptime(iso_date, "%Y-%m-%d").date()
    except (TypeError, ValueError) as exc:
        raise InvalidRange(f"invalid date: {iso_date!r}") from exc
    # strptime also takes unpadded fields
    if day.isoformat() != iso_date:
        raise InvalidRange(f"invalid date: {iso_date!r}")
    _check_year(day.year)
    return day


def check_month(year: int, month: int) -> None:
    _check_year(year)
    if month < 1 or month > 12:
        raise InvalidRange(f"month out of range: {month}")


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, time(0, 0), tzinfo=REFERENCE_TZ)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=REFERENCE_TZ)
    return start, end


def month_days(year: int, month: int) -> List[date]:
    last_day = calendar.monthrange(year, month)[1]
    return [date(year, month, d) for d in range(1, last_day + 1)]


def to_utc(value: datetime) -> datetime:
    # the store keeps UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime) -> datetime:
    return to_utc(value).astimezone(REFERENCE_TZ)


def normalize_punches(rows: Iterable[RawPunch], day: date) -> List[PunchEvent]:
    """Ordered, de-duplicated events of one calendar day in the reference timezone.

    Rows whose local date is not ``day`` are dropped. Ordering and duplicates are
    decided on the UTC instant, so a repeated wall-clock hour stays distinct.
    On equal instants entrances sort before exits.
    """
    seen = set()
    events = []
    for row in rows:
        local = to_local(row.timestamp)
        if local.date() != day:
            continue
        key = (to_utc(row.timestamp), row.kind)
        if key in seen:
            continue
        seen.add(key)
        events.append(PunchEvent(
            employee_id=row.employee_id,
            kind=row.kind,
            timestamp=local,
            company_id=row.company_id,
        ))
    events.sort(key=lambda e: (to_utc(e.timestamp), e.kind != PunchKind.ENTRANCE))
    return events


def interval_minutes(entrance: datetime, exit_: datetime) -> int:
    seconds = (to_utc(exit_) - to_utc(entrance)).total_seconds()
    return int((seconds + 30) // 60)


def pair_events(events: List[PunchEvent], config: TimesheetConfig) -> Tuple[List[WorkInterval], List[PunchEvent]]:
    """Match entrances to exits left to right.

    Returns the closed intervals and the punches that could not be paired.
    """
    pairs = []
    anomalies = []
    duplicate_entrance = False
    # None while awaiting an entrance
    open_entrance = None

    for event in events:
        if open_entrance is None:
            if event.kind == PunchKind.ENTRANCE:
                open_entrance = event
            else:
                logging.warning(f"Orphan exit at {event.timestamp.isoformat()} for employee_id: {event.employee_id}")
                anomalies.append(event)
        elif event.kind == PunchKind.ENTRANCE:
            logging.warning(f"Consecutive entrance at {event.timestamp.isoformat()} for employee_id: {event.employee_id}")
            duplicate_entrance = True
            anomalies.append(open_entrance)
            open_entrance = event
        elif to_utc(event.timestamp) <= to_utc(open_entrance.timestamp):
            anomalies.extend([open_entrance, event])
            open_entrance = None
        else:
            pairs.append(WorkInterval(
                entrance=open_entrance.timestamp,
                exit=event.timestamp,
                minutes=interval_minutes(open_entrance.timestamp, event.timestamp),
            ))
            open_entrance = None

    if open_entrance is not None:
        logging.warning(f"Missing exit after {open_entrance.timestamp.isoformat()} for employee_id: {open_entrance.employee_id}")
        anomalies.append(open_entrance)

    if duplicate_entrance and config.duplicate_entrance_policy == DuplicateEntrancePolicy.FLAG:
        return [], list(events)
    return pairs, anomalies


def lunch_deduction(pairs: List[WorkInterval], config: TimesheetConfig) -> int:
    gross = sum(p.minutes for p in pairs)
    if gross <= config.lunch_threshold_minutes:
        return 0
    if config.lunch_policy == LunchPolicy.NATURAL_BREAK and len(pairs) > 1:
        return 0
    return min(config.lunch_deduction_minutes, gross)


def build_day(day: date, events: List[PunchEvent], config: TimesheetConfig) -> DaySummary:
    if not events:
        return DaySummary(day=day, status=DayStatus.SEM_REGISTRO)

    pairs, anomalies = pair_events(events, config)
    gross = sum(p.minutes for p in pairs)
    deduction = lunch_deduction(pairs, config)
    status = DayStatus.PAR_INCOMPLETO if anomalies else DayStatus.OK

    return DaySummary(
        day=day,
        status=status,
        events=events,
        pairs=pairs,
        anomalies=anomalies,
        gross_minutes=gross,
        lunch_deduction_minutes=deduction,
        lunch_applied=deduction > 0,
        net_minutes=max(0, gross - deduction),
    )


def _lateness(summary: DaySummary, config: TimesheetConfig) -> int:
    if config.shift_start is None:
        return 0
    first = next((e for e in summary.events if e.kind == PunchKind.ENTRANCE), None)
    if first is None:
        return 0
    punch_minutes = first.timestamp.hour * 60 + first.timestamp.minute
    start_minutes = config.shift_start.hour * 60 + config.shift_start.minute
    if punch_minutes > start_minutes + config.lateness_tolerance_minutes:
        return punch_minutes - start_minutes
    return 0


def aggregate_day(summary: DaySummary, config: TimesheetConfig) -> DaySummary:
    """Fill the schedule-derived fields of a paired day."""
    expected = config.expected_minutes_per_day if summary.day.weekday() in config.work_weekdays else 0
    net = summary.net_minutes
    has_punches = summary.status != DayStatus.SEM_REGISTRO

    return summary.model_copy(update={
        "expected_minutes": expected,
        "overtime_minutes": max(0, net - expected),
        "lateness_minutes": _lateness(summary, config),
        "shortfall_minutes": max(0, expected - net) if has_punches else 0,
        "absence_minutes": 0 if has_punches else expected,
        "balance_minutes": net - expected,
    })


def _fetch(fetch: FetchFn, employee_id: str, start: datetime, end: datetime) -> List[RawPunch]:
    try:
        rows = fetch(employee_id, start, end)
        return [row for row in rows if row.employee_id == employee_id]
    except Exception as exc:
        logging.error(f"Punch fetch failed for employee_id: {employee_id}: {exc}")
        raise DataUnavailable(employee_id, str(exc)) from exc


def compute_daily(employee_id: str, iso_date: str, config: Optional[TimesheetConfig] = None,
                  fetch: Optional[FetchFn] = None) -> DaySummary:
    day = parse_day(iso_date)
    config = config or TimesheetConfig()
    start, end = day_bounds(day)
    rows = _fetch(fetch or fetch_punches, employee_id, start, end)
    return aggregate_day(build_day(day, normalize_punches(rows, day), config), config)


def summarize_month(employee_id: str, year: int, month: int, days: List[DaySummary]) -> MonthSummary:
    return MonthSummary(
        employee_id=employee_id,
        year=year,
        month=month,
        days=days,
        total_minutes=sum(d.net_minutes for d in days),
        worked_days=sum(1 for d in days if d.net_minutes > 0),
        bank_balance_minutes=sum(d.balance_minutes for d in days),
        expected_minutes=sum(d.expected_minutes for d in days),
        overtime_minutes=sum(d.overtime_minutes for d in days),
        lateness_minutes=sum(d.lateness_minutes for d in days),
        shortfall_minutes=sum(d.shortfall_minutes for d in days),
        absence_minutes=sum(d.absence_minutes for d in days),
        anomaly_days=sum(1 for d in days if d.status == DayStatus.PAR_INCOMPLETO),
    )


def compute_monthly(employee_id: str, year: int, month: int, config: Optional[TimesheetConfig] = None,
                    fetch: Optional[FetchFn] = None) -> MonthSummary:
    check_month(year, month)
    config = config or TimesheetConfig()
    days = month_days(year, month)
    start = day_bounds(days[0])[0]
    end = day_bounds(days[-1])[1]
    rows = _fetch(fetch or fetch_punches, employee_id, start, end)
    if not rows:
        # no punches at all: nothing is owed either
        config = config.model_copy(update={"expected_minutes_per_day": 0})

    by_day: Dict[date, List[RawPunch]] = defaultdict(list)
    for row in rows:
        by_day[to_local(row.timestamp).date()].append(row)

    summaries = [
        aggregate_day(build_day(day, normalize_punches(by_day.get(day, []), day), config), config)
        for day in days
    ]
    return summarize_month(employee_id, year, month, summaries)


def total_minutes_for_month(employee_id: str, year: int, month: int, config: Optional[TimesheetConfig] = None,
                            fetch: Optional[FetchFn] = None) -> int:
    return compute_monthly(employee_id, year, month, config, fetch).total_minutes


async def compute_monthly_batch(employee_ids: List[str], year: int, month: int,
                                config: Optional[TimesheetConfig] = None, fetch: Optional[FetchFn] = None,
                                concurrency: int = BATCH_CONCURRENCY) -> List[BatchItem]:
    """One MonthSummary per distinct employee, computed independently.

    A storage failure only marks that employee's item; peers still complete.
    """
    check_month(year, month)
    config = config or TimesheetConfig()
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run_one(employee_id: str) -> BatchItem:
        async with semaphore:
            try:
                summary = await asyncio.to_thread(compute_monthly, employee_id, year, month, config, fetch)
            except DataUnavailable as exc:
                return BatchItem(employee_id=employee_id, error=type(exc).__name__, detail=str(exc))
        return BatchItem(employee_id=employee_id, summary=summary)

    unique_ids = list(dict.fromkeys(employee_ids))
    items = await asyncio.gather(*(run_one(employee_id) for employee_id in unique_ids))
    failed = sum(1 for item in items if item.error)
    logging.info(f"Batch {year}-{month:02d}: {len(items)} employees, {failed} failed")
    return list(items)
