import pytest
from datetime import datetime, date, time, timedelta, timezone

from config import REFERENCE_TZ
from main import compute_daily, normalize_punches
from models.errors import DataUnavailable, InvalidRange
from models.schema import DayStatus, DuplicateEntrancePolicy, LunchPolicy, PunchKind, RawPunch, TimesheetConfig
from utils.helper import PunchStoreError, insert_punch, mock_punches

DAY = date(2025, 11, 3)


def setup_function():
    mock_punches.clear()


def at(hour, minute, day=DAY, second=0):
    return datetime.combine(day, time(hour, minute, second), tzinfo=REFERENCE_TZ)


def punch(kind, timestamp, employee_id="c1"):
    insert_punch({"employee_id": employee_id, "kind": kind, "timestamp": timestamp, "company_id": "e1"})


def entrance(hour, minute, **kwargs):
    punch("entrada", at(hour, minute, **kwargs))


def exit_(hour, minute, **kwargs):
    punch("saida", at(hour, minute, **kwargs))


def test_no_punches():
    summary = compute_daily("c1", "2025-11-03")

    assert summary.status == DayStatus.SEM_REGISTRO
    assert summary.net_minutes == 0
    assert summary.pairs == []


def test_punched_lunch_is_not_deducted_again():
    exit_(17, 53)
    entrance(13, 0)
    exit_(12, 0)
    entrance(8, 0)

    summary = compute_daily("c1", "2025-11-03", TimesheetConfig(lunch_threshold_minutes=0, lunch_deduction_minutes=60))

    assert [p.minutes for p in summary.pairs] == [240, 293]
    assert summary.gross_minutes == 533
    assert summary.lunch_deduction_minutes == 0
    assert summary.lunch_applied is False
    assert summary.net_minutes == 533
    assert summary.status == DayStatus.OK


def test_always_policy_deducts_even_with_punched_lunch():
    entrance(8, 0)
    exit_(12, 0)
    entrance(13, 0)
    exit_(17, 53)

    summary = compute_daily("c1", "2025-11-03", TimesheetConfig(lunch_policy=LunchPolicy.ALWAYS))

    assert summary.lunch_deduction_minutes == 60
    assert summary.net_minutes == 473


def test_single_pair_gets_lunch_deduction():
    entrance(8, 0)
    exit_(17, 0)

    summary = compute_daily("c1", "2025-11-03")

    assert summary.gross_minutes == 540
    assert summary.lunch_applied is True
    assert summary.net_minutes == 480
    assert summary.status == DayStatus.OK


def test_lunch_threshold():
    entrance(8, 0)
    exit_(12, 0)

    summary = compute_daily("c1", "2025-11-03", TimesheetConfig(lunch_threshold_minutes=360))

    assert summary.lunch_deduction_minutes == 0
    assert summary.net_minutes == 240


def test_lunch_deduction_never_goes_negative():
    entrance(8, 0)
    exit_(8, 30)

    summary = compute_daily("c1", "2025-11-03")

    assert summary.lunch_deduction_minutes == 30
    assert summary.net_minutes == 0


def test_unmatched_entrance():
    entrance(8, 0)

    summary = compute_daily("c1", "2025-11-03")

    assert summary.status == DayStatus.PAR_INCOMPLETO
    assert summary.pairs == []
    assert summary.net_minutes == 0
    assert len(summary.anomalies) == 1


def test_orphan_exit_keeps_complete_pairs():
    exit_(7, 0)
    entrance(9, 0)
    exit_(17, 0)

    summary = compute_daily("c1", "2025-11-03")

    assert summary.status == DayStatus.PAR_INCOMPLETO
    assert [p.minutes for p in summary.pairs] == [480]
    assert summary.net_minutes == 420
    assert summary.anomalies[0].kind == PunchKind.EXIT


def test_consecutive_entrance_replaces_open_one():
    entrance(8, 0)
    entrance(8, 30)
    exit_(12, 30)

    summary = compute_daily("c1", "2025-11-03", TimesheetConfig(lunch_deduction_minutes=0))

    assert summary.status == DayStatus.PAR_INCOMPLETO
    assert [p.minutes for p in summary.pairs] == [240]
    assert summary.pairs[0].entrance == at(8, 30)
    assert summary.anomalies[0].timestamp == at(8, 0)


def test_consecutive_entrance_flag_policy_drops_the_day():
    entrance(8, 0)
    entrance(8, 30)
    exit_(12, 30)

    config = TimesheetConfig(duplicate_entrance_policy=DuplicateEntrancePolicy.FLAG)
    summary = compute_daily("c1", "2025-11-03", config)

    assert summary.status == DayStatus.PAR_INCOMPLETO
    assert summary.pairs == []
    assert summary.net_minutes == 0
    assert len(summary.anomalies) == 3


def test_exit_at_same_instant_is_not_a_pair():
    entrance(8, 0)
    exit_(8, 0)

    summary = compute_daily("c1", "2025-11-03")

    assert summary.status == DayStatus.PAR_INCOMPLETO
    assert summary.pairs == []


def test_duplicate_punches_collapse():
    entrance(8, 0)
    entrance(8, 0)
    exit_(12, 0)

    summary = compute_daily("c1", "2025-11-03", TimesheetConfig(lunch_deduction_minutes=0))

    assert len(summary.events) == 2
    assert summary.status == DayStatus.OK
    assert summary.net_minutes == 240


def test_minutes_round_half_up():
    entrance(8, 0)
    punch("saida", at(12, 0, second=30))

    summary = compute_daily("c1", "2025-11-03", TimesheetConfig(lunch_deduction_minutes=0))

    assert summary.pairs[0].minutes == 241


def test_normalizer_drops_rows_outside_the_day():
    rows = [
        RawPunch(employee_id="c1", kind="saida", timestamp=at(0, 10, day=DAY + timedelta(days=1))),
        RawPunch(employee_id="c1", kind="entrada", timestamp=at(8, 0)),
        RawPunch(employee_id="c1", kind="entrada", timestamp=at(23, 50, day=DAY - timedelta(days=1))),
    ]

    events = normalize_punches(rows, DAY)

    assert [e.timestamp for e in events] == [at(8, 0)]


def test_normalizer_uses_reference_timezone_calendar():
    # 01:30 UTC on the 4th is still the 3rd in Sao Paulo
    late = datetime(2025, 11, 4, 1, 30, tzinfo=timezone.utc)
    rows = [RawPunch(employee_id="c1", kind="saida", timestamp=late)]

    assert len(normalize_punches(rows, DAY)) == 1
    assert normalize_punches(rows, DAY + timedelta(days=1)) == []


def test_naive_timestamps_are_utc():
    rows = [RawPunch(employee_id="c1", kind="entrada", timestamp=datetime(2025, 11, 3, 11, 0))]

    events = normalize_punches(rows, DAY)

    assert events[0].timestamp == at(8, 0)


def test_shift_crossing_midnight_splits_into_incomplete_days():
    entrance(22, 0)
    exit_(6, 0, day=DAY + timedelta(days=1))

    first = compute_daily("c1", "2025-11-03")
    second = compute_daily("c1", "2025-11-04")

    assert first.status == DayStatus.PAR_INCOMPLETO
    assert second.status == DayStatus.PAR_INCOMPLETO
    assert first.net_minutes == second.net_minutes == 0


def test_interval_across_dst_fall_back():
    # Sao Paulo left DST at 2019-02-17 00:00 -02, repeating 23:00-00:00 on the 16th
    punch("entrada", datetime(2019, 2, 17, 1, 0, tzinfo=timezone.utc))
    punch("saida", datetime(2019, 2, 17, 2, 50, tzinfo=timezone.utc))

    summary = compute_daily("c1", "2019-02-16", TimesheetConfig(lunch_deduction_minutes=0))

    assert [p.minutes for p in summary.pairs] == [110]
    assert summary.status == DayStatus.OK


def test_repeated_wall_clock_hour_keeps_both_punches():
    first = datetime(2019, 2, 17, 1, 30, tzinfo=timezone.utc)
    second = datetime(2019, 2, 17, 2, 30, tzinfo=timezone.utc)
    rows = [
        RawPunch(employee_id="c1", kind="saida", timestamp=second),
        RawPunch(employee_id="c1", kind="entrada", timestamp=first),
    ]

    events = normalize_punches(rows, date(2019, 2, 16))

    assert [e.timestamp.strftime("%H:%M") for e in events] == ["23:30", "23:30"]
    assert [e.kind for e in events] == [PunchKind.ENTRANCE, PunchKind.EXIT]


def test_daily_is_idempotent():
    entrance(8, 0)
    exit_(12, 0)
    entrance(13, 0)

    first = compute_daily("c1", "2025-11-03")
    second = compute_daily("c1", "2025-11-03")

    assert first.model_dump_json() == second.model_dump_json()


def test_gross_is_sum_of_pairs():
    entrance(7, 3)
    exit_(9, 41)
    entrance(10, 2)
    exit_(11, 59)
    entrance(14, 17)
    exit_(19, 8)

    summary = compute_daily("c1", "2025-11-03", TimesheetConfig(lunch_policy=LunchPolicy.ALWAYS))

    assert summary.gross_minutes == sum(p.minutes for p in summary.pairs)
    assert summary.net_minutes == max(0, summary.gross_minutes - 60)


def test_other_employees_are_ignored():
    entrance(8, 0)
    punch("saida", at(12, 0), employee_id="c2")

    summary = compute_daily("c1", "2025-11-03")

    assert summary.status == DayStatus.PAR_INCOMPLETO
    assert len(summary.events) == 1


def test_storage_failure_is_data_unavailable():
    def broken(employee_id, start, end):
        raise PunchStoreError("connection reset")

    with pytest.raises(DataUnavailable) as info:
        compute_daily("c1", "2025-11-03", fetch=broken)

    assert info.value.employee_id == "c1"


def test_any_store_failure_is_data_unavailable():
    def broken(employee_id, start, end):
        raise RuntimeError("upstream 500")

    with pytest.raises(DataUnavailable):
        compute_daily("c1", "2025-11-03", fetch=broken)


@pytest.mark.parametrize("value", ["2025-13-01", "2025-02-30", "ontem", "1800-01-01", "20251103", "2025-W45-1", "2025-11-3"])
def test_invalid_day(value):
    called = []

    def fetch(employee_id, start, end):
        called.append(employee_id)
        return []

    with pytest.raises(InvalidRange):
        compute_daily("c1", value, fetch=fetch)
    assert called == []
