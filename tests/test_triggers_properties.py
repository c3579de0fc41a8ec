"""Property-based tests for schedule expression parsing.

Feature: cert-trust-scheduler
"""

from datetime import datetime, timedelta, timezone

import pytest
import structlog
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from hypothesis import given
from hypothesis import strategies as st

from cert_trust.errors import InvalidTriggerError
from cert_trust.sync.triggers import DESCRIPTORS, parse_duration, parse_trigger, validate_trigger

log = structlog.stdlib.get_logger()

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


def next_fire(expression: str, now: datetime) -> datetime:
    return parse_trigger(expression).get_next_fire_time(None, now)


@given(
    minute=st.integers(min_value=0, max_value=59),
    hour=st.integers(min_value=0, max_value=23),
)
def test_property_2_fixed_time_fires_daily(minute: int, hour: int):
    """Property 2: Cron fields are honored.

    For any fixed minute and hour, the next firing after midnight falls on
    that minute and hour of the same day.

    **Feature: cert-trust-scheduler, Property 2: Cron field semantics**
    """
    log.info("test_property_2_fixed_time_fires_daily", minute=minute, hour=hour)

    fire = next_fire(f"{minute} {hour} * * *", MONDAY)

    assert fire == MONDAY.replace(hour=hour, minute=minute)


@pytest.mark.parametrize("descriptor", sorted(DESCRIPTORS))
def test_descriptors_parse(descriptor: str):
    """Every predefined descriptor is accepted."""
    assert isinstance(parse_trigger(descriptor), CronTrigger)


@pytest.mark.parametrize(
    "expression,expected",
    [
        ("@hourly", datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)),
        ("@daily", datetime(2024, 1, 2, 0, 0, tzinfo=timezone.utc)),
        ("@weekly", datetime(2024, 1, 7, 0, 0, tzinfo=timezone.utc)),
        ("@monthly", datetime(2024, 2, 1, 0, 0, tzinfo=timezone.utc)),
        ("@yearly", datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)),
    ],
)
def test_descriptor_next_fire_times(expression: str, expected: datetime):
    now = MONDAY + timedelta(seconds=1)

    assert next_fire(expression, now) == expected


@pytest.mark.parametrize(
    "expression,seconds",
    [
        ("@every 1h", 3600),
        ("@every 90s", 90),
        ("@every 1h30m", 5400),
        ("@every 1.5h", 5400),
        ("@every 2m30.9s", 150),
        ("@every 500ms", 1),
        ("@every 0", 1),
    ],
)
def test_every_interval(expression: str, seconds: int):
    """Durations below a second round up; fractional seconds are truncated."""
    trigger = parse_trigger(expression)

    assert isinstance(trigger, IntervalTrigger)
    assert trigger.interval == timedelta(seconds=seconds)


@given(st.integers(min_value=1, max_value=10_000))
def test_every_seconds_round_trip(seconds: int):
    assert parse_duration(f"{seconds}s") == seconds
    assert parse_trigger(f"@every {seconds}s").interval == timedelta(seconds=seconds)


@pytest.mark.parametrize(
    "text", ["", "-5s", "+5s", "5", "1x", "h", "1h 30m", "1.5.5s"]
)
def test_parse_duration_rejects_invalid(text: str):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_step_with_star():
    now = MONDAY + timedelta(minutes=16)

    assert next_fire("*/15 * * * *", now) == MONDAY.replace(minute=30)


def test_start_with_step_runs_to_max():
    """'5/15' means minutes 5, 20, 35 and 50."""
    trigger = parse_trigger("5/15 * * * *")
    fires = []
    now = MONDAY
    for _ in range(5):
        now = trigger.get_next_fire_time(None, now)
        fires.append(now.minute)
        now += timedelta(minutes=1)

    assert fires == [5, 20, 35, 50, 5]


def test_day_of_week_uses_cron_numbering():
    """0 is Sunday and 1 is Monday."""
    tuesday = MONDAY + timedelta(days=1)

    assert next_fire("0 9 * * 1", tuesday) == datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)
    assert next_fire("0 9 * * 0", tuesday) == datetime(2024, 1, 7, 9, 0, tzinfo=timezone.utc)
    assert next_fire("0 9 * * sun", tuesday) == datetime(2024, 1, 7, 9, 0, tzinfo=timezone.utc)


def test_month_and_weekday_names():
    trigger = parse_trigger("0 0 * FEB Mon-Fri")

    assert trigger.get_next_fire_time(None, MONDAY) == datetime(
        2024, 2, 1, 0, 0, tzinfo=timezone.utc
    )


def test_restricted_day_fields_match_either():
    """With both day fields restricted the job fires on the 13th OR on Fridays."""
    trigger = parse_trigger("0 0 13 * 5")

    assert isinstance(trigger, OrTrigger)
    assert trigger.get_next_fire_time(None, MONDAY) == datetime(
        2024, 1, 5, 0, 0, tzinfo=timezone.utc
    )
    after_first_friday = datetime(2024, 1, 12, 0, 0, 1, tzinfo=timezone.utc)
    assert trigger.get_next_fire_time(None, after_first_friday) == datetime(
        2024, 1, 13, 0, 0, tzinfo=timezone.utc
    )


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "   ",
        "* * * *",
        "* * * * * *",
        "61 * * * *",
        "* 24 * * *",
        "* * 0 * *",
        "* * * 13 *",
        "* * * * 7",
        "5-1 * * * *",
        "1-2-3 * * * *",
        "*/0 * * * *",
        "*/x * * * *",
        "1/2/3 * * * *",
        "*-5 * * * *",
        "a b c d e",
        "@reboot",
        "@every",
        "@every -1h",
        "@every 1y",
        "not a schedule",
    ],
)
def test_invalid_expressions_rejected(expression: str):
    with pytest.raises(InvalidTriggerError) as exc_info:
        validate_trigger(expression)

    assert exc_info.value.expression == expression.strip()
    assert exc_info.value.reason


def test_empty_expression_reason():
    with pytest.raises(InvalidTriggerError, match="empty spec string"):
        parse_trigger("")


def test_question_mark_is_wildcard():
    assert next_fire("0 0 ? * *", MONDAY + timedelta(seconds=1)) == datetime(
        2024, 1, 2, 0, 0, tzinfo=timezone.utc
    )


def test_trigger_honors_timezone():
    trigger = parse_trigger("0 9 * * *", timezone="Europe/Berlin")
    fire = trigger.get_next_fire_time(None, MONDAY)

    assert fire.astimezone(timezone.utc) == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
