"""Schedule expression parsing.

Two grammars are accepted:

* descriptors starting with ``@``: ``@yearly``/``@annually``, ``@monthly``,
  ``@weekly``, ``@daily``/``@midnight``, ``@hourly`` and ``@every <duration>``
  where ``<duration>`` uses Go duration syntax (``90s``, ``1h30m``, ``1.5h``);
* standard five-field cron: ``minute hour day-of-month month day-of-week``.

Day-of-week uses cron numbering (0 = Sunday). When both day fields are
restricted a time matches if *either* matches, as in classic cron.
"""

import re
from dataclasses import dataclass

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from cert_trust.errors import InvalidTriggerError

DESCRIPTORS: dict[str, str] = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_EVERY = "@every"

_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_MONTH_NAMES = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
_DOW_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


@dataclass(frozen=True)
class _FieldSpec:
    name: str
    low: int
    high: int
    names: dict[str, int]


_MINUTE = _FieldSpec("minute", 0, 59, {})
_HOUR = _FieldSpec("hour", 0, 23, {})
_DOM = _FieldSpec("day-of-month", 1, 31, {})
_MONTH = _FieldSpec("month", 1, 12, {n: i + 1 for i, n in enumerate(_MONTH_NAMES)})
_DOW = _FieldSpec("day-of-week", 0, 6, {n: i for i, n in enumerate(_DOW_NAMES)})


def parse_duration(text: str) -> float:
    """Parse a Go-style duration string into seconds.

    Raises:
        ValueError: If ``text`` is not a valid unsigned duration
    """
    if text == "0":
        return 0.0
    if not text:
        raise ValueError("empty duration")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return total


def _parse_value(token: str, spec: _FieldSpec) -> int:
    lowered = token.lower()
    if lowered in spec.names:
        return spec.names[lowered]
    if not token.isdigit():
        raise ValueError(f"failed to parse {spec.name} value {token!r}")
    return int(token)


def _expand_field(field: str, spec: _FieldSpec) -> tuple[list[int], bool]:
    """Expand one cron field into its sorted values.

    Returns the values and whether the field was an unrestricted wildcard.
    """
    values: set[int] = set()
    is_star = False

    for part in field.split(","):
        range_and_step = part.split("/")
        if len(range_and_step) > 2:
            raise ValueError(f"too many slashes in {spec.name} {part!r}")

        low_and_high = range_and_step[0].split("-")
        if len(low_and_high) > 2:
            raise ValueError(f"too many hyphens in {spec.name} {part!r}")

        star = low_and_high[0] in ("*", "?")
        if star:
            if len(low_and_high) > 1:
                raise ValueError(f"wildcard cannot start a range in {spec.name} {part!r}")
            start, end = spec.low, spec.high
        else:
            start = _parse_value(low_and_high[0], spec)
            end = _parse_value(low_and_high[1], spec) if len(low_and_high) == 2 else start

        step = 1
        if len(range_and_step) == 2:
            if not range_and_step[1].isdigit():
                raise ValueError(f"failed to parse step in {spec.name} {part!r}")
            step = int(range_and_step[1])
            # "N/step" means "N-max/step"
            if not star and len(low_and_high) == 1:
                end = spec.high

        if start < spec.low:
            raise ValueError(f"{spec.name} beginning of range ({start}) below minimum ({spec.low})")
        if end > spec.high:
            raise ValueError(f"{spec.name} end of range ({end}) above maximum ({spec.high})")
        if start > end:
            raise ValueError(f"{spec.name} beginning of range ({start}) beyond end ({end})")
        if step == 0:
            raise ValueError(f"{spec.name} step of range should be a positive number")

        if star and step == 1:
            is_star = True
        values.update(range(start, end + 1, step))

    return sorted(values), is_star


def _join(values: list[int]) -> str:
    return ",".join(str(v) for v in values)


def _cron_trigger(expression: str, timezone: str) -> BaseTrigger:
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"expected exactly 5 fields, found {len(fields)}: {expression!r}")

    minute, _ = _expand_field(fields[0], _MINUTE)
    hour, _ = _expand_field(fields[1], _HOUR)
    dom, dom_star = _expand_field(fields[2], _DOM)
    month, _ = _expand_field(fields[3], _MONTH)
    dow, dow_star = _expand_field(fields[4], _DOW)

    common = {
        "minute": _join(minute),
        "hour": _join(hour),
        "month": _join(month),
        "timezone": timezone,
    }
    dow_names = ",".join(_DOW_NAMES[d] for d in dow)

    if dom_star or dow_star:
        return CronTrigger(
            day="*" if dom_star else _join(dom),
            day_of_week="*" if dow_star else dow_names,
            **common,
        )

    # Both day fields restricted: classic cron fires when either matches.
    return OrTrigger(
        [
            CronTrigger(day=_join(dom), **common),
            CronTrigger(day_of_week=dow_names, **common),
        ]
    )


def _descriptor_trigger(expression: str, timezone: str) -> BaseTrigger:
    if expression in DESCRIPTORS:
        return _cron_trigger(DESCRIPTORS[expression], timezone)

    head, _, rest = expression.partition(" ")
    if head == _EVERY:
        seconds = parse_duration(rest.strip())
        # Sub-second intervals round up; fractional seconds are truncated.
        return IntervalTrigger(seconds=max(1, int(seconds)), timezone=timezone)

    raise ValueError(f"unrecognized descriptor: {expression!r}")


def parse_trigger(expression: str, timezone: str = "UTC") -> BaseTrigger:
    """Convert a schedule expression into an APScheduler trigger.

    Args:
        expression: Descriptor (``@every 1h``) or five-field cron string
        timezone: Timezone in which cron fields are interpreted

    Returns:
        Trigger instance usable with ``BaseScheduler.add_job``

    Raises:
        InvalidTriggerError: If the expression matches neither grammar
    """
    expression = expression.strip()
    if not expression:
        raise InvalidTriggerError(expression, "empty spec string")

    try:
        if expression.startswith("@"):
            return _descriptor_trigger(expression, timezone)
        return _cron_trigger(expression, timezone)
    except ValueError as e:
        raise InvalidTriggerError(expression, str(e)) from e


def validate_trigger(expression: str, timezone: str = "UTC") -> None:
    """Raise ``InvalidTriggerError`` if ``expression`` cannot be scheduled."""
    parse_trigger(expression, timezone)
