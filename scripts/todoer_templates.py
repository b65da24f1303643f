"""Template rendering for newly created journal notes.

Templates are jinja2 documents.  Every template receives the note date in
several layouts, the carried-over ``TODOS`` text, statistics about the
carried-over todos and any custom variables from the config file, e.g.::

    # {{ DateLong }}

    ## Todos

    {{ TODOS }}

    {% if TodoDaysSpan %}Oldest open todo is {{ TodoDaysSpan }} days old.{% endif %}
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import jinja2
from jinja2 import Environment, StrictUndefined

from todoer_journal import (
    DATE_FORMAT,
    DateFormatError,
    TodoerError,
    TodoJournal,
    calculate_todo_statistics,
    parse_date,
    validate_date,
)

EMBEDDED_TEMPLATE_NAME = "embedded default template"
DEFAULT_TEMPLATE = """---
title: {{ Date }}
---

# {{ DayName }}, {{ DateLong }}

## Todos

{{ TODOS }}

## Notes

"""

EXCESSIVE_BLANK_LINES_PATTERN = re.compile(r"\n{3,}")
VARIABLE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

RESERVED_VARIABLES = frozenset(
    {
        "Date",
        "TODOS",
        "PreviousDate",
        "DateShort",
        "DateLong",
        "Year",
        "Month",
        "MonthName",
        "Day",
        "DayName",
        "WeekNumber",
        "PreviousDateShort",
        "PreviousDateLong",
        "PreviousYear",
        "PreviousMonth",
        "PreviousMonthName",
        "PreviousDay",
        "PreviousDayName",
        "PreviousWeekNumber",
        "TotalTodos",
        "CompletedTodos",
        "UncompletedTodos",
        "UncompletedTopLevelTodos",
        "TodoDates",
        "OldestTodoDate",
        "TodoDaysSpan",
    }
)
SCALAR_VARIABLE_TYPES = (str, int, float, bool)


class TemplateError(TodoerError):
    pass


@dataclass
class DateVariables:
    short: str = ""
    long: str = ""
    year: str = ""
    month: str = ""
    month_name: str = ""
    day: str = ""
    day_name: str = ""
    week_number: int = 0


@dataclass
class TemplateOptions:
    content: str
    todos_content: str = ""
    current_date: str = ""
    previous_date: str = ""
    journal: Optional[TodoJournal] = None
    custom_variables: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TemplateSource:
    name: str
    content: str


def format_date_variables(date_str: str) -> DateVariables:
    parsed = parse_date(date_str) if date_str else None
    if parsed is None:
        return DateVariables()
    return DateVariables(
        short=parsed.strftime("%m/%d/%y"),
        long=f"{parsed:%B} {parsed.day}, {parsed.year}",
        year=parsed.strftime("%Y"),
        month=parsed.strftime("%m"),
        month_name=parsed.strftime("%B"),
        day=parsed.strftime("%d"),
        day_name=parsed.strftime("%A"),
        week_number=parsed.isocalendar()[1],
    )


# ---------------------------------------------------------------------------
# Helper functions exposed to templates
# ---------------------------------------------------------------------------


def add_days(date_str: str, days: int) -> str:
    parsed = parse_date(date_str)
    if parsed is None:
        return date_str
    return (parsed + timedelta(days=days)).strftime(DATE_FORMAT)


def sub_days(date_str: str, days: int) -> str:
    return add_days(date_str, -days)


def add_weeks(date_str: str, weeks: int) -> str:
    return add_days(date_str, weeks * 7)


def add_months(date_str: str, months: int) -> str:
    parsed = parse_date(date_str)
    if parsed is None:
        return date_str
    month_index = parsed.month - 1 + months
    first = date(parsed.year + month_index // 12, month_index % 12 + 1, 1)
    # Overflowing days roll into the following month (Jan 31 + 1 month -> Mar 3).
    return (first + timedelta(days=parsed.day - 1)).strftime(DATE_FORMAT)


def format_date(date_str: str, layout: str) -> str:
    parsed = parse_date(date_str)
    if parsed is None:
        return date_str
    return parsed.strftime(layout)


def weekday(date_str: str) -> str:
    parsed = parse_date(date_str)
    return parsed.strftime("%A") if parsed else ""


def is_weekend(date_str: str) -> bool:
    parsed = parse_date(date_str)
    return parsed is not None and parsed.weekday() >= 5


def days_diff(first: str, second: str) -> int:
    start = parse_date(first)
    end = parse_date(second)
    if start is None or end is None:
        return 0
    return (end - start).days


def _weekday_check(index: int) -> Callable[[str], bool]:
    def check(date_str: str) -> bool:
        parsed = parse_date(date_str)
        return parsed is not None and parsed.weekday() == index

    return check


def title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split())


def default_value(fallback: Any, value: Any) -> Any:
    if value is None or value == "":
        return fallback
    return value


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    if isinstance(value, int):
        return value == 0
    return False


def not_empty(value: Any) -> bool:
    return not is_empty(value)


def seq(start: int, end: int) -> List[int]:
    if start > end:
        return []
    return list(range(start, end + 1))


def make_dict(*values: Any) -> Optional[Dict[str, Any]]:
    if len(values) % 2 != 0:
        return None
    pairs = list(zip(values[::2], values[1::2]))
    if not all(isinstance(key, str) for key, _ in pairs):
        return None
    return dict(pairs)


def shuffle_text(text: str) -> str:
    lines = [line for line in text.strip().split("\n") if line.strip()]
    if len(lines) <= 1:
        return text
    random.shuffle(lines)
    return "\n".join(lines)


def shuffle_lines(lines: List[str]) -> List[str]:
    if len(lines) <= 1:
        return lines
    shuffled = list(lines)
    random.shuffle(shuffled)
    return shuffled


def divide(a: int, b: int) -> int:
    if b == 0:
        return 0
    return int(a / b)


DATE_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "addDays": add_days,
    "subDays": sub_days,
    "addWeeks": add_weeks,
    "addMonths": add_months,
    "formatDate": format_date,
    "weekday": weekday,
    "isWeekend": is_weekend,
    "daysDiff": days_diff,
    "isMonday": _weekday_check(0),
    "isTuesday": _weekday_check(1),
    "isWednesday": _weekday_check(2),
    "isThursday": _weekday_check(3),
    "isFriday": _weekday_check(4),
    "isSaturday": _weekday_check(5),
    "isSunday": _weekday_check(6),
}

STRING_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "upper": lambda text: text.upper(),
    "lower": lambda text: text.lower(),
    "title": title_case,
    "trim": lambda text: text.strip(),
    "replace": lambda old, new, text: text.replace(old, new),
    "repeat": lambda text, count: text * count,
    "length": len,
    "contains": lambda text, part: part in text,
    "hasPrefix": lambda text, prefix: text.startswith(prefix),
    "hasSuffix": lambda text, suffix: text.endswith(suffix),
    "split": lambda sep, text: text.split(sep),
    "join": lambda sep, items: sep.join(items),
}

UTILITY_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "default": default_value,
    "empty": is_empty,
    "notEmpty": not_empty,
    "seq": seq,
    "dict": make_dict,
    "shuffle": shuffle_text,
    "shuffleLines": shuffle_lines,
    "add": lambda a, b: a + b,
    "sub": lambda a, b: a - b,
    "mul": lambda a, b: a * b,
    "div": divide,
}


def template_functions() -> Dict[str, Callable[..., Any]]:
    functions: Dict[str, Callable[..., Any]] = {}
    functions.update(DATE_FUNCTIONS)
    functions.update(STRING_FUNCTIONS)
    functions.update(UTILITY_FUNCTIONS)
    return functions


def create_environment() -> Environment:
    env = Environment(undefined=StrictUndefined, autoescape=False, keep_trailing_newline=True)
    env.globals.update(template_functions())
    # Date helpers also read naturally as filters: {{ Date | addDays(1) }}
    env.filters.update(DATE_FUNCTIONS)
    return env


# ---------------------------------------------------------------------------
# Custom variables
# ---------------------------------------------------------------------------


def is_valid_variable_value(value: Any) -> bool:
    if isinstance(value, SCALAR_VARIABLE_TYPES):
        return True
    if isinstance(value, list):
        return all(is_valid_variable_value(item) for item in value)
    return False


def validate_custom_variables(custom_variables: Optional[Dict[str, Any]]) -> None:
    for name, value in (custom_variables or {}).items():
        if name in RESERVED_VARIABLES:
            raise TemplateError(f"custom variable name '{name}' is reserved")
        if not isinstance(name, str) or not VARIABLE_NAME_PATTERN.match(name):
            raise TemplateError(
                f"custom variable name '{name}' is not valid "
                "(must start with a letter or underscore and contain only letters, numbers and underscores)"
            )
        if not is_valid_variable_value(value):
            raise TemplateError(f"custom variable '{name}' has unsupported type {type(value).__name__}")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def build_template_context(options: TemplateOptions) -> Dict[str, Any]:
    current = format_date_variables(options.current_date)
    previous = format_date_variables(options.previous_date)
    stats = calculate_todo_statistics(options.journal, options.current_date)

    context: Dict[str, Any] = {
        "Date": options.current_date,
        "TODOS": options.todos_content if options.todos_content.strip() else "",
        "PreviousDate": options.previous_date,
        "DateShort": current.short,
        "DateLong": current.long,
        "Year": current.year,
        "Month": current.month,
        "MonthName": current.month_name,
        "Day": current.day,
        "DayName": current.day_name,
        "WeekNumber": current.week_number,
        "PreviousDateShort": previous.short,
        "PreviousDateLong": previous.long,
        "PreviousYear": previous.year,
        "PreviousMonth": previous.month,
        "PreviousMonthName": previous.month_name,
        "PreviousDay": previous.day,
        "PreviousDayName": previous.day_name,
        "PreviousWeekNumber": previous.week_number,
        "TotalTodos": stats.total_todos,
        "CompletedTodos": stats.completed_todos,
        "UncompletedTodos": stats.total_todos,
        "UncompletedTopLevelTodos": stats.uncompleted_top_level_todos,
        "TodoDates": stats.todo_dates,
        "OldestTodoDate": stats.oldest_todo_date,
        "TodoDaysSpan": stats.todo_days_span,
    }
    context.update(options.custom_variables or {})
    return context


def render_template(options: TemplateOptions) -> str:
    if not options.content:
        raise TemplateError("template content cannot be empty")
    try:
        validate_date(options.current_date)
    except DateFormatError as exc:
        raise TemplateError(f"invalid current date: {exc}") from exc
    validate_custom_variables(options.custom_variables)

    context = build_template_context(options)
    try:
        template = create_environment().from_string(options.content)
    except jinja2.TemplateSyntaxError as exc:
        raise TemplateError(f"failed to parse template: {exc}") from exc
    try:
        output = template.render(**context)
    except (jinja2.TemplateError, TypeError, ValueError) as exc:
        raise TemplateError(f"failed to execute template: {exc}") from exc

    if not options.todos_content.strip():
        output = EXCESSIVE_BLANK_LINES_PATTERN.sub("\n\n", output)
    return output


def resolve_template(template_file: str) -> TemplateSource:
    if not template_file:
        return TemplateSource(name=EMBEDDED_TEMPLATE_NAME, content=DEFAULT_TEMPLATE)
    try:
        content = Path(template_file).read_text(encoding="utf-8")
    except OSError as exc:
        raise TemplateError(f"failed to read template file '{template_file}': {exc}") from exc
    return TemplateSource(name=template_file, content=content)
