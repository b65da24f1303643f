"""Todo journal model plus its parse, split, tag and serialize pipeline.

A journal is the body of the ``## Todos`` section of a daily note::

    - [[2025-06-19]]
      - [ ] Write report
        - [x] Collect numbers
        Notes that belong to the report
      - [x] Call the bank

Day headers open a day, checklist items nest by indentation, and any other
bullet or indented line is attached to the closest open item.  Processing a
section splits it into the completed part (kept in yesterday's note, tagged
with the completion date) and the open part (carried forward into a new note).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

TAB_WIDTH = 2
INDENT_UNIT = "  "
COMPLETED_MARKER = "x"
OPEN_MARKER = " "
DATE_FORMAT = "%Y-%m-%d"
MOVED_TO_TEMPLATE = "Moved to [[{date}]]"

STRICT_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
DAY_HEADER_PATTERN = re.compile(r"^- \[\[([0-9]{4}-[0-9]{2}-[0-9]{2})\]\]")
TODO_ITEM_PATTERN = re.compile(r"^(?P<indent>\s*)- \[(?P<marker>.)\] (?P<text>.+)$")
BULLET_ENTRY_PATTERN = re.compile(r"^(?P<indent>\s*)- (?P<text>.+)$")
CONTINUATION_PATTERN = re.compile(r"^(?P<indent>\s+)(?P<text>.+)$")
DATE_TAG_PATTERN = re.compile(r"#[0-9]{4}-[0-9]{2}-[0-9]{2}")

DAY_HEADER = "day_header"
TODO_ITEM = "todo_item"
BULLET_ENTRY = "bullet_entry"
CONTINUATION = "continuation"
UNRECOGNIZED = "unrecognized"


class TodoerError(ValueError):
    """Base class for every error todoer reports to its caller."""


class DateFormatError(TodoerError):
    pass


class JournalParseError(TodoerError):
    def __init__(self, message: str, line_number: Optional[int] = None, line: Optional[str] = None) -> None:
        super().__init__(message)
        self.line_number = line_number
        self.line = line


@dataclass
class TodoItem:
    completed: bool
    text: str
    sub_items: List["TodoItem"] = field(default_factory=list)
    bullet_lines: List[str] = field(default_factory=list)

    @property
    def marker(self) -> str:
        return COMPLETED_MARKER if self.completed else OPEN_MARKER

    def copy(self) -> "TodoItem":
        return TodoItem(
            completed=self.completed,
            text=self.text,
            sub_items=[sub_item.copy() for sub_item in self.sub_items if sub_item is not None],
            bullet_lines=list(self.bullet_lines),
        )


@dataclass
class DaySection:
    date: str
    items: List[TodoItem] = field(default_factory=list)


@dataclass
class TodoJournal:
    days: List[DaySection] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(day is not None for day in self.days)


@dataclass
class ClassifiedLine:
    kind: str
    indent: int = 0
    date: str = ""
    marker: str = ""
    text: str = ""


@dataclass
class SectionResult:
    completed: str
    uncompleted: str
    journal: TodoJournal


@dataclass
class TodoStatistics:
    total_todos: int = 0
    completed_todos: int = 0
    uncompleted_top_level_todos: int = 0
    todo_dates: List[str] = field(default_factory=list)
    oldest_todo_date: str = ""
    todo_days_span: int = 0


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def validate_date(date_str: str) -> str:
    """Return ``date_str`` unchanged if it is a real ``YYYY-MM-DD`` date."""
    if not date_str or not STRICT_DATE_PATTERN.fullmatch(date_str):
        raise DateFormatError(f"invalid date format {date_str!r}, expected YYYY-MM-DD")
    try:
        datetime.strptime(date_str, DATE_FORMAT)
    except ValueError as exc:
        raise DateFormatError(f"invalid date {date_str!r}: {exc}") from exc
    return date_str


def parse_date(date_str: str) -> Optional[date]:
    try:
        return datetime.strptime(validate_date(date_str), DATE_FORMAT).date()
    except DateFormatError:
        return None


def calculate_days_span(start_date: str, end_date: str) -> int:
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        return 0
    return max((end - start).days, 0)


# ---------------------------------------------------------------------------
# Indentation and line shapes
# ---------------------------------------------------------------------------


def indent_level(whitespace: str) -> int:
    level = 0
    for char in whitespace or "":
        if char == " ":
            level += 1
        elif char == "\t":
            level += TAB_WIDTH
        else:
            break
    return level


def normalize_indentation(line: str) -> str:
    if not line:
        return ""
    return line.replace("\t", " " * TAB_WIDTH)


def classify_line(line: str, in_day: bool = True) -> Optional[ClassifiedLine]:
    """Recognise the shape of one raw line.

    Returns ``None`` for lines the parser skips: blank lines, and anything
    other than a day header while no day is open.  Lines that fit no shape
    inside a day come back as ``UNRECOGNIZED``.
    """
    stripped = line.strip()
    if not stripped:
        return None

    header = DAY_HEADER_PATTERN.match(stripped)
    if header:
        return ClassifiedLine(kind=DAY_HEADER, date=header.group(1))

    if not in_day:
        return None

    match = TODO_ITEM_PATTERN.match(line)
    if match:
        return ClassifiedLine(
            kind=TODO_ITEM,
            indent=indent_level(match.group("indent")),
            marker=match.group("marker"),
            text=match.group("text"),
        )

    match = BULLET_ENTRY_PATTERN.match(line)
    if match:
        return ClassifiedLine(kind=BULLET_ENTRY, indent=indent_level(match.group("indent")), text=match.group("text"))

    match = CONTINUATION_PATTERN.match(line)
    if match:
        return ClassifiedLine(kind=CONTINUATION, indent=indent_level(match.group("indent")), text=match.group("text"))

    return ClassifiedLine(kind=UNRECOGNIZED, text=line)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


@dataclass
class ParserState:
    current_day: Optional[DaySection] = None
    indent_stack: List[int] = field(default_factory=list)
    item_stack: List[TodoItem] = field(default_factory=list)

    def reset(self) -> None:
        self.indent_stack = []
        self.item_stack = []

    def open_day(self, journal: TodoJournal, date_str: str) -> None:
        self.close_day(journal)
        self.current_day = DaySection(date=date_str)
        self.reset()

    def close_day(self, journal: TodoJournal) -> None:
        if self.current_day is not None:
            journal.days.append(self.current_day)
            self.current_day = None

    def add_item(self, item: TodoItem, indent: int) -> None:
        if self.indent_stack and indent > self.indent_stack[-1]:
            self.item_stack[-1].sub_items.append(item)
        else:
            while self.indent_stack and self.indent_stack[-1] >= indent:
                self.indent_stack.pop()
                self.item_stack.pop()
            if self.item_stack:
                self.item_stack[-1].sub_items.append(item)
            else:
                self.current_day.items.append(item)
        self.indent_stack.append(indent)
        self.item_stack.append(item)

    def target_for_line(self, indent: int) -> Optional[TodoItem]:
        # Closest open item that is shallower than the line; otherwise the most recent one.
        for depth in range(len(self.item_stack) - 1, -1, -1):
            if indent > self.indent_stack[depth]:
                return self.item_stack[depth]
        if self.item_stack:
            return self.item_stack[-1]
        return None

    def attach_line(self, line: str, indent: int) -> None:
        target = self.target_for_line(indent)
        if target is not None:
            target.bullet_lines.append(normalize_indentation(line))


def parse_todos_section(content: str) -> TodoJournal:
    journal = TodoJournal()
    state = ParserState()

    for line_number, raw_line in enumerate((content or "").split("\n"), start=1):
        line = raw_line.rstrip("\r")
        classified = classify_line(line, in_day=state.current_day is not None)
        if classified is None:
            continue

        if classified.kind == DAY_HEADER:
            try:
                validate_date(classified.date)
            except DateFormatError as exc:
                raise DateFormatError(f"invalid date in day header on line {line_number}: {exc}") from exc
            state.open_day(journal, classified.date)
        elif classified.kind == TODO_ITEM:
            item = TodoItem(completed=classified.marker == COMPLETED_MARKER, text=classified.text)
            state.add_item(item, classified.indent)
        elif classified.kind in (BULLET_ENTRY, CONTINUATION):
            state.attach_line(line, classified.indent)
        else:
            raise JournalParseError(f"unparseable line {line_number}: {line!r}", line_number=line_number, line=line)

    state.close_day(journal)
    return journal


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------


def is_fully_completed(item: Optional[TodoItem]) -> bool:
    if item is None or not item.completed:
        return False
    return all(is_fully_completed(sub_item) for sub_item in item.sub_items)


def split_journal(journal: Optional[TodoJournal]) -> Tuple[TodoJournal, TodoJournal]:
    """Partition top-level items into a completed journal and an open journal.

    Both results hold fresh copies; nothing is shared with ``journal`` or
    between the two results.
    """
    completed_journal = TodoJournal()
    open_journal = TodoJournal()
    if journal is None:
        return completed_journal, open_journal

    for day in journal.days:
        if day is None:
            continue
        completed_day = DaySection(date=day.date)
        open_day = DaySection(date=day.date)
        for item in day.items:
            if item is None:
                continue
            if is_fully_completed(item):
                completed_day.items.append(item.copy())
            else:
                open_day.items.append(item.copy())
        if completed_day.items:
            completed_journal.days.append(completed_day)
        if open_day.items:
            open_journal.days.append(open_day)

    return completed_journal, open_journal


# ---------------------------------------------------------------------------
# Date tags
# ---------------------------------------------------------------------------


def has_date_tag(text: str) -> bool:
    if not text:
        return False
    return bool(DATE_TAG_PATTERN.search(text))


def _tag_item(item: Optional[TodoItem], date_str: str) -> None:
    if item is None:
        return
    if item.completed and not has_date_tag(item.text):
        item.text += f" #{date_str}"
    for sub_item in item.sub_items:
        _tag_item(sub_item, date_str)


def _top_level_items(journal: TodoJournal) -> Iterable[TodoItem]:
    for day in journal.days:
        if day is None:
            continue
        for item in day.items:
            if item is not None:
                yield item


def tag_completed_items(journal: Optional[TodoJournal], date_str: str) -> None:
    if journal is None or not date_str:
        return
    for item in _top_level_items(journal):
        _tag_item(item, date_str)


def tag_completed_sub_items(journal: Optional[TodoJournal], date_str: str) -> None:
    """Tag finished sub-tasks of open items, leaving the open items themselves alone."""
    if journal is None or not date_str:
        return
    for item in _top_level_items(journal):
        for sub_item in item.sub_items:
            _tag_item(sub_item, date_str)


# ---------------------------------------------------------------------------
# Serializer
# ---------------------------------------------------------------------------


def _write_item(lines: List[str], item: Optional[TodoItem], depth: int) -> None:
    if item is None:
        return
    lines.append(f"{INDENT_UNIT * depth}- [{item.marker}] {item.text}")
    lines.extend(item.bullet_lines)
    for sub_item in item.sub_items:
        _write_item(lines, sub_item, depth + 1)


def journal_to_text(journal: Optional[TodoJournal]) -> str:
    if journal is None or not journal.days:
        return ""
    lines: List[str] = []
    for day in journal.days:
        if day is None:
            continue
        lines.append(f"- [[{day.date}]]")
        for item in day.items:
            _write_item(lines, item, 1)
    return "\n".join(lines).rstrip("\n")


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def count_total_items(items: Optional[Iterable[Optional[TodoItem]]]) -> int:
    count = 0
    for item in items or []:
        if item is None:
            continue
        count += 1 + count_total_items(item.sub_items)
    return count


def calculate_split_statistics(
    completed_journal: Optional[TodoJournal], open_journal: Optional[TodoJournal], current_date: str
) -> TodoStatistics:
    stats = TodoStatistics()
    dates = set()
    for journal, is_open in ((open_journal, True), (completed_journal, False)):
        if journal is None:
            continue
        for day in journal.days:
            if day is None:
                continue
            if day.date:
                dates.add(day.date)
            if is_open:
                stats.total_todos += count_total_items(day.items)
                stats.uncompleted_top_level_todos += sum(1 for item in day.items if item is not None)
            else:
                stats.completed_todos += count_total_items(day.items)

    stats.todo_dates = sorted(dates)
    if stats.todo_dates:
        stats.oldest_todo_date = stats.todo_dates[0]
        stats.todo_days_span = calculate_days_span(stats.oldest_todo_date, current_date)
    return stats


def calculate_todo_statistics(journal: Optional[TodoJournal], current_date: str) -> TodoStatistics:
    if journal is None or journal.is_empty():
        return TodoStatistics()
    completed_journal, open_journal = split_journal(journal)
    return calculate_split_statistics(completed_journal, open_journal, current_date)


# ---------------------------------------------------------------------------
# Section pipeline
# ---------------------------------------------------------------------------


def moved_to_message(current_date: str) -> str:
    return MOVED_TO_TEMPLATE.format(date=current_date)


def validate_process_dates(original_date: str, current_date: str) -> None:
    if not original_date:
        raise DateFormatError("original date cannot be empty")
    if not current_date:
        raise DateFormatError("current date cannot be empty")
    try:
        validate_date(original_date)
    except DateFormatError as exc:
        raise DateFormatError(f"invalid original date: {exc}") from exc
    try:
        validate_date(current_date)
    except DateFormatError as exc:
        raise DateFormatError(f"invalid current date: {exc}") from exc


def process_todos_section(section: str, original_date: str, current_date: str) -> SectionResult:
    """Split a todos section into the text that stays and the text that moves on.

    ``original_date`` is the date of the note being closed and is used for
    completion tags; ``current_date`` is the date of the note being created.
    """
    validate_process_dates(original_date, current_date)

    if not (section or "").strip():
        return SectionResult(completed=moved_to_message(current_date), uncompleted="", journal=TodoJournal())

    try:
        journal = parse_todos_section(section)
    except DateFormatError as exc:
        raise DateFormatError(f"failed to parse todos section: {exc}") from exc
    except JournalParseError as exc:
        raise JournalParseError(
            f"failed to parse todos section: {exc}", line_number=exc.line_number, line=exc.line
        ) from exc

    completed_journal, open_journal = split_journal(journal)
    tag_completed_items(completed_journal, original_date)
    tag_completed_sub_items(open_journal, original_date)

    completed_text = journal_to_text(completed_journal)
    if completed_journal.is_empty():
        completed_text = moved_to_message(current_date)

    return SectionResult(
        completed=completed_text,
        uncompleted=journal_to_text(open_journal),
        journal=journal,
    )
