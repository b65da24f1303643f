"""Tests for the todo journal parser, split, tagger, serializer and statistics."""

from __future__ import annotations

import pytest

from todoer_journal import (
    BULLET_ENTRY,
    CONTINUATION,
    DAY_HEADER,
    TODO_ITEM,
    UNRECOGNIZED,
    DateFormatError,
    DaySection,
    JournalParseError,
    TodoItem,
    TodoJournal,
    calculate_days_span,
    calculate_todo_statistics,
    classify_line,
    count_total_items,
    has_date_tag,
    indent_level,
    is_fully_completed,
    journal_to_text,
    normalize_indentation,
    parse_todos_section,
    process_todos_section,
    split_journal,
    tag_completed_items,
    tag_completed_sub_items,
)

MIXED_JOURNAL = """- [[2025-06-19]]
  - [ ] Write report
    context for the report
    - [x] Collect numbers
  - [x] Call the bank
- [[2025-06-20]]
  - [ ] Plan week"""


# ---------------------------------------------------------------------------
# Indentation and classification
# ---------------------------------------------------------------------------


def test_indent_level_counts_spaces_and_tabs():
    assert indent_level("") == 0
    assert indent_level("  ") == 2
    assert indent_level("\t") == 2
    assert indent_level(" \t") == 3
    assert indent_level("  x  ") == 2


def test_normalize_indentation_replaces_every_tab():
    assert normalize_indentation("\t- a\tb") == "  - a  b"
    assert normalize_indentation("") == ""
    assert normalize_indentation("plain") == "plain"


def test_classify_line_shapes():
    header = classify_line("    - [[2025-01-01]]", in_day=False)
    assert header.kind == DAY_HEADER
    assert header.date == "2025-01-01"

    item = classify_line("    - [x] Done", in_day=True)
    assert (item.kind, item.indent, item.marker, item.text) == (TODO_ITEM, 4, "x", "Done")

    assert classify_line("  - plain bullet").kind == BULLET_ENTRY
    assert classify_line("    continued text").kind == CONTINUATION
    assert classify_line("prose at column zero").kind == UNRECOGNIZED


def test_classify_line_skips_blank_and_lines_outside_a_day():
    assert classify_line("   ") is None
    assert classify_line("  - [ ] early item", in_day=False) is None


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def test_parse_single_completed_item_round_trips():
    content = "- [[2023-01-01]]\n  - [x] Task 1"
    journal = parse_todos_section(content)

    assert len(journal.days) == 1
    assert journal.days[0].date == "2023-01-01"
    item = journal.days[0].items[0]
    assert item.completed is True
    assert item.text == "Task 1"
    assert journal_to_text(journal) == content


def test_parse_nested_items_and_bullet_lines():
    journal = parse_todos_section(MIXED_JOURNAL)

    assert [day.date for day in journal.days] == ["2025-06-19", "2025-06-20"]
    report, bank = journal.days[0].items
    assert report.text == "Write report"
    assert report.bullet_lines == ["    context for the report"]
    assert [sub.text for sub in report.sub_items] == ["Collect numbers"]
    assert bank.completed is True
    assert journal_to_text(journal) == MIXED_JOURNAL


def test_line_not_deeper_than_stack_attaches_to_latest_item():
    content = "- [[2025-01-01]]\n  - [ ] Parent\n    - [ ] Child\n  note at parent level"
    journal = parse_todos_section(content)

    parent = journal.days[0].items[0]
    child = parent.sub_items[0]
    assert child.bullet_lines == ["  note at parent level"]
    assert parent.bullet_lines == []


def test_line_between_levels_attaches_to_shallower_item():
    content = "- [[2025-01-01]]\n  - [ ] Parent\n    - [ ] Child\n   between"
    parent = parse_todos_section(content).days[0].items[0]

    assert parent.bullet_lines == ["   between"]
    assert parent.sub_items[0].bullet_lines == []


def test_bullet_entry_attaches_to_enclosing_item():
    content = "- [[2025-01-01]]\n  - [ ] Parent\n    - a plain note"
    parent = parse_todos_section(content).days[0].items[0]

    assert parent.bullet_lines == ["    - a plain note"]
    assert parent.sub_items == []


def test_sibling_after_nested_item_pops_the_stack():
    content = "- [[2025-01-01]]\n  - [ ] A\n    - [ ] A1\n      - [ ] A1a\n  - [ ] B"
    day = parse_todos_section(content).days[0]

    assert [item.text for item in day.items] == ["A", "B"]
    assert day.items[0].sub_items[0].sub_items[0].text == "A1a"


def test_unparseable_line_reports_line_number():
    content = "- [[2025-01-01]]\n  - [ ] Task\nplain prose"
    with pytest.raises(JournalParseError) as excinfo:
        parse_todos_section(content)

    assert "unparseable line 3" in str(excinfo.value)
    assert excinfo.value.line_number == 3
    assert excinfo.value.line == "plain prose"


def test_invalid_day_header_date_fails():
    with pytest.raises(DateFormatError, match="line 2"):
        parse_todos_section("- [[2025-01-01]]\n- [[2025-13-01]]")


def test_lines_before_first_day_are_ignored():
    journal = parse_todos_section("stray text\n  - [ ] orphan\n- [[2025-01-01]]\n  - [x] A")

    assert len(journal.days) == 1
    assert [item.text for item in journal.days[0].items] == ["A"]


def test_empty_day_is_kept_by_parser_and_dropped_by_split():
    content = "- [[2025-01-01]]\n- [[2025-01-02]]\n  - [ ] A"
    journal = parse_todos_section(content)

    assert [day.date for day in journal.days] == ["2025-01-01", "2025-01-02"]
    assert journal.days[0].items == []
    assert journal_to_text(journal) == content

    completed, open_journal = split_journal(journal)
    assert completed.days == []
    assert [day.date for day in open_journal.days] == ["2025-01-02"]


def test_tabs_and_carriage_returns_are_normalized():
    journal = parse_todos_section("- [[2025-01-01]]\r\n\t- [ ] A\r\n\t\t- [ ] B\r\n")

    item = journal.days[0].items[0]
    assert item.text == "A"
    assert journal_to_text(journal) == "- [[2025-01-01]]\n  - [ ] A\n    - [ ] B"


def test_uppercase_marker_is_not_completed():
    journal = parse_todos_section("- [[2025-01-01]]\n  - [X] Upper")

    assert journal.days[0].items[0].completed is False
    assert journal_to_text(journal) == "- [[2025-01-01]]\n  - [ ] Upper"


def test_empty_input_gives_empty_journal():
    assert parse_todos_section("").days == []
    assert journal_to_text(None) == ""
    assert journal_to_text(TodoJournal()) == ""


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------


def test_is_fully_completed_requires_every_descendant():
    done = TodoItem(True, "done", [TodoItem(True, "sub")])
    partial = TodoItem(True, "partial", [TodoItem(True, "sub", [TodoItem(False, "deep")])])

    assert is_fully_completed(done)
    assert not is_fully_completed(partial)
    assert not is_fully_completed(TodoItem(False, "open"))
    assert not is_fully_completed(None)


def test_split_partitions_top_level_items():
    journal = parse_todos_section(MIXED_JOURNAL)
    completed, open_journal = split_journal(journal)

    assert journal_to_text(completed) == "- [[2025-06-19]]\n  - [x] Call the bank"
    assert journal_to_text(open_journal) == (
        "- [[2025-06-19]]\n"
        "  - [ ] Write report\n"
        "    context for the report\n"
        "    - [x] Collect numbers\n"
        "- [[2025-06-20]]\n"
        "  - [ ] Plan week"
    )


def test_split_results_share_nothing_with_input():
    journal = parse_todos_section(MIXED_JOURNAL)
    completed, open_journal = split_journal(journal)

    open_journal.days[0].items[0].text = "changed"
    open_journal.days[0].items[0].sub_items[0].bullet_lines.append("extra")
    completed.days[0].items[0].completed = False

    assert journal_to_text(journal) == MIXED_JOURNAL


def test_split_handles_none_and_skips_none_entries():
    completed, open_journal = split_journal(None)
    assert completed.days == [] and open_journal.days == []

    journal = TodoJournal(days=[None, DaySection("2025-01-01", [None, TodoItem(True, "A")])])
    completed, open_journal = split_journal(journal)
    assert journal_to_text(completed) == "- [[2025-01-01]]\n  - [x] A"
    assert open_journal.days == []


def test_completed_parent_with_open_child_stays_open():
    content = "- [[2025-06-19]]\n  - [x] Parent\n    - [ ] Open child\n    - [x] Done child"
    completed, open_journal = split_journal(parse_todos_section(content))

    assert completed.days == []
    tag_completed_sub_items(open_journal, "2025-06-19")
    parent = open_journal.days[0].items[0]
    assert parent.text == "Parent"
    assert parent.sub_items[0].text == "Open child"
    assert parent.sub_items[1].text == "Done child #2025-06-19"


# ---------------------------------------------------------------------------
# Tagging
# ---------------------------------------------------------------------------


def test_existing_tag_is_left_alone():
    journal = TodoJournal([DaySection("2023-01-01", [TodoItem(True, "Task 1 #2023-01-01")])])
    tag_completed_items(journal, "2023-01-02")

    assert journal.days[0].items[0].text == "Task 1 #2023-01-01"


def test_tagging_is_idempotent_and_recursive():
    journal = parse_todos_section("- [[2025-01-01]]\n  - [x] A\n    - [x] B\n  - [ ] C")
    tag_completed_items(journal, "2025-01-01")
    once = journal_to_text(journal)
    tag_completed_items(journal, "2025-01-01")

    assert journal_to_text(journal) == once
    assert once == "- [[2025-01-01]]\n  - [x] A #2025-01-01\n    - [x] B #2025-01-01\n  - [ ] C"


def test_tagging_without_date_is_a_no_op():
    journal = parse_todos_section("- [[2025-01-01]]\n  - [x] A")
    tag_completed_items(journal, "")
    tag_completed_items(None, "2025-01-01")

    assert journal.days[0].items[0].text == "A"


def test_has_date_tag():
    assert has_date_tag("Task #2025-06-19")
    assert not has_date_tag("Task 2025-06-19")
    assert not has_date_tag("")


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def test_statistics_for_mixed_days():
    journal = parse_todos_section(
        "- [[2025-06-17]]\n  - [ ] Old open\n  - [x] Old done\n- [[2025-06-19]]\n  - [ ] Newer open"
    )
    stats = calculate_todo_statistics(journal, "2025-06-20")

    assert stats.total_todos == 2
    assert stats.completed_todos == 1
    assert stats.uncompleted_top_level_todos == 2
    assert stats.todo_dates == ["2025-06-17", "2025-06-19"]
    assert stats.oldest_todo_date == "2025-06-17"
    assert stats.todo_days_span == 3


def test_statistics_count_nested_items():
    journal = parse_todos_section("- [[2025-06-19]]\n  - [ ] A\n    - [x] A1\n    - [ ] A2")
    stats = calculate_todo_statistics(journal, "2025-06-19")

    assert stats.total_todos == 3
    assert stats.uncompleted_top_level_todos == 1
    assert stats.todo_days_span == 0


def test_statistics_for_empty_journal():
    stats = calculate_todo_statistics(TodoJournal(), "2025-06-20")

    assert stats.total_todos == 0
    assert stats.todo_dates == []
    assert stats.oldest_todo_date == ""


def test_count_total_items_and_days_span():
    items = [TodoItem(False, "a", [TodoItem(False, "b", [TodoItem(True, "c")])]), None]
    assert count_total_items(items) == 3
    assert count_total_items(None) == 0
    assert calculate_days_span("2025-06-20", "2025-06-17") == 0
    assert calculate_days_span("bad", "2025-06-17") == 0


# ---------------------------------------------------------------------------
# Section pipeline
# ---------------------------------------------------------------------------


def test_process_section_splits_and_tags():
    section = "- [[2025-06-19]]\n  - [x] Done\n  - [ ] Open\n    - [x] Sub done"
    result = process_todos_section(section, "2025-06-19", "2025-06-20")

    assert result.completed == "- [[2025-06-19]]\n  - [x] Done #2025-06-19"
    assert result.uncompleted == "- [[2025-06-19]]\n  - [ ] Open\n    - [x] Sub done #2025-06-19"
    assert len(result.journal.days) == 1


def test_process_section_with_nothing_completed():
    result = process_todos_section("- [[2025-06-18]]\n  - [ ] Open", "2025-06-18", "2025-06-19")

    assert result.completed == "Moved to [[2025-06-19]]"
    assert result.uncompleted == "- [[2025-06-18]]\n  - [ ] Open"


def test_process_blank_section():
    result = process_todos_section("  \n", "2025-06-18", "2025-06-19")

    assert result.completed == "Moved to [[2025-06-19]]"
    assert result.uncompleted == ""
    assert result.journal.is_empty()


def test_process_section_validates_dates():
    with pytest.raises(DateFormatError, match="original date cannot be empty"):
        process_todos_section("", "", "2025-06-19")
    with pytest.raises(DateFormatError, match="invalid original date"):
        process_todos_section("", "2025-02-30", "2025-06-19")
    with pytest.raises(DateFormatError, match="invalid current date"):
        process_todos_section("", "2025-06-18", "06/19/2025")


def test_process_section_wraps_parse_errors():
    with pytest.raises(JournalParseError) as excinfo:
        process_todos_section("- [[2025-06-19]]\nprose", "2025-06-19", "2025-06-20")

    assert str(excinfo.value).startswith("failed to parse todos section: unparseable line 2")
    assert excinfo.value.line_number == 2
