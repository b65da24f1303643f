"""Carry unfinished todos from one daily note into the next.

The workflow reads yesterday's note, splits the ``## Todos`` section into
completed and open items, keeps the completed items (tagged with the note's
date) in the original file and renders a new note from a template that
contains the open items.  Three commands are provided:

* ``process SOURCE TARGET`` -- process one note into an explicit target file.
* ``new`` -- create today's note under ``ROOT/YYYY/MM/YYYY-MM-DD.md`` from the
  closest earlier note (or from the template alone when none exists).
* ``preview`` -- render a template against sample or supplied todos.

Run ``python scripts/todoer_workflow.py new`` from anywhere inside a notes
repository, or use the ``todoer`` console script once installed.
"""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict, Optional, Sequence, Tuple

from todoer_config import (
    DEFAULT_FRONTMATTER_DATE_KEY,
    DEFAULT_TODOS_HEADER,
    Config,
    load_config,
    validate_config,
)
from todoer_journal import (
    DATE_FORMAT,
    STRICT_DATE_PATTERN,
    DateFormatError,
    TodoerError,
    parse_date,
    parse_todos_section,
    process_todos_section,
    validate_date,
)
from todoer_templates import TemplateOptions, render_template, resolve_template

BACKUP_SUFFIX = ".bak"
FILE_PERMISSIONS = 0o644
NEXT_SECTION_PATTERN = re.compile(r"\n\n## ")
JOURNAL_FILE_PATTERN = re.compile(r"^([0-9]{4}-[0-9]{2}-[0-9]{2})\.md$")

SAMPLE_TODOS = """- [[2025-06-20]]
  - [ ] Task from Friday
  - [x] Completed Friday task
- [[2025-06-21]]
  - [ ] Task from Saturday
  - [x] Completed Saturday task
    Continuation for completed
  - [ ] Another open Saturday task
    - [ ] Subtask
      - [ ] Sub-subtask
- [[2025-06-22]]
  - [ ] Task from Sunday with #2025-06-22 tag
  - [x] Completed Sunday task"""


DEBUG_ENABLED = os.getenv("TODOER_DEBUG") == "1"
QUIET_ENABLED = False


def configure_logging(debug: bool = False, quiet: bool = False) -> None:
    global DEBUG_ENABLED, QUIET_ENABLED
    DEBUG_ENABLED = DEBUG_ENABLED or debug
    QUIET_ENABLED = quiet


def debug_log(*parts: object) -> None:
    if DEBUG_ENABLED:
        print("[DEBUG]", *parts, file=sys.stderr)


def info_log(*parts: object) -> None:
    if not QUIET_ENABLED:
        print("[INFO]", *parts)


def error_log(*parts: object) -> None:
    print("[ERROR]", *parts, file=sys.stderr)


class SectionNotFoundError(TodoerError):
    pass


class InvalidArgumentError(TodoerError):
    pass


@dataclass
class ProcessResult:
    modified_original: str
    new_file: str


# ---------------------------------------------------------------------------
# Document handling
# ---------------------------------------------------------------------------


def frontmatter_date_pattern(key: str) -> re.Pattern:
    return re.compile(rf"---.*?{re.escape(key)}:\s*([0-9]{{4}}-[0-9]{{2}}-[0-9]{{2}}).*?---", re.DOTALL)


def today_str() -> str:
    return datetime.today().date().strftime(DATE_FORMAT)


def extract_date_from_frontmatter(content: str, key: str = DEFAULT_FRONTMATTER_DATE_KEY) -> str:
    """Return the note date stored under ``key`` in the frontmatter, or today."""
    if not content:
        return today_str()
    match = frontmatter_date_pattern(key or DEFAULT_FRONTMATTER_DATE_KEY).search(content)
    if not match:
        return today_str()
    try:
        return validate_date(match.group(1))
    except DateFormatError as exc:
        raise DateFormatError(f"invalid date in frontmatter: {exc}") from exc


def extract_todos_section(content: str, header: str = DEFAULT_TODOS_HEADER) -> Tuple[str, str, str]:
    """Split ``content`` around the todos section.

    Returns ``(before, section, after)`` where ``before`` ends with the blank
    line following the header, ``section`` is the stripped section body and
    ``after`` starts at the next ``## `` heading (or is empty).
    """
    header = header or DEFAULT_TODOS_HEADER
    if not content:
        raise SectionNotFoundError("content cannot be empty")

    header_index = content.find(header)
    if header_index == -1:
        raise SectionNotFoundError(f"could not find '{header}' section in file")

    header_end = header_index + len(header)
    if header_end >= len(content):
        raise SectionNotFoundError(f"incomplete {header} section: no content after header")

    blank_index = content.find("\n\n", header_end)
    if blank_index == -1:
        raise SectionNotFoundError(f"invalid {header} section format: expected blank line after header")

    body_start = blank_index + 2
    next_section = NEXT_SECTION_PATTERN.search(content, body_start)
    if next_section:
        section = content[body_start:next_section.start()]
        after = content[next_section.start():]
    else:
        section = content[body_start:]
        after = ""
    return content[:body_start], section.strip(), after


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class JournalGenerator:
    def __init__(
        self,
        template_content: str,
        template_date: str,
        *,
        previous_date: str = "",
        custom_variables: Optional[Dict[str, Any]] = None,
        frontmatter_date_key: str = DEFAULT_FRONTMATTER_DATE_KEY,
        todos_header: str = DEFAULT_TODOS_HEADER,
    ) -> None:
        try:
            validate_date(template_date)
        except DateFormatError as exc:
            raise DateFormatError(f"invalid template date: {exc}") from exc
        self.template_content = template_content
        self.template_date = template_date
        self.previous_date = previous_date
        self.custom_variables = dict(custom_variables or {})
        self.frontmatter_date_key = frontmatter_date_key or DEFAULT_FRONTMATTER_DATE_KEY
        self.todos_header = todos_header or DEFAULT_TODOS_HEADER

    @classmethod
    def from_file(cls, template_file: str, template_date: str, **kwargs: Any) -> "JournalGenerator":
        source = resolve_template(template_file)
        return cls(source.content, template_date, **kwargs)

    def process(self, original_content: str) -> ProcessResult:
        note_date = extract_date_from_frontmatter(original_content, self.frontmatter_date_key)
        before, section, after = extract_todos_section(original_content, self.todos_header)
        result = process_todos_section(section, note_date, self.template_date)
        debug_log(f"Split todos of {note_date}: {len(result.journal.days)} day(s) parsed")

        new_file = render_template(
            TemplateOptions(
                content=self.template_content,
                todos_content=result.uncompleted,
                current_date=self.template_date,
                previous_date=self.previous_date or note_date,
                journal=result.journal,
                custom_variables=self.custom_variables,
            )
        )
        return ProcessResult(modified_original=before + result.completed + after, new_file=new_file)

    def process_file(self, path: Path) -> ProcessResult:
        return self.process(Path(path).read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def safe_write_file(path: Path, content: str) -> None:
    path = Path(path)
    tmp_file = None
    try:
        with NamedTemporaryFile(
            "w", encoding="utf-8", delete=False, dir=str(path.parent), prefix=f"{path.name}.tmp."
        ) as tmp:
            tmp_file = tmp.name
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_file, path)
    except OSError:
        if tmp_file and os.path.exists(tmp_file):
            os.unlink(tmp_file)
        raise
    os.chmod(path, FILE_PERMISSIONS)


def build_journal_path(root_dir: str, date_str: str) -> Path:
    parsed = parse_date(date_str) or datetime.today().date()
    return Path(root_dir) / parsed.strftime("%Y") / parsed.strftime("%m") / f"{date_str}.md"


def find_closest_journal_file(root_dir: str, today: str) -> Path:
    today_date = parse_date(today)
    if today_date is None:
        raise DateFormatError(f"invalid today date {today!r}, expected YYYY-MM-DD")

    closest: Optional[Path] = None
    closest_date = None
    for path in sorted(Path(root_dir).rglob("*.md")):
        match = JOURNAL_FILE_PATTERN.match(path.name)
        if not match or not path.is_file():
            continue
        file_date = parse_date(match.group(1))
        if file_date is None or file_date >= today_date:
            continue
        if closest_date is None or file_date > closest_date:
            closest, closest_date = path, file_date

    if closest is None:
        raise FileNotFoundError(f"no previous journal found in {root_dir}")
    return closest


def validate_process_args(source_file: str, target_file: str, template_date: str) -> None:
    if not source_file:
        raise InvalidArgumentError("invalid source file: path cannot be empty")
    if not target_file:
        raise InvalidArgumentError("invalid target file: path cannot be empty")
    if Path(source_file).resolve() == Path(target_file).resolve():
        raise InvalidArgumentError("source and target files cannot be the same")
    if template_date and not STRICT_DATE_PATTERN.fullmatch(template_date):
        raise InvalidArgumentError(f"invalid template date: expected format YYYY-MM-DD, got {template_date}")
    if template_date:
        try:
            validate_date(template_date)
        except DateFormatError as exc:
            raise InvalidArgumentError(f"invalid template date: {exc}") from exc


def build_generator(
    template_file: str, template_date: str, source_file: str, config: Config
) -> Tuple[JournalGenerator, str]:
    template_date = template_date or today_str()

    previous_date = ""
    if source_file:
        try:
            content = Path(source_file).read_text(encoding="utf-8")
            previous_date = extract_date_from_frontmatter(content, config.frontmatter_date_key)
        except (OSError, DateFormatError):
            previous_date = ""

    source = resolve_template(template_file or config.template_file)
    generator = JournalGenerator(
        source.content,
        template_date,
        previous_date=previous_date,
        custom_variables=config.custom_variables,
        frontmatter_date_key=config.frontmatter_date_key,
        todos_header=config.todos_header,
    )
    return generator, source.name


def process_journal(
    source_file: str,
    target_file: str,
    template_file: str,
    template_date: str,
    config: Config,
    skip_backup: bool = False,
    print_path: bool = False,
) -> ProcessResult:
    debug_log(
        f"Processing journal: source={source_file}, target={target_file}, "
        f"template={template_file}, date={template_date}"
    )
    validate_process_args(source_file, target_file, template_date)
    validate_config(config)

    generator, template_name = build_generator(template_file, template_date, source_file, config)
    debug_log(f"Using template source: {template_name}")

    original_content = Path(source_file).read_text(encoding="utf-8")
    result = generator.process(original_content)

    target = Path(target_file)
    target.parent.mkdir(parents=True, exist_ok=True)
    debug_log(f"Writing {len(result.new_file)} characters to target file: {target}")
    safe_write_file(target, result.new_file)
    info_log(f"Successfully processed {source_file} -> {target_file} (template: {template_name})")

    if print_path:
        print(target_file)

    if result.modified_original and not skip_backup:
        backup_file = Path(f"{source_file}{BACKUP_SUFFIX}")
        safe_write_file(backup_file, original_content)
        safe_write_file(Path(source_file), result.modified_original)
        info_log(f"Backup of original file created: {backup_file}")
    else:
        info_log("No modifications found in the original file, backup not created.")

    return result


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_process(args: argparse.Namespace, config: Config) -> int:
    process_journal(
        args.source,
        args.target,
        args.template or "",
        args.date or "",
        config,
        skip_backup=args.skip_backup,
        print_path=args.print_path,
    )
    return 0


def cmd_new(root_dir: str, template_file: str, config: Config, print_path: bool = False) -> Path:
    today = today_str()
    journal_path = build_journal_path(root_dir, today)

    if journal_path.exists():
        if print_path:
            print(journal_path)
        else:
            info_log(f"Journal for today already exists: {journal_path}")
        return journal_path

    journal_path.parent.mkdir(parents=True, exist_ok=True)

    empty_source: Optional[str] = None
    try:
        closest = find_closest_journal_file(root_dir, today)
        skip_backup = False
    except FileNotFoundError:
        info_log("No previous journal found, creating a new one from template.")
        with NamedTemporaryFile("w", encoding="utf-8", delete=False, suffix=".md", prefix="empty-journal-") as tmp:
            tmp.write(f"{config.todos_header}\n\n")
            empty_source = tmp.name
        closest = Path(empty_source)
        skip_backup = True

    info_log(f"Using '{closest}' as source to create new journal for today.")
    try:
        process_journal(
            str(closest),
            str(journal_path),
            template_file,
            today,
            config,
            skip_backup=skip_backup,
            print_path=print_path,
        )
    finally:
        if empty_source and os.path.exists(empty_source):
            os.unlink(empty_source)
    return journal_path


def parse_custom_vars_json(raw: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidArgumentError(f"failed to parse custom vars: {exc}") from exc
    if not isinstance(parsed, dict):
        raise InvalidArgumentError("failed to parse custom vars: expected a JSON object")
    return parsed


def cmd_preview(
    config: Config,
    template_file: str = "",
    date_str: str = "",
    todos_file: str = "",
    todos: str = "",
    custom_vars: str = "",
) -> str:
    date_str = date_str or today_str()
    if todos:
        todos_content = todos
    elif todos_file:
        todos_content = Path(todos_file).read_text(encoding="utf-8")
    else:
        todos_content = SAMPLE_TODOS

    custom = parse_custom_vars_json(custom_vars) if custom_vars else dict(config.custom_variables)
    source = resolve_template(template_file or config.template_file)
    journal = parse_todos_section(todos_content)
    return render_template(
        TemplateOptions(
            content=source.content,
            todos_content=todos_content,
            current_date=date_str,
            journal=journal,
            custom_variables=custom,
        )
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todoer", description="Carry unfinished todos from one daily journal note into the next."
    )
    parser.add_argument("--config", help="Path to a TOML config file (defaults to the XDG config location).")
    parser.add_argument("--debug", action="store_true", help="Print debug output.")
    parser.add_argument("--quiet", action="store_true", help="Only print errors.")
    subparsers = parser.add_subparsers(dest="command")

    process_parser = subparsers.add_parser("process", help="Process a journal into a new target file.")
    process_parser.add_argument("source", help="Journal file to close.")
    process_parser.add_argument("target", help="File to create for the open todos.")
    process_parser.add_argument("--template", help="Template file (defaults to config or the embedded template).")
    process_parser.add_argument("--date", help="Date of the new journal (YYYY-MM-DD, defaults to today).")
    process_parser.add_argument("--skip-backup", action="store_true", help="Leave the source file untouched.")
    process_parser.add_argument("--print-path", action="store_true", help="Print only the target path.")

    new_parser = subparsers.add_parser("new", help="Create today's journal from the closest earlier one.")
    new_parser.add_argument("--root-dir", help="Journal root directory.")
    new_parser.add_argument("--template", help="Template file.")
    new_parser.add_argument("--print-path", action="store_true", help="Print only the journal path.")

    preview_parser = subparsers.add_parser("preview", help="Render a template without touching any files.")
    preview_parser.add_argument("--template", help="Template file.")
    preview_parser.add_argument("--date", help="Date to render for (YYYY-MM-DD, defaults to today).")
    preview_parser.add_argument("--todos-file", help="File holding a todos section.")
    preview_parser.add_argument("--todos", help="Todos section given inline.")
    preview_parser.add_argument("--custom-vars", help="Custom variables as a JSON object.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    quiet = args.quiet or bool(getattr(args, "print_path", False))
    configure_logging(debug=args.debug, quiet=quiet)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(Path(args.config) if args.config else None)
        if args.command == "process":
            return cmd_process(args, config)
        if args.command == "new":
            root_dir = args.root_dir or config.root_dir
            cmd_new(root_dir, args.template or "", config, print_path=args.print_path)
            return 0
        print(
            cmd_preview(
                config,
                template_file=args.template or "",
                date_str=args.date or "",
                todos_file=args.todos_file or "",
                todos=args.todos or "",
                custom_vars=args.custom_vars or "",
            )
        )
        return 0
    except (TodoerError, OSError) as exc:
        error_log(exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
