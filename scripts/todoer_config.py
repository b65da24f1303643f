"""Configuration for the todoer commands.

Values come from, in increasing priority: built-in defaults, the TOML file
at ``$XDG_CONFIG_HOME/todoer/config.toml``, the ``TODOER_*`` environment
variables, and finally command-line flags (applied by the caller).
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from todoer_journal import TodoerError
from todoer_templates import TemplateError, validate_custom_variables

CONFIG_DIR_NAME = "todoer"
CONFIG_FILE_NAME = "config.toml"

DEFAULT_ROOT_DIR = "."
DEFAULT_FRONTMATTER_DATE_KEY = "title"
DEFAULT_TODOS_HEADER = "## Todos"

ROOT_DIR_ENV = "TODOER_ROOT_DIR"
TEMPLATE_FILE_ENV = "TODOER_TEMPLATE_FILE"


class ConfigError(TodoerError):
    pass


@dataclass
class Config:
    root_dir: str = ""
    template_file: str = ""
    frontmatter_date_key: str = ""
    todos_header: str = ""
    custom_variables: Dict[str, Any] = field(default_factory=dict)

    def apply_defaults(self) -> None:
        if not self.root_dir:
            self.root_dir = DEFAULT_ROOT_DIR
        if not self.frontmatter_date_key:
            self.frontmatter_date_key = DEFAULT_FRONTMATTER_DATE_KEY
        if not self.todos_header:
            self.todos_header = DEFAULT_TODOS_HEADER


def expand_path(path: str) -> str:
    if not path:
        return path
    if path.startswith("~/"):
        return str(Path.home() / path[2:])
    return path


def config_home() -> Path:
    xdg_config_home = os.getenv("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home)
    return Path.home() / ".config"


def config_path() -> Path:
    return config_home() / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def load_config_file(path: Path, config: Optional[Config] = None) -> Config:
    config = config or Config()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"failed to read config file {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"failed to decode config file {path}: {exc}") from exc

    config.root_dir = expand_path(str(data.get("root_dir", config.root_dir) or ""))
    config.template_file = expand_path(str(data.get("template_file", config.template_file) or ""))
    config.frontmatter_date_key = str(data.get("frontmatter_date_key", config.frontmatter_date_key) or "")
    config.todos_header = str(data.get("todos_header", config.todos_header) or "")
    custom = data.get("custom_variables", {})
    if not isinstance(custom, dict):
        raise ConfigError(f"custom_variables in {path} must be a table")
    config.custom_variables = dict(custom)
    return config


def apply_environment(config: Config, environ: Optional[Mapping[str, str]] = None) -> Config:
    environ = os.environ if environ is None else environ
    root_dir = environ.get(ROOT_DIR_ENV, "")
    if root_dir:
        config.root_dir = expand_path(root_dir)
    template_file = environ.get(TEMPLATE_FILE_ENV, "")
    if template_file:
        config.template_file = expand_path(template_file)
    return config


def validate_config(config: Optional[Config]) -> None:
    if config is None:
        raise ConfigError("config cannot be None")
    if not config.root_dir:
        raise ConfigError("root directory cannot be empty")

    root = Path(config.root_dir)
    if root.exists():
        if not root.is_dir():
            raise ConfigError(f"root path '{config.root_dir}' exists but is not a directory")
    else:
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"cannot create root directory '{config.root_dir}': {exc}") from exc

    if config.template_file:
        template = Path(config.template_file)
        if not template.exists():
            raise ConfigError(f"template file '{config.template_file}' does not exist")
        if template.is_dir():
            raise ConfigError(f"template path '{config.template_file}' is a directory, not a file")

    try:
        validate_custom_variables(config.custom_variables)
    except TemplateError as exc:
        raise ConfigError(f"invalid custom variables: {exc}") from exc


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    config = Config()
    path = path or config_path()
    if path.exists():
        load_config_file(path, config)
    apply_environment(config, environ)
    config.apply_defaults()
    try:
        validate_config(config)
    except ConfigError as exc:
        raise ConfigError(f"configuration validation failed: {exc}") from exc
    return config
