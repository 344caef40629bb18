"""Run configuration for fanrun.

Settings are layered, first source to set a key wins:

1. Explicit command-line options
2. The first config file found (``~/.fanrun.json``, then ``./fanrun.json``)
3. Built-in defaults

The resulting :class:`RunConfig` is immutable and handed to the dispatcher
and executor at construction.
"""

from __future__ import annotations

import getpass
import logging
import os
import shlex
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from scitrera_app_framework import ext_parse_bool
from vpd.legacy.yaml_dict import vpd_chain
from vpd.next.util import read_yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "fanrun.json"
DEFAULT_OUTDIR = "./out"
DEFAULT_CONNECT_TIMEOUT = 10

_BOOL_KEYS = frozenset({"root", "background", "silent", "verbose", "debug", "timestamp", "dry_run"})
_INT_KEYS = frozenset({"parallel", "connect_timeout"})

# Spellings accepted from older config files
_KEY_ALIASES = {
    "scriptarguments": "script_arguments",
}


class ConfigError(Exception):
    """Invalid or unreadable configuration."""

    pass


def current_user() -> str:
    """Name of the invoking local user."""
    return os.environ.get("USER") or getpass.getuser()


@dataclass(frozen=True)
class RunConfig:
    """Process-wide settings, read-only once dispatch starts."""

    command: str | None = None
    user: str = field(default_factory=current_user)
    root: bool = False
    background: bool = False
    precondition: str | None = None
    script: str | None = None
    script_arguments: str | None = None
    download: str | None = None
    parallel: int = 1
    silent: bool = False
    verbose: bool = False
    debug: bool = False
    timestamp: bool = False
    outdir: str = DEFAULT_OUTDIR
    name: str = field(default_factory=current_user)
    dry_run: bool = False
    ssh_key: str | None = None
    ssh_options: tuple[str, ...] = ()
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT

    @property
    def outfile(self) -> Path:
        """Shared log file, ``<outdir>/<name>``."""
        return Path(self.outdir) / self.name

    def validate(self) -> None:
        """Raise :class:`ConfigError` if the settings cannot drive a run."""
        if self.parallel < 1:
            raise ConfigError("parallel must be at least 1, got %d" % self.parallel)
        if not self.command and not self.script:
            raise ConfigError("Either a command or a script is required")
        if not self.user:
            raise ConfigError("No login user configured")


CONFIG_KEYS = frozenset(f.name for f in fields(RunConfig))


def default_config_paths() -> list[Path]:
    """Config file locations in discovery order."""
    return [Path.home() / (".%s" % CONFIG_FILE_NAME), Path.cwd() / CONFIG_FILE_NAME]


def find_config_file(search_paths: list[Path] | None = None) -> Path | None:
    """Return the first existing config file, or None."""
    for path in search_paths if search_paths is not None else default_config_paths():
        if path.is_file():
            return path
    return None


def normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Map option spellings onto :class:`RunConfig` field names.

    ``script-arguments``, ``Script_Arguments`` and ``scriptarguments`` all
    become ``script_arguments``. Unknown keys and ``None`` values are dropped.
    """
    result: dict[str, Any] = {}
    for raw_key, value in data.items():
        key = str(raw_key).strip().lower().replace("-", "_")
        key = _KEY_ALIASES.get(key, key)
        if key not in CONFIG_KEYS:
            logger.debug("Ignoring unknown config key %r", raw_key)
            continue
        if value is None:
            continue
        result[key] = value
    return result


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Load a JSON (or YAML) config file into a normalized dict."""
    file_path = Path(path)
    if not file_path.is_file():
        raise ConfigError("Config file not found: %s" % file_path)
    logger.debug("Reading %s", file_path)
    try:
        data = read_yaml(str(file_path)) or {}
    except Exception as e:
        raise ConfigError("Failed to parse config file %s: %s" % (file_path, e)) from e
    if not isinstance(data, dict):
        raise ConfigError("Config file %s must contain an object" % file_path)
    logger.debug("Config file contents: %s", data)
    return normalize_keys(data)


def _explicit_options(options: dict[str, Any]) -> dict[str, Any]:
    """Keep only options that were actually given on the command line.

    Unset flags arrive as False and unset multi-value options as an empty
    tuple; neither should shadow a config file value.
    """
    return normalize_keys({
        k: v for k, v in options.items()
        if v is not None and v is not False and v != ()
    })


def _defaults() -> dict[str, Any]:
    base = RunConfig()
    defaults = {name: getattr(base, name) for name in CONFIG_KEYS}
    defaults["ssh_options"] = list(base.ssh_options)
    return defaults


def _coerce(key: str, value: Any) -> Any:
    if key in _BOOL_KEYS:
        return value if isinstance(value, bool) else ext_parse_bool(value)
    if key in _INT_KEYS:
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError("%s must be an integer, got %r" % (key, value)) from e
    if key == "ssh_options":
        if isinstance(value, str):
            return tuple(shlex.split(value))
        return tuple(str(v) for v in value)
    if key == "outdir":
        return str(value)
    return value if value is None else str(value)


def load_run_config(
        cli_options: dict[str, Any] | None = None,
        config_path: str | Path | None = None,
        search_paths: list[Path] | None = None,
        validate: bool = True,
) -> RunConfig:
    """Build the run configuration from CLI options, a config file and defaults.

    Args:
        cli_options: Values from the command line; unset entries may be None,
            False or an empty tuple.
        config_path: Explicit config file; replaces discovery when given.
        search_paths: Override the discovery locations (mainly for tests).
        validate: Check that the result can drive a run.

    Returns:
        Frozen RunConfig.

    Raises:
        ConfigError: On unreadable files, bad values, or failed validation.
    """
    overrides = _explicit_options(cli_options or {})

    if config_path is not None:
        file_data = read_config_file(config_path)
    else:
        found = find_config_file(search_paths)
        file_data = read_config_file(found) if found else {}

    chain = vpd_chain(overrides, file_data, _defaults())
    values = {key: _coerce(key, chain.get(key)) for key in CONFIG_KEYS}

    # debug output is a superset of verbose output
    if values["debug"]:
        values["verbose"] = True

    config = RunConfig(**values)
    if validate:
        config.validate()
    logger.debug("Run configuration: %s", config)
    return config


def ensure_outdir(config: RunConfig) -> Path:
    """Create the output directory if needed and return it."""
    outdir = Path(config.outdir)
    outdir.mkdir(parents=True, exist_ok=True)
    return outdir
