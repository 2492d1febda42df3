"""
Configuration management for gleaner journals.

The configuration is stored as a TOML file in the journal's `.gleaner/`
directory. It records the journal mode and where compilations are written.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w

from .errors import ConfigError, NotJournalDirectory
from .mode import JournalMode


CONFIG_DIRNAME = ".gleaner"
CONFIG_FILENAME = "config.toml"
CONFIG_VERSION = 1
DEFAULT_COMPILATIONS_DIR = ".compilations"

# Keys `gleaner config` may change
EDITABLE_KEYS = ("mode", "compilations_dir", "recursive")


@dataclass
class JournalConfig:
    """Complete journal configuration."""
    root: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    mode: JournalMode = JournalMode.DAILY
    compilations_dir: str = DEFAULT_COMPILATIONS_DIR
    recursive: bool = False

    @property
    def config_dir(self) -> Path:
        return self.root / CONFIG_DIRNAME

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.config_dir / CONFIG_FILENAME

    @property
    def compilations_path(self) -> Path:
        return self.root / self.compilations_dir

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    def get(self, key: str) -> str:
        if key not in EDITABLE_KEYS:
            raise ConfigError(f"Unknown config key: {key} (valid: {', '.join(EDITABLE_KEYS)})")
        value = getattr(self, key)
        if isinstance(value, JournalMode):
            return value.value
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def set(self, key: str, value: str) -> None:
        """Update an editable key from its string form."""
        if key == "mode":
            try:
                self.mode = JournalMode.parse(value)
            except ValueError as e:
                raise ConfigError(str(e)) from None
        elif key == "compilations_dir":
            if not value.strip():
                raise ConfigError("compilations_dir cannot be empty")
            self.compilations_dir = value.strip()
        elif key == "recursive":
            lowered = value.strip().lower()
            if lowered not in ("true", "false", "1", "0", "yes", "no"):
                raise ConfigError(f"Invalid boolean for recursive: {value!r}")
            self.recursive = lowered in ("true", "1", "yes")
        else:
            raise ConfigError(f"Unknown config key: {key} (valid: {', '.join(EDITABLE_KEYS)})")


def find_journal_root(start: Optional[Path] = None) -> Path:
    """
    Locate the journal root.

    Checks:
    1. GLEANER_ROOT environment variable
    2. The starting directory and its parents, for a `.gleaner/` directory

    Raises NotJournalDirectory if neither yields a journal.
    """
    env_root = os.environ.get("GLEANER_ROOT")
    if env_root:
        root = Path(env_root).expanduser().resolve()
        if not (root / CONFIG_DIRNAME / CONFIG_FILENAME).exists():
            raise NotJournalDirectory(root)
        return root

    start = (start or Path.cwd()).resolve()
    for candidate in (start, *start.parents):
        if (candidate / CONFIG_DIRNAME / CONFIG_FILENAME).exists():
            return candidate
    raise NotJournalDirectory(start)


def load_config(root: Path) -> JournalConfig:
    """
    Load configuration from a journal directory.

    Raises:
        NotJournalDirectory: If config doesn't exist
        ConfigError: If config is invalid
    """
    root = Path(root)
    config_path = root / CONFIG_DIRNAME / CONFIG_FILENAME

    if not config_path.exists():
        raise NotJournalDirectory(root)

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e

    journal = data.get("journal", {})
    version = journal.get("version", 1)
    if version > CONFIG_VERSION:
        raise ConfigError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    try:
        mode = JournalMode.parse(journal.get("mode", JournalMode.DAILY.value))
    except ValueError as e:
        raise ConfigError(str(e)) from None

    compile_section = data.get("compile", {})
    return JournalConfig(
        root=root,
        version=version,
        created=journal.get("created", ""),
        mode=mode,
        compilations_dir=compile_section.get("compilations_dir", DEFAULT_COMPILATIONS_DIR),
        recursive=bool(compile_section.get("recursive", False)),
    )


def save_config(config: JournalConfig) -> None:
    """
    Save configuration to the journal directory.

    Creates the `.gleaner/` directory if it doesn't exist.
    """
    config.config_dir.mkdir(parents=True, exist_ok=True)

    data = {
        "journal": {
            "version": config.version,
            "created": config.created,
            "mode": config.mode.value,
        },
        "compile": {
            "compilations_dir": config.compilations_dir,
            "recursive": config.recursive,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(root: Path, mode: JournalMode = JournalMode.DAILY) -> JournalConfig:
    """
    Load existing config or create a new one with defaults.
    """
    root = Path(root)
    if (root / CONFIG_DIRNAME / CONFIG_FILENAME).exists():
        return load_config(root)
    config = JournalConfig(root=root, mode=mode)
    save_config(config)
    return config
