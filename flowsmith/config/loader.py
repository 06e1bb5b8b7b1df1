"""Locating, reading and writing ``flowsmith.yaml``."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from flowsmith.config.models import FlowsmithConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "FLOWSMITH_CONFIG"

_HEADER = """\
# Flowsmith engine configuration.
# Precedence: defaults < this file < FLOWSMITH_<SECTION>__<KEY> env vars < runtime overrides.
# execution, dispatcher, scheduler and metrics are applied by `flowsmith reload`;
# database and http need a restart.
"""


class ConfigLoadError(ValueError):
    """Raised when configuration YAML cannot be parsed."""


class YAMLConfigLoader:
    """Reads the YAML layer of the configuration."""

    DEFAULT_FILENAME = "flowsmith.yaml"

    @classmethod
    def resolve_path(cls, cli_path: str | None = None) -> Path:
        """``FLOWSMITH_CONFIG`` wins over *cli_path*; otherwise ``./flowsmith.yaml``."""
        for candidate in (os.environ.get(CONFIG_PATH_ENV), cli_path):
            if candidate and candidate.strip():
                return Path(candidate.strip()).expanduser()
        return Path.cwd() / cls.DEFAULT_FILENAME

    @classmethod
    def load_dict(cls, path: str | Path | None = None) -> dict[str, Any]:
        """Return the file's top-level mapping; a missing or empty file yields ``{}``."""
        target = cls.resolve_path() if path is None else Path(path).expanduser()
        try:
            text = target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = yaml.safe_load(text)
        except yaml.MarkedYAMLError as exc:
            mark = exc.problem_mark
            where = f"{target}:{mark.line + 1}:{mark.column + 1}" if mark is not None else str(target)
            raise ConfigLoadError(f"Invalid YAML at {where}: {exc.problem}") from exc
        except yaml.YAMLError as exc:
            raise ConfigLoadError(f"Invalid YAML at {target}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(f"Config root must be a mapping of sections: {target}")
        unknown = sorted(str(key) for key in data if key not in FlowsmithConfig.model_fields)
        if unknown:
            logger.warning("config_unknown_sections path=%s sections=%s", target, ",".join(unknown))
        return data

    @classmethod
    def dump_default(cls, path: str | Path, *, force: bool = False) -> Path:
        """Write every default (environment ignored) to *path* or ``<path>/flowsmith.yaml``."""
        target = Path(path).expanduser()
        if target.is_dir():
            target = target / cls.DEFAULT_FILENAME
        if target.exists() and not force:
            raise FileExistsError(f"{target} already exists (use --force to overwrite)")
        defaults = FlowsmithConfig.model_construct().model_dump(mode="json")
        target.write_text(_HEADER + yaml.safe_dump(defaults, sort_keys=False), encoding="utf-8")
        return target
