"""Process-wide configuration with layered sources and hot reload."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, ClassVar

from pydantic_settings import EnvSettingsSource

from flowsmith.config.loader import YAMLConfigLoader
from flowsmith.config.models import FlowsmithConfig

logger = logging.getLogger(__name__)

ConfigListener = Callable[[FlowsmithConfig, FlowsmithConfig], None]

# Sections the running engine swaps in place; the rest need a restart.
HOT_RELOAD_SECTIONS = frozenset({"execution", "dispatcher", "scheduler", "metrics"})


def _merge(base: dict[str, Any], layer: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in layer.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge(current, value)
        else:
            merged[key] = value
    return merged


def _env_layer() -> dict[str, Any]:
    """``FLOWSMITH_<SECTION>__<KEY>`` variables as a nested mapping."""
    return EnvSettingsSource(FlowsmithConfig)()


def _changed_paths(old: Any, new: Any, prefix: str = "") -> dict[str, Any]:
    if isinstance(old, dict) and isinstance(new, dict):
        changes: dict[str, Any] = {}
        for key in sorted(old.keys() | new.keys(), key=str):
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_changed_paths(old.get(key), new.get(key), path))
        return changes
    return {} if old == new else {prefix: new}


@dataclass(frozen=True)
class ReloadResult:
    """Dotted setting paths that changed on reload, split by whether they took effect."""

    applied: dict[str, Any] = field(default_factory=dict)
    skipped: dict[str, Any] = field(default_factory=dict)

    @property
    def restart_required(self) -> bool:
        return bool(self.skipped)


class ConfigManager:
    """Holds the current :class:`FlowsmithConfig` snapshot.

    Layers, lowest first: model defaults, the YAML file, the environment,
    runtime overrides. Snapshots are replaced whole, so readers never see a
    partially applied reload.
    """

    _instance: ClassVar[ConfigManager | None] = None
    _instance_lock: ClassVar[Lock] = Lock()

    def __init__(self) -> None:
        self._lock = Lock()
        self._config = FlowsmithConfig()
        self._listeners: list[ConfigListener] = []
        self._config_path: str | None = None
        self._overrides: dict[str, Any] = {}

    @classmethod
    def instance(cls) -> ConfigManager:
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def _reset_for_tests(cls) -> None:
        with cls._instance_lock:
            cls._instance = None

    @staticmethod
    def _compose(config_path: str | None, overrides: dict[str, Any]) -> FlowsmithConfig:
        merged: dict[str, Any] = {}
        for layer in (YAMLConfigLoader.load_dict(config_path), _env_layer(), overrides):
            merged = _merge(merged, layer)
        return FlowsmithConfig.model_validate(merged)

    @staticmethod
    def _notify(listeners: tuple[ConfigListener, ...], old: FlowsmithConfig, new: FlowsmithConfig) -> None:
        for listener in listeners:
            listener(old, new)

    @classmethod
    def load(
        cls,
        config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ConfigManager:
        """Replace the snapshot with a fresh composition of every layer."""
        manager = cls.instance()
        runtime = dict(overrides or {})
        new = cls._compose(config_path, runtime)
        with manager._lock:
            old, manager._config = manager._config, new
            manager._config_path = config_path
            manager._overrides = runtime
            listeners = tuple(manager._listeners)
        cls._notify(listeners, old, new)
        return manager

    @property
    def config_path(self) -> str | None:
        return self._config_path

    def get(self) -> FlowsmithConfig:
        with self._lock:
            return self._config

    def on_change(self, callback: ConfigListener) -> None:
        """Register ``callback(old, new)``; called after every load and applied reload."""
        with self._lock:
            self._listeners.append(callback)

    def reload(self, config_path: str | None = None) -> ReloadResult:
        """Re-read every layer and apply only :data:`HOT_RELOAD_SECTIONS`."""
        with self._lock:
            old = self._config
            path = config_path if config_path is not None else self._config_path
            overrides = dict(self._overrides)
            listeners = tuple(self._listeners)
        candidate = self._compose(path, overrides)

        applied: dict[str, Any] = {}
        skipped: dict[str, Any] = {}
        for dotted, value in _changed_paths(old.model_dump(), candidate.model_dump()).items():
            bucket = applied if dotted.split(".", 1)[0] in HOT_RELOAD_SECTIONS else skipped
            bucket[dotted] = value

        sections = {dotted.split(".", 1)[0] for dotted in applied}
        new = old.model_copy(update={name: getattr(candidate, name) for name in sections})
        with self._lock:
            self._config_path = path
            if sections:
                self._config = new
        if skipped:
            logger.warning("config_reload_restart_required keys=%s", ",".join(skipped))
        if sections:
            logger.info("config_reloaded sections=%s", ",".join(sorted(sections)))
            self._notify(listeners, old, new)
        return ReloadResult(applied=applied, skipped=skipped)
