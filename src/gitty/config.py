"""Configuration management for gitty."""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import StatMode
from .utils.text import DEFAULT_DATE_FORMAT

logger = logging.getLogger(__name__)

CONFIG_SCHEMA_VERSION = 1

ConfigListener = Callable[[List[str]], None]


class HistoryConfig(BaseModel):
    """Configuration for the history document."""

    stat_mode: StatMode = Field(
        default=StatMode.SHORT,
        description="Per-commit detail level: none, short or full",
    )
    commits_count: int = Field(
        default=200, ge=1, description="Commits loaded per page"
    )
    graph: bool = Field(default=True, description="Draw the ASCII branch graph")
    date_format: str = Field(
        default=DEFAULT_DATE_FORMAT,
        description="strftime pattern for commit dates, %N is the relative date",
    )
    command_timeout: Optional[float] = Field(
        default=30.0, description="Timeout in seconds for each git command"
    )


class ExplorerConfig(BaseModel):
    """Configuration for committed-file listings."""

    tree_view: bool = Field(
        default=True, description="Show committed files as a folder tree"
    )
    file_history_limit: int = Field(
        default=25, ge=1, description="Commits listed in a file history"
    )
    file_history_label: str = Field(
        default="${hash} • ${subject}",
        description="Label template for file history entries",
    )


class Config(BaseModel):
    """Main configuration for gitty."""

    version: int = Field(
        default=CONFIG_SCHEMA_VERSION, description="Configuration schema version"
    )
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    explorer: ExplorerConfig = Field(default_factory=ExplorerConfig)
    git_executable: str = Field(default="git", description="git binary to run")

    @field_validator("version")
    @classmethod
    def check_version(cls, v: int) -> int:
        """Reject configuration files written by a newer schema."""
        if v > CONFIG_SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported config version {v} (max {CONFIG_SCHEMA_VERSION})"
            )
        return v

    def flatten(self) -> Dict[str, Any]:
        """Dotted key -> value view, e.g. ``history.stat_mode``."""
        flat: Dict[str, Any] = {}
        for section, values in self.model_dump(mode="json").items():
            if isinstance(values, dict):
                for key, value in values.items():
                    flat[f"{section}.{key}"] = value
            else:
                flat[section] = values
        return flat


class ConfigManager:
    """Manages configuration loading and saving."""

    DEFAULT_CONFIG_PATH = Path(".gitty/config.json")

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """Load configuration from file or fall back to defaults."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    data = json.load(f)
                self._config = Config(**data)
            except Exception as e:
                raise ValueError(f"Failed to load config from {self.config_path}: {e}")
        else:
            self._config = Config()

        return self._config

    def save(self, config: Optional[Config] = None) -> None:
        if config is None:
            config = self.get_config()
        self._config = config

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w") as f:
            json.dump(config.model_dump(mode="json"), f, indent=2, sort_keys=True)

    def get_config(self) -> Config:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        if self._config is None:
            raise RuntimeError("Failed to load configuration")
        return self._config

    @staticmethod
    def find_config_path(start_dir: Optional[Path] = None) -> Optional[Path]:
        """Find .gitty/config.json by walking up the directory tree."""
        current = (start_dir or Path.cwd()).resolve()
        for path in [current] + list(current.parents):
            config_path = path / ".gitty" / "config.json"
            if config_path.exists():
                return config_path
        return None

    @classmethod
    def create_with_backtrack(cls, start_dir: Optional[Path] = None) -> "ConfigManager":
        """ConfigManager for the nearest config file, or a default path in ``start_dir``."""
        config_path = cls.find_config_path(start_dir)
        if config_path is None:
            config_path = (start_dir or Path.cwd()) / ".gitty" / "config.json"
        return cls(config_path)


class ConfigService:
    """Owns the live configuration and its change channel.

    Listeners receive the dotted names of the keys that changed, e.g.
    ``["history.graph"]``, and filter by prefix themselves.
    """

    def __init__(self, manager: Optional[ConfigManager] = None, persist: bool = True):
        self.manager = manager or ConfigManager()
        self.persist = persist
        self._config = self.manager.get_config()
        self._listeners: List[ConfigListener] = []

    @property
    def config(self) -> Config:
        return self._config

    @property
    def history(self) -> HistoryConfig:
        return self._config.history

    @property
    def explorer(self) -> ExplorerConfig:
        return self._config.explorer

    def on_did_change(self, listener: ConfigListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispose(self) -> None:
        self._listeners = []

    def _apply(self, new_config: Config) -> List[str]:
        before = self._config.flatten()
        after = new_config.flatten()
        self._config = new_config
        changed = sorted(key for key in after if before.get(key) != after[key])

        if changed:
            logger.info(f"Configuration changed: {', '.join(changed)}")
            for listener in list(self._listeners):
                try:
                    listener(changed)
                except Exception:
                    logger.exception("Configuration listener failed")
        return changed

    def reload(self) -> List[str]:
        """Re-read the configuration file wholesale and notify changed keys."""
        return self._apply(self.manager.load())

    def update(self, **changes: Any) -> List[str]:
        """Apply dotted-key updates, e.g. ``update(**{"history.graph": False})``."""
        data = self._config.model_dump()
        for dotted, value in changes.items():
            section, _, key = dotted.partition(".")
            if key:
                data[section][key] = value
            else:
                data[section] = value

        new_config = Config(**data)
        if self.persist:
            self.manager.save(new_config)
        return self._apply(new_config)

    def toggle_stat_mode(self) -> StatMode:
        """Cycle the history detail level none -> short -> full -> none."""
        mode = self.history.stat_mode.next()
        self.update(**{"history.stat_mode": mode})
        return mode

    def toggle_graph(self) -> bool:
        enabled = not self.history.graph
        self.update(**{"history.graph": enabled})
        return enabled
