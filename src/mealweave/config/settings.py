"""Application settings and configuration management."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from mealweave.planning.rules import WeeklyRules


def _default_config_dir() -> Path:
    """Return the default configuration directory."""
    return Path.home() / ".mealweave"


def _default_db_path() -> Path:
    """Return the default database path."""
    return _default_config_dir() / "mealweave.db"


@dataclass
class StorageConfig:
    """Where caches and the variety bank live."""

    backend: str = "memory"  # "memory" or "sqlite"
    path: Path = field(default_factory=_default_db_path)


@dataclass
class GenerationConfig:
    """External generator and retry configuration."""

    base_url: str = "http://localhost:8080"
    endpoint: str = "/api/meals/generate"
    timeout_seconds: float = 20.0
    max_tries: int = 4
    concurrency: int = 3
    bank_retry_limit: int = 3
    plan_timeout_seconds: float = 180.0


@dataclass
class CacheConfig:
    """Result cache configuration."""

    ttl_seconds: float = 300.0
    capacity: int = 300


@dataclass
class VarietyConfig:
    """Cross-session variety bank configuration."""

    enabled: bool = True
    ttl_days: float = 14.0
    capacity: int = 500


@dataclass
class AssemblyConfig:
    """Template assembly configuration."""

    max_iterations: int = 25
    top_k: int = 5
    min_strict_pool: int = 3
    reject_best_effort: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"
    rich: bool = True


@dataclass
class DefaultsConfig:
    """Default values for various operations."""

    output_format: str = "table"  # "table", "json", "markdown"


def _update(section: Any, data: dict[str, Any]) -> None:
    """Copy known keys from a YAML mapping onto a config section."""
    for f in fields(section):
        if f.name not in data or data[f.name] is None:
            continue
        current = getattr(section, f.name)
        value = data[f.name]
        if isinstance(current, Path):
            value = Path(value).expanduser()
        elif isinstance(current, bool):
            value = bool(value)
        elif isinstance(current, int):
            value = int(value)
        elif isinstance(current, float):
            value = float(value)
        setattr(section, f.name, value)


@dataclass
class Settings:
    """Main application settings."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    variety: VarietyConfig = field(default_factory=VarietyConfig)
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)
    rules: WeeklyRules = field(default_factory=WeeklyRules)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from YAML file or return defaults.

        Args:
            config_path: Path to config.yaml. If None, uses ~/.mealweave/config.yaml

        Returns:
            Settings instance
        """
        if config_path is None:
            config_path = _default_config_dir() / "config.yaml"

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        settings = cls()
        for f in fields(settings):
            section_data = data.get(f.name)
            if isinstance(section_data, dict):
                _update(getattr(settings, f.name), section_data)
        return settings

    def to_dict(self) -> dict[str, Any]:
        """Plain dict suitable for YAML."""
        data = asdict(self)
        data["storage"]["path"] = str(self.storage.path)
        return data

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save current settings to YAML file.

        Args:
            config_path: Path to save config.yaml. If None, uses ~/.mealweave/config.yaml
        """
        if config_path is None:
            config_path = _default_config_dir() / "config.yaml"

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, loading from disk if needed."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings(config_path: Optional[Path] = None) -> Settings:
    """Force reload settings from disk."""
    global _settings
    _settings = Settings.load(config_path)
    return _settings
