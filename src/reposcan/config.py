"""Global configuration: XDG paths, YAML file, env vars and defaults."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when configuration values are out of range."""


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "reposcan"
    return Path.home() / ".local" / "share" / "reposcan"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "reposcan"
    return Path.home() / ".config" / "reposcan"


# env var → (attribute, converter)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "SCANNER_MAX_REPO_SIZE_MB": ("max_repo_size_mb", int),
    "SCANNER_MAX_REVIEW_FILES": ("max_review_files", int),
    "SCANNER_TOOL_TIMEOUT_SECONDS": ("tool_timeout_seconds", int),
    "SCANNER_CLONE_TIMEOUT": ("clone_timeout", float),
    "SCANNER_RESULT_RETENTION_DAYS": ("retention_days", int),
    "SCANNER_MAX_CONCURRENT_TOOLS": ("max_concurrent_tools", int),
    "SCANNER_REVIEW_TIMEOUT": ("review_timeout", float),
    "SCANNER_REVIEW_MODEL": ("review_model", str),
    "SCANNER_CONTAINER": ("scanner_container", str),
    "GITHUB_TOKEN": ("github_token", str),
    "OPENAI_API_KEY": ("openai_api_key", str),
    "REPOSCAN_WEB_PORT": ("web_port", int),
}

# YAML keys accepted under the `scanner:` section, with their converters
_SCANNER_KEYS: dict[str, type] = {
    "max_repo_size_mb": int,
    "max_review_files": int,
    "tool_timeout_seconds": int,
    "clone_timeout": float,
    "retention_days": int,
    "max_concurrent_tools": int,
    "max_detect_files": int,
    "review_timeout": float,
    "review_model": str,
    "scanner_container": str,
}


def _convert(name: str, value: object, convert: type):
    if value is None or isinstance(value, (bool, dict, list)):
        raise ConfigError(f"{name} has an invalid value: {value!r}")
    try:
        return convert(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} has an invalid value: {value!r}") from None


@dataclass
class ReposcanConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    max_repo_size_mb: int = 500
    max_review_files: int = 10
    tool_timeout_seconds: int = 300
    clone_timeout: float = 300.0
    retention_days: int = 7
    max_concurrent_tools: int = 4
    max_detect_files: int = 50_000
    review_timeout: float = 120.0
    review_model: str = "gpt-4o-mini"
    scanner_container: str = ""
    temp_dir: str | None = None
    github_token: str = field(default="", repr=False)
    openai_api_key: str = field(default="", repr=False)
    web_host: str = "127.0.0.1"
    web_port: int = 8480
    verbose: bool = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / "reposcan.db"

    @classmethod
    def load(cls, path: str | Path | None = None) -> ReposcanConfig:
        """Load config: defaults, then YAML file, then environment variables."""
        config = cls()

        if path is None:
            path = os.environ.get("REPOSCAN_CONFIG") or config.config_dir / "config.yaml"
        config_file = Path(path)
        if config_file.is_file():
            config._apply_file(config_file)

        config._apply_env()
        config.validate()
        return config

    def _apply_file(self, path: Path) -> None:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must be a mapping")

        scanner = data.get("scanner") or {}
        for key, convert in _SCANNER_KEYS.items():
            if key in scanner:
                setattr(self, key, _convert(f"scanner.{key}", scanner[key], convert))

        web = data.get("web") or {}
        if "port" in web:
            self.web_port = _convert("web.port", web["port"], int)
        if "data_dir" in data:
            self.data_dir = Path(data["data_dir"]).expanduser()

    def _apply_env(self) -> None:
        for var, (attr, convert) in _ENV_OVERRIDES.items():
            raw = os.environ.get(var)
            if not raw:
                continue
            try:
                setattr(self, attr, convert(raw))
            except ValueError:
                logger.warning("Ignoring invalid value for %s: %r", var, raw)

    def validate(self) -> None:
        """Check every value is within range; report all problems at once."""
        errors: list[str] = []
        if self.max_repo_size_mb < 1:
            errors.append("scanner.max_repo_size_mb must be at least 1")
        if self.max_review_files < 1:
            errors.append("scanner.max_review_files must be at least 1")
        if self.tool_timeout_seconds < 1:
            errors.append("scanner.tool_timeout_seconds must be at least 1")
        if self.clone_timeout <= 0:
            errors.append("scanner.clone_timeout must be positive")
        if self.retention_days < 1:
            errors.append("scanner.retention_days must be at least 1")
        if self.max_concurrent_tools < 1:
            errors.append("scanner.max_concurrent_tools must be at least 1")
        if self.max_detect_files < 1:
            errors.append("scanner.max_detect_files must be at least 1")
        if self.review_timeout <= 0:
            errors.append("scanner.review_timeout must be positive")
        if not 1 <= self.web_port <= 65535:
            errors.append(f"web.port must be 1-65535, got {self.web_port}")
        if errors:
            raise ConfigError("; ".join(errors))

    @property
    def ai_review_enabled(self) -> bool:
        return bool(self.openai_api_key)
