from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from aiplan.application.config_models import AppConfig
from aiplan.domain.constants import CONFIG_DIR_NAME, CONFIG_FILENAME


class ConfigLoadError(Exception):
    def __init__(self, message: str, *, path: Path | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


def _defaults() -> dict[str, Any]:
    return AppConfig().model_dump()


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge mapping keys. For non-dict values, overlay wins.
    """
    merged: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k] = _deep_merge(merged[k], v)  # type: ignore[arg-type]
        else:
            merged[k] = v
    return merged


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """
    Load YAML file and ensure root is a mapping.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except Exception as e:  # pragma: no cover
        raise ConfigLoadError("Failed to read config file", path=path, cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except Exception as e:
        raise ConfigLoadError("Malformed YAML", path=path, cause=e) from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigLoadError("YAML root must be a mapping", path=path)

    return data


def user_config_path(user_home: Path | None = None) -> Path:
    return (user_home or Path.home()) / CONFIG_DIR_NAME / CONFIG_FILENAME


def project_config_path(project_root: Path | None = None) -> Path:
    return (project_root or Path.cwd()) / CONFIG_DIR_NAME / CONFIG_FILENAME


def load_config(*, project_root: Path | None = None, user_home: Path | None = None) -> AppConfig:
    """
    Load and merge config with precedence (highest wins):
    CLI args (handled in CLI) > project > user > defaults.

    Files:
      - user:    user_home/.aiplan/config.yml
      - project: project_root/.aiplan/config.yml

    Raises:
        ConfigLoadError: If a file is malformed or the merged config is invalid
    """
    cfg: dict[str, Any] = _defaults()
    cfg = _deep_merge(cfg, _load_yaml_mapping(user_config_path(user_home)))

    project_path = project_config_path(project_root)
    cfg = _deep_merge(cfg, _load_yaml_mapping(project_path))

    try:
        return AppConfig.model_validate(cfg)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid configuration ({e.error_count()} errors)", cause=e) from e
