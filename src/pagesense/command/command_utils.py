"""
Helpers shared by the pagesense command line entry points: paths, config
loading and JSON output.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import click

from pagesense.config.pagesense_config import PageSenseConfig
from pagesense.util.file_utils import from_json_or_yaml


def get_project_root():
    """
    Determines the directory holding the repository level ``configs/`` folder.
    """
    return Path(__file__).resolve().parents[3]


def get_log_dir():
    """
    Logs are stored in the user's home directory under '.pagesense/logs/'.
    """
    log_dir = Path.home() / '.pagesense' / 'logs'
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def default_logger_config_path() -> Optional[Path]:
    path = get_project_root() / "configs" / "logger_config.yaml"
    return path if path.is_file() else None


def resolve_env_vars(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Resolve *_env_var keys in a config dict by pulling from os.environ.

    Example:
        {"connect_timeout_env_var": "BROWSER_CONNECT_TIMEOUT"} -> {"connect_timeout": "12"}
    """
    def _resolve_mapping(mapping: Dict[str, Any]) -> None:
        for key, value in list(mapping.items()):
            if isinstance(value, dict):
                _resolve_mapping(value)
                continue
            if not isinstance(value, str) or not key.endswith("_env_var"):
                continue
            target_key = key[: -len("_env_var")]
            if mapping.get(target_key) is not None:
                continue
            env_value = os.getenv(value)
            if env_value:
                mapping[target_key] = env_value

    if isinstance(config_dict, dict):
        _resolve_mapping(config_dict)
    return config_dict


def load_config(config_path: Optional[str]) -> PageSenseConfig:
    """File settings first, then PAGESENSE_* environment overrides."""
    if not config_path:
        return PageSenseConfig.from_env()
    data = resolve_env_vars(from_json_or_yaml(config_path))
    return PageSenseConfig.from_env(PageSenseConfig.from_dict(data.get("pagesense", data)))


def parse_point(raw: str) -> Dict[str, Any]:
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) != 3:
        raise click.BadParameter(f"expected X,Y,TAG but got {raw!r}")
    try:
        return {"x": float(parts[0]), "y": float(parts[1]), "tag": parts[2]}
    except ValueError as exc:
        raise click.BadParameter(f"invalid coordinates in {raw!r}") from exc


def emit_json(payload: Any, *, err: bool = False) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False), err=err)
