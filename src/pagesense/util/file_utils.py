import json
import os
from pathlib import Path
from typing import Any, Dict, Union

import yaml


def ensure_dir(file_path):
    """
    Check if a directory of the given file path exists, if not, create it.

    Args:
    file_path (str): The path of the file.

    Returns:
    dir_path (str): The directory path.
    """
    dir_path = os.path.dirname(str(file_path))
    if dir_path and not os.path.exists(dir_path):
        os.makedirs(dir_path, exist_ok=True)
    return dir_path


def from_json_or_yaml(filepath: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a configuration mapping from a JSON or YAML file.

    Args:
    filepath (str | Path): Path ending in .json, .yaml or .yml.

    Returns:
    dict: The parsed mapping (empty when the file holds nothing).
    """
    path = Path(filepath)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as handle:
        if suffix == ".json":
            data = json.load(handle)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(handle)
        else:
            raise ValueError(f"Unsupported config format: {suffix or path.name}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data
