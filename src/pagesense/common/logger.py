# logger.py
import copy
import logging
import logging.config
from typing import Any, Dict

from pagesense.util.file_utils import ensure_dir, from_json_or_yaml


DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "level": "INFO",
            "stream": "ext://sys.stderr",
        },
    },
    "root": {"handlers": ["console"], "level": "INFO"},
}


def setup_logging(
    config_file_path=None,
    log_file_path=None,
    verbose=False,
):
    """
    Loads logging config from 'config_file_path' (YAML or JSON) and sets up logging.
    Falls back to a console-only config when no file is given.
    Optionally override file handler's filename, and set root logger to DEBUG if 'verbose'.
    """
    if config_file_path:
        config = from_json_or_yaml(config_file_path)
    else:
        config = copy.deepcopy(DEFAULT_LOGGING_CONFIG)

    if log_file_path:
        ensure_dir(log_file_path)
        handlers = config.setdefault("handlers", {})
        if "file_handler" in handlers:
            handlers["file_handler"]["filename"] = str(log_file_path)
        else:
            file_handler = {
                "class": "logging.FileHandler",
                "level": "DEBUG",
                "filename": str(log_file_path),
            }
            formatter_names = list((config.get("formatters") or {}).keys())
            if formatter_names:
                file_handler["formatter"] = formatter_names[0]
            handlers["file_handler"] = file_handler
            root = config.setdefault("root", {"level": "INFO", "handlers": []})
            root.setdefault("handlers", []).append("file_handler")

    logging.config.dictConfig(config)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    return logging.getLogger(__name__)
