"""Process-wide logging setup for the CLI and the API app."""

from __future__ import annotations

import logging.config

from minyanmap.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    """Apply `config/logging.yaml`, with root and handler levels taken from `app.log_level`."""
    settings = get_settings()
    config = get_logging_config()

    level = settings.app.log_level.upper()
    config.setdefault("root", {})["level"] = level
    # Handlers declare their own level in YAML; keep them in step with the root.
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level

    logging.config.dictConfig(config)
