#!/usr/bin/env python3
"""CLI helper that verifies whether the configured embedding provider answers."""

from __future__ import annotations

import logging
from pathlib import Path

from contrag.config import load_config
from contrag.errors import ContragError
from contrag.providers import get_embedding_provider


def _configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


def main() -> int:
    _configure_logging()

    project_root = Path(__file__).resolve().parents[1]
    env_file = project_root / ".env"
    try:
        config = load_config(env_file=env_file if env_file.exists() else None)
        provider = get_embedding_provider(config.embedder)
    except ContragError as error:
        logging.error("Invalid configuration: %s", error)
        return 1

    logging.info("Resolved embedding provider: %s", provider.name)
    result = provider.test_connection()
    if not result.connected:
        logging.error("Provider %s is not reachable: %s", result.plugin, result.error)
        return 1

    logging.info("Provider %s answered in %.1f ms (%s)", result.plugin, result.latency_ms or 0.0, result.details)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
