from __future__ import annotations

import logging
import sys

from .config import load_settings

RUMOROSI = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "urllib3",
    "httpx",
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
)


def configura_logging(verbose: bool = True) -> None:
    """Logging su stdout; in modalità non verbosa solo warning e librerie silenziate."""
    livello = getattr(logging, load_settings().log_level, logging.INFO) if verbose else logging.WARNING

    logging.basicConfig(
        level=livello,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if not verbose:
        for nome in RUMOROSI:
            logger = logging.getLogger(nome)
            logger.setLevel(logging.ERROR)
            logger.propagate = False
