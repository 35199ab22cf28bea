"""
scenedeck.logging - Centralized logging configuration.

Library modules log through the shared "scenedeck" logger; the CLI
decides the level.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("scenedeck")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for the scenedeck package.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise WARNING level
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )
