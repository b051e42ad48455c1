#!/usr/bin/env python3
"""DelayCast — Entry point."""

from __future__ import annotations

import logging

from delaycast.bot import create_application
from delaycast.config import get_settings, setup_logging
from delaycast.services.base import ConfigurationError


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)

    logger = logging.getLogger("delaycast")
    if not settings.telegram_bot_token:
        raise ConfigurationError("TELEGRAM_BOT_TOKEN is not configured")

    logger.info("Starting DelayCast…")
    app = create_application(settings)
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
