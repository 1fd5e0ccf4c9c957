"""AegisAgent - CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging

from aegisAgent.cli import AegisCLI, cli_approval_resolver
from aegisAgent.config.settings import get_settings
from aegisAgent.runtime.app import build_application
from aegisAgent.utils.logging_utils import current_log_file, setup_logging


async def async_main():
    """Async entrypoint for the Aegis CLI."""
    settings = get_settings()
    logger = setup_logging(
        level=getattr(logging, settings.observability.log_level.upper(), logging.INFO),
        logs_dir=settings.observability.log_dir,
    )
    logger.info("AegisAgent starting...")

    app = None
    try:
        app = await build_application(settings, approval_resolver=cli_approval_resolver)
        logger.info("Application built successfully")
        print(f"Log file: {current_log_file()}")

        cli = AegisCLI(app)
        await cli.run()
    except Exception as e:
        logger.error(f"Fatal error during startup: {e}", exc_info=True)
        print(f"\n❌ Startup failed: {e}")
        print("See the log file for details")
    finally:
        if app is not None:
            await app.shutdown()


def main():
    """Synchronous wrapper for async_main."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
