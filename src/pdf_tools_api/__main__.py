"""Run the server: ``python -m pdf_tools_api``.

Configuration comes from the environment (a ``.env`` file in the working
directory is loaded first). ``LOG_LEVEL`` controls logging verbosity.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
import uvicorn

from pdf_tools_api.main import create_app
from pdf_tools_api.settings import load_settings

LOGGER = logging.getLogger("pdf_tools_api")


def main() -> None:
    load_dotenv()
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings()
    LOGGER.info(
        "Starting %s on %s:%s (tool timeout %ss)",
        settings.app_name,
        settings.bind_host,
        settings.bind_port,
        settings.tool_timeout_seconds,
    )
    uvicorn.run(
        create_app(settings),
        host=settings.bind_host,
        port=settings.bind_port,
        log_level=log_level.lower(),
        proxy_headers=False,
    )


if __name__ == "__main__":
    main()
