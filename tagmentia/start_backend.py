#!/usr/bin/env python3
"""
Run the Tagmentia limits API under uvicorn.

    python -m tagmentia.start_backend
    tagmentia-limits            (console script)

Host and port come from HOST and PORT (default 0.0.0.0:8000).
"""
import logging
import sys

import uvicorn

from tagmentia.core.config import settings

logger = logging.getLogger("tagmentia")


def main() -> int:
    logger.info("[startup] serving on %s:%s", settings.HOST, settings.PORT)
    try:
        uvicorn.run(
            "tagmentia.main:app",
            host=settings.HOST,
            port=settings.PORT,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        logger.info("[startup] shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
