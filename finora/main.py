"""Application entry point.

Run with ``uvicorn finora.main:app`` or the ``finora`` console script.
"""

from __future__ import annotations

import uvicorn

from finora.api.app import create_api_app
from finora.core.config import settings
from finora.core.logging import setup_logging


setup_logging()

app = create_api_app()


def run() -> None:
    uvicorn.run(
        "finora.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_config=None,
    )


if __name__ == "__main__":
    run()
