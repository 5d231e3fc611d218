"""Entrypoint for running the presence board API via `python -m presence_board.main`."""

from __future__ import annotations

import logging
import os

import uvicorn

from .api import create_app
from .config import load_settings


def run() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "info").upper(),
        handlers=[logging.StreamHandler()],
    )
    env_file = os.getenv("PRESENCE_BOARD_ENV")
    settings = load_settings(env_file)
    app = create_app(settings)
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info"),
    )


if __name__ == "__main__":  # pragma: no cover
    run()
