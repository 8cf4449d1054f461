"""Run the ledger API. Usage: python -m cladhunter"""
from __future__ import annotations

import logging
import sys

import uvicorn

from cladhunter.core.config import get_settings
from cladhunter.main import create_app


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    uvicorn.run(create_app(settings), host=settings.app_host, port=settings.app_port)


if __name__ == "__main__":
    main()
