"""Entry point for `python -m src.voice_translator`."""

import logging

import structlog
import uvicorn

from src.voice_translator.api.app import create_app
from src.voice_translator.config import Settings

logger = structlog.get_logger()


def main() -> None:
    settings = Settings()
    logging.basicConfig(level=settings.log_level.upper())
    logger.info("Starting Voice Translator", host=settings.host, port=settings.port)
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, reload=False, workers=1)


if __name__ == "__main__":
    main()
