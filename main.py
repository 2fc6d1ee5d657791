import logging

import uvicorn

from drivekit.api.app import create_app
from drivekit.config import get_settings
from drivekit.logging import setup_logging

settings = get_settings()
setup_logging(settings.log_file, settings.log_level)

logging.info("drivekit server starting up...")

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.port)
