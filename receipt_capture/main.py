"""Application entry point for the Receipt Capture API server."""

import uvicorn

from receipt_capture.api.app import app
from receipt_capture.utils.config import load_config
from receipt_capture.utils.logger import setup_logging


def main() -> None:
    """Start the API server on the configured address."""
    config = load_config()
    setup_logging(config.log_level)
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
