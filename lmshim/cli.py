import argparse
import logging
import sys

import uvicorn

from .config import settings
from .logging_config import configure_logging
from .main import create_app


logger = logging.getLogger("lmshim")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="LM Studio compatible shim in front of OpenRouter")
    parser.add_argument('--host', type=str, default=None, help=f'Shim server host (default: {settings.host})')
    parser.add_argument('--port', type=int, default=None, help=f'Shim server port (default: {settings.port})')
    args = parser.parse_args(argv)

    level = configure_logging(settings)
    if not settings.api_key:
        logger.critical("OPENROUTER_API_KEY is not set")
        sys.exit(1)

    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("Starting shim server at http://%s:%s (upstream: %s)", host, port, settings.base_url)
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None, log_level=logging.getLevelName(level).lower())


if __name__ == "__main__":
    main()
