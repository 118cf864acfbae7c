"""
Web API Runner - FastAPI server for ThreadClear

Serves the analysis endpoints with uvicorn. Host, port and CORS origins come
from the [web] configuration section unless overridden on the command line.
"""

import argparse
import asyncio
import logging

import uvicorn

from ..config.models import CoreConfig
from .base import BaseRunner, RunnerConfig
from .webapi_router import create_app

logger = logging.getLogger(__name__)


class WebAPIRunner(BaseRunner):
    """Web API server runner"""

    def __init__(self):
        super().__init__(RunnerConfig(
            name="WebAPI",
            description="Conversation analysis Web API server",
        ))

    def _add_runner_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--host",
            default=None,
            help="Host to bind to (default: from config)"
        )
        parser.add_argument(
            "--port", "-p",
            type=int,
            default=None,
            help="Port to bind to (default: from config or 8000)"
        )
        parser.add_argument(
            "--cors-origins",
            nargs="*",
            default=None,
            help="Allowed CORS origins (default: from config)"
        )

    def _get_usage_examples(self) -> str:
        return """
Examples:
  threadclear-api                          # Serve on the configured host/port
  threadclear-api --port 8080              # Custom port
  threadclear-api --config prod.toml       # Explicit configuration file
        """

    async def _execute_runner_logic(self, args: argparse.Namespace, config: CoreConfig) -> int:
        host = args.host or config.web.host
        port = args.port or config.web.port
        app = create_app(self.engine, cors_origins=args.cors_origins or list(config.web.cors_origins),
                         debug=config.debug)

        server = uvicorn.Server(uvicorn.Config(
            app=app,
            host=host,
            port=port,
            log_level=config.log_level.value.lower(),
        ))
        logger.info(f"Starting Web API server at http://{host}:{port} (docs at /docs)")
        try:
            await server.serve()
            return 0
        except KeyboardInterrupt:
            return 0


def run_webapi() -> int:
    """Entry point for Web API runner"""
    try:
        runner = WebAPIRunner()
        return asyncio.run(runner.run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(run_webapi())
