"""Command line interface for running the API server."""
import argparse
import asyncio
import logging
import signal

import uvicorn

from config import settings_conf
from database import init_db, close as db_close

# Configure logging
logging.basicConfig(
    level=settings_conf['log_level'],
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

class UvicornServer:
    """Wrapper for running uvicorn with proper lifecycle management."""

    def __init__(self, app_path: str = "api:app", host: str = "0.0.0.0", port: int = 8000):
        self.config = uvicorn.Config(
            app_path,
            host=host,
            port=port,
            log_level=settings_conf['log_level'].lower()
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Run the server in a way that can be stopped."""
        await self.server.serve()

    def stop(self):
        """Stop the server."""
        self.server.should_exit = True

async def main(force_recreate: bool = False):
    """Initialize the database and run the API server until stopped."""
    server = UvicornServer(
        host=settings_conf['api_host'],
        port=settings_conf['api_port']
    )

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received. Cleaning up...")
        server.stop()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    try:
        logger.info("Initializing database...")
        await init_db(force_recreate=force_recreate)

        logger.info(f"Serving on {settings_conf['api_host']}:{settings_conf['api_port']}")
        await server.run()
    finally:
        logger.info("Closing database connections...")
        await db_close()
        logger.info("Cleanup complete.")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the marketplace API server")
    parser.add_argument(
        '--force-recreate',
        action='store_true',
        help="Drop every table and install the latest schema"
    )
    args = parser.parse_args()
    asyncio.run(main(force_recreate=args.force_recreate))
