"""
Server startup module for PresenceHub.
Provides the entry point for starting the gateway and the messaging api.
"""

import asyncio
import logging

from PresenceHub.api import build_server, create_app
from PresenceHub.config import config
from PresenceHub.core.logging import auto_configure
from PresenceHub.core.server import initialize

logger = logging.getLogger(__name__)


async def _serve(host: str, port: int, api_port: int, srv_only: bool) -> None:
    gateway = initialize()

    async with gateway.run(host, port):
        if srv_only:
            await asyncio.Future()
        else:
            # Same loop as the gateway
            api_server = build_server(create_app(gateway), host=host, port=api_port)
            await api_server.serve()


def server(host=None, port=None, api_port=None, srv_only=False):
    """
    Start the gateway and the messaging api.

    Args:
        host (str): Host to bind to (default: config.DEFAULT_HOST)
        port (int): Gateway port (default: config.DEFAULT_SERVER_PORT)
        api_port (int): Api port (default: config.DEFAULT_API_PORT)
        srv_only (bool): If True, run the gateway without the api.
    """
    auto_configure(config.ENV)

    host = host or config.DEFAULT_HOST
    port = config.DEFAULT_SERVER_PORT if port is None else port
    api_port = config.DEFAULT_API_PORT if api_port is None else api_port

    try:
        asyncio.run(_serve(host, port, api_port, srv_only))
    except KeyboardInterrupt:
        logger.info("Closed by user.")
