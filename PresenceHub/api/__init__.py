import uvicorn

from PresenceHub.config import config

from .routes_api import create_app


def build_server(app, host: str = None, port: int = None) -> uvicorn.Server:
    """
    Create a uvicorn server for the api without starting it.

    The caller awaits ``serve()`` on its own loop, next to the gateway.

    Args:
        app: ASGI application
        host: Host to bind to
        port: Port for the api
    """
    uv_config = uvicorn.Config(
        app,
        host=host or config.DEFAULT_HOST,
        port=config.DEFAULT_API_PORT if port is None else port,
        log_config=None,
    )
    return uvicorn.Server(uv_config)


__all__ = ['create_app', 'build_server']
