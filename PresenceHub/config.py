"""
Configuration module for PresenceHub.
Stores gateway, HTTP and credential settings, read from the environment.
"""

import os
from typing import Any, Dict, List


class Config:
    """Application configuration class."""

    # JWT Configuration (tokens are issued by the surrounding application)
    JWT_SECRET = os.environ.get("JWT_SECRET", "default-secret-key-change-in-production")
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

    # Cross-origin allow-list, comma separated
    CLIENT_URL = os.environ.get("CLIENT_URL", "http://localhost:3000")

    # Server Configuration
    DEFAULT_HOST = os.environ.get("PRESENCEHUB_HOST", "localhost")
    DEFAULT_SERVER_PORT = int(os.environ.get("PRESENCEHUB_PORT", "5000"))
    DEFAULT_API_PORT = int(os.environ.get("PRESENCEHUB_API_PORT", "5001"))

    # Gateway endpoint path and auth handshake deadline (seconds)
    WS_PATH = os.environ.get("PRESENCEHUB_WS_PATH", "/ws")
    HANDSHAKE_TIMEOUT = float(os.environ.get("PRESENCEHUB_HANDSHAKE_TIMEOUT", "10"))

    # Longest a fan-out waits on one connection before moving on (seconds)
    SEND_TIMEOUT = float(os.environ.get("PRESENCEHUB_SEND_TIMEOUT", "0.5"))

    # SQLite database (users and direct messages)
    SQLITE_DB_FILE = os.environ.get("PRESENCEHUB_DB", "presencehub.db")

    # Runtime environment, picks the logging preset
    ENV = os.environ.get("PRESENCEHUB_ENV", "development")

    @classmethod
    def allowed_origins(cls) -> List[str]:
        """Parse CLIENT_URL into the origin allow-list."""
        return [origin.strip() for origin in cls.CLIENT_URL.split(",") if origin.strip()]

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Get all configuration values as a dictionary."""
        return {
            "JWT_ALGORITHM": cls.JWT_ALGORITHM,
            "CLIENT_URL": cls.CLIENT_URL,
            "DEFAULT_HOST": cls.DEFAULT_HOST,
            "DEFAULT_SERVER_PORT": cls.DEFAULT_SERVER_PORT,
            "DEFAULT_API_PORT": cls.DEFAULT_API_PORT,
            "WS_PATH": cls.WS_PATH,
            "HANDSHAKE_TIMEOUT": cls.HANDSHAKE_TIMEOUT,
            "SEND_TIMEOUT": cls.SEND_TIMEOUT,
            "SQLITE_DB_FILE": cls.SQLITE_DB_FILE,
            "ENV": cls.ENV,
        }


# Create config instance
config = Config()
