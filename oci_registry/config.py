"""
Configuration module for the container registry.

Every setting is read once from the environment at import time. Numeric
settings must be positive integers; a bad value fails startup with a
ValueError naming the variable.
"""

import os
from pathlib import Path


def _positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


class Config:
    """
    Registry configuration from environment variables.

    Environment Variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
        FLASK_HOST: Server bind address. Default: 0.0.0.0
        FLASK_PORT: Server bind port. Default: 5000
        STORAGE_DIR: Root of blobs/ and repositories/. Default: ./data
        UPLOAD_CHUNK_SIZE: Block size for streaming bodies and re-hashing uploads. Default: 8192
        MAX_REPOSITORY_NAME_LENGTH: Default: 255
        MAX_TAG_LENGTH: Default: 128
        MAX_MANIFEST_SIZE: Largest accepted manifest body in bytes. Default: 4 MiB
    """

    def __init__(self):
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # Server
        self.FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
        self.FLASK_PORT = _positive_int("FLASK_PORT", 5000)

        # Storage
        self.STORAGE_DIR = Path(os.getenv("STORAGE_DIR", "./data")).expanduser()
        self.UPLOAD_CHUNK_SIZE = _positive_int("UPLOAD_CHUNK_SIZE", 8192)

        # Request limits
        self.MAX_REPOSITORY_NAME_LENGTH = _positive_int("MAX_REPOSITORY_NAME_LENGTH", 255)
        self.MAX_TAG_LENGTH = _positive_int("MAX_TAG_LENGTH", 128)
        self.MAX_MANIFEST_SIZE = _positive_int("MAX_MANIFEST_SIZE", 4 * 1024 * 1024)

    def __repr__(self):
        return (
            f"Config(LOG_LEVEL={self.LOG_LEVEL}, "
            f"FLASK_HOST={self.FLASK_HOST}, "
            f"FLASK_PORT={self.FLASK_PORT}, "
            f"STORAGE_DIR={self.STORAGE_DIR}, "
            f"UPLOAD_CHUNK_SIZE={self.UPLOAD_CHUNK_SIZE}, "
            f"MAX_MANIFEST_SIZE={self.MAX_MANIFEST_SIZE})"
        )


# Global config instance
config = Config()
