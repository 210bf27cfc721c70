"""
OCI-compliant container registry backed by a local filesystem.

Serves the OCI Distribution Specification v1.0 API (Docker Registry v2
compatible) from STORAGE_DIR, using the on-disk layout of the reference
distribution registry:

    blobs/<algorithm>/<hash prefix>/<hash>/data
    repositories/<name>/_manifests/revisions/<algorithm>/<hash>/link
    repositories/<name>/_manifests/tags/<tag>/current/link
    repositories/<name>/_manifests/tags/<tag>/index/<algorithm>/<hash>/link
    repositories/<name>/_layers/<algorithm>/<hash>/link
    repositories/<name>/_uploads/<id>/data

Environment Variables:
    LOG_LEVEL, FLASK_HOST, FLASK_PORT, STORAGE_DIR, UPLOAD_CHUNK_SIZE,
    MAX_REPOSITORY_NAME_LENGTH, MAX_TAG_LENGTH, MAX_MANIFEST_SIZE

Example:
    $ STORAGE_DIR=/var/lib/registry LOG_LEVEL=DEBUG python app.py
    $ podman push --tls-verify=false alpine localhost:5000/library/alpine:latest
    $ podman pull --tls-verify=false localhost:5000/library/alpine:latest
"""

import logging

from oci_registry.config import config
from oci_registry.routes import app

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    """Main entry point for the registry application."""
    debug_mode = logger.getEffectiveLevel() == logging.DEBUG
    logger.info(f"Starting container registry service on {config.FLASK_HOST}:{config.FLASK_PORT}")
    logger.info(f"Configuration: {config}")
    logger.info(f"Log level: {logging.getLevelName(logger.getEffectiveLevel())}")
    if debug_mode:
        logger.info("Flask debug mode enabled")
    # Upload locks are per process
    app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=debug_mode, threaded=True, use_reloader=False)


if __name__ == "__main__":
    main()
