"""
Pytest configuration and shared fixtures.
"""

import hashlib

import pytest

from oci_registry.digest import SHA256, Digest
from oci_registry.storage import DistributionRegistryStorage


def sha256_digest(data: bytes) -> Digest:
    """Digest computed independently of the registry's own codec."""
    return Digest(SHA256, hashlib.sha256(data).hexdigest())


@pytest.fixture
def storage_dir(tmp_path):
    """Fixture that provides an empty storage root directory"""
    return tmp_path / "registry"


@pytest.fixture
def storage(storage_dir):
    """Fixture that provides a filesystem storage with a small re-hash block size"""
    return DistributionRegistryStorage(storage_dir, chunk_size=4)


@pytest.fixture
def app(storage):
    """
    Create and configure a test Flask app.

    The module level app is pointed at the per-test storage and restored
    afterwards.
    """
    from oci_registry.routes import app as flask_app

    flask_app.config["TESTING"] = True
    flask_app.config["REGISTRY_STORAGE"] = storage
    yield flask_app
    flask_app.config.pop("REGISTRY_STORAGE", None)


@pytest.fixture
def client(app):
    """Create a Flask test client."""
    return app.test_client()
