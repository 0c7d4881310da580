"""Pytest configuration helpers.

This conftest ensures the backend directory is on `sys.path` so tests can
import the `videogen` package regardless of how pytest is invoked, and
provides shared fixtures for storage, requests and caller identity.
"""
import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from videogen.schemas.video import CallerIdentity  # noqa: E402
from videogen.services.asset_store import AssetStore  # noqa: E402
from videogen.services.storage import LocalBlobStorage  # noqa: E402

# 1x1 transparent PNG
PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


@pytest.fixture
def blob_storage(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture
def asset_store(blob_storage):
    return AssetStore(blob_storage)


@pytest.fixture
def caller():
    return CallerIdentity(organization_id="org-1", user_id="user-1", user_email="a@example.com")


@pytest.fixture
def other_caller():
    return CallerIdentity(organization_id="org-1", user_id="user-2")
