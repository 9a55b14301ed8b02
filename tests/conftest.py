"""Pytest configuration for adding the project root to sys.path."""

import logging
import os
import sys
import tempfile

import pytest

# Ensure the repository root (containing the `mapfulfillment` package) is on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

# Keep logs and stores out of the real directories before config is imported
_TEST_ROOT = tempfile.mkdtemp(prefix="mapfulfillment-tests-")
os.environ.setdefault("LOG_DIRECTORY", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("CONFIG_STORE_DIR", os.path.join(_TEST_ROOT, "map-configurations"))
os.environ.setdefault("GENERATION_RECORDS_DIR", os.path.join(_TEST_ROOT, "order-records"))
os.environ.setdefault("STRAVA_ACCESS_TOKEN", "test-token")


@pytest.fixture
def test_logger():
    """Propagating logger so caplog sees the records."""
    log = logging.getLogger("mapfulfillment_tests")
    log.setLevel(logging.DEBUG)
    log.propagate = True
    return log
