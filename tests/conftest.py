"""
Register pytest plugins, fixtures, and hooks to be used during test execution.

Settings are read from the environment when snipshare is first imported,
so the test environment is configured here before any fixture module
imports the application.
"""
import os
import sys
import tempfile
from pathlib import Path

THIS_DIR = Path(__file__).parent
TESTS_DIR_PARENT = (THIS_DIR / "..").resolve()

# add the parent directory of tests/ to PYTHONPATH
# so that we can use "from tests.<module> import ..." in our tests and fixtures
sys.path.insert(0, str(TESTS_DIR_PARENT))

_TEST_DIR = Path(tempfile.mkdtemp(prefix="snipshare-tests-"))

os.environ["ENVIRONMENT"] = "DEV"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'snipshare.db'}"
os.environ["LOG_DIR"] = str(_TEST_DIR / "logs")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SHARE_BASE_URL"] = ""
os.environ["SHARE_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["PROMETHEUS_PUSHGATEWAY_URL"] = ""
# argon2 최소 비용 (테스트 속도)
os.environ["SHARE_PASSWORD_TIME_COST"] = "1"
os.environ["SHARE_PASSWORD_MEMORY_COST"] = "8192"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-with-enough-length"

# Register all fixture modules
pytest_plugins = [
    # Database, HTTP client and user fixtures
    "tests.fixtures.app_fixtures",
    # Snippet and share link factories
    "tests.fixtures.share_fixtures",
]
