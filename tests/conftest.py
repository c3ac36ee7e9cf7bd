import asyncio
import inspect
import os
import sys
from pathlib import Path

# Set before any import that might initialize settings or the runtime
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault(
    "JWT_SIGNER_KEY",
    "test-signer-key-for-automated-tests-only-0123456789-abcdefghijklmnopqrstuvwxyz",
)
# Empty URL disables Redis; the refresh registry falls back to process memory
os.environ.setdefault("REDIS_URL", "")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from identityservice.service.runtime import reset_runtime_for_tests  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
