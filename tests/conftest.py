import os
import sys
from pathlib import Path

# Configure the environment before any imports that might initialize the runtime
os.environ.setdefault("TOKEN_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("PLATFORM", "dev")
# Cheap argon2 parameters keep the suite fast
os.environ.setdefault("PASSWORD_TIME_COST", "1")
os.environ.setdefault("PASSWORD_MEMORY_COST", "1024")
os.environ.setdefault("PASSWORD_PARALLELISM", "1")
os.environ.pop("SHARED_FS_ROOT", None)

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from chirpauth.service.runtime import reset_runtime_for_tests  # noqa: E402



@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()
