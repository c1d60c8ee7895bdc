# SPDX-License-Identifier: LGPL-3.0-or-later
import logging
import os
import sys
from pathlib import Path

import pytest

_THIS_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _THIS_DIR.parent

if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))
# fakes are imported as top-level modules: `from fakes.fake_vsphere import ...`
if str(_THIS_DIR) not in sys.path:
    sys.path.insert(0, str(_THIS_DIR))

os.environ.setdefault("PYTHONPATH", str(_REPO_ROOT))


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no vCenter")
    config.addinivalue_line("markers", "security: secret handling")


@pytest.fixture(autouse=True)
def _ovaimporter_logs_propagate():
    # Log.setup() turns propagation off; caplog needs it on.
    logger = logging.getLogger("ovaimporter")
    prev = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = prev
