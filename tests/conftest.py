# tests/conftest.py
import os
import tempfile

# Keep the audit log out of the working tree during test runs
os.environ.setdefault("PORTSURGEON_LOG_FILE", os.path.join(tempfile.gettempdir(), "portsurgeon_tests.log"))

import pytest
from fakes import build_engine


@pytest.fixture
def engine_factory(tmp_path):
    """Builds SurgeonEngines wired to fakes; closes their databases afterwards."""
    engines = []

    def factory(**kwargs):
        engine = build_engine(tmp_path, **kwargs)
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        engine.close()
