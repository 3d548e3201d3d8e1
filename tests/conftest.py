import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep the runtime data dir (db, logs, config) out of the user's profile.
os.environ.setdefault("EDUPAY_DATA_DIR", tempfile.mkdtemp(prefix="edupay-tests-"))

from sqlmodel import Session, SQLModel, create_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import models  # noqa: E402,F401
from storage import migrations  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    migrations.run_all(engine)
    return engine


@pytest.fixture
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory
