import asyncio
import os
import tempfile

import pytest
from cryptography.fernet import Fernet

# Point the app at throwaway storage before config.py is imported anywhere
_TMP = tempfile.mkdtemp(prefix="medchain-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP, 'api.db')}"
os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ["LOG_FILE"] = os.path.join(_TMP, "medchain.log")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from core.crypto import crypto_engine  # noqa: E402
from db.session import init_db, make_engine, make_sessionmaker  # noqa: E402
from modules import accounts  # noqa: E402


@pytest.fixture(autouse=True)
def _crypto_ready():
    crypto_engine.initialize()
    yield


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest.fixture
def run(loop):
    """Drive a coroutine to completion on the per-test loop."""
    return loop.run_until_complete


@pytest.fixture
def db_engine(run, tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'medchain.db'}")
    run(init_db(engine))
    yield engine
    run(engine.dispose())


@pytest.fixture
def session_factory(db_engine):
    return make_sessionmaker(db_engine)


@pytest.fixture
def db(run, session_factory):
    session = session_factory()
    yield session
    run(session.close())


@pytest.fixture
def patient(run, db):
    return run(accounts.create_identity(db, "Alice", "alice@x.com", "patient", password="alice-pw"))


@pytest.fixture
def doctor(run, db):
    return run(accounts.create_identity(db, "Bob", "bob@x.com", "doctor", password="bob-pw"))


@pytest.fixture
def other_doctor(run, db):
    return run(accounts.create_identity(db, "Carol", "carol@x.com", "doctor", wallet_address="0xAbC123"))
