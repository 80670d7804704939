import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tip_pool import directory
from tip_pool.db import init_db


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tips.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def tenant(db):
    return directory.create_tenant(db, "Erwin Mills")


@pytest.fixture
def staff(db, tenant):
    alice = directory.create_employee(db, tenant.id, "Alice")
    bob = directory.create_employee(db, tenant.id, "Bob")
    return alice, bob
