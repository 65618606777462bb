"""
Test fixtures shared by unit and integration tests.

This module provides an in-memory SQLite database, an application config
with fast retry timings, and a dispatcher wired to the fake Accurate
transport.
"""

from datetime import date

import pytest
from sqlalchemy.orm import Session

from accurate_exchange.accurate.dispatcher import Dispatcher
from accurate_exchange.config import (
    AccurateConfig,
    AppConfig,
    DispatcherConfig,
    ExportConfig,
    ImportConfig,
    reset_config,
    set_config,
)
from accurate_exchange.db import DatabaseManager, get_development_config, set_db_manager
from accurate_exchange.db.db_config import Base, initialize_db
from tests.fixtures.fake_accurate import FakeAccurate


@pytest.fixture(scope="session")
def db_manager() -> DatabaseManager:
    """Create and initialize an in-memory database manager with all models."""
    manager = initialize_db(get_development_config())
    yield manager
    set_db_manager(None)
    manager.close()


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Database session for one test.

    Tables are created before and dropped after each test so every test
    starts from an empty ledger.
    """
    Base.metadata.create_all(db_manager.engine)
    session = db_manager.get_session()

    yield session

    session.rollback()
    db_manager.close_session()
    Base.metadata.drop_all(db_manager.engine)


@pytest.fixture
def app_config() -> AppConfig:
    """Application config with millisecond backoff and test OAuth client settings."""
    config = AppConfig(
        accurate=AccurateConfig(
            client_id="client-1",
            client_secret="client-secret",
            redirect_uri="https://app.example.com/accurate/callback",
            app_key="app-key-1",
            signature_secret="sig-secret",
            account_url="https://account.accurate.id",
        ),
        dispatcher=DispatcherConfig(
            requests_per_second=8,
            max_concurrent=8,
            window_seconds=0.2,
            timeout_seconds=5,
            backoff_base_seconds=0.001,
            backoff_max_seconds=0.01,
        ),
        export=ExportConfig(preview_limit=20, page_size=100, detail_workers=4),
        imports=ImportConfig(max_workers=4, earliest_date=date(2000, 1, 1), max_future_days=31),
    )
    set_config(config)
    yield config
    reset_config()


@pytest.fixture
def fake_accurate() -> FakeAccurate:
    fake = FakeAccurate()
    fake.add_item("BRG-001", "Kopi Arabika", unit="PCS")
    fake.add_item("BRG-002", "Teh Hijau", unit="BOX")
    fake.add_item("BRG-003", "Gula Pasir", unit="KG")
    fake.add_item("BRG-004", "Susu UHT", unit="PCS")
    fake.add_item("BRG-005", "Cokelat Bubuk", unit="PCS")
    return fake


@pytest.fixture
def sleeps():
    """Recorded backoff delays instead of real sleeping."""
    return []


@pytest.fixture
def dispatcher(app_config: AppConfig, fake_accurate: FakeAccurate, sleeps) -> Dispatcher:
    return Dispatcher(
        config=app_config.dispatcher,
        accurate_config=app_config.accurate,
        session=fake_accurate,
        sleep=sleeps.append,
    )


@pytest.fixture
def owner_id() -> str:
    return "owner-123"
