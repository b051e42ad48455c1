from __future__ import annotations

import pytest

from delaycast.bot import build_engine
from delaycast.config import Settings
from delaycast.db import create_all, create_db_engine
from delaycast.services.base import ConfigurationError
from delaycast.services.prediction import PredictionEngine


@pytest.fixture
def db(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bot.db'}")
    create_all(engine)
    yield engine
    engine.dispose()


def test_build_engine_wires_everything(db):
    settings = Settings(
        aviationstack_api_key="a", weatherstack_api_key="w", cache_backend="database",
    )
    assert isinstance(build_engine(settings, db), PredictionEngine)


def test_missing_credentials_fail_fast(db):
    with pytest.raises(ConfigurationError, match="AVIATIONSTACK_API_KEY"):
        build_engine(Settings(aviationstack_api_key="", weatherstack_api_key="w"), db)
