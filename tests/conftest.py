"""Shared test fixtures."""

from pathlib import Path

import pytest

from cardwise.config import Config
from cardwise.database.models import Card, User
from cardwise.database.repository import Repository
from cardwise.services.catalog import seed_catalogs

# Test fixture config directory with synthetic data
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"

MIGRATIONS_DIR = Path(__file__).parent.parent / "cardwise" / "database" / "migrations"


@pytest.fixture
def config():
    return Config(FIXTURE_CONFIG_DIR)


@pytest.fixture
def repo():
    r = Repository(":memory:")
    r.apply_migrations(MIGRATIONS_DIR)
    yield r
    r.close()


@pytest.fixture
def seeded_repo(repo, config):
    """Repository with the category and reward program catalogs loaded."""
    seed_catalogs(repo, config)
    return repo


@pytest.fixture
def user(seeded_repo):
    return seeded_repo.insert_user(User(name="Ana Souza", email="ana@example.com"))


@pytest.fixture
def card(seeded_repo, user):
    return seeded_repo.insert_card(Card(
        user_id=user.id, name="Nubank Gold", bank="Nubank",
        last_digits="1234", conversion_rate=1.5,
    ))
