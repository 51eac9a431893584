"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from decimal import Decimal
from pathlib import Path

# Test environment, set before config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("APPROVAL_TIMEOUT_SECONDS", "30")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

# Project root on PYTHONPATH for the flat layout
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from init import get_session, init_tables
from models import User, Package, PackageRequest, Rank
from mlm_system.services.rank_table import RankTable, seedDefaultRanks
from mlm_system.events.event_bus import eventBus
from mlm_system.utils.time_machine import timeMachine


@pytest.fixture(autouse=True)
def clean_globals():
    """Event handlers and virtual time must not leak between tests."""
    eventBus.clear()
    timeMachine.resetToRealTime()
    yield
    eventBus.clear()
    timeMachine.resetToRealTime()


@pytest.fixture
def database_url(tmp_path):
    """File backed SQLite so that approvals can open their own sessions."""
    return f"sqlite:///{tmp_path / 'mlm_test.db'}"


@pytest.fixture
def session_factory(database_url):
    factory, engine = get_session(database_url)
    init_tables(engine)
    with factory() as session:
        seedDefaultRanks(session)
        session.commit()
    yield factory
    engine.dispose()


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def rank_table(session):
    return RankTable.load(session)


class Factory:
    """Builds committed test data."""

    def __init__(self, session):
        self.session = session

    def rankID(self, title):
        return self.session.query(Rank).filter_by(title=title).one().rankID

    def user(self, username, referrer=None, rank="Consultant", points=0, status="active"):
        user = User.register(
            self.session,
            username,
            referredBy=referrer.username if referrer else None,
            status=status
        )
        user.points = points
        user.rankID = self.rankID(rank) if rank else None
        self.session.commit()
        return user

    def chain(self, *usernames, rank="Consultant", points=0):
        """Users linked top-down: chain("c", "b", "a") makes a the bottom."""
        users = []
        parent = None
        for username in usernames:
            parent = self.user(username, referrer=parent, rank=rank, points=points)
            users.append(parent)
        return users

    def package(self, name="Starter", amount="5000", direct="500", indirect="200", points=100,
                status="active", validityDays=None):
        package = Package(
            name=name,
            amount=Decimal(amount),
            directCommission=Decimal(direct),
            indirectCommission=Decimal(indirect),
            points=points,
            status=status,
            validityDays=validityDays
        )
        self.session.add(package)
        self.session.commit()
        return package

    def request(self, user, package, status="pending"):
        request = PackageRequest(userID=user.userID, packageID=package.packageID, status=status)
        self.session.add(request)
        self.session.commit()
        return request


@pytest.fixture
def factory(session):
    return Factory(session)


@pytest.fixture
def reload(session):
    """Fresh copy of a row after another session wrote to it."""

    def _reload(model, pk):
        session.expire_all()
        return session.get(model, pk)

    return _reload
