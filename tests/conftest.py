"""
Pytest fixtures for the cricket scorer.
Provides reusable fixtures for config, app, clients, catalog data and match builders.
"""

import os
import sys

import pytest
import yaml

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app import create_app, db
from database.models import Player
from engine.models import Team, Toss, new_match
from engine.scoring import select_batsman, select_bowler

TEST_PASSCODE = "test-passcode"
FIXED_START = "2026-01-01T10:00:00+00:00"


# ==================== Application Fixtures ====================

@pytest.fixture(scope="function")
def test_config(tmp_path):
    """Create a temporary config file for testing."""
    config_path = tmp_path / "config.yaml"
    config_data = {
        "app": {
            "secret_key": "test-secret-key-for-testing-only-12345",
        },
        "database": {
            "uri": "sqlite:///:memory:",  # overridden by CRICKET_SCORER_DB_URI
        },
        "logging": {
            "level": "DEBUG",
            "dir": str(tmp_path / "logs"),
            "file": "test.log",
        },
        "scorer": {
            "passcode": TEST_PASSCODE,
        },
        "scoring": {
            "allow_consecutive_overs": True,
            "end_innings_on_target": False,
        },
        "stats": {
            "leaderboard_size": 10,
        },
    }

    config_path.write_text(yaml.safe_dump(config_data, sort_keys=False), encoding="utf-8")
    return config_path


@pytest.fixture(scope="function")
def app(test_config, tmp_path, monkeypatch):
    """Create and configure a test Flask application instance."""
    monkeypatch.setenv("CRICKET_SCORER_CONFIG_PATH", str(test_config))
    test_db_file = tmp_path / "pytest_app.db"
    monkeypatch.setenv("CRICKET_SCORER_DB_URI", f"sqlite:///{test_db_file.as_posix()}")

    app = create_app()
    app.config.update({
        "TESTING": True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def client(app):
    """Create a test client for the app."""
    return app.test_client()


@pytest.fixture(scope="function")
def scorer_client(client):
    """Return a client with scorer mode enabled."""
    with client:
        response = client.post("/scorer/enable", json={"passcode": TEST_PASSCODE})
        assert response.status_code == 200
        yield client


@pytest.fixture(scope="function")
def catalog_players(app):
    """Seed the player catalog with display names for two squads."""
    players = [Player(id=f"L{i}", name=f"Lion {i}") for i in range(1, 5)]
    players += [Player(id=f"T{i}", name=f"Tiger {i}") for i in range(1, 5)]
    db.session.add_all(players)
    db.session.commit()
    return players


# ==================== Match Builders ====================

@pytest.fixture
def make_match():
    """
    Return a builder for a fresh match between Lions (L1..Ln) and Tigers (T1..Tn).
    Lions win the toss; by default they bat first.
    """
    def _make(overs=2, lions=4, tigers=4, decision="bat", match_format=None):
        return new_match(
            team1=Team("Lions", tuple(f"L{i}" for i in range(1, lions + 1))),
            team2=Team("Tigers", tuple(f"T{i}" for i in range(1, tigers + 1))),
            toss=Toss(winner="Lions", decision=decision),
            overs=overs if match_format is None else None,
            match_format=match_format,
            match_id="match-1",
            now=FIXED_START,
        )
    return _make


@pytest.fixture
def start():
    """Return a helper that fills striker, non-striker and bowler."""
    def _start(match, striker, non_striker, bowler):
        match = select_batsman(match, striker, "striker")
        match = select_batsman(match, non_striker, "non_striker")
        return select_bowler(match, bowler)
    return _start


@pytest.fixture
def ready_match(make_match, start):
    """Two-over match, Lions batting with L1 on strike, L2 at the other end, T1 bowling."""
    return start(make_match(), "L1", "L2", "T1")


@pytest.fixture
def setup_payload():
    """JSON body for POST /match/setup."""
    return {
        "overs": 1,
        "team1": {"name": "Lions", "players": ["L1", "L2", "L3"]},
        "team2": {"name": "Tigers", "players": ["T1", "T2", "T3"]},
        "toss": {"winner": "Lions", "decision": "bat"},
    }


# ==================== Pytest Configuration ====================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
