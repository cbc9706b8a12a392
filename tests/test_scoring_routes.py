"""
Test suite for the live scoring routes
Tests routes defined in routes/scoring_routes.py
"""

import pytest

from database import db
from database.models import CompletedMatch


def _begin(client, payload, striker="L1", non_striker="L2", bowler="T1"):
    response = client.post("/match/setup", json=payload)
    assert response.status_code == 201
    client.post("/match/batsman", json={"player_id": striker, "slot": "striker"})
    client.post("/match/batsman", json={"player_id": non_striker, "slot": "non_striker"})
    return client.post("/match/bowler", json={"player_id": bowler})


def _over(client, runs=0):
    response = None
    for _ in range(6):
        response = client.post("/match/ball", json={"runs": runs})
    return response


def _begin_chase(client, striker="T1", non_striker="T2", bowler="L1"):
    client.post("/match/batsman", json={"player_id": striker, "slot": "striker"})
    client.post("/match/batsman", json={"player_id": non_striker, "slot": "non_striker"})
    return client.post("/match/bowler", json={"player_id": bowler})


class TestScorerMode:
    """Passcode gate for mutating routes."""

    def test_enable_with_passcode(self, client):
        response = client.post("/scorer/enable", json={"passcode": "test-passcode"})
        assert response.status_code == 200
        assert response.get_json()["scorer"] is True

    def test_wrong_passcode(self, client):
        response = client.post("/scorer/enable", json={"passcode": "nope"})
        assert response.status_code == 403

    def test_mutations_require_scorer(self, client, setup_payload):
        assert client.post("/match/setup", json=setup_payload).status_code == 401
        assert client.post("/match/ball", json={"runs": 1}).status_code == 401
        assert client.post("/match/undo").status_code == 401

    def test_disable(self, scorer_client, setup_payload):
        scorer_client.post("/scorer/disable")
        assert scorer_client.post("/match/setup", json=setup_payload).status_code == 401


class TestMatchSetup:

    def test_setup_creates_live_match(self, scorer_client, setup_payload):
        response = scorer_client.post("/match/setup", json=setup_payload)
        assert response.status_code == 201
        data = response.get_json()
        assert data["persisted"] is True
        assert data["status"] == "awaiting_batsmen"
        assert data["match"]["batting_first"] == "Lions"
        assert [p["id"] for p in data["available_batsmen"]] == ["L1", "L2", "L3"]

    def test_setup_with_format(self, scorer_client, setup_payload):
        del setup_payload["overs"]
        setup_payload["format"] = "T10"
        data = scorer_client.post("/match/setup", json=setup_payload).get_json()
        assert data["match"]["overs"] == 10

    def test_setup_validation(self, scorer_client, setup_payload):
        setup_payload["team2"]["players"] = ["T1"]
        response = scorer_client.post("/match/setup", json=setup_payload)
        assert response.status_code == 400
        assert "roster" in response.get_json()["error"]

    def test_setup_missing_field(self, scorer_client, setup_payload):
        del setup_payload["toss"]
        assert scorer_client.post("/match/setup", json=setup_payload).status_code == 400

    def test_no_live_match(self, client):
        assert client.get("/match/live").status_code == 404


class TestLiveScoring:

    def test_record_ball(self, scorer_client, setup_payload, catalog_players):
        _begin(scorer_client, setup_payload)
        response = scorer_client.post("/match/ball", json={"runs": 1})
        assert response.status_code == 200
        data = response.get_json()
        assert data["score"] == "1/0"
        assert data["overs"] == "0.1"
        assert data["this_over"] == ["1"]
        assert data["can_undo"] is True
        assert data["persisted"] is True
        assert data["match"]["innings"]["1"]["striker"] == "L2"

        live = scorer_client.get("/match/live").get_json()
        assert live["score"] == "1/0"
        assert {"id": "T2", "name": "Tiger 2"} in live["available_bowlers"]

    def test_ball_before_selection(self, scorer_client, setup_payload):
        scorer_client.post("/match/setup", json=setup_payload)
        response = scorer_client.post("/match/ball", json={"runs": 1})
        assert response.status_code == 409
        assert response.get_json()["status"] == "awaiting_batsmen"

    def test_invalid_ball(self, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        assert scorer_client.post("/match/ball", json={"runs": -1}).status_code == 400
        assert scorer_client.post("/match/ball", json={"extra_type": "Overthrow"}).status_code == 400
        assert scorer_client.get("/match/live").get_json()["score"] == "0/0"

    def test_bad_slot(self, scorer_client, setup_payload):
        scorer_client.post("/match/setup", json=setup_payload)
        response = scorer_client.post("/match/batsman", json={"player_id": "L1", "slot": "keeper"})
        assert response.status_code == 400

    def test_over_requires_new_bowler(self, scorer_client, setup_payload):
        setup_payload["overs"] = 2
        _begin(scorer_client, setup_payload)
        data = _over(scorer_client).get_json()
        assert data["status"] == "awaiting_bowler"
        assert scorer_client.post("/match/ball", json={"runs": 0}).status_code == 409

    def test_undo(self, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        scorer_client.post("/match/ball", json={"runs": 4})
        data = scorer_client.post("/match/undo").get_json()
        assert data["undone"] is True
        assert data["persisted"] is True
        assert scorer_client.get("/match/live").get_json()["score"] == "0/0"

        data = scorer_client.post("/match/undo").get_json()
        assert data["undone"] is False
        assert data["message"] == "Nothing to undo"

    def test_scorecard_text(self, scorer_client, setup_payload, catalog_players):
        _begin(scorer_client, setup_payload)
        scorer_client.post("/match/ball", json={"runs": 4})
        response = scorer_client.get("/match/scorecard")
        assert response.status_code == 200
        assert response.mimetype == "text/plain"
        text = response.get_data(as_text=True)
        assert "Innings 1: Lions 4/0 (0.1 ov)" in text
        assert "Lion 1" in text

    def test_state_restored_from_database(self, app, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        scorer_client.post("/match/ball", json={"runs": 2})

        # A second app on the same database starts with no in-memory match
        from app import create_app
        other = create_app()
        with other.test_client() as other_client:
            live = other_client.get("/match/live")
            assert live.status_code == 200
            assert live.get_json()["score"] == "2/0"
            assert live.get_json()["can_undo"] is False

    def test_failed_save_keeps_memory_state(self, app, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        store = app.extensions["match_store"]

        def broken_save(match):
            raise RuntimeError("database is locked")

        store.save = broken_save
        data = scorer_client.post("/match/ball", json={"runs": 3}).get_json()
        assert data["persisted"] is False
        assert data["score"] == "3/0"
        del store.save

        data = scorer_client.post("/match/ball", json={"runs": 1}).get_json()
        assert data["persisted"] is True
        assert store.load().active_innings.score == 4

    def test_failed_archive_is_retried(self, app, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        _over(scorer_client)
        _begin_chase(scorer_client)
        for _ in range(5):
            scorer_client.post("/match/ball", json={"runs": 0})
        store = app.extensions["match_store"]

        def broken_archive(match):
            raise RuntimeError("database is locked")

        store.archive_completed = broken_archive
        final = scorer_client.post("/match/ball", json={"runs": 0}).get_json()
        assert final["match"]["completed"] is True
        assert final["persisted"] is False
        assert CompletedMatch.query.count() == 0
        del store.archive_completed

        # The next request archives the held match and finds no live match
        assert scorer_client.post("/match/ball", json={"runs": 0}).status_code == 404
        assert CompletedMatch.query.count() == 1
        assert db.session.get(CompletedMatch, final["match"]["id"]) is not None
        assert store.load() is None
        assert scorer_client.get("/match/live").status_code == 404


class TestForcedResult:
    """Closing a match early through POST /match/result."""

    def test_result_archives_match(self, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        _over(scorer_client, runs=1)
        response = scorer_client.post("/match/result", json={"winner": "No Result", "reason": "rain"})
        assert response.status_code == 200
        data = response.get_json()
        assert data["match"]["completed"] is True
        assert data["result"] == "No Result"
        assert data["persisted"] is True

        assert scorer_client.get("/match/live").status_code == 404
        summary = scorer_client.get(f"/matches/{data['match']['id']}/summary").get_json()
        assert summary["winner"] == "No Result"
        assert summary["margin"] is None

    def test_result_for_a_team(self, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        _over(scorer_client)
        data = scorer_client.post("/match/result", json={"winner": "Tigers"}).get_json()
        assert data["result"] == "Tigers won"

    def test_result_validation(self, scorer_client, setup_payload):
        _begin(scorer_client, setup_payload)
        assert scorer_client.post("/match/result", json={}).status_code == 400
        # Still in the first innings
        assert scorer_client.post("/match/result", json={"winner": "Lions"}).status_code == 400

        _over(scorer_client)
        assert scorer_client.post("/match/result", json={"winner": "Bears"}).status_code == 400
        assert scorer_client.get("/match/live").get_json()["match"]["completed"] is False

    def test_result_requires_scorer(self, client):
        response = client.post("/match/result", json={"winner": "Lions"})
        assert response.status_code == 401

    def test_no_live_match(self, scorer_client):
        response = scorer_client.post("/match/result", json={"winner": "Lions"})
        assert response.status_code == 404


@pytest.mark.integration
class TestMatchFlow:
    """Full one-over match through the HTTP surface."""

    def test_match_to_completion(self, scorer_client, setup_payload, catalog_players):
        _begin(scorer_client, setup_payload)
        scorer_client.post("/match/ball", json={"runs": 4})
        scorer_client.post("/match/ball", json={"dismissal_type": "Bowled"})
        scorer_client.post("/match/batsman", json={"player_id": "L3", "slot": "striker"})
        for _ in range(4):
            scorer_client.post("/match/ball", json={"runs": 0})

        live = scorer_client.get("/match/live").get_json()
        assert live["match"]["current_innings"] == 2
        assert live["target"] == 5

        scorer_client.post("/match/batsman", json={"player_id": "T1", "slot": "striker"})
        scorer_client.post("/match/batsman", json={"player_id": "T2", "slot": "non_striker"})
        scorer_client.post("/match/bowler", json={"player_id": "L1"})
        scorer_client.post("/match/ball", json={"runs": 6})
        for _ in range(4):
            scorer_client.post("/match/ball", json={"runs": 0})
        final = scorer_client.post("/match/ball", json={"runs": 0}).get_json()

        assert final["match"]["completed"] is True
        assert final["result"] == "Tigers won by 2 wickets"
        assert final["persisted"] is True

        # Archived and the live slot cleared
        assert scorer_client.get("/match/live").status_code == 404
        match_id = final["match"]["id"]
        assert db.session.get(CompletedMatch, match_id) is not None

        summary = scorer_client.get(f"/matches/{match_id}/summary").get_json()
        assert summary["winner"] == "Tigers"
        assert summary["margin"] == {"type": "wickets", "value": 2}
        assert summary["top_performers"]["batsman"]["name"] == "Tiger 1"
        assert summary["top_performers"]["bowler"]["player_id"] == "T1"

        stats = scorer_client.get("/stats").get_json()
        assert stats["batting"][0]["Player"] == "T1"
        assert stats["batting"][0]["Runs"] == 6
        assert stats["batting"][1]["Name"] == "Lion 1"
        assert stats["bowling"][0]["Wickets"] == 1

        download = scorer_client.get("/stats/download/runs?fmt=csv")
        assert download.status_code == 200
        assert download.mimetype == "text/csv"
        assert "attachment" in download.headers["Content-Disposition"]
        assert download.get_data(as_text=True).startswith("Player,Name,Matches,Runs,Wickets")

    def test_summary_unknown_match(self, client):
        assert client.get("/matches/nope/summary").status_code == 404

    def test_stats_empty(self, client):
        data = client.get("/stats").get_json()
        assert data == {"batting": [], "bowling": []}

    def test_download_validation(self, client):
        assert client.get("/stats/download/catches").status_code == 400
        assert client.get("/stats/download/runs?fmt=xlsx").status_code == 400
        tab = client.get("/stats/download/wickets?fmt=tab")
        assert tab.status_code == 200
        assert tab.mimetype == "text/plain"
