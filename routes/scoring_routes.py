"""Live scoring, match summary and leaderboard route registration."""

import threading

from flask import Response, jsonify, request
from flask_login import UserMixin, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from engine.models import Team, Toss, new_match
from engine.scorecard import (
    ball_label,
    balls_remaining,
    current_over,
    format_scorecard,
    overs_display,
    required_run_rate,
    result_text,
    run_rate,
    runs_needed,
    top_performers,
)
from engine.scoring import (
    BallEvent,
    InvalidBallEvent,
    MatchCompletedError,
    SelectionRequiredError,
    available_batsmen,
    available_bowlers,
)
from engine.stats_aggregator import SORT_COLUMNS, StatsAggregator
from engine.undo import UndoController


class ScorerUser(UserMixin):
    """The single scorer identity unlocked by the passcode."""

    ID = "scorer"

    def __init__(self):
        self.id = self.ID


def register_scoring_routes(
    app,
    *,
    db,
    store,
    catalog,
    rules,
    passcode_hash,
    leaderboard_size=10,
):
    # One live match per process; every load -> transition -> save runs under this lock
    live = {"controller": None}
    live_lock = threading.Lock()

    def _error(message, code, **extra):
        return jsonify({"error": message, **extra}), code

    def _controller():
        """
        Live UndoController, rebuilt from the store after a restart.
        A completed match still held here failed to archive; the archive is
        retried first and the slot reads as empty once it succeeds.
        """
        controller = live["controller"]
        if controller is None:
            match = store.load()
            if match is not None:
                live["controller"] = UndoController(match, rules)
                app.logger.info(f"[Scoring] Restored live match {match.id} from the database")
        elif controller.match.completed:
            app.logger.warning(f"[Scoring] Retrying archive of completed match {controller.match.id}")
            _persist(controller)
        return live["controller"]

    def _persist(controller):
        """Save or archive the current snapshot. Returns False if the write failed."""
        match = controller.match
        try:
            if match.completed:
                store.archive_completed(match)
                live["controller"] = None
            else:
                store.save(match)
            return True
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"[Scoring] Could not persist match {match.id}: {e}", exc_info=True)
            return False

    def _names(player_ids):
        return [{"id": pid, "name": catalog.name(pid)} for pid in player_ids]

    def _live_payload(controller):
        match = controller.match
        innings = match.active_innings
        payload = {
            "match": match.to_dict(),
            "status": innings.status,
            "score": f"{innings.score}/{innings.wickets}",
            "overs": overs_display(innings.balls),
            "run_rate": run_rate(innings),
            "target": innings.target,
            "runs_needed": runs_needed(match),
            "balls_remaining": balls_remaining(match),
            "required_run_rate": required_run_rate(match),
            "this_over": [ball_label(b) for b in current_over(innings)],
            "can_undo": controller.can_undo,
            "result": result_text(match),
        }
        if not match.completed:
            payload["available_batsmen"] = _names(available_batsmen(match))
            payload["available_bowlers"] = _names(available_bowlers(match, rules))
        return payload

    def _transition(action):
        """Run ``action(controller)`` on the live match and persist the result."""
        with live_lock:
            controller = _controller()
            if controller is None:
                return _error("No live match", 404)
            try:
                action(controller)
            except SelectionRequiredError as e:
                return _error(str(e), 409, status=e.status)
            except MatchCompletedError as e:
                return _error(str(e), 409)
            except (InvalidBallEvent, ValueError) as e:
                return _error(str(e), 400)

            payload = _live_payload(controller)
            payload["persisted"] = _persist(controller)
            return jsonify(payload)

    # ── Scorer mode ──

    @app.route("/scorer/enable", methods=["POST"])
    def scorer_enable():
        data = request.get_json(silent=True) or {}
        if not check_password_hash(passcode_hash, str(data.get("passcode", ""))):
            app.logger.warning(f"[Scorer] Wrong passcode from {request.remote_addr}")
            return _error("Incorrect passcode", 403)
        login_user(ScorerUser())
        app.logger.info("[Scorer] Scorer mode enabled")
        return jsonify({"scorer": True})

    @app.route("/scorer/disable", methods=["POST"])
    def scorer_disable():
        logout_user()
        return jsonify({"scorer": False})

    # ── Live match ──

    @app.route("/match/setup", methods=["POST"])
    @login_required
    def match_setup():
        data = request.get_json(silent=True)
        if not data:
            return _error("Request body is required", 400)
        try:
            match = new_match(
                team1=Team.from_dict(data["team1"]),
                team2=Team.from_dict(data["team2"]),
                toss=Toss.from_dict(data["toss"]),
                overs=data.get("overs"),
                match_format=data.get("format"),
            )
        except (KeyError, TypeError) as e:
            return _error(f"Missing or malformed field: {e}", 400)
        except ValueError as e:
            return _error(str(e), 400)

        with live_lock:
            controller = UndoController(match, rules)
            live["controller"] = controller
            app.logger.info(
                f"[Setup] New match {match.id}: {match.team1.name} vs {match.team2.name}, "
                f"{match.overs} overs, {match.batting_first} batting first"
            )
            payload = _live_payload(controller)
            payload["persisted"] = _persist(controller)
        return jsonify(payload), 201

    @app.route("/match/live", methods=["GET"])
    def match_live():
        with live_lock:
            controller = _controller()
            if controller is None:
                return _error("No live match", 404)
            return jsonify(_live_payload(controller))

    @app.route("/match/ball", methods=["POST"])
    @login_required
    def match_ball():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("Request body is required", 400)
        event = BallEvent.from_dict(data)
        return _transition(lambda c: c.record_ball(event))

    @app.route("/match/batsman", methods=["POST"])
    @login_required
    def match_batsman():
        data = request.get_json(silent=True) or {}
        if not data.get("player_id"):
            return _error("player_id is required", 400)
        return _transition(lambda c: c.select_batsman(data["player_id"], data.get("slot", "striker")))

    @app.route("/match/bowler", methods=["POST"])
    @login_required
    def match_bowler():
        data = request.get_json(silent=True) or {}
        if not data.get("player_id"):
            return _error("player_id is required", 400)
        return _transition(lambda c: c.select_bowler(data["player_id"]))

    @app.route("/match/result", methods=["POST"])
    @login_required
    def match_result():
        """Close the match without playing it out (rain, concession)."""
        data = request.get_json(silent=True) or {}
        if not data.get("winner"):
            return _error("winner is required", 400)
        return _transition(lambda c: c.force_result(data["winner"], reason=data.get("reason")))

    @app.route("/match/undo", methods=["POST"])
    @login_required
    def match_undo():
        with live_lock:
            controller = _controller()
            if controller is None:
                return _error("No live match", 404)
            undone = controller.undo()
            persisted = _persist(controller) if undone else True
            return jsonify({
                "undone": undone,
                "message": "Last action undone" if undone else "Nothing to undo",
                "can_undo": controller.can_undo,
                "persisted": persisted,
            })

    @app.route("/match/scorecard", methods=["GET"])
    def match_scorecard():
        with live_lock:
            controller = _controller()
            if controller is None:
                return _error("No live match", 404)
            text = format_scorecard(controller.match, catalog.name)
        return Response(text, mimetype="text/plain")

    # ── Completed matches and leaderboards ──

    @app.route("/matches/<match_id>/summary", methods=["GET"])
    def match_summary(match_id):
        match = store.get_completed(match_id)
        if match is None:
            return _error("Match not found", 404)

        performers = top_performers(match)
        for role in ("batsman", "bowler"):
            if performers[role]:
                performers[role]["name"] = catalog.name(performers[role]["player_id"])

        return jsonify({
            "id": match.id,
            "result": result_text(match),
            "winner": match.winner,
            "margin": match.margin.to_dict() if match.margin else None,
            "innings": [
                {
                    "batting_team": inn.batting_team,
                    "score": f"{inn.score}/{inn.wickets}",
                    "overs": overs_display(inn.balls),
                }
                for _, inn in sorted(match.innings.items())
            ],
            "top_performers": performers,
        })

    @app.route("/stats", methods=["GET"])
    def stats():
        limit = request.args.get("limit", leaderboard_size, type=int)
        try:
            aggregator = StatsAggregator(store.completed_matches(), name_of=catalog.name)
            return jsonify({
                "batting": aggregator.leaderboard("runs", limit=limit).to_dict(orient="records"),
                "bowling": aggregator.leaderboard("wickets", limit=limit).to_dict(orient="records"),
            })
        except Exception as e:
            app.logger.error(f"Error building leaderboards: {e}", exc_info=True)
            return _error("Error building leaderboards", 500)

    @app.route("/stats/download/<board>", methods=["GET"])
    def stats_download(board):
        fmt = request.args.get("fmt", "csv")
        if board not in SORT_COLUMNS:
            return _error("Invalid leaderboard", 400)
        if fmt == "csv":
            mimetype, extension = "text/csv", "csv"
        elif fmt == "tab":
            mimetype, extension = "text/plain", "txt"
        else:
            return _error("Invalid format type", 400)

        aggregator = StatsAggregator(store.completed_matches(), name_of=catalog.name)
        content = aggregator.export(board, fmt=fmt)
        return Response(
            content,
            mimetype=mimetype,
            headers={"Content-Disposition": f"attachment;filename={board}_leaderboard.{extension}"},
        )
