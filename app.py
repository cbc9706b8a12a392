import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify, request
from flask_login import LoginManager
from werkzeug.security import generate_password_hash

from database import db
from database.store import MatchStore, PlayerCatalog
from engine.rules import rules_from_config
from routes.scoring_routes import ScorerUser, register_scoring_routes
from utils.helpers import PROJECT_ROOT, load_config

DB_URI_ENV = "CRICKET_SCORER_DB_URI"
DEFAULT_PASSCODE = "cricket123"


def _configure_logging(config):
    log_config = config.get("logging") or {}
    level = getattr(logging, str(log_config.get("level", "DEBUG")).upper(), logging.DEBUG)

    log_dir = log_config.get("dir", "logs")
    if not os.path.isabs(log_dir):
        log_dir = os.path.join(PROJECT_ROOT, log_dir)
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, log_config.get("file", "execution.log"))

    # Clear existing handlers to avoid duplicates
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    # File handler for persistent logging
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(level)

    # Console handler for terminal visibility
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=[file_handler, console_handler])

    logger = logging.getLogger("CricketScorer")
    logger.setLevel(level)
    return logger


# ────── App Factory ──────
def create_app():
    # --- Flask setup ---
    app = Flask(__name__)
    config = load_config()

    # --- Logging setup (logs to file + terminal) ---
    app.logger = _configure_logging(config)

    # --- Secret key setup ---
    secret = (config.get("app") or {}).get("secret_key")
    if not secret or not isinstance(secret, str):
        secret = os.getenv("FLASK_SECRET_KEY", None)
        if not secret:
            secret = os.urandom(24).hex()
            app.logger.warning("Using random Flask SECRET_KEY, sessions won't persist across restarts")

    app.config["SECRET_KEY"] = secret
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    # --- Database setup ---
    db_uri = os.getenv(DB_URI_ENV) or (config.get("database") or {}).get("uri") \
        or f"sqlite:///{os.path.join(PROJECT_ROOT, 'cricket_scorer.db')}"
    app.config["SQLALCHEMY_DATABASE_URI"] = db_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    db.init_app(app)

    with app.app_context():
        db.create_all()

    # --- Flask-Login setup ---
    login_manager = LoginManager(app)

    @login_manager.user_loader
    def load_user(user_id):
        if user_id == ScorerUser.ID:
            return ScorerUser()
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Scorer mode is required"}), 401

    # --- Request logging ---
    @app.before_request
    def log_request():
        app.logger.info(f"{request.remote_addr} {request.method} {request.path}")

    passcode = str((config.get("scorer") or {}).get("passcode") or DEFAULT_PASSCODE)
    leaderboard_size = int((config.get("stats") or {}).get("leaderboard_size", 10))

    store = MatchStore()
    app.extensions["match_store"] = store

    register_scoring_routes(
        app,
        db=db,
        store=store,
        catalog=PlayerCatalog(),
        rules=rules_from_config(config),
        passcode_hash=generate_password_hash(passcode),
        leaderboard_size=leaderboard_size,
    )

    app.logger.info(f"Cricket scorer started (database: {db_uri.split('://', 1)[0]})")
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "7860")), debug=False)
