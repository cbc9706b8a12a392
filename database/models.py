from datetime import datetime, timezone
from database import db


def _utcnow():
    return datetime.now(timezone.utc)


class Player(db.Model):
    """Player catalog entry. Read-only from the scorer's point of view."""
    __tablename__ = 'players'

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(100), nullable=False)


class ActiveMatch(db.Model):
    """Live match slot

    There is at most one row, always with id=1. match_data holds the full
    Match snapshot as produced by Match.to_dict().
    """
    __tablename__ = 'active_match'

    SLOT_ID = 1

    id = db.Column(db.Integer, primary_key=True)
    match_data = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)


class CompletedMatch(db.Model):
    """Archived match, keyed by the match id"""
    __tablename__ = 'completed_matches'

    id = db.Column(db.String(36), primary_key=True)  # UUID
    match_data = db.Column(db.JSON, nullable=False)
    winner = db.Column(db.String(100), index=True)  # team name, "Tie" or "No Result"
    completed_at = db.Column(db.DateTime, default=_utcnow, nullable=False, index=True)
