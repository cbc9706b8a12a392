from database import db
from database.models import ActiveMatch, CompletedMatch, Player
from engine.models import Match
import logging

logger = logging.getLogger(__name__)


class MatchStore:
    """
    Snapshot persistence for the live match and the completed-match archive.

    The store only ever sees whole Match snapshots: the caller loads one
    before a transition and saves the result after it.  Write methods commit
    their own transaction and roll back and re-raise on failure.
    """

    def load(self):
        """Return the live Match, or None when no match is in progress."""
        row = db.session.get(ActiveMatch, ActiveMatch.SLOT_ID)
        if row is None:
            return None
        return Match.from_dict(row.match_data)

    def save(self, match: Match):
        try:
            row = db.session.get(ActiveMatch, ActiveMatch.SLOT_ID)
            if row is None:
                row = ActiveMatch(id=ActiveMatch.SLOT_ID, match_data=match.to_dict())
                db.session.add(row)
            else:
                # Reassign so the JSON column is flagged dirty
                row.match_data = match.to_dict()
            db.session.commit()
            logger.debug(f"Saved live match {match.id}")
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to save live match {match.id}: {e}")
            raise

    def clear(self):
        try:
            ActiveMatch.query.filter_by(id=ActiveMatch.SLOT_ID).delete()
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to clear live match slot: {e}")
            raise

    def archive_completed(self, match: Match):
        """
        Move a finished match into the archive and empty the live slot.
        Both happen in one transaction.
        """
        if not match.completed:
            raise ValueError(f"Match {match.id} is not completed.")
        try:
            db.session.merge(CompletedMatch(
                id=match.id,
                match_data=match.to_dict(),
                winner=match.winner,
            ))
            ActiveMatch.query.filter_by(id=ActiveMatch.SLOT_ID).delete()
            db.session.commit()
            logger.info(f"Archived match {match.id} (winner: {match.winner})")
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to archive match {match.id}: {e}")
            raise

    def get_completed(self, match_id):
        row = db.session.get(CompletedMatch, match_id)
        return Match.from_dict(row.match_data) if row else None

    def completed_matches(self):
        """All archived matches, oldest first."""
        rows = CompletedMatch.query.order_by(CompletedMatch.completed_at, CompletedMatch.id).all()
        return [Match.from_dict(row.match_data) for row in rows]


class PlayerCatalog:
    """Display names for player identifiers"""

    def name(self, player_id):
        player = db.session.get(Player, player_id)
        return player.name if player else player_id

    def names(self, player_ids):
        """Bulk lookup; unknown ids map to themselves."""
        ids = list(dict.fromkeys(player_ids))
        if not ids:
            return {}
        found = {p.id: p.name for p in Player.query.filter(Player.id.in_(ids)).all()}
        return {pid: found.get(pid, pid) for pid in ids}
