"""
engine/undo.py
==============

Single-step undo around the scoring engine.

The controller keeps exactly one snapshot: a deep copy of the match as it
was before the most recent successful ball, selection or forced result.  Undoing restores
it and drops it, so undo cannot be chained.
"""

import copy
import logging
from typing import Optional

from engine.models import Match
from engine.rules import DEFAULT_RULES, ScoringRules
from engine.scoring import BallEvent, force_result, record_ball, select_batsman, select_bowler

logger = logging.getLogger(__name__)


class UndoController:
    """
    Owns the live match for one scoring session.

    Parameters
    ----------
    match : the starting snapshot (as loaded from the store or built by setup)
    rules : ScoringRules passed through to the engine
    """

    def __init__(self, match: Match, rules: Optional[ScoringRules] = None):
        self.match = match
        self.rules = rules or DEFAULT_RULES
        self._previous: Optional[Match] = None

    @property
    def can_undo(self) -> bool:
        return self._previous is not None

    def _apply(self, transition, *args, **kwargs) -> Match:
        snapshot = copy.deepcopy(self.match)
        # A rejected call raises here and keeps the earlier snapshot.
        self.match = transition(self.match, *args, **kwargs)
        self._previous = snapshot
        return self.match

    def record_ball(self, event: BallEvent, now: Optional[str] = None) -> Match:
        return self._apply(record_ball, event, rules=self.rules, now=now)

    def select_batsman(self, player_id: str, slot: str) -> Match:
        return self._apply(select_batsman, player_id, slot)

    def select_bowler(self, player_id: str) -> Match:
        return self._apply(select_bowler, player_id)

    def force_result(self, winner: str, reason: Optional[str] = None, now: Optional[str] = None) -> Match:
        return self._apply(force_result, winner, reason=reason, now=now)

    def undo(self) -> bool:
        """Restore the retained snapshot. Returns False when there is nothing to undo."""
        if self._previous is None:
            logger.info("Nothing to undo for match %s", self.match.id)
            return False
        self.match = self._previous
        self._previous = None
        logger.info("Undid last action for match %s", self.match.id)
        return True
