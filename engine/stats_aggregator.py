import io
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

import pandas as pd
from tabulate import tabulate

from engine.models import Match

logger = logging.getLogger(__name__)

LEADERBOARD_COLUMNS = ["Player", "Name", "Matches", "Runs", "Wickets"]
SORT_COLUMNS = {"runs": "Runs", "wickets": "Wickets"}


@dataclass
class PlayerTotals:
    player_id: str
    matches_played: int = 0
    total_runs: int = 0
    total_wickets: int = 0


def aggregate(completed_matches: Iterable[Match]) -> Dict[str, PlayerTotals]:
    """
    Fold completed matches into per-player career totals.

    Runs come from batting figures and wickets from bowling figures of both
    innings.  A player's match count goes up once for every match in which
    they are on either roster, whether or not they batted or bowled.
    """
    totals: Dict[str, PlayerTotals] = {}

    def _entry(player_id: str) -> PlayerTotals:
        if player_id not in totals:
            totals[player_id] = PlayerTotals(player_id=player_id)
        return totals[player_id]

    matches = list(completed_matches)
    for match in matches:
        for number in (1, 2):
            innings = match.innings.get(number)
            if innings is None:
                continue
            for player_id, stat in innings.batsmen.items():
                _entry(player_id).total_runs += stat.runs
            for player_id, stat in innings.bowlers.items():
                _entry(player_id).total_wickets += stat.wickets

    for match in matches:
        for player_id in dict.fromkeys(match.team1.players + match.team2.players):
            _entry(player_id).matches_played += 1

    logger.debug("Aggregated %s players from %s matches", len(totals), len(matches))
    return totals


class StatsAggregator:
    """Leaderboards over a set of completed matches."""

    def __init__(self, completed_matches: Iterable[Match], name_of: Optional[Callable[[str], str]] = None):
        self.totals = aggregate(completed_matches)
        self.name_of = name_of or (lambda player_id: player_id)
        self.df = self._to_frame()

    def _to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "Player": t.player_id,
                "Name": self.name_of(t.player_id),
                "Matches": t.matches_played,
                "Runs": t.total_runs,
                "Wickets": t.total_wickets,
            }
            for t in self.totals.values()
        ]
        return pd.DataFrame(rows, columns=LEADERBOARD_COLUMNS)

    def leaderboard(self, by: str = "runs", limit: Optional[int] = 10) -> pd.DataFrame:
        """Players sorted by runs or wickets, descending; ties keep first-seen order."""
        if by not in SORT_COLUMNS:
            raise ValueError(f"Unknown leaderboard '{by}', expected one of {list(SORT_COLUMNS)}")
        # mergesort is the stable option
        board = self.df.sort_values(SORT_COLUMNS[by], ascending=False, kind="mergesort")
        if limit is not None:
            board = board.head(limit)
        return board.reset_index(drop=True)

    def export(self, by: str = "runs", fmt: str = "csv", limit: Optional[int] = None) -> str:
        board = self.leaderboard(by, limit=limit)
        if fmt == "csv":
            buffer = io.StringIO()
            board.to_csv(buffer, index=False)
            return buffer.getvalue()
        if fmt == "tab":
            return tabulate(board.values.tolist(), headers=list(board.columns), tablefmt="grid")
        raise ValueError(f"Unsupported export format '{fmt}'")
