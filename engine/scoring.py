"""
engine/scoring.py
=================

Ball Recording Engine: turns one delivery into the next match snapshot.

Every public function takes a Match and returns a new Match.  Nothing is
edited in place; the innings, stat maps and ball log of the result are new
objects, and the unchanged pieces it shares with the input are frozen.

Delivery pipeline (record_ball)
-------------------------------
1. legality & penalty      wide / no-ball are illegal and carry the base
                           penalty; byes and leg-byes are legal, no penalty
2. batsman figures         credited runs, balls faced, boundaries, SR
3. bowler figures          every run of the delivery is charged to the bowler
4. wicket                  dismissal, bowler credit (not for run-outs),
                           fall of wicket, striker slot cleared
5. ball log                append a BallRecord
6. strike rotation         odd team runs swap ends (not on a wicket)
7. over completion         maiden check, overs/economy, ends swap,
                           bowler slot cleared
8. innings / match end     all out or overs used up

Usage
-----
    from engine.scoring import BallEvent, record_ball, select_batsman, select_bowler

    match = select_batsman(match, "p1", "striker")
    match = select_batsman(match, "p2", "non_striker")
    match = select_bowler(match, "p7")
    match = record_ball(match, BallEvent.runs_off_bat(4))
    match = record_ball(match, BallEvent.extra("Wide"))
    match = record_ball(match, BallEvent.wicket("Caught", fielder="p9"))
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from engine.models import (
    AWAITING_BATSMEN,
    AWAITING_BOWLER,
    BALLS_PER_OVER,
    COMPLETE,
    DISMISSAL_TYPES,
    EXTRA_TYPES,
    NO_BALL,
    NO_RESULT,
    READY,
    RUN_OUT,
    TIE,
    WIDE,
    BallRecord,
    BatsmanStat,
    BowlerStat,
    Dismissal,
    FallOfWicket,
    Innings,
    Margin,
    Match,
    utc_now_iso,
)
from engine.rules import DEFAULT_RULES, ScoringRules

logger = logging.getLogger(__name__)

BATTING_SLOTS = ("striker", "non_striker")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidBallEvent(ValueError):
    """The delivery description itself is malformed."""


class SelectionRequiredError(RuntimeError):
    """A batsman or bowler slot must be filled before the next delivery."""

    def __init__(self, status: str):
        self.status = status
        if status == AWAITING_BATSMEN:
            message = "Select the striker and non-striker before recording a ball."
        else:
            message = "Select a bowler before recording a ball."
        super().__init__(message)


class MatchCompletedError(RuntimeError):
    """The match already has a result; no further transitions are accepted."""


# ---------------------------------------------------------------------------
# Ball event
# ---------------------------------------------------------------------------

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class BallEvent:
    """
    One delivery as entered by the scorer.

    ``runs`` is the runs off the bat, or the byes / leg-byes / runs taken on
    an extra.  ``base_penalty`` is the automatic one-run penalty of a wide or
    no-ball (0 for byes and leg-byes).
    """
    runs: int = 0
    is_extra: bool = False
    extra_type: Optional[str] = None
    base_penalty: int = 0
    is_wicket: bool = False
    dismissal_type: Optional[str] = None
    fielder: Optional[str] = None

    @classmethod
    def runs_off_bat(cls, runs: int) -> "BallEvent":
        return cls(runs=runs)

    @classmethod
    def extra(cls, extra_type: str, runs: int = 0) -> "BallEvent":
        penalty = 1 if extra_type in (WIDE, NO_BALL) else 0
        return cls(runs=runs, is_extra=True, extra_type=extra_type, base_penalty=penalty)

    @classmethod
    def wicket(cls, dismissal_type: str, runs: int = 0, fielder: Optional[str] = None) -> "BallEvent":
        return cls(runs=runs, is_wicket=True, dismissal_type=dismissal_type, fielder=fielder)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BallEvent":
        """
        Build an event from a JSON payload.

        ``is_extra`` / ``is_wicket`` default to whether a type was supplied,
        and a missing ``base_penalty`` defaults to the usual penalty for the
        extra type.
        """
        extra_type = data.get("extra_type")
        dismissal_type = data.get("dismissal_type")
        if "base_penalty" in data:
            base_penalty = data["base_penalty"]
        else:
            base_penalty = 1 if extra_type in (WIDE, NO_BALL) else 0
        return cls(
            runs=data.get("runs", 0),
            is_extra=data.get("is_extra", extra_type is not None),
            extra_type=extra_type,
            base_penalty=base_penalty,
            is_wicket=data.get("is_wicket", dismissal_type is not None),
            dismissal_type=dismissal_type,
            fielder=data.get("fielder"),
        )

    @property
    def is_legal(self) -> bool:
        return self.extra_type not in (WIDE, NO_BALL)

    def validate(self) -> None:
        """Raise InvalidBallEvent unless every field is consistent."""
        if not _is_int(self.runs) or self.runs < 0:
            raise InvalidBallEvent(f"runs must be a non-negative integer, got {self.runs!r}.")
        if self.is_extra:
            if self.extra_type not in EXTRA_TYPES:
                raise InvalidBallEvent(f"extra_type must be one of {EXTRA_TYPES}, got {self.extra_type!r}.")
        elif self.extra_type is not None:
            raise InvalidBallEvent("extra_type given for a delivery that is not an extra.")
        if not _is_int(self.base_penalty) or self.base_penalty not in (0, 1):
            raise InvalidBallEvent(f"base_penalty must be 0 or 1, got {self.base_penalty!r}.")
        if self.base_penalty and self.extra_type not in (WIDE, NO_BALL):
            raise InvalidBallEvent("base_penalty only applies to a Wide or No Ball.")
        if self.is_wicket:
            if self.dismissal_type not in DISMISSAL_TYPES:
                raise InvalidBallEvent(
                    f"dismissal_type must be one of {DISMISSAL_TYPES}, got {self.dismissal_type!r}."
                )
        elif self.dismissal_type is not None:
            raise InvalidBallEvent("dismissal_type given for a delivery without a wicket.")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _require_open(match: Match) -> None:
    if match.completed:
        raise MatchCompletedError(f"Match {match.id} is already completed.")


def _status_of(innings: Innings) -> str:
    if innings.striker is None or innings.non_striker is None:
        return AWAITING_BATSMEN
    if innings.bowler is None:
        return AWAITING_BOWLER
    return READY


def _innings_map(match: Match, number: int, innings: Innings) -> Dict[int, Innings]:
    """
    Innings mapping for the next snapshot with ``innings`` at ``number``.
    The other innings get their own stat dicts so no dict is shared
    between snapshots.
    """
    innings_map = {
        num: replace(inn, batsmen=dict(inn.batsmen), bowlers=dict(inn.bowlers))
        for num, inn in match.innings.items()
        if num != number
    }
    innings_map[number] = innings
    return dict(sorted(innings_map.items()))


def _with_active_innings(match: Match, innings: Innings) -> Match:
    innings = replace(innings, status=_status_of(innings))
    return replace(match, innings=_innings_map(match, match.current_innings, innings))


def _resolve_delivery(event: BallEvent) -> Tuple[bool, int, int]:
    """Return (legal, runs added to the team, runs credited to the striker)."""
    if not event.is_extra:
        return True, event.runs, event.runs
    if event.extra_type == WIDE:
        return False, event.runs + event.base_penalty, 0
    if event.extra_type == NO_BALL:
        return False, event.runs + event.base_penalty, event.runs
    # Bye / Leg Bye
    return True, event.runs, 0


def _ball_position(balls: int, legal: bool) -> Tuple[int, int]:
    """
    0-based over index and 1-based ball-in-over for a delivery.

    Legal balls are numbered 1-6 within their own over, so the sixth ball of
    over 0 is (0, 6).  The older numbering, floor(balls/6) and balls % 6 + 1
    on the post-delivery count, recorded that ball as (1, 1); records from
    that numbering differ on every legal ball.  An illegal ball takes the
    number of the legal ball still to come.
    """
    if legal:
        return (balls - 1) // BALLS_PER_OVER, (balls - 1) % BALLS_PER_OVER + 1
    return balls // BALLS_PER_OVER, balls % BALLS_PER_OVER + 1


def over_notation(balls: int) -> float:
    """Cricket over notation: 14 legal balls -> 2.2"""
    return round(balls // BALLS_PER_OVER + (balls % BALLS_PER_OVER) / 10, 1)


def _update_batsman(stat: BatsmanStat, runs: int, legal: bool) -> BatsmanStat:
    total = stat.runs + runs
    balls = stat.balls + (1 if legal else 0)
    return replace(
        stat,
        runs=total,
        balls=balls,
        fours=stat.fours + (1 if runs == 4 else 0),
        sixes=stat.sixes + (1 if runs == 6 else 0),
        strike_rate=round(total / balls * 100, 2) if balls > 0 else 0.0,
    )


def _update_bowler(stat: BowlerStat, team_runs: int, legal: bool) -> BowlerStat:
    return replace(
        stat,
        balls=stat.balls + (1 if legal else 0),
        runs=stat.runs + team_runs,
        current_over_runs=stat.current_over_runs + team_runs,
    )


def _complete_over(stat: BowlerStat) -> BowlerStat:
    overs = stat.balls // BALLS_PER_OVER
    return replace(
        stat,
        maidens=stat.maidens + (1 if stat.current_over_runs == 0 else 0),
        current_over_runs=0,
        overs=overs,
        economy=round(stat.runs / overs, 2) if overs > 0 else 0.0,
    )


# ---------------------------------------------------------------------------
# Innings / match transitions
# ---------------------------------------------------------------------------

def _complete_match(match: Match, now: Optional[str]) -> Match:
    first, second = match.innings[1], match.innings[2]

    if second.score > first.score:
        chasing = match.team_by_name(second.batting_team)
        winner = second.batting_team
        margin = Margin("wickets", chasing.roster_size - 1 - second.wickets)
    elif first.score > second.score:
        winner = first.batting_team
        margin = Margin("runs", first.score - second.score)
    else:
        winner = TIE
        margin = None

    logger.info(
        "Match %s complete: %s/%s vs %s/%s, winner=%s margin=%s",
        match.id, first.score, first.wickets, second.score, second.wickets,
        winner, margin.to_dict() if margin else None,
    )
    return replace(
        match,
        completed=True,
        winner=winner,
        margin=margin,
        end_time=now or utc_now_iso(),
    )


def _check_innings_end(match: Match, rules: ScoringRules, now: Optional[str]) -> Match:
    innings = match.active_innings
    batting = match.team_by_name(innings.batting_team)

    all_out = innings.wickets >= batting.roster_size - 1
    overs_complete = innings.balls >= match.total_balls
    target_reached = (
        rules.end_innings_on_target
        and innings.target is not None
        and innings.score >= innings.target
    )
    if not (all_out or overs_complete or target_reached):
        return match

    closed = replace(innings, status=COMPLETE)

    if match.current_innings == 1:
        second = Innings(
            batting_team=innings.bowling_team,
            bowling_team=innings.batting_team,
            target=innings.score + 1,
        )
        logger.info(
            "End of innings 1 for match %s: %s %s/%s in %s overs. Target %s",
            match.id, innings.batting_team, innings.score, innings.wickets,
            over_notation(innings.balls), second.target,
        )
        return replace(match, current_innings=2, innings={1: closed, 2: second})

    return _complete_match(replace(match, innings=_innings_map(match, 2, closed)), now)


# ---------------------------------------------------------------------------
# Public engine API
# ---------------------------------------------------------------------------

def record_ball(
    match: Match,
    event: BallEvent,
    rules: Optional[ScoringRules] = None,
    now: Optional[str] = None,
) -> Match:
    """
    Apply one delivery to the active innings and return the next snapshot.

    Raises InvalidBallEvent for a malformed event, SelectionRequiredError if
    a batting or bowling slot is empty, MatchCompletedError after the result.
    ``now`` overrides the end-of-match timestamp.
    """
    rules = rules or DEFAULT_RULES
    event.validate()
    _require_open(match)

    innings = match.active_innings
    status = _status_of(innings)
    if status != READY:
        raise SelectionRequiredError(status)

    striker = innings.striker
    non_striker = innings.non_striker
    bowler_id = innings.bowler

    # 1) Legality & penalty
    legal, team_runs, batsman_runs = _resolve_delivery(event)
    extras = innings.extras
    if event.is_extra:
        if event.extra_type in (WIDE, NO_BALL):
            extras = extras.add(event.extra_type, event.base_penalty)
        else:
            extras = extras.add(event.extra_type, event.runs)
    score = innings.score + team_runs
    balls = innings.balls + (1 if legal else 0)

    # 2) Batsman
    batsman = _update_batsman(innings.batsmen.get(striker, BatsmanStat()), batsman_runs, legal)

    # 3) Bowler
    bowler = _update_bowler(innings.bowlers.get(bowler_id, BowlerStat()), team_runs, legal)

    # 4) Wicket
    wickets = innings.wickets
    fall_of_wickets = innings.fall_of_wickets
    if event.is_wicket:
        wickets += 1
        credited = event.dismissal_type != RUN_OUT
        batsman = replace(
            batsman,
            out=True,
            dismissal=Dismissal(
                type=event.dismissal_type,
                bowler=bowler_id if credited else None,
                fielder=event.fielder,
            ),
        )
        if credited:
            bowler = replace(bowler, wickets=bowler.wickets + 1)
        fall_of_wickets = fall_of_wickets + (
            FallOfWicket(batsman=striker, runs=score, wicket=wickets, over=over_notation(balls)),
        )
        logger.debug("Wicket %s: %s %s (%s/%s)", wickets, striker, event.dismissal_type, score, wickets)
        striker = None

    # 5) Ball log
    over_index, ball_in_over = _ball_position(balls, legal)
    record = BallRecord(
        over=over_index,
        ball=ball_in_over,
        bowler=bowler_id,
        batsman=innings.striker,
        runs=event.runs,
        is_extra=event.is_extra,
        extra_type=event.extra_type,
        extra_runs=event.base_penalty,
        is_wicket=event.is_wicket,
        dismissal_type=event.dismissal_type,
        fielder=event.fielder,
        total_runs=team_runs,
    )

    # 6) Strike rotation on odd team runs
    if not event.is_wicket and team_runs % 2 == 1:
        striker, non_striker = non_striker, striker

    # 7) Over completion
    current_bowler = bowler_id
    if legal and balls % BALLS_PER_OVER == 0:
        bowler = _complete_over(bowler)
        striker, non_striker = non_striker, striker
        current_bowler = None
        logger.info(
            "End of over %s: %s %s/%s, bowler %s %s-%s-%s-%s",
            balls // BALLS_PER_OVER, innings.batting_team, score, wickets,
            bowler_id, bowler.overs, bowler.maidens, bowler.runs, bowler.wickets,
        )

    logger.debug(
        "Ball %s.%s %s to %s: +%s (legal=%s) -> %s/%s",
        over_index, ball_in_over, bowler_id, record.batsman, team_runs, legal, score, wickets,
    )

    updated = replace(
        innings,
        score=score,
        wickets=wickets,
        balls=balls,
        extras=extras,
        batsmen={**innings.batsmen, innings.striker: batsman},
        bowlers={**innings.bowlers, bowler_id: bowler},
        striker=striker,
        non_striker=non_striker,
        bowler=current_bowler,
        ball_by_ball=innings.ball_by_ball + (record,),
        fall_of_wickets=fall_of_wickets,
    )

    # 8) Innings / match end
    return _check_innings_end(_with_active_innings(match, updated), rules, now)


def select_batsman(match: Match, player_id: str, slot: str) -> Match:
    """Put ``player_id`` in the striker or non_striker slot of the active innings."""
    _require_open(match)
    if slot not in BATTING_SLOTS:
        raise ValueError(f"slot must be one of {list(BATTING_SLOTS)}, got {slot!r}.")
    innings = replace(match.active_innings, **{slot: player_id})
    logger.debug("Selected %s as %s", player_id, slot)
    return _with_active_innings(match, innings)


def select_bowler(match: Match, player_id: str) -> Match:
    _require_open(match)
    innings = replace(match.active_innings, bowler=player_id)
    logger.debug("Selected %s to bowl", player_id)
    return _with_active_innings(match, innings)


def force_result(
    match: Match,
    winner: str,
    reason: Optional[str] = None,
    now: Optional[str] = None,
) -> Match:
    """
    Close a match whose first innings has ended without playing it out
    (rain, concession).  ``winner`` is a team name, "Tie" or "No Result".
    """
    _require_open(match)
    if match.current_innings != 2:
        raise ValueError("A result can only be forced once the first innings has ended.")
    if winner not in (match.team1.name, match.team2.name, TIE, NO_RESULT):
        raise ValueError(f"Unknown winner {winner!r}.")

    logger.info("Forced result for match %s: %s (%s)", match.id, winner, reason or "no reason given")
    innings = replace(match.active_innings, status=COMPLETE)
    return replace(
        match,
        innings=_innings_map(match, match.current_innings, innings),
        completed=True,
        winner=winner,
        margin=None,
        end_time=now or utc_now_iso(),
    )


# ---------------------------------------------------------------------------
# Candidate views
# ---------------------------------------------------------------------------

def available_batsmen(match: Match) -> List[str]:
    """Batting roster members who are not out and not already at the crease."""
    innings = match.active_innings
    team = match.team_by_name(innings.batting_team)
    occupied = {innings.striker, innings.non_striker}
    return [
        pid for pid in team.players
        if not (pid in innings.batsmen and innings.batsmen[pid].out)
        and pid not in occupied
    ]


def previous_over_bowler(innings: Innings) -> Optional[str]:
    """Bowler of the last completed over, if any."""
    previous_over = innings.balls // BALLS_PER_OVER - 1
    if previous_over < 0:
        return None
    for record in reversed(innings.ball_by_ball):
        if record.over == previous_over:
            return record.bowler
    return None


def available_bowlers(match: Match, rules: Optional[ScoringRules] = None) -> List[str]:
    """
    Bowling roster members who may take the ball.

    Only the current bowler is excluded by default; the previous over's
    bowler is excluded too when consecutive overs are disallowed.
    """
    rules = rules or DEFAULT_RULES
    innings = match.active_innings
    team = match.team_by_name(innings.bowling_team)
    excluded = {innings.bowler}
    if not rules.allow_consecutive_overs:
        excluded.add(previous_over_bowler(innings))
    return [pid for pid in team.players if pid not in excluded]
