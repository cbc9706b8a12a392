"""
engine/models.py
================

Canonical match state for ball-by-ball scoring.

Every type here is a frozen dataclass.  The scoring engine never edits a
value in place: each delivery produces a new Match whose innings, stat maps
and ball log are freshly built, so a snapshot handed to a caller can be kept
(for undo, persistence, display) without fear of it changing underneath.

Serialisation
-------------
    match.to_dict()        # JSON-safe dict (innings keys become "1"/"2")
    Match.from_dict(data)  # inverse

Setup
-----
    from engine.models import Team, Toss, new_match

    match = new_match(
        overs=5,
        team1=Team("Lions", ("p1", "p2", "p3")),
        team2=Team("Tigers", ("p4", "p5", "p6")),
        toss=Toss(winner="Lions", decision="bowl"),
    )
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from engine.rules import get_format


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

WIDE = "Wide"
NO_BALL = "No Ball"
BYE = "Bye"
LEG_BYE = "Leg Bye"

EXTRA_TYPES = [WIDE, NO_BALL, BYE, LEG_BYE]

RUN_OUT = "Run Out"

DISMISSAL_TYPES = ["Bowled", "Caught", RUN_OUT, "LBW", "Stumped", "Hit Wicket"]

TOSS_DECISIONS = ["bat", "bowl"]

TIE = "Tie"
NO_RESULT = "No Result"

MAX_SQUAD_SIZE = 11
MIN_SQUAD_SIZE = 2

BALLS_PER_OVER = 6

# Innings status values
AWAITING_BATSMEN = "awaiting_batsmen"
AWAITING_BOWLER = "awaiting_bowler"
READY = "ready"
COMPLETE = "complete"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Teams and toss
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Team:
    """A side in the match: display name plus ordered player identifiers."""
    name: str
    players: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "players", tuple(self.players))

    @property
    def roster_size(self) -> int:
        return len(self.players)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "players": list(self.players)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Team":
        return Team(name=data["name"], players=tuple(data.get("players", [])))


@dataclass(frozen=True)
class Toss:
    winner: str
    decision: str  # "bat" | "bowl"

    def to_dict(self) -> Dict[str, Any]:
        return {"winner": self.winner, "decision": self.decision}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Toss":
        return Toss(winner=data["winner"], decision=data["decision"])


# ---------------------------------------------------------------------------
# Per-innings figures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Extras:
    wide: int = 0
    no_ball: int = 0
    bye: int = 0
    leg_bye: int = 0

    _BUCKETS = {WIDE: "wide", NO_BALL: "no_ball", BYE: "bye", LEG_BYE: "leg_bye"}

    @property
    def total(self) -> int:
        return self.wide + self.no_ball + self.bye + self.leg_bye

    def add(self, extra_type: str, runs: int) -> "Extras":
        """Return a copy with ``runs`` added to the bucket for ``extra_type``."""
        bucket = self._BUCKETS[extra_type]
        return replace(self, **{bucket: getattr(self, bucket) + runs})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wide": self.wide,
            "no_ball": self.no_ball,
            "bye": self.bye,
            "leg_bye": self.leg_bye,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Extras":
        return Extras(
            wide=data.get("wide", 0),
            no_ball=data.get("no_ball", 0),
            bye=data.get("bye", 0),
            leg_bye=data.get("leg_bye", 0),
        )


@dataclass(frozen=True)
class Dismissal:
    type: str
    bowler: Optional[str] = None   # None for run-outs
    fielder: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "bowler": self.bowler, "fielder": self.fielder}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Dismissal":
        return Dismissal(
            type=data["type"],
            bowler=data.get("bowler"),
            fielder=data.get("fielder"),
        )


@dataclass(frozen=True)
class BatsmanStat:
    runs: int = 0
    balls: int = 0
    fours: int = 0
    sixes: int = 0
    strike_rate: float = 0.0
    out: bool = False
    dismissal: Optional[Dismissal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runs": self.runs,
            "balls": self.balls,
            "fours": self.fours,
            "sixes": self.sixes,
            "strike_rate": self.strike_rate,
            "out": self.out,
            "dismissal": self.dismissal.to_dict() if self.dismissal else None,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BatsmanStat":
        dismissal = data.get("dismissal")
        return BatsmanStat(
            runs=data.get("runs", 0),
            balls=data.get("balls", 0),
            fours=data.get("fours", 0),
            sixes=data.get("sixes", 0),
            strike_rate=float(data.get("strike_rate", 0.0)),
            out=bool(data.get("out", False)),
            dismissal=Dismissal.from_dict(dismissal) if dismissal else None,
        )


@dataclass(frozen=True)
class BowlerStat:
    """
    Bowling figures for one innings.

    ``overs`` and ``economy`` are refreshed when an over is completed;
    ``current_over_runs`` only exists to detect maidens and is reset at the
    end of every over.
    """
    overs: int = 0
    balls: int = 0
    runs: int = 0
    wickets: int = 0
    maidens: int = 0
    economy: float = 0.0
    current_over_runs: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overs": self.overs,
            "balls": self.balls,
            "runs": self.runs,
            "wickets": self.wickets,
            "maidens": self.maidens,
            "economy": self.economy,
            "current_over_runs": self.current_over_runs,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BowlerStat":
        return BowlerStat(
            overs=data.get("overs", 0),
            balls=data.get("balls", 0),
            runs=data.get("runs", 0),
            wickets=data.get("wickets", 0),
            maidens=data.get("maidens", 0),
            economy=float(data.get("economy", 0.0)),
            current_over_runs=data.get("current_over_runs", 0),
        )


@dataclass(frozen=True)
class BallRecord:
    over: int
    ball: int
    bowler: str
    batsman: str
    runs: int
    is_extra: bool
    extra_type: Optional[str]
    extra_runs: int
    is_wicket: bool
    dismissal_type: Optional[str]
    fielder: Optional[str]
    total_runs: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "over": self.over,
            "ball": self.ball,
            "bowler": self.bowler,
            "batsman": self.batsman,
            "runs": self.runs,
            "is_extra": self.is_extra,
            "extra_type": self.extra_type,
            "extra_runs": self.extra_runs,
            "is_wicket": self.is_wicket,
            "dismissal_type": self.dismissal_type,
            "fielder": self.fielder,
            "total_runs": self.total_runs,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "BallRecord":
        return BallRecord(
            over=data["over"],
            ball=data["ball"],
            bowler=data["bowler"],
            batsman=data["batsman"],
            runs=data["runs"],
            is_extra=data.get("is_extra", False),
            extra_type=data.get("extra_type"),
            extra_runs=data.get("extra_runs", 0),
            is_wicket=data.get("is_wicket", False),
            dismissal_type=data.get("dismissal_type"),
            fielder=data.get("fielder"),
            total_runs=data["total_runs"],
        )


@dataclass(frozen=True)
class FallOfWicket:
    batsman: str
    runs: int
    wicket: int
    over: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batsman": self.batsman,
            "runs": self.runs,
            "wicket": self.wicket,
            "over": self.over,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "FallOfWicket":
        return FallOfWicket(
            batsman=data["batsman"],
            runs=data["runs"],
            wicket=data["wicket"],
            over=float(data["over"]),
        )


@dataclass(frozen=True)
class Innings:
    """
    One side's batting innings.

    Attributes
    ----------
    batting_team / bowling_team : team names
    target         : innings-1 score + 1, second innings only
    balls          : legal deliveries only (wides and no-balls excluded)
    batsmen        : player id -> BatsmanStat, for players who have batted
    bowlers        : player id -> BowlerStat, for players who have bowled
    striker / non_striker / bowler : current slots, None while a selection
                     is pending
    ball_by_ball   : append-only delivery log
    status         : awaiting_batsmen | awaiting_bowler | ready | complete
    """
    batting_team: str
    bowling_team: str
    target: Optional[int] = None
    score: int = 0
    wickets: int = 0
    balls: int = 0
    extras: Extras = field(default_factory=Extras)
    batsmen: Dict[str, BatsmanStat] = field(default_factory=dict)
    bowlers: Dict[str, BowlerStat] = field(default_factory=dict)
    striker: Optional[str] = None
    non_striker: Optional[str] = None
    bowler: Optional[str] = None
    ball_by_ball: Tuple[BallRecord, ...] = ()
    fall_of_wickets: Tuple[FallOfWicket, ...] = ()
    status: str = AWAITING_BATSMEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batting_team": self.batting_team,
            "bowling_team": self.bowling_team,
            "target": self.target,
            "score": self.score,
            "wickets": self.wickets,
            "balls": self.balls,
            "extras": self.extras.to_dict(),
            "batsmen": {pid: s.to_dict() for pid, s in self.batsmen.items()},
            "bowlers": {pid: s.to_dict() for pid, s in self.bowlers.items()},
            "striker": self.striker,
            "non_striker": self.non_striker,
            "bowler": self.bowler,
            "ball_by_ball": [b.to_dict() for b in self.ball_by_ball],
            "fall_of_wickets": [f.to_dict() for f in self.fall_of_wickets],
            "status": self.status,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Innings":
        return Innings(
            batting_team=data["batting_team"],
            bowling_team=data["bowling_team"],
            target=data.get("target"),
            score=data.get("score", 0),
            wickets=data.get("wickets", 0),
            balls=data.get("balls", 0),
            extras=Extras.from_dict(data.get("extras", {})),
            batsmen={pid: BatsmanStat.from_dict(s) for pid, s in data.get("batsmen", {}).items()},
            bowlers={pid: BowlerStat.from_dict(s) for pid, s in data.get("bowlers", {}).items()},
            striker=data.get("striker"),
            non_striker=data.get("non_striker"),
            bowler=data.get("bowler"),
            ball_by_ball=tuple(BallRecord.from_dict(b) for b in data.get("ball_by_ball", [])),
            fall_of_wickets=tuple(FallOfWicket.from_dict(f) for f in data.get("fall_of_wickets", [])),
            status=data.get("status", AWAITING_BATSMEN),
        )


# ---------------------------------------------------------------------------
# Match
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Margin:
    type: str   # "runs" | "wickets"
    value: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "value": self.value}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Margin":
        return Margin(type=data["type"], value=data["value"])


@dataclass(frozen=True)
class Match:
    id: str
    overs: int
    team1: Team
    team2: Team
    toss: Toss
    batting_first: str
    current_innings: int = 1
    innings: Dict[int, Innings] = field(default_factory=dict)
    completed: bool = False
    winner: Optional[str] = None
    margin: Optional[Margin] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @property
    def active_innings(self) -> Innings:
        return self.innings[self.current_innings]

    @property
    def total_balls(self) -> int:
        return self.overs * BALLS_PER_OVER

    def team_by_name(self, name: str) -> Team:
        if name == self.team1.name:
            return self.team1
        if name == self.team2.name:
            return self.team2
        raise KeyError(f"Unknown team '{name}'")

    def other_team(self, name: str) -> Team:
        return self.team2 if name == self.team1.name else self.team1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "overs": self.overs,
            "team1": self.team1.to_dict(),
            "team2": self.team2.to_dict(),
            "toss": self.toss.to_dict(),
            "batting_first": self.batting_first,
            "current_innings": self.current_innings,
            "innings": {str(num): inn.to_dict() for num, inn in self.innings.items()},
            "completed": self.completed,
            "winner": self.winner,
            "margin": self.margin.to_dict() if self.margin else None,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Match":
        margin = data.get("margin")
        return Match(
            id=str(data["id"]),
            overs=int(data["overs"]),
            team1=Team.from_dict(data["team1"]),
            team2=Team.from_dict(data["team2"]),
            toss=Toss.from_dict(data["toss"]),
            batting_first=data["batting_first"],
            current_innings=int(data.get("current_innings", 1)),
            innings={int(num): Innings.from_dict(inn) for num, inn in data.get("innings", {}).items()},
            completed=bool(data.get("completed", False)),
            winner=data.get("winner"),
            margin=Margin.from_dict(margin) if margin else None,
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
        )


# ---------------------------------------------------------------------------
# Match setup
# ---------------------------------------------------------------------------

def _validate_team(team: Team, label: str) -> None:
    if not team.name or not team.name.strip():
        raise ValueError(f"{label} name must not be empty.")
    if len(set(team.players)) != len(team.players):
        raise ValueError(f"{label} roster contains duplicate players.")
    if not MIN_SQUAD_SIZE <= team.roster_size <= MAX_SQUAD_SIZE:
        raise ValueError(
            f"{label} roster must have between {MIN_SQUAD_SIZE} and {MAX_SQUAD_SIZE} players."
        )


def new_match(
    team1: Team,
    team2: Team,
    toss: Toss,
    overs: Optional[int] = None,
    match_format: Optional[str] = None,
    match_id: Optional[str] = None,
    now: Optional[str] = None,
) -> Match:
    """
    Build the initial Match the scoring engine starts from.

    ``overs`` wins over ``match_format``; when neither is given the default
    format's overs are used.  Raises ValueError on any invalid setting.
    """
    if overs is None:
        overs = get_format(match_format).overs
    if isinstance(overs, bool) or not isinstance(overs, int) or overs <= 0:
        raise ValueError("overs must be a positive integer.")

    _validate_team(team1, "Team 1")
    _validate_team(team2, "Team 2")
    if team1.name == team2.name:
        raise ValueError("Team names must be different.")
    if toss.winner not in (team1.name, team2.name):
        raise ValueError("Toss winner must be one of the two teams.")
    if toss.decision not in TOSS_DECISIONS:
        raise ValueError(f"Toss decision must be one of {TOSS_DECISIONS}.")

    if toss.decision == "bat":
        batting_first = toss.winner
    else:
        batting_first = team2.name if toss.winner == team1.name else team1.name
    bowling_first = team2.name if batting_first == team1.name else team1.name

    return Match(
        id=match_id or str(uuid.uuid4()),
        overs=overs,
        team1=team1,
        team2=team2,
        toss=toss,
        batting_first=batting_first,
        current_innings=1,
        innings={1: Innings(batting_team=batting_first, bowling_team=bowling_first)},
        start_time=now or utc_now_iso(),
    )
