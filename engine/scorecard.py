"""
engine/scorecard.py
===================

Read-only views derived from a Match snapshot: over display, run rates,
the over in progress, result wording, top performers and a text scorecard.
Nothing here changes match state.
"""

from typing import Any, Callable, Dict, List, Optional

from tabulate import tabulate

from engine.models import (
    BALLS_PER_OVER,
    BYE,
    LEG_BYE,
    NO_BALL,
    NO_RESULT,
    TIE,
    WIDE,
    BallRecord,
    Innings,
    Match,
)

NameLookup = Callable[[str], str]


def _identity(player_id: str) -> str:
    return player_id


def overs_display(balls: int) -> str:
    return f"{balls // BALLS_PER_OVER}.{balls % BALLS_PER_OVER}"


def run_rate(innings: Innings) -> float:
    if innings.balls == 0:
        return 0.0
    return round(innings.score * BALLS_PER_OVER / innings.balls, 2)


def balls_remaining(match: Match) -> int:
    return max(match.total_balls - match.active_innings.balls, 0)


def runs_needed(match: Match) -> Optional[int]:
    """Runs the chasing side still needs, or None outside a chase."""
    innings = match.active_innings
    if innings.target is None:
        return None
    return max(innings.target - innings.score, 0)


def required_run_rate(match: Match) -> Optional[float]:
    needed = runs_needed(match)
    if needed is None:
        return None
    remaining = balls_remaining(match)
    if remaining == 0:
        return None
    return round(needed * BALLS_PER_OVER / remaining, 2)


def current_over(innings: Innings) -> List[BallRecord]:
    """Deliveries bowled so far in the over in progress."""
    over_index = innings.balls // BALLS_PER_OVER
    return [b for b in innings.ball_by_ball if b.over == over_index]


def ball_label(record: BallRecord) -> str:
    """Short label for a delivery as shown in an over strip: 4, W, 1wd, nb..."""
    if record.is_wicket:
        return "W"
    if record.is_extra:
        suffix = {WIDE: "wd", NO_BALL: "nb", BYE: "b", LEG_BYE: "lb"}[record.extra_type]
        return f"{record.total_runs}{suffix}"
    return str(record.runs)


def result_text(match: Match) -> Optional[str]:
    if not match.completed:
        return None
    if match.winner == TIE:
        return "Match Tied"
    if match.winner == NO_RESULT:
        return NO_RESULT
    if match.margin is None:
        return f"{match.winner} won"
    unit = match.margin.type if match.margin.value != 1 else match.margin.type.rstrip("s")
    return f"{match.winner} won by {match.margin.value} {unit}"


def top_performers(match: Match) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    Highest run scorer and highest wicket taker across both innings.
    Ties go to whoever was found first; zero figures give None.
    """
    top_batsman = None
    top_bowler = None
    for number in sorted(match.innings):
        innings = match.innings[number]
        for player_id, stat in innings.batsmen.items():
            if stat.runs > (top_batsman["runs"] if top_batsman else 0):
                top_batsman = {"player_id": player_id, "runs": stat.runs, "balls": stat.balls}
        for player_id, stat in innings.bowlers.items():
            if stat.wickets > (top_bowler["wickets"] if top_bowler else 0):
                top_bowler = {"player_id": player_id, "wickets": stat.wickets, "runs": stat.runs}
    return {"batsman": top_batsman, "bowler": top_bowler}


def _dismissal_text(stat, name_of: NameLookup) -> str:
    if not stat.out:
        return "not out"
    d = stat.dismissal
    parts = [d.type]
    if d.fielder:
        parts.append(f"({name_of(d.fielder)})")
    if d.bowler:
        parts.append(f"b {name_of(d.bowler)}")
    return " ".join(parts)


def build_scorecard(match: Match, name_of: Optional[NameLookup] = None) -> List[Dict[str, Any]]:
    """One entry per innings with batting, bowling, extras and fall of wickets."""
    name_of = name_of or _identity
    cards = []
    for number in sorted(match.innings):
        innings = match.innings[number]
        cards.append({
            "innings": number,
            "batting_team": innings.batting_team,
            "total": f"{innings.score}/{innings.wickets}",
            "overs": overs_display(innings.balls),
            "target": innings.target,
            "batting": [
                {
                    "player": name_of(pid),
                    "status": _dismissal_text(stat, name_of),
                    "runs": stat.runs,
                    "balls": stat.balls,
                    "fours": stat.fours,
                    "sixes": stat.sixes,
                    "strike_rate": stat.strike_rate,
                }
                for pid, stat in innings.batsmen.items()
            ],
            "bowling": [
                {
                    "player": name_of(pid),
                    "overs": overs_display(stat.balls),
                    "maidens": stat.maidens,
                    "runs": stat.runs,
                    "wickets": stat.wickets,
                    "economy": stat.economy,
                }
                for pid, stat in innings.bowlers.items()
            ],
            "extras": {**innings.extras.to_dict(), "total": innings.extras.total},
            "fall_of_wickets": [
                f"{f.runs}-{f.wicket} ({name_of(f.batsman)}, {f.over})"
                for f in innings.fall_of_wickets
            ],
        })
    return cards


def format_scorecard(match: Match, name_of: Optional[NameLookup] = None) -> str:
    lines = []
    for card in build_scorecard(match, name_of):
        lines.append(f"Innings {card['innings']}: {card['batting_team']} {card['total']} ({card['overs']} ov)")
        lines.append(tabulate(
            [[b["player"], b["status"], b["runs"], b["balls"], b["fours"], b["sixes"], b["strike_rate"]]
             for b in card["batting"]],
            headers=["Batter", "", "R", "B", "4s", "6s", "SR"],
            tablefmt="simple",
        ))
        extras = card["extras"]
        lines.append(
            f"Extras: {extras['total']} (w {extras['wide']}, nb {extras['no_ball']}, "
            f"b {extras['bye']}, lb {extras['leg_bye']})"
        )
        if card["fall_of_wickets"]:
            lines.append("Fall of wickets: " + ", ".join(card["fall_of_wickets"]))
        lines.append(tabulate(
            [[b["player"], b["overs"], b["maidens"], b["runs"], b["wickets"], b["economy"]]
             for b in card["bowling"]],
            headers=["Bowler", "O", "M", "R", "W", "Econ"],
            tablefmt="simple",
        ))
        lines.append("")
    text = result_text(match)
    if text:
        lines.append(text)
    return "\n".join(lines)
