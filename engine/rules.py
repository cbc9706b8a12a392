"""
engine/rules.py
===============

Scoring rule switches and match-format presets.

The scoring engine reads every optional rule from a ScoringRules instance
rather than hardcoding it, so a deployment can tighten the rules from
config.yaml without touching the engine.

Usage
-----
    from engine.rules import ScoringRules, get_format, rules_from_config

    rules = rules_from_config(load_config())
    rules.allow_consecutive_overs   # True unless configured otherwise
    get_format("T20").overs         # 20
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# ScoringRules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoringRules:
    """
    Optional rules layered on top of the core ball-by-ball logic.

    Attributes
    ----------
    allow_consecutive_overs : when False, the bowler of the previous over is
                              left out of the candidate list for the next one
    end_innings_on_target   : when True, the chase ends as soon as the
                              second-innings score reaches the target
    """
    allow_consecutive_overs: bool = True
    end_innings_on_target: bool = False


DEFAULT_RULES = ScoringRules()


def rules_from_config(config: Optional[Dict[str, Any]]) -> ScoringRules:
    """Build ScoringRules from the ``scoring`` section of config.yaml."""
    section = (config or {}).get("scoring") or {}
    return ScoringRules(
        allow_consecutive_overs=bool(section.get("allow_consecutive_overs", True)),
        end_innings_on_target=bool(section.get("end_innings_on_target", False)),
    )


# ---------------------------------------------------------------------------
# Match formats
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchFormat:
    name: str
    overs: int


MATCH_FORMATS: Dict[str, MatchFormat] = {
    "T10":   MatchFormat("T10", overs=10),
    "T20":   MatchFormat("T20", overs=20),
    "ListA": MatchFormat("ListA", overs=50),
}


def get_format(match_format: Optional[str]) -> MatchFormat:
    """
    Return the MatchFormat for the given name.
    Defaults to T20 for None or unrecognised values.
    """
    return MATCH_FORMATS.get(match_format or "T20", MATCH_FORMATS["T20"])
