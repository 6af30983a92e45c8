"""
Sports rules database.

Each sport maps to a SportProfile: the decisions an umpire may call, the rules
that govern those calls, and the visual elements worth looking at. Unknown
sports resolve to the "general" profile so a request is never rejected just
because its sport name is unrecognised.

The rendered rule text is embedded in model prompts, so everything here is
iterated in declaration order.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from app.core.decision import validate_token_order

GENERAL = "general"


@dataclass(frozen=True)
class SportProfile:
    sport_id: str
    name: str
    decisions: Tuple[str, ...]
    rules: Mapping[str, str]
    key_elements: Tuple[str, ...]
    critical_points: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # decisions are listed longer-first, like the extractor's token tables
        object.__setattr__(self, "decisions", validate_token_order(self.decisions))
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))


# ── Profiles ──────────────────────────────────────────────────────────────────
_PROFILES: Dict[str, SportProfile] = {
    "cricket": SportProfile(
        sport_id="cricket",
        name="Cricket",
        decisions=("NOT OUT", "OUT", "WIDE", "NO BALL", "SIX", "FOUR"),
        rules={
            "bowled": (
                "BATSMAN IS OUT if the ball hits the stumps directly from the bowler, OR if the ball "
                "hits the bat/pad first then hits the stumps. Look for: ball trajectory towards stumps, "
                "stumps being hit, bails falling off."
            ),
            "caught": (
                "BATSMAN IS OUT if the ball touches the bat (even a slight edge) and is caught by ANY "
                "fielder (including wicket-keeper) before the ball touches the ground. Look for: ball "
                "deflection off bat, fielder catching cleanly, ball not bouncing first."
            ),
            "lbw": (
                "BATSMAN IS OUT if: (1) Ball hits the pad/leg first (not bat first), (2) Ball would have "
                "hit the stumps (trajectory analysis), (3) Impact point is in line with stumps OR outside "
                "off-stump only if no shot was offered. Look for: ball hitting pad before bat, ball "
                "trajectory toward stumps."
            ),
            "stumped": (
                "BATSMAN IS OUT if wicket-keeper breaks the stumps with the ball while the batsman is out "
                "of his crease AND not attempting a run (usually after missing the ball). Look for: "
                "batsman's foot outside crease line, keeper breaking stumps with ball, no run being attempted."
            ),
            "run_out": (
                "BATSMAN IS OUT if fielder breaks the stumps with the ball while batsman is out of crease "
                "while attempting a run. Look for: batsman running, foot outside crease when stumps broken, "
                "direct hit or throw to keeper/fielder."
            ),
            "not_out": (
                "BATSMAN IS NOT OUT if: ball misses stumps completely, ball hits ground before being caught, "
                "batsman's foot is inside the crease when stumps broken, ball hits bat first then pad (for "
                "LBW), or ball clearly missing stumps."
            ),
            "wide": (
                "WIDE BALL if ball passes clearly outside batsman's normal reach on either side. Look for: "
                "ball trajectory well outside batsman's stance."
            ),
            "no_ball": (
                "NO BALL if: bowler's front foot completely crosses the popping crease (front line), ball "
                "bounces more than twice, ball is above waist height when reaching batsman, or more than 2 "
                "fielders behind square leg."
            ),
        },
        key_elements=(
            "ball trajectory", "bat contact", "stumps", "bails", "wicket-keeper", "fielders",
            "crease lines", "batsman position", "pad contact", "catching",
        ),
        critical_points=(
            "For CAUGHT: Did ball definitely touch bat? Was it caught cleanly before bouncing?",
            "For BOWLED: Did ball hit the stumps and dislodge bails?",
            "For LBW: Did ball hit pad first? Would ball have hit stumps? Was impact in line?",
            "For STUMPED/RUN OUT: Was batsman's foot outside crease when stumps were broken?",
            "When in doubt between two decisions, choose based on clearest visual evidence.",
        ),
    ),
    "football": SportProfile(
        sport_id="football",
        name="Football/Soccer",
        decisions=("NO GOAL", "GOAL", "OFFSIDE", "FOUL", "PENALTY", "CORNER", "THROW-IN"),
        rules={
            "goal": "Ball completely crosses goal line between goalposts and under crossbar",
            "offside": "Player in offside position when ball played by teammate (except throw-ins, corners, goal kicks)",
            "foul": "Kicking, tripping, jumping at, charging, striking, pushing, or holding opponent",
            "penalty": "Direct free kick offense committed inside penalty area",
            "handball": "Deliberately handling ball with hands/arms (except goalkeeper in penalty area)",
        },
        key_elements=("ball", "goal", "goal line", "players", "goalkeeper", "penalty area", "offside line"),
    ),
    "tennis": SportProfile(
        sport_id="tennis",
        name="Tennis",
        decisions=("WINNER", "IN", "OUT", "FAULT", "ACE", "LET"),
        rules={
            "in": "Ball lands within the court boundaries",
            "out": "Ball lands outside court boundaries or hits net",
            "fault": "Serve that doesn't land in service box or hits net",
            "let": "Serve that touches net but lands in correct service box",
            "ace": "Serve that opponent cannot touch",
            "winner": "Shot that opponent cannot return",
        },
        key_elements=("ball", "court lines", "net", "service box", "player", "racket"),
    ),
    "basketball": SportProfile(
        sport_id="basketball",
        name="Basketball",
        decisions=("SCORE", "FOUL", "VIOLATION", "OUT OF BOUNDS", "SHOT CLOCK", "THREE POINTER"),
        rules={
            "score": "Ball goes through hoop from above",
            "foul": "Illegal personal contact or unsportsmanlike conduct",
            "traveling": "Moving with ball without dribbling",
            "double_dribble": "Dribbling with both hands or stopping and starting dribble",
            "out_of_bounds": "Ball or player touches boundary lines or goes outside court",
            "three_pointer": "Shot made from behind three-point line",
        },
        key_elements=("ball", "hoop", "court lines", "three-point line", "players", "shot clock"),
    ),
    GENERAL: SportProfile(
        sport_id=GENERAL,
        name="General Sports",
        decisions=("INVALID", "VALID", "FOUL", "ILLEGAL", "LEGAL"),
        rules={
            "general": "Analyze the sporting action based on visible elements and common sports principles",
            "contact": "Determine if contact between players/objects is legal or illegal",
            "boundary": "Check if ball/player is within bounds or out of bounds",
            "scoring": "Determine if a scoring attempt is successful",
        },
        key_elements=("ball", "players", "boundaries", "equipment", "playing surface"),
    ),
}


def normalize_sport(sport_id: Optional[str]) -> str:
    """Lower-cased, trimmed sport id; empty or missing ids become "general"."""
    if not sport_id or not sport_id.strip():
        return GENERAL
    return sport_id.strip().lower()


def profile_for(sport_id: Optional[str]) -> SportProfile:
    """Profile for a sport id, falling back to the general profile. Never raises."""
    return _PROFILES.get(normalize_sport(sport_id), _PROFILES[GENERAL])


def available_sports() -> List[str]:
    return [sport for sport in _PROFILES if sport != GENERAL]


def format_for_prompt(sport_id: Optional[str]) -> str:
    """Render a sport's profile as rule text for a model prompt."""
    profile = profile_for(sport_id)

    lines = [
        f"Sport: {profile.name}",
        "",
        f"Possible Decisions: {', '.join(profile.decisions)}",
        "",
        f"Key Elements to Look For: {', '.join(profile.key_elements)}",
        "",
        "Rules:",
    ]
    lines += [f"- {name.upper()}: {text}" for name, text in profile.rules.items()]

    if profile.critical_points:
        lines += ["", "CRITICAL DECISION POINTS:"]
        lines += [f"• {point}" for point in profile.critical_points]

    return "\n".join(lines) + "\n"
