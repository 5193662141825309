# Pool defaults for the 2026 tournament
from typing import Dict, List, Tuple

# Group-stage matches carry labels like "Grupo A"
GROUP_STAGE_PREFIX: str = "Grupo "

# Points multiplier for special teams/phases, applied at most once
MULTIPLIER: int = 2

# Classic standings scheme
WIN_POINTS: int = 3
DRAW_POINTS: int = 1

# Number of third-placed teams that advance in a 48-team format
DEFAULT_THIRD_PLACE_SLOTS: int = 8

PRIZE_DECIMALS: int = 2

DEFAULT_TICKET_PRICE: float = 50.0
DEFAULT_PRIZE_DISTRIBUTION: Tuple[int, int, int] = (65, 25, 10)

DEFAULT_SPECIAL_TEAMS: List[str] = ["Brasil"]
DEFAULT_SPECIAL_PHASES: List[str] = ["FINAL"]
DEFAULT_MARQUEE_TEAM: str = "Brasil"

# (category, label, points). Rows without a category are informational.
DEFAULT_SCORING_RULES: List[Tuple[str, str, int]] = [
    ("exact_score", "Escore em cheio", 6),
    ("winner_and_subscore", "Vencedor + Escore de uma das sel.", 3),
    ("winner_only", "Apenas o vencedor", 2),
    ("correct_draw", "Apenas o empate (placar incorreto)", 2),
    ("", "1ª Colocação do grupo", 3),
    ("", "2ª Colocação do grupo", 3),
    ("", "Artilheiro da Copa", 15),
    ("", "Campeão da Copa", 15),
    ("", "Vice-Campeão", 10),
    ("", "3º Colocado", 8),
]

# Used only when SWEEPSTAKES_RULE_FALLBACK is enabled
FALLBACK_RULE_POINTS: Dict[str, int] = {
    "exact_score": 6,
    "winner_and_subscore": 3,
    "winner_only": 2,
    "correct_draw": 2,
}
