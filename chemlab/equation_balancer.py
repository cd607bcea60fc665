"""
Equation Balancer

Practice game: the learner picks coefficients for a chemical equation.
Any coefficient set proportional to the stored solution counts as balanced
(4, 2, 4 is accepted for 2H₂ + O₂ → 2H₂O just like 2, 1, 2). Faster
answers score up to double.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence
import logging
import math
import random

logger = logging.getLogger(__name__)

DIFFICULTIES = ("easy", "medium", "hard")

BASE_SCORES = {
    "easy": 50,
    "medium": 100,
    "hard": 200,
}

# Full speed bonus at 0s, none after this many seconds
SPEED_BONUS_WINDOW_SECONDS = 60

RATIO_TOLERANCE = 0.001


@dataclass(frozen=True)
class ChemicalEquation:
    reactants: tuple
    products: tuple
    difficulty: str

    @property
    def key(self) -> str:
        return get_equation_key(self)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "reactants": [{"formula": f} for f in self.reactants],
            "products": [{"formula": f} for f in self.products],
            "difficulty": self.difficulty,
        }


EQUATIONS: List[ChemicalEquation] = [
    # Easy
    ChemicalEquation(("H₂", "O₂"), ("H₂O",), "easy"),
    ChemicalEquation(("N₂", "H₂"), ("NH₃",), "easy"),
    # Medium
    ChemicalEquation(("Fe", "O₂"), ("Fe₂O₃",), "medium"),
    ChemicalEquation(("CH₄", "O₂"), ("CO₂", "H₂O"), "medium"),
    ChemicalEquation(("Al", "HCl"), ("AlCl₃", "H₂"), "medium"),
    # Hard
    ChemicalEquation(("C₂H₅OH", "O₂"), ("CO₂", "H₂O"), "hard"),
    ChemicalEquation(("KMnO₄", "HCl"), ("KCl", "MnCl₂", "Cl₂", "H₂O"), "hard"),
]

SOLUTIONS = {
    "H₂+O₂→H₂O": (2, 1, 2),
    "N₂+H₂→NH₃": (1, 3, 2),
    "Fe+O₂→Fe₂O₃": (4, 3, 2),
    "CH₄+O₂→CO₂+H₂O": (1, 2, 1, 2),
    "Al+HCl→AlCl₃+H₂": (2, 6, 2, 3),
    "C₂H₅OH+O₂→CO₂+H₂O": (1, 3, 2, 3),
    "KMnO₄+HCl→KCl+MnCl₂+Cl₂+H₂O": (2, 16, 2, 2, 5, 8),
}


def get_equation_key(equation: ChemicalEquation) -> str:
    """Canonical key, e.g. 'H₂+O₂→H₂O'"""
    return f"{'+'.join(equation.reactants)}→{'+'.join(equation.products)}"


def find_equation(key: str) -> Optional[ChemicalEquation]:
    for equation in EQUATIONS:
        if get_equation_key(equation) == key:
            return equation
    return None


def check_balance(equation: ChemicalEquation, coefficients: Sequence[float]) -> bool:
    """
    True if ``coefficients`` balance the equation

    Coefficients must all be positive and proportional to the known solution.
    Unknown equations and wrong-length inputs are never balanced.
    """
    solution = SOLUTIONS.get(get_equation_key(equation))
    if not solution or len(coefficients) != len(solution):
        return False

    if any(c <= 0 for c in coefficients):
        return False

    ratio = solution[0] / coefficients[0]
    return all(
        abs(expected / given - ratio) < RATIO_TOLERANCE
        for expected, given in zip(solution, coefficients)
    )


def get_random_equation(
    difficulty: Optional[str] = None,
    rng: Optional[random.Random] = None
) -> ChemicalEquation:
    """Pick a random equation, optionally of one difficulty"""
    if difficulty is not None and difficulty not in DIFFICULTIES:
        raise ValueError(f"Unknown difficulty: {difficulty}")

    candidates = [eq for eq in EQUATIONS if difficulty is None or eq.difficulty == difficulty]
    return (rng or random).choice(candidates)


def calculate_score(time_seconds: float, difficulty: str) -> int:
    """
    Score for a correct answer

    base * (1 + speed bonus), speed bonus falling linearly from 1 at 0s to
    0 at 60s. Unknown difficulties score as medium.
    """
    base = BASE_SCORES.get(difficulty, BASE_SCORES["medium"])
    time_bonus = max(0.0, 1 - time_seconds / SPEED_BONUS_WINDOW_SECONDS)
    # Halves round up
    return math.floor(base * (1 + time_bonus) + 0.5)
