"""
Gamification system for ChemLab

- XP ledger and leveling curve
- Daily streak tracking
- Achievement unlocking
- XP shop purchases and equipment
"""

from chemlab.gamification.xp_system import (
    award_xp,
    get_learner_xp,
    get_xp_history,
    calculate_level_from_xp,
    level_threshold,
    rebuild_progress_from_ledger,
)
from chemlab.gamification.streak_system import update_streak, calculate_streak_bonus
from chemlab.gamification.achievement_system import check_and_award_achievements, get_learner_achievements
from chemlab.gamification.shop import get_shop_items, get_learner_inventory, purchase_item, equip_item

__all__ = [
    "award_xp",
    "get_learner_xp",
    "get_xp_history",
    "calculate_level_from_xp",
    "level_threshold",
    "rebuild_progress_from_ledger",
    "update_streak",
    "calculate_streak_bonus",
    "check_and_award_achievements",
    "get_learner_achievements",
    "get_shop_items",
    "get_learner_inventory",
    "purchase_item",
    "equip_item",
]
