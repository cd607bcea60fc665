"""
Database queries - re-exported so callers use ``from chemlab.db import queries``.

Module organization:
- gamification.py: learner progress, XP ledger, achievements
- quizzes.py: quiz questions and attempts
- shop.py: XP shop catalog, inventory and purchases
- users.py: roles and profiles
"""

# Gamification operations
from chemlab.db.queries.gamification import (
    lock_learner_progress,
    get_learner_progress,
    update_learner_xp,
    update_learner_streak,
    increment_lesson_stats,
    increment_quiz_stats,
    count_perfect_quizzes,
    insert_xp_transaction,
    get_xp_transactions,
    get_ledger_amounts,
    get_active_achievements,
    get_unlocked_achievement_ids,
    insert_student_achievement,
    get_student_achievements,
)

# Quiz operations
from chemlab.db.queries.quizzes import (
    get_quiz,
    get_quiz_questions,
    get_attempt_by_submission,
    insert_quiz_attempt,
    lock_quiz_attempt,
    complete_essay_grading,
)

# Shop operations
from chemlab.db.queries.shop import (
    get_shop_items,
    lock_shop_item,
    count_item_purchases,
    get_inventory,
    get_inventory_item,
    insert_inventory_item,
    insert_purchase_transaction,
    unequip_category,
    set_item_equipped,
)

# User operations
from chemlab.db.queries.users import (
    is_admin,
    get_admin_emails,
    get_profile_name,
)

__all__ = [
    "lock_learner_progress",
    "get_learner_progress",
    "update_learner_xp",
    "update_learner_streak",
    "increment_lesson_stats",
    "increment_quiz_stats",
    "count_perfect_quizzes",
    "insert_xp_transaction",
    "get_xp_transactions",
    "get_ledger_amounts",
    "get_active_achievements",
    "get_unlocked_achievement_ids",
    "insert_student_achievement",
    "get_student_achievements",
    "get_quiz",
    "get_quiz_questions",
    "get_attempt_by_submission",
    "insert_quiz_attempt",
    "lock_quiz_attempt",
    "complete_essay_grading",
    "get_shop_items",
    "lock_shop_item",
    "count_item_purchases",
    "get_inventory",
    "get_inventory_item",
    "insert_inventory_item",
    "insert_purchase_transaction",
    "unequip_category",
    "set_item_equipped",
    "is_admin",
    "get_admin_emails",
    "get_profile_name",
]
