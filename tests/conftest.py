"""Global test fixtures and utilities for chemlab tests"""
import copy
import pytest
from contextlib import asynccontextmanager, ExitStack
from datetime import datetime, date, timedelta, timezone
from unittest.mock import MagicMock, patch
from uuid import uuid4

from chemlab.auth import LearnerIdentity
from chemlab.db.connection import db


# ============================================================================
# In-memory store
# ============================================================================

QUERY_FUNCTIONS = [
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
    "is_admin",
    "get_admin_emails",
    "get_profile_name",
    "get_shop_items",
    "lock_shop_item",
    "count_item_purchases",
    "get_inventory",
    "get_inventory_item",
    "insert_inventory_item",
    "insert_purchase_transaction",
    "unequip_category",
    "set_item_equipped",
]


def default_progress(user_id: str) -> dict:
    return {
        "user_id": user_id,
        "total_xp": 0,
        "current_level": 1,
        "xp_to_next_level": 50,
        "current_streak": 0,
        "longest_streak": 0,
        "last_activity_date": None,
        "streak_freeze_count": 0,
        "total_lessons_completed": 0,
        "total_stars_earned": 0,
        "total_quizzes_completed": 0,
    }


class FakeStore:
    """
    Dict-backed stand-in for the query layer

    Same signatures as chemlab.db.queries. Transactions snapshot the state
    and restore it when the block raises, like a database rollback.
    """

    def __init__(self):
        self.conn = MagicMock(name="fake_conn")
        self.progress = {}
        self.ledger = []
        self.achievements = []
        self.unlocked = {}
        self.quizzes = {}
        self.questions = {}
        self.attempts = {}
        self.admins = set()
        self.admin_emails = []
        self.profiles = {}
        self.shop_items = {}
        self.inventory = []
        self.purchases = []
        self.fail_on = None
        self.transactions_opened = 0

    # -- setup helpers -------------------------------------------------------

    def set_progress(self, user_id: str, **fields) -> dict:
        row = self.progress.setdefault(user_id, default_progress(user_id))
        row.update(fields)
        return row

    def add_achievement(self, code: str, criteria: dict, xp_reward: int = 0, title: str = None) -> str:
        achievement_id = str(uuid4())
        self.achievements.append({
            "id": achievement_id,
            "code": code,
            "title": title or code,
            "description": "",
            "icon": "🏆",
            "category": "general",
            "criteria": criteria,
            "xp_reward": xp_reward,
            "is_active": True,
            "order_index": len(self.achievements),
        })
        return achievement_id

    def add_quiz(self, title: str, questions: list) -> str:
        quiz_id = str(uuid4())
        self.quizzes[quiz_id] = {"id": quiz_id, "title": title}
        self.questions[quiz_id] = [
            {
                "id": q.get("id", str(uuid4())),
                "question": q.get("question", "Câu hỏi"),
                "options": q.get("options", ["A", "B", "C", "D"]),
                "correct_answer": q.get("correct_answer"),
                "explanation": q.get("explanation"),
                "question_type": q.get("question_type", "multiple_choice"),
            }
            for q in questions
        ]
        return quiz_id

    def add_shop_item(self, name: str, xp_cost: int, category: str = "avatar",
                      is_available: bool = True, stock_limit: int = None) -> str:
        item_id = str(uuid4())
        self.shop_items[item_id] = {
            "id": item_id,
            "name": name,
            "description": None,
            "category": category,
            "xp_cost": xp_cost,
            "icon": None,
            "image_url": None,
            "metadata": {},
            "is_available": is_available,
            "stock_limit": stock_limit,
        }
        return item_id

    def inventory_for(self, user_id: str) -> list:
        return [row for row in self.inventory if row["user_id"] == user_id]

    def ledger_for(self, user_id: str) -> list:
        return [t for t in self.ledger if t["user_id"] == user_id]

    def _check_failure(self, name: str) -> None:
        if self.fail_on == name:
            raise RuntimeError(f"simulated failure in {name}")

    # -- transactions --------------------------------------------------------

    def _snapshot(self):
        return copy.deepcopy((
            self.progress, self.ledger, self.unlocked, self.attempts,
            self.inventory, self.purchases,
        ))

    def _restore(self, snapshot) -> None:
        (self.progress, self.ledger, self.unlocked, self.attempts,
         self.inventory, self.purchases) = snapshot

    @asynccontextmanager
    async def transaction(self, conn=None, operation="transaction", user_id=None):
        if conn is not None:
            yield conn
            return

        self.transactions_opened += 1
        snapshot = self._snapshot()
        try:
            yield self.conn
        except BaseException:
            self._restore(snapshot)
            raise

    @asynccontextmanager
    async def connection(self):
        yield self.conn

    # -- learner progress ----------------------------------------------------

    async def lock_learner_progress(self, conn, user_id):
        return dict(self.progress.setdefault(user_id, default_progress(user_id)))

    async def get_learner_progress(self, user_id):
        row = self.progress.get(user_id)
        return dict(row) if row else None

    async def update_learner_xp(self, conn, user_id, total_xp, current_level, xp_to_next_level):
        self._check_failure("update_learner_xp")
        self.progress[user_id].update(
            total_xp=total_xp, current_level=current_level, xp_to_next_level=xp_to_next_level
        )

    async def update_learner_streak(self, conn, user_id, current_streak, longest_streak, last_activity_date):
        self.progress[user_id].update(
            current_streak=current_streak,
            longest_streak=longest_streak,
            last_activity_date=last_activity_date,
        )

    async def increment_lesson_stats(self, conn, user_id, stars):
        row = self.progress[user_id]
        row["total_lessons_completed"] += 1
        row["total_stars_earned"] += stars

    async def increment_quiz_stats(self, conn, user_id):
        self.progress[user_id]["total_quizzes_completed"] += 1

    async def count_perfect_quizzes(self, conn, user_id):
        return sum(
            1 for a in self.attempts.values()
            if a["user_id"] == user_id and a["status"] == "completed"
            and a["gradable_questions"] > 0 and a["mc_score"] >= a["gradable_questions"]
        )

    # -- XP ledger -----------------------------------------------------------

    async def insert_xp_transaction(self, conn, user_id, amount, source_type, source_id, description, dedup_key=None):
        self._check_failure("insert_xp_transaction")
        if dedup_key is not None and any(
            t["user_id"] == user_id and t["dedup_key"] == dedup_key for t in self.ledger
        ):
            return None

        transaction_id = str(uuid4())
        self.ledger.append({
            "id": transaction_id,
            "user_id": user_id,
            "xp_amount": amount,
            "source_type": source_type,
            "source_id": source_id,
            "description": description,
            "dedup_key": dedup_key,
            "created_at": datetime.now(timezone.utc),
        })
        return transaction_id

    async def get_xp_transactions(self, user_id, limit=50):
        return list(reversed(self.ledger_for(user_id)))[:limit]

    async def get_ledger_amounts(self, conn, user_id):
        return [t["xp_amount"] for t in self.ledger_for(user_id)]

    # -- achievements --------------------------------------------------------

    async def get_active_achievements(self, conn):
        return [dict(a) for a in sorted(self.achievements, key=lambda a: a["order_index"]) if a["is_active"]]

    async def get_unlocked_achievement_ids(self, conn, user_id):
        return {aid for (uid, aid) in self.unlocked if uid == user_id}

    async def insert_student_achievement(self, conn, user_id, achievement_id):
        key = (user_id, achievement_id)
        if key in self.unlocked:
            return False
        self.unlocked[key] = datetime.now(timezone.utc)
        return True

    async def get_student_achievements(self, user_id):
        by_id = {a["id"]: a for a in self.achievements}
        rows = []
        for (uid, aid), unlocked_at in self.unlocked.items():
            if uid != user_id:
                continue
            a = by_id[aid]
            rows.append({
                "achievement_id": aid,
                "code": a["code"],
                "title": a["title"],
                "description": a["description"],
                "icon": a["icon"],
                "category": a["category"],
                "xp_reward": a["xp_reward"],
                "unlocked_at": unlocked_at,
            })
        return sorted(rows, key=lambda r: r["unlocked_at"], reverse=True)

    # -- quizzes -------------------------------------------------------------

    async def get_quiz(self, conn, quiz_id):
        quiz = self.quizzes.get(quiz_id)
        return dict(quiz) if quiz else None

    async def get_quiz_questions(self, conn, quiz_id):
        return [dict(q) for q in self.questions.get(quiz_id, [])]

    async def get_attempt_by_submission(self, conn, user_id, submission_id):
        for attempt in self.attempts.values():
            if attempt["user_id"] == user_id and attempt["submission_id"] == submission_id:
                return copy.deepcopy(attempt)
        return None

    async def insert_quiz_attempt(
        self, conn, quiz_id, user_id, score, total_questions, user_answers,
        time_taken_seconds, status, completed_at, submission_id=None, mc_score=0, gradable_questions=0
    ):
        self._check_failure("insert_quiz_attempt")
        attempt_id = str(uuid4())
        self.attempts[attempt_id] = {
            "id": attempt_id,
            "quiz_id": quiz_id,
            "user_id": user_id,
            "score": score,
            "total_questions": total_questions,
            "mc_score": mc_score,
            "gradable_questions": gradable_questions,
            "user_answers": copy.deepcopy(user_answers),
            "time_taken_seconds": time_taken_seconds,
            "status": status,
            "essay_scores": [],
            "essay_feedback": [],
            "graded_by": None,
            "graded_at": None,
            "submission_id": submission_id,
            "completed_at": completed_at,
        }
        return attempt_id

    async def lock_quiz_attempt(self, conn, attempt_id):
        attempt = self.attempts.get(attempt_id)
        return copy.deepcopy(attempt) if attempt else None

    async def complete_essay_grading(self, conn, attempt_id, score, essay_scores, essay_feedback, graded_by, graded_at):
        self.attempts[attempt_id].update(
            score=score,
            essay_scores=essay_scores,
            essay_feedback=essay_feedback,
            graded_by=graded_by,
            graded_at=graded_at,
            status="completed",
        )

    # -- users ---------------------------------------------------------------

    async def is_admin(self, conn, user_id):
        return user_id in self.admins

    async def get_admin_emails(self):
        return list(self.admin_emails)

    async def get_profile_name(self, user_id):
        return self.profiles.get(user_id)


    # -- shop ----------------------------------------------------------------

    def _inventory_row(self, row):
        item = self.shop_items[row["shop_item_id"]]
        joined = {k: v for k, v in item.items() if k != "id"}
        joined.update(row)
        return joined

    async def get_shop_items(self):
        items = [dict(i) for i in self.shop_items.values() if i["is_available"]]
        return sorted(items, key=lambda i: (i["xp_cost"], i["name"]))

    async def lock_shop_item(self, conn, item_id):
        item = self.shop_items.get(item_id)
        return dict(item) if item else None

    async def count_item_purchases(self, conn, item_id):
        return sum(1 for row in self.inventory if row["shop_item_id"] == item_id)

    async def get_inventory(self, user_id):
        return [self._inventory_row(row) for row in reversed(self.inventory_for(user_id))]

    async def get_inventory_item(self, conn, user_id, item_id):
        for row in self.inventory_for(user_id):
            if row["shop_item_id"] == item_id:
                return self._inventory_row(row)
        return None

    async def insert_inventory_item(self, conn, user_id, item_id):
        self._check_failure("insert_inventory_item")
        if any(row["shop_item_id"] == item_id for row in self.inventory_for(user_id)):
            return None
        inventory_id = str(uuid4())
        self.inventory.append({
            "id": inventory_id,
            "user_id": user_id,
            "shop_item_id": item_id,
            "purchased_at": datetime.now(timezone.utc),
            "is_equipped": False,
        })
        return inventory_id

    async def insert_purchase_transaction(self, conn, user_id, item_id, xp_spent):
        self.purchases.append({"user_id": user_id, "shop_item_id": item_id, "xp_spent": xp_spent})

    async def unequip_category(self, conn, user_id, category):
        for row in self.inventory_for(user_id):
            if self.shop_items[row["shop_item_id"]]["category"] == category:
                row["is_equipped"] = False

    async def set_item_equipped(self, conn, inventory_id):
        for row in self.inventory:
            if row["id"] == inventory_id:
                row["is_equipped"] = True

@pytest.fixture
def fake_store():
    """Patch the query layer and the database with an in-memory FakeStore"""
    store = FakeStore()
    with ExitStack() as stack:
        for name in QUERY_FUNCTIONS:
            stack.enter_context(patch(f"chemlab.db.queries.{name}", getattr(store, name)))
        stack.enter_context(patch.object(db, "transaction", store.transaction))
        stack.enter_context(patch.object(db, "connection", store.connection))
        yield store


# ============================================================================
# User & Auth Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test learner ID"""
    return "5b0c6a1e-2f4d-4c1a-9e7b-8d3f0a1b2c3d"


@pytest.fixture
def admin_user_id():
    return "a1d2m3i4-0000-4000-8000-000000000001"


@pytest.fixture
def learner(test_user_id):
    """Verified learner identity"""
    return LearnerIdentity(user_id=test_user_id, email="hocsinh@example.com", role="authenticated")


@pytest.fixture
def admin(admin_user_id, fake_store):
    """Verified identity that holds the admin role"""
    fake_store.admins.add(admin_user_id)
    return LearnerIdentity(user_id=admin_user_id, email="giaovien@example.com", role="authenticated")


# ============================================================================
# Date Fixtures
# ============================================================================

@pytest.fixture
def today():
    return date(2026, 3, 10)


@pytest.fixture
def yesterday(today):
    return today - timedelta(days=1)
