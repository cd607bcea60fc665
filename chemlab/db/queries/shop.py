"""XP shop queries: catalog, inventory and purchase log"""
import logging
from typing import List, Optional
from chemlab.db.connection import db

logger = logging.getLogger(__name__)

ITEM_COLUMNS = """
    id::text AS id, name, description, COALESCE(category, 'other') AS category,
    xp_cost, icon, image_url, COALESCE(metadata, '{}'::jsonb) AS metadata,
    COALESCE(is_available, true) AS is_available, stock_limit
"""

INVENTORY_COLUMNS = """
    i.id::text AS id, i.user_id::text AS user_id, i.shop_item_id::text AS shop_item_id,
    i.purchased_at, COALESCE(i.is_equipped, false) AS is_equipped,
    s.name, s.description, COALESCE(s.category, 'other') AS category, s.xp_cost,
    s.icon, s.image_url, COALESCE(s.metadata, '{}'::jsonb) AS metadata,
    COALESCE(s.is_available, true) AS is_available, s.stock_limit
"""


async def get_shop_items() -> List[dict]:
    """Available items, cheapest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {ITEM_COLUMNS}
                FROM shop_items
                WHERE COALESCE(is_available, true)
                ORDER BY xp_cost, name
                """
            )
            return [dict(row) for row in await cur.fetchall()]


async def lock_shop_item(conn, item_id: str) -> Optional[dict]:
    """
    Get a shop item and lock it until the transaction ends

    Purchases of one item serialize on this lock so ``stock_limit`` holds.
    """
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {ITEM_COLUMNS}
            FROM shop_items
            WHERE id::text = %s
            FOR UPDATE
            """,
            (item_id,)
        )
        row = await cur.fetchone()
        return dict(row) if row else None


async def count_item_purchases(conn, item_id: str) -> int:
    async with conn.cursor() as cur:
        await cur.execute(
            "SELECT COUNT(*) AS purchases FROM user_inventory WHERE shop_item_id::text = %s",
            (item_id,)
        )
        row = await cur.fetchone()
        return int(row["purchases"]) if row else 0


async def get_inventory(user_id: str) -> List[dict]:
    """Learner's items joined with their catalog entries, newest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {INVENTORY_COLUMNS}
                FROM user_inventory i
                JOIN shop_items s ON s.id = i.shop_item_id
                WHERE i.user_id = %s
                ORDER BY i.purchased_at DESC
                """,
                (user_id,)
            )
            return [dict(row) for row in await cur.fetchall()]


async def get_inventory_item(conn, user_id: str, item_id: str) -> Optional[dict]:
    """The learner's inventory row for a shop item (None if not owned)"""
    async with conn.cursor() as cur:
        await cur.execute(
            f"""
            SELECT {INVENTORY_COLUMNS}
            FROM user_inventory i
            JOIN shop_items s ON s.id = i.shop_item_id
            WHERE i.user_id = %s AND i.shop_item_id::text = %s
            """,
            (user_id, item_id)
        )
        row = await cur.fetchone()
        return dict(row) if row else None


async def insert_inventory_item(conn, user_id: str, item_id: str) -> Optional[str]:
    """Add an item to the inventory; None if the learner already owns it"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO user_inventory (user_id, shop_item_id, purchased_at, is_equipped)
            VALUES (%s, %s, NOW(), false)
            ON CONFLICT (user_id, shop_item_id) DO NOTHING
            RETURNING id::text AS id
            """,
            (user_id, item_id)
        )
        row = await cur.fetchone()
        return row["id"] if row else None


async def insert_purchase_transaction(conn, user_id: str, item_id: str, xp_spent: int) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO purchase_transactions (user_id, shop_item_id, xp_spent, purchased_at)
            VALUES (%s, %s, %s, NOW())
            """,
            (user_id, item_id, xp_spent)
        )


async def unequip_category(conn, user_id: str, category: str) -> None:
    """Unequip every item the learner owns in a category"""
    async with conn.cursor() as cur:
        await cur.execute(
            """
            UPDATE user_inventory i
            SET is_equipped = false
            FROM shop_items s
            WHERE s.id = i.shop_item_id
              AND i.user_id = %s
              AND COALESCE(s.category, 'other') = %s
              AND i.is_equipped
            """,
            (user_id, category)
        )


async def set_item_equipped(conn, inventory_id: str) -> None:
    async with conn.cursor() as cur:
        await cur.execute(
            "UPDATE user_inventory SET is_equipped = true WHERE id::text = %s",
            (inventory_id,)
        )
