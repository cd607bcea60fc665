"""
XP Shop

Learners spend XP on cosmetic items (avatars, themes, badges, power-ups).
A purchase writes a negative XP ledger entry, an inventory row and a
purchase log row in one transaction, under the learner's progress row lock,
so two purchases by the same learner can never both spend the same XP.
"""

from typing import Any, Dict, List, Optional
import logging

from chemlab.auth import LearnerIdentity, require_identity
from chemlab.db import queries
from chemlab.db.connection import db
from chemlab.exceptions import PurchaseError
from chemlab.gamification.xp_system import award_xp
from chemlab.models.progress import XPSourceType
from chemlab.models.shop import InventoryItem, ShopItem
from chemlab.observability import metrics

logger = logging.getLogger(__name__)

ITEM_NOT_AVAILABLE = "Item not available"
ALREADY_OWNED = "Already owned"
INSUFFICIENT_XP = "Insufficient XP"
ITEM_NOT_OWNED = "Item not owned"

ITEM_FIELDS = (
    "name", "description", "category", "xp_cost", "icon",
    "image_url", "metadata", "is_available", "stock_limit",
)


def _inventory_from_row(row: Dict[str, Any]) -> InventoryItem:
    item = ShopItem(id=row["shop_item_id"], **{field: row.get(field) for field in ITEM_FIELDS})
    return InventoryItem(
        id=row["id"],
        user_id=row["user_id"],
        shop_item_id=row["shop_item_id"],
        purchased_at=row.get("purchased_at"),
        is_equipped=bool(row.get("is_equipped")),
        item=item,
    )


async def get_shop_items() -> List[ShopItem]:
    """Catalog of items currently for sale"""
    return [ShopItem(**row) for row in await queries.get_shop_items()]


async def get_learner_inventory(identity: Optional[LearnerIdentity]) -> List[InventoryItem]:
    user_id = require_identity(identity, operation="get_learner_inventory")
    return [_inventory_from_row(row) for row in await queries.get_inventory(user_id)]


async def purchase_item(
    identity: Optional[LearnerIdentity],
    item_id: str,
    conn=None
) -> Dict[str, Any]:
    """
    Buy a shop item with XP

    Checks run in order (availability, ownership, balance) and the first
    failing one is reported. Nothing is written unless every check passes.

    Args:
        identity: Verified caller; only their own XP is spent
        item_id: Shop item to buy
        conn: Join an open transaction instead of starting one

    Returns:
        {
            'success': True,
            'item_id': str,
            'item_name': str,
            'xp_spent': int,
            'total_xp': int,
            'new_level': int,
            'leveled_down': bool
        }

    Raises:
        AuthenticationError: no verified identity
        PurchaseError: item unavailable or sold out, already owned, or not
            enough XP
    """
    user_id = require_identity(identity, operation="purchase_item")

    try:
        async with db.transaction(conn, operation="purchase_item", user_id=user_id) as tx:
            progress = await queries.lock_learner_progress(tx, user_id)
            item = await queries.lock_shop_item(tx, item_id)

            if item is None or not item["is_available"]:
                raise PurchaseError(ITEM_NOT_AVAILABLE, item_id=item_id, user_id=user_id, operation="purchase_item")
            if item["stock_limit"] is not None:
                sold = await queries.count_item_purchases(tx, item_id)
                if sold >= item["stock_limit"]:
                    raise PurchaseError(ITEM_NOT_AVAILABLE, item_id=item_id, user_id=user_id, operation="purchase_item")

            if await queries.get_inventory_item(tx, user_id, item_id) is not None:
                raise PurchaseError(ALREADY_OWNED, item_id=item_id, user_id=user_id, operation="purchase_item")

            cost = int(item["xp_cost"])
            if progress["total_xp"] < cost:
                raise PurchaseError(INSUFFICIENT_XP, item_id=item_id, user_id=user_id, operation="purchase_item")

            xp_result = await award_xp(
                user_id,
                -cost,
                XPSourceType.SHOP_PURCHASE.value,
                source_id=item_id,
                description=f"Mua {item['name']}",
                conn=tx,
            )
            await queries.insert_inventory_item(tx, user_id, item_id)
            await queries.insert_purchase_transaction(tx, user_id, item_id, cost)
    except PurchaseError as e:
        metrics.shop_purchases_total.labels(outcome="rejected").inc()
        logger.info(f"Purchase of item {item_id} by user {user_id} refused: {e.reason}")
        raise

    metrics.shop_purchases_total.labels(outcome="purchased").inc()
    metrics.shop_xp_spent_total.inc(cost)
    logger.info(f"User {user_id} bought {item['name']} for {cost} XP. Total: {xp_result['total_xp']} XP")

    return {
        "success": True,
        "item_id": item_id,
        "item_name": item["name"],
        "xp_spent": cost,
        "total_xp": xp_result["total_xp"],
        "new_level": xp_result["new_level"],
        "leveled_down": xp_result["new_level"] < xp_result["old_level"],
    }


async def equip_item(
    identity: Optional[LearnerIdentity],
    item_id: str,
    conn=None
) -> Dict[str, Any]:
    """
    Equip an owned item, unequipping whatever was equipped in its category

    Raises:
        AuthenticationError: no verified identity
        PurchaseError: the learner does not own the item
    """
    user_id = require_identity(identity, operation="equip_item")

    async with db.transaction(conn, operation="equip_item", user_id=user_id) as tx:
        await queries.lock_learner_progress(tx, user_id)
        owned = await queries.get_inventory_item(tx, user_id, item_id)
        if owned is None:
            raise PurchaseError(ITEM_NOT_OWNED, item_id=item_id, user_id=user_id, operation="equip_item")

        await queries.unequip_category(tx, user_id, owned["category"])
        await queries.set_item_equipped(tx, owned["id"])

    logger.info(f"User {user_id} equipped {owned['name']} ({owned['category']})")
    return {"success": True, "item_id": item_id, "category": owned["category"]}
