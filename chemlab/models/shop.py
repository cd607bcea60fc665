"""XP shop models"""
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ShopItemCategory(str, Enum):
    AVATAR = "avatar"
    THEME = "theme"
    POWERUP = "powerup"
    BADGE = "badge"
    OTHER = "other"


class ShopItem(BaseModel):
    """Item learners can buy with XP"""
    id: str
    name: str
    description: Optional[str] = None
    category: ShopItemCategory = ShopItemCategory.OTHER
    xp_cost: int = Field(ge=0)
    icon: Optional[str] = None
    image_url: Optional[str] = None
    metadata: dict = Field(default_factory=dict)
    is_available: bool = True
    stock_limit: Optional[int] = Field(default=None, ge=0)


class InventoryItem(BaseModel):
    """Item a learner owns; at most one item per category is equipped"""
    id: str
    user_id: str
    shop_item_id: str
    purchased_at: Optional[datetime] = None
    is_equipped: bool = False
    item: Optional[ShopItem] = None
