"""Enums for the Loyalty Service models."""

import enum


def enum_values(enum_cls):
    """Return persistent DB values for SAEnum mappings."""
    return [member.value for member in enum_cls]


class LoyaltyTier(str, enum.Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class LoyaltyTransactionType(str, enum.Enum):
    EARNED_PURCHASE = "earned_purchase"
    EARNED_BONUS = "earned_bonus"
    EARNED_REFERRAL = "earned_referral"
    EARNED_BIRTHDAY = "earned_birthday"
    REDEEMED_DISCOUNT = "redeemed_discount"
    REDEEMED_ITEM = "redeemed_item"
    ADJUSTMENT_ADD = "adjustment_add"
    ADJUSTMENT_SUBTRACT = "adjustment_subtract"
    EXPIRED = "expired"


EARNING_TYPES = frozenset(
    {
        LoyaltyTransactionType.EARNED_PURCHASE,
        LoyaltyTransactionType.EARNED_BONUS,
        LoyaltyTransactionType.EARNED_REFERRAL,
        LoyaltyTransactionType.EARNED_BIRTHDAY,
    }
)

CREDIT_TYPES = EARNING_TYPES | {LoyaltyTransactionType.ADJUSTMENT_ADD}

REDEMPTION_TYPES = frozenset(
    {
        LoyaltyTransactionType.REDEEMED_DISCOUNT,
        LoyaltyTransactionType.REDEEMED_ITEM,
    }
)
