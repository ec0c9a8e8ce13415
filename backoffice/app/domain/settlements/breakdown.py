"""
Settlement breakdown (pure calculation).

Orders are split by who collected the money:
- cash on delivery: the merchant holds the cash and owes the platform its
  commission
- online: the platform holds the money and owes the merchant the payout

The two sides are netted into one balance. `platform_commission` is taken
as stamped on each order and never recomputed here.
"""

from dataclasses import dataclass, asdict
from typing import Iterable, List

from backoffice.app.models.enums import COD_PAYMENT_METHODS, SettlementDirection

# Balances within a cent either way count as settled
BALANCE_EPSILON = 0.01


def money(value: float) -> float:
    return round(value, 2)


def is_cod(order) -> bool:
    return (order.payment_method or "").lower() in COD_PAYMENT_METHODS


@dataclass
class SettlementBreakdown:
    total_orders: int
    gross_revenue: float
    platform_commission: float
    net_payout: float
    delivery_fees_collected: float

    cod_orders_count: int
    cod_gross_revenue: float
    cod_commission_owed: float

    online_orders_count: int
    online_gross_revenue: float
    online_platform_commission: float
    online_payout_owed: float

    net_balance: float
    settlement_direction: SettlementDirection

    order_ids: List[int]

    def model_fields(self) -> dict:
        """Columns of the Settlement row this breakdown fills."""
        values = asdict(self)
        values.pop("order_ids")
        return values


def settlement_direction(net_balance: float) -> SettlementDirection:
    if net_balance > BALANCE_EPSILON:
        return SettlementDirection.PLATFORM_PAYS_PROVIDER
    if net_balance < -BALANCE_EPSILON:
        return SettlementDirection.PROVIDER_PAYS_PLATFORM
    return SettlementDirection.BALANCED


def compute_breakdown(orders: Iterable, merchant_delivery: bool) -> SettlementBreakdown:
    """
    Args:
        orders: delivered orders with total, subtotal, discount, delivery_fee,
            platform_commission and payment_method
        merchant_delivery: the merchant runs its own delivery, so online
            delivery fees are paid out to it
    """
    orders = list(orders)
    cod = [order for order in orders if is_cod(order)]
    online = [order for order in orders if not is_cod(order)]

    def total(rows, field):
        return sum((getattr(row, field) or 0.0) for row in rows)

    cod_commission = total(cod, "platform_commission")

    online_subtotal = total(online, "subtotal")
    online_discount = total(online, "discount")
    online_commission = total(online, "platform_commission")
    online_delivery = total(online, "delivery_fee")

    payout = online_subtotal - online_discount - online_commission
    if merchant_delivery:
        payout += online_delivery
    online_payout_owed = max(payout, 0.0)

    net_balance = money(online_payout_owed) - money(cod_commission)
    gross_revenue = total(orders, "total")
    platform_commission = total(orders, "platform_commission")

    return SettlementBreakdown(
        total_orders=len(orders),
        gross_revenue=money(gross_revenue),
        platform_commission=money(platform_commission),
        net_payout=money(gross_revenue - platform_commission),
        delivery_fees_collected=money(total(orders, "delivery_fee")),
        cod_orders_count=len(cod),
        cod_gross_revenue=money(total(cod, "total")),
        cod_commission_owed=money(cod_commission),
        online_orders_count=len(online),
        online_gross_revenue=money(total(online, "total")),
        online_platform_commission=money(online_commission),
        online_payout_owed=money(online_payout_owed),
        net_balance=money(net_balance),
        settlement_direction=settlement_direction(money(net_balance)),
        order_ids=[order.id for order in orders],
    )
