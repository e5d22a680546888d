"""
价格计算 - 纯函数
每个派生步骤单独四舍五入（半数进位），finalize 的总价交叉校验依赖同一规则
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from allocation.config import settings

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PriceQuote:
    """报价结果"""
    price_per_night: Decimal
    nights: int
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def round_half_up(value: Decimal) -> Decimal:
    """取整到个位，.5 向上进位"""
    return Decimal(value).quantize(_ONE, rounding=ROUND_HALF_UP)


def count_nights(check_in: date, check_out: date) -> int:
    """间夜数"""
    return (check_out - check_in).days


def effective_rate(base_price: Decimal, discount_percent: Decimal) -> Decimal:
    """折后单价 = round(base × (1 − d/100))"""
    discount = Decimal(discount_percent or 0)
    return round_half_up(Decimal(base_price) * (_ONE - discount / _HUNDRED))


def tax_for(subtotal: Decimal, tax_rate: Optional[Decimal] = None) -> Decimal:
    """税额 = round(subtotal × 税率)"""
    rate = settings.TAX_RATE if tax_rate is None else tax_rate
    return round_half_up(Decimal(subtotal) * rate)


def quote_stay(base_price: Decimal, discount_percent: Decimal, nights: int,
               tax_rate: Optional[Decimal] = None) -> PriceQuote:
    """
    计算单间入住报价

    Args:
        base_price: 每晚基础价格（正数）
        discount_percent: 折扣百分比，取值 [0, 100)
        nights: 间夜数（>= 1）
        tax_rate: 税率，默认取配置

    Returns:
        PriceQuote
    """
    rate = effective_rate(base_price, discount_percent)
    subtotal = rate * nights
    tax = tax_for(subtotal, tax_rate)
    return PriceQuote(
        price_per_night=rate,
        nights=nights,
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
    )


def totals_from_subtotals(subtotals: Iterable[Decimal],
                          tax_rate: Optional[Decimal] = None) -> PriceQuote:
    """按房间小计汇总订单总价（finalize 时以此为准）"""
    subtotal = sum((Decimal(s) for s in subtotals), Decimal("0"))
    tax = tax_for(subtotal, tax_rate)
    return PriceQuote(
        price_per_night=Decimal("0"),
        nights=0,
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
    )


def prices_match(expected: Decimal, declared: Decimal,
                 tolerance: Optional[Decimal] = None) -> bool:
    """|expected − declared| <= 容差"""
    eps = settings.PRICE_TOLERANCE if tolerance is None else tolerance
    return abs(Decimal(expected) - Decimal(declared)) <= eps
