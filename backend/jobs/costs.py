"""Cost aggregation and profit split arithmetic.

Everything here is pure: no queries, no clock, no settings reads except
through ``SplitRules.from_settings``. Money is ``Decimal`` throughout and is
rounded half-up to cents only when a result leaves this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from django.conf import settings

from .constants import CompanyId, RoutingType

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
NEGATIVE_SHARE_WARNING = "Intermediary share is negative."


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _field(po: Any, name: str) -> Any:
    if isinstance(po, dict):
        return po.get(name)
    return getattr(po, name, None)


def is_cost_bearing(po: Any) -> bool:
    """Buyer-origin purchase orders with a vendor or partner target."""
    if _field(po, "origin_company") != CompanyId.BUYER:
        return False
    return bool(_field(po, "target_vendor_id") or _field(po, "target_company"))


@dataclass(frozen=True)
class CostBreakdown:
    total_cost: Decimal
    paper_cost: Decimal
    paper_markup: Decimal
    print_cost: Decimal
    po_count: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_cost": self.total_cost,
            "paper_cost": self.paper_cost,
            "paper_markup": self.paper_markup,
            "print_cost": self.print_cost,
            "po_count": self.po_count,
        }


def aggregate_costs(purchase_orders: Iterable[Any]) -> CostBreakdown:
    """Sum cost over cost-bearing purchase orders only.

    Accepts model instances or plain dicts carrying ``origin_company``,
    ``target_company``, ``target_vendor_id``, ``buy_cost``, ``paper_cost`` and
    ``paper_markup``. Internal routing orders contribute nothing.
    """
    total_cost = ZERO
    paper_cost = ZERO
    paper_markup = ZERO
    po_count = 0
    for po in purchase_orders:
        if not is_cost_bearing(po):
            continue
        total_cost += to_decimal(_field(po, "buy_cost"))
        paper_cost += to_decimal(_field(po, "paper_cost"))
        paper_markup += to_decimal(_field(po, "paper_markup"))
        po_count += 1
    return CostBreakdown(
        total_cost=round2(total_cost),
        paper_cost=round2(paper_cost),
        paper_markup=round2(paper_markup),
        print_cost=round2(total_cost - paper_cost - paper_markup),
        po_count=po_count,
    )


@dataclass(frozen=True)
class SplitRules:
    partner_rate: Decimal = Decimal("0.50")
    direct_intermediary_rate: Decimal = Decimal("0.35")
    direct_buyer_rate: Decimal = Decimal("0.65")
    paper_markup_rate: Decimal = Decimal("0.18")
    target_margin_percent: Decimal = Decimal("15")
    low_margin_percent: Decimal = Decimal("10")

    @classmethod
    def from_settings(cls) -> "SplitRules":
        return cls(
            partner_rate=to_decimal(settings.PROFIT_SPLIT_PARTNER_RATE),
            direct_intermediary_rate=to_decimal(settings.PROFIT_SPLIT_DIRECT_INTERMEDIARY_RATE),
            direct_buyer_rate=to_decimal(settings.PROFIT_SPLIT_DIRECT_BUYER_RATE),
            paper_markup_rate=to_decimal(settings.PAPER_MARKUP_RATE),
            target_margin_percent=to_decimal(settings.TARGET_MARGIN_PERCENT),
            low_margin_percent=to_decimal(settings.LOW_MARGIN_PERCENT),
        )


@dataclass(frozen=True)
class SplitResult:
    sell_price: Decimal
    total_cost: Decimal
    gross_margin: Decimal
    paper_markup: Decimal
    intermediary_share: Decimal
    buyer_share: Decimal
    margin_percent: Decimal
    warnings: list[str] = field(default_factory=list)

    @property
    def is_negative_margin(self) -> bool:
        return self.gross_margin < ZERO

    def as_dict(self) -> dict[str, Any]:
        return {
            "sell_price": self.sell_price,
            "total_cost": self.total_cost,
            "gross_margin": self.gross_margin,
            "paper_markup": self.paper_markup,
            "intermediary_share": self.intermediary_share,
            "buyer_share": self.buyer_share,
            "margin_percent": self.margin_percent,
            "warnings": list(self.warnings),
        }


def calculate_paper_markup(raw_paper_cost: Any, rules: SplitRules | None = None) -> Decimal:
    rules = rules or SplitRules.from_settings()
    return round2(to_decimal(raw_paper_cost) * rules.paper_markup_rate)


def calculate_profit_split(
    *,
    sell_price: Any,
    total_cost: Any,
    paper_markup: Any,
    routing_type: str,
    rules: SplitRules | None = None,
) -> SplitResult:
    rules = rules or SplitRules.from_settings()
    sell = to_decimal(sell_price)
    cost = to_decimal(total_cost)
    gross_margin = sell - cost

    if routing_type == RoutingType.PARTNER_MEDIATED:
        applied_markup = to_decimal(paper_markup)
        spread = round2(gross_margin * rules.partner_rate)
        intermediary_share = spread + round2(applied_markup)
        buyer_share = spread
    else:
        # Paper markup only exists on the partner route.
        applied_markup = ZERO
        intermediary_share = round2(gross_margin * rules.direct_intermediary_rate)
        buyer_share = round2(gross_margin * rules.direct_buyer_rate)

    margin_percent = round2(gross_margin / sell * HUNDRED) if sell > ZERO else ZERO

    warnings: list[str] = []
    if gross_margin < ZERO:
        warnings.append(f"Negative margin: job is losing ${round2(-gross_margin)}.")
    elif sell > ZERO and margin_percent < rules.low_margin_percent:
        warnings.append(
            f"Low margin: {margin_percent}% is below {rules.low_margin_percent}%."
        )
    elif sell > ZERO and margin_percent < rules.target_margin_percent:
        warnings.append(
            f"Margin {margin_percent}% is below the {rules.target_margin_percent}% target."
        )
    if intermediary_share < ZERO:
        warnings.append(NEGATIVE_SHARE_WARNING)

    return SplitResult(
        sell_price=round2(sell),
        total_cost=round2(cost),
        gross_margin=round2(gross_margin),
        paper_markup=round2(applied_markup),
        intermediary_share=round2(intermediary_share),
        buyer_share=round2(buyer_share),
        margin_percent=margin_percent,
        warnings=warnings,
    )
