"""
LineItemEngine — per-article pricing for jewelry, loose diamonds and gemstones.

Covers:
  - Lenient numeric coercion of form input (never raises)
  - Purity normalization (fraction / karat / percentage)
  - Weight resolution: net metal weight from gross weight minus stone displacement
  - Cost aggregation: metal cost, per-carat or lump-sum stone costs, fixed charges
  - The field-edit reducer: apply_field_edit(item, field, value, metal_rate) -> item'

Every function here is pure. A LineItem is never mutated in place; each edit
returns a new instance with all derived fields recomputed.
"""

import logging
import math
import re
import uuid
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional, Union

from app.config import DEFAULT_PURITY_FRACTION, STONE_CARATS_PER_GRAM

logger = logging.getLogger("ratna-api.line-items")


WEIGHT_MODE_GROSS = "gross"
WEIGHT_MODE_NET = "net"
WEIGHT_MODES = (WEIGHT_MODE_GROSS, WEIGHT_MODE_NET)

_LEADING_NUMBER = re.compile(r"^-?(\d+\.?\d*|\.\d+)")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")


class UnknownFieldError(KeyError):
    """Raised when an edit targets a field that does not exist or is derived."""


# ---------------------------------------------------------------------------
# Numeric coercion
# ---------------------------------------------------------------------------

def safe_number(value: Any) -> float:
    """
    Coerce any form value to a finite float.

    Strings are stripped of everything except digits, '.' and '-' and the
    leading number is parsed ("₹1,250.50" → 1250.5). None, booleans, NaN,
    infinities and unparseable text all resolve to 0.0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", value))
        return float(match.group(0)) if match else 0.0
    return 0.0


def non_negative(value: Any) -> float:
    return max(0.0, safe_number(value))


def normalize_purity(value: Any) -> float:
    """
    Normalize a purity value to a 0–1 fraction.

    Accepts:
        0.75      — already a fraction, returned as-is
        18        — karat, divided by 24
        76 / "76%" — percentage, divided by 100

    Empty or non-positive input falls back to 18K (0.75).
    """
    if value is None or value == "":
        return DEFAULT_PURITY_FRACTION

    if isinstance(value, str) and "%" in value:
        pct = safe_number(value)
        return min(1.0, pct / 100.0) if pct > 0 else DEFAULT_PURITY_FRACTION

    number = safe_number(value)
    if number <= 0:
        return DEFAULT_PURITY_FRACTION
    if number <= 1:
        return number
    if number <= 24:
        return number / 24.0
    return min(1.0, number / 100.0)


def load_purity(value: Any, default: float) -> float:
    """
    Purity from a stored or imported record: karat and percentage values are
    normalized, missing or non-positive values take ``default``.
    """
    if safe_number(value) <= 0:
        return default
    return normalize_purity(value)


# ---------------------------------------------------------------------------
# Stone pricing basis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PerCaratPricing:
    """Stone cost derived from weight × rate."""
    rate: float

    def cost(self, weight_ct: float) -> float:
        return weight_ct * self.rate


@dataclass(frozen=True)
class LumpSumPricing:
    """Stone cost entered directly as a single amount."""
    amount: float

    def cost(self, weight_ct: float) -> float:
        return self.amount


StonePricing = Union[PerCaratPricing, LumpSumPricing]


def stone_pricing(per_carat_price: float, manual_cost: float) -> StonePricing:
    """A positive per-carat price wins; otherwise the lump sum stands."""
    if per_carat_price > 0:
        return PerCaratPricing(rate=per_carat_price)
    return LumpSumPricing(amount=manual_cost)


# ---------------------------------------------------------------------------
# Line item model
# ---------------------------------------------------------------------------

def new_item_id() -> str:
    return f"item-{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class LineItem:
    id: str
    item_name: str = ""
    description: str = ""
    image_url: str = ""             # opaque blob-storage reference
    certificate_url: str = ""       # opaque blob-storage reference

    # Metal
    weight_mode: str = WEIGHT_MODE_GROSS
    gross_weight: float = 0.0       # grams
    net_weight: float = 0.0         # grams
    purity_fraction: float = 0.0    # 0–1

    # Diamond
    diamond_weight: float = 0.0     # carats
    diamond_per_carat_price: float = 0.0
    diamond_manual_cost: float = 0.0
    diamond_shape: str = ""
    diamond_color: str = ""
    diamond_clarity: str = ""
    diamond_cut: str = ""
    diamond_fluorescence: str = ""
    diamond_measurements: str = ""
    diamond_certification: str = ""

    # Gemstone
    gemstone_weight: float = 0.0    # carats
    gemstone_per_carat_price: float = 0.0
    gemstone_manual_cost: float = 0.0
    gemstone_type: str = ""
    gemstone_color: str = ""
    gemstone_clarity: str = ""
    gemstone_origin: str = ""
    gemstone_treatment: str = ""
    gemstone_shape: str = ""

    # Charges: entered manually, never derived
    making_charges: float = 0.0
    certification_cost: float = 0.0
    cad_design_charges: float = 0.0
    camming_charges: float = 0.0

    # Derived
    gold_cost: float = 0.0
    diamond_cost: float = 0.0
    gemstone_cost: float = 0.0
    subtotal: float = 0.0

    @property
    def diamond_pricing(self) -> StonePricing:
        return stone_pricing(self.diamond_per_carat_price, self.diamond_manual_cost)

    @property
    def gemstone_pricing(self) -> StonePricing:
        return stone_pricing(self.gemstone_per_carat_price, self.gemstone_manual_cost)


CHARGE_FIELDS = (
    "making_charges",
    "certification_cost",
    "cad_design_charges",
    "camming_charges",
)

NUMERIC_INPUT_FIELDS = frozenset({
    "gross_weight",
    "net_weight",
    "diamond_weight",
    "diamond_per_carat_price",
    "gemstone_weight",
    "gemstone_per_carat_price",
    *CHARGE_FIELDS,
})

# Direct writes to these land in the lump-sum slot
MANUAL_COST_FIELDS: Dict[str, str] = {
    "diamond_cost": "diamond_manual_cost",
    "gemstone_cost": "gemstone_manual_cost",
}

DERIVED_FIELDS = frozenset({"gold_cost", "subtotal", "diamond_manual_cost", "gemstone_manual_cost", "id"})

TEXT_FIELDS = frozenset(
    f.name for f in fields(LineItem)
    if f.type in (str, "str") and f.name not in {"id", "weight_mode"}
)


def new_line_item(item_id: Optional[str] = None) -> LineItem:
    """Blank line item: all numerics zero, gross weight mode."""
    return LineItem(id=item_id or new_item_id())


# ---------------------------------------------------------------------------
# Weight resolution
# ---------------------------------------------------------------------------

def resolve_net_weight(item: LineItem) -> float:
    """
    Net metal weight for the item's weight mode.

    gross mode:
        net = max(0, gross − (diamond_ct + gemstone_ct) / 5)
    net mode:
        the last directly entered net weight, untouched.
    """
    if item.weight_mode != WEIGHT_MODE_GROSS:
        return item.net_weight
    displaced_g = (item.diamond_weight + item.gemstone_weight) / STONE_CARATS_PER_GRAM
    return max(0.0, item.gross_weight - displaced_g)


# ---------------------------------------------------------------------------
# Cost aggregation
# ---------------------------------------------------------------------------

def aggregate_costs(item: LineItem, metal_rate_24k: float) -> LineItem:
    """
    Recompute net weight, metal cost, stone costs and subtotal.

    Formula:
        gold_cost = net_weight × purity_fraction × metal_rate_24k
        subtotal  = gold + making + certification + cad + camming + diamond + gemstone
    """
    net_weight = resolve_net_weight(item)
    gold_cost = net_weight * item.purity_fraction * non_negative(metal_rate_24k)
    diamond_cost = item.diamond_pricing.cost(item.diamond_weight)
    gemstone_cost = item.gemstone_pricing.cost(item.gemstone_weight)

    subtotal = (
        gold_cost
        + item.making_charges
        + item.certification_cost
        + item.cad_design_charges
        + item.camming_charges
        + diamond_cost
        + gemstone_cost
    )

    return replace(
        item,
        net_weight=net_weight,
        gold_cost=gold_cost,
        diamond_cost=diamond_cost,
        gemstone_cost=gemstone_cost,
        subtotal=subtotal,
    )


# ---------------------------------------------------------------------------
# Field-edit reducer
# ---------------------------------------------------------------------------

def apply_field_edit(
    item: LineItem,
    field_name: str,
    value: Any,
    metal_rate_24k: float,
) -> LineItem:
    """
    Apply one field write and return the recomputed item.

    Numeric fields coerce to non-negative floats, purity clamps to [0, 1],
    text fields are stored verbatim. Switching to net mode keeps the current
    resolved net weight as the starting point for direct editing; switching
    back to gross mode re-derives it. Writes to derived fields raise
    UnknownFieldError.
    """
    if field_name in NUMERIC_INPUT_FIELDS:
        updated = replace(item, **{field_name: non_negative(value)})
    elif field_name == "purity_fraction":
        updated = replace(item, purity_fraction=min(1.0, non_negative(value)))
    elif field_name in MANUAL_COST_FIELDS:
        updated = replace(item, **{MANUAL_COST_FIELDS[field_name]: non_negative(value)})
    elif field_name == "weight_mode":
        mode = str(value or "").strip().lower()
        if mode not in WEIGHT_MODES:
            logger.warning(f"Ignoring unknown weight mode {value!r} on {item.id}")
            return item
        updated = replace(item, weight_mode=mode)
    elif field_name in TEXT_FIELDS:
        updated = replace(item, **{field_name: "" if value is None else str(value)})
    elif field_name in DERIVED_FIELDS:
        raise UnknownFieldError(f"{field_name} is derived and cannot be edited")
    else:
        raise UnknownFieldError(f"Unknown line item field: {field_name}")

    return aggregate_costs(updated, metal_rate_24k)


def line_item_from_dict(data: Dict[str, Any], metal_rate_24k: float) -> LineItem:
    """
    Build a LineItem from a loosely-typed record (persisted row or API body).

    Missing or invalid numerics become 0; purity given in karat or percent is
    normalized to a fraction; stored derived values are ignored and recomputed. A stored diamond_cost / gemstone_cost seeds the lump-sum
    slot when no explicit manual value is present.
    """
    item = LineItem(id=str(data.get("id") or new_item_id()))

    mode = str(data.get("weight_mode") or WEIGHT_MODE_GROSS).lower()
    kwargs: Dict[str, Any] = {
        "weight_mode": mode if mode in WEIGHT_MODES else WEIGHT_MODE_GROSS,
        "purity_fraction": load_purity(data.get("purity_fraction"), default=0.0),
    }
    for name in NUMERIC_INPUT_FIELDS:
        kwargs[name] = non_negative(data.get(name))
    for name in TEXT_FIELDS:
        raw = data.get(name)
        kwargs[name] = "" if raw is None else str(raw)
    for public, slot in MANUAL_COST_FIELDS.items():
        kwargs[slot] = non_negative(data.get(slot, data.get(public)))

    return aggregate_costs(replace(item, **kwargs), metal_rate_24k)


def line_item_to_dict(item: LineItem, decimals: int = 2) -> Dict[str, Any]:
    """Serialize a LineItem; money is rounded, weights keep three decimals."""
    money = {"gold_cost", "diamond_cost", "gemstone_cost", "subtotal",
             "diamond_per_carat_price", "gemstone_per_carat_price",
             "diamond_manual_cost", "gemstone_manual_cost", *CHARGE_FIELDS}
    weights = {"gross_weight", "net_weight", "diamond_weight", "gemstone_weight"}

    out: Dict[str, Any] = {}
    for f in fields(LineItem):
        value = getattr(item, f.name)
        if f.name in money:
            value = round(value, decimals)
        elif f.name in weights:
            value = round(value, 3)
        elif f.name == "purity_fraction":
            value = round(value, 4)
        out[f.name] = value
    out["diamond_pricing_basis"] = _basis_label(item.diamond_pricing)
    out["gemstone_pricing_basis"] = _basis_label(item.gemstone_pricing)
    return out


def _basis_label(pricing: StonePricing) -> str:
    return "per_carat" if isinstance(pricing, PerCaratPricing) else "lump_sum"
