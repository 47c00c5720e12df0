"""
InvoiceEngine — order-level rollup for jewelry invoices and estimates.

Covers:
  - Ordered line item collection with recompute-on-edit semantics
  - Margin on total cost
  - Mutually exclusive GST regimes (SGST+CGST split, IGST consolidated, none)
  - Flat shipping charge
  - Secondary-currency total via a configured exchange rate
  - The InvoiceAggregate record handed to rendering and persistence

All totals are derived: an aggregate never carries a total that was not
computed from its current inputs. Intermediate arithmetic runs at full
precision and money is rounded to 2 decimals only when stored in the totals.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Iterable, Optional, Tuple

from app.config import (
    CATEGORY_SECTIONS,
    CATEGORY_TEMPLATES,
    INVOICE_PURITY_FRACTION,
    PRICING_DEFAULTS,
)
from app.services.line_item_engine import (
    LineItem,
    aggregate_costs,
    apply_field_edit,
    new_line_item,
    non_negative,
    safe_number,
)

logger = logging.getLogger("ratna-api.invoices")


TAX_MODE_SPLIT = "split"                 # SGST + CGST, intra-state
TAX_MODE_CONSOLIDATED = "consolidated"   # IGST, inter-state
TAX_MODE_NONE = "none"
TAX_MODES = (TAX_MODE_SPLIT, TAX_MODE_CONSOLIDATED, TAX_MODE_NONE)

CATEGORY_JEWELRY = "jewelry"
CATEGORY_LOOSE_DIAMOND = "loose_diamond"
CATEGORY_GEMSTONE = "gemstone"
CATEGORIES = (CATEGORY_JEWELRY, CATEGORY_LOOSE_DIAMOND, CATEGORY_GEMSTONE)

_MONEY_DP: int = int(PRICING_DEFAULTS["money_decimals"])


# ---------------------------------------------------------------------------
# Line item collection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineItemCollection:
    """
    Ordered, immutable sequence of line items.

    Every operation returns a new collection. Order drives display only; the
    total is order-independent.
    """
    items: Tuple[LineItem, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def __getitem__(self, index: int) -> LineItem:
        return self.items[index]

    @property
    def total(self) -> float:
        return sum(item.subtotal for item in self.items)

    def add(self, item: Optional[LineItem] = None) -> "LineItemCollection":
        return LineItemCollection(self.items + (item or new_line_item(),))

    def edit(
        self,
        index: int,
        field_name: str,
        value: Any,
        metal_rate_24k: float,
    ) -> "LineItemCollection":
        """Apply a single field edit to the item at index; others are untouched."""
        index = self._position(index)
        updated = apply_field_edit(self.items[index], field_name, value, metal_rate_24k)
        return LineItemCollection(self.items[:index] + (updated,) + self.items[index + 1:])

    def remove(self, index: int) -> "LineItemCollection":
        """Drop the item at index. Surviving ids are kept as-is."""
        index = self._position(index)
        return LineItemCollection(self.items[:index] + self.items[index + 1:])

    def _position(self, index: int) -> int:
        """Bounds-check index and map negatives to their forward position."""
        if not -len(self.items) <= index < len(self.items):
            raise IndexError(f"No line item at position {index}")
        return index % len(self.items)

    def reprice(self, metal_rate_24k: float) -> "LineItemCollection":
        """Re-run cost aggregation on every item after a metal rate change."""
        return LineItemCollection(tuple(aggregate_costs(i, metal_rate_24k) for i in self.items))


# ---------------------------------------------------------------------------
# Tax, shipping and currency configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaxConfiguration:
    mode: str = TAX_MODE_SPLIT
    sgst_pct: float = 0.0
    cgst_pct: float = 0.0
    igst_pct: float = 0.0
    shipping_charge: float = 0.0
    shipping_zone: str = ""         # descriptive only
    exchange_rate: float = float(PRICING_DEFAULTS["exchange_rate"])  # primary units per secondary unit
    primary_currency: str = str(PRICING_DEFAULTS["primary_currency"])
    secondary_currency: str = str(PRICING_DEFAULTS["secondary_currency"])


def make_tax_configuration(**values: Any) -> TaxConfiguration:
    """Build a TaxConfiguration from loose input, coercing numerics."""
    defaults = TaxConfiguration()
    mode = str(values.get("mode") or defaults.mode).lower()
    if mode not in TAX_MODES:
        logger.warning(f"Unknown tax mode {mode!r}; falling back to {defaults.mode}")
        mode = defaults.mode
    rate = values.get("exchange_rate")
    return TaxConfiguration(
        mode=mode,
        sgst_pct=non_negative(values.get("sgst_pct")),
        cgst_pct=non_negative(values.get("cgst_pct")),
        igst_pct=non_negative(values.get("igst_pct")),
        shipping_charge=non_negative(values.get("shipping_charge")),
        shipping_zone=str(values.get("shipping_zone") or ""),
        exchange_rate=defaults.exchange_rate if rate is None else safe_number(rate),
        primary_currency=str(values.get("primary_currency") or defaults.primary_currency),
        secondary_currency=str(values.get("secondary_currency") or defaults.secondary_currency),
    )


def apply_quick_gst_rate(tax: TaxConfiguration, rate_pct: float) -> TaxConfiguration:
    """
    Apply a total GST rate preset.

    split mode halves the rate across SGST and CGST; consolidated mode sets
    IGST. Mode none leaves the configuration unchanged.
    """
    rate = non_negative(rate_pct)
    if tax.mode == TAX_MODE_SPLIT:
        return replace(tax, sgst_pct=rate / 2, cgst_pct=rate / 2)
    if tax.mode == TAX_MODE_CONSOLIDATED:
        return replace(tax, igst_pct=rate)
    return tax


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def apply_margin(total_cost: float, margin_pct: float) -> float:
    """final_selling_price = total_cost × (1 + margin / 100)"""
    return total_cost * (1.0 + margin_pct / 100.0)


def tax_amounts(selling_price: float, tax: TaxConfiguration) -> Tuple[float, float, float]:
    """Return (sgst, cgst, igst); only the active regime is non-zero."""
    if tax.mode == TAX_MODE_SPLIT:
        return (
            selling_price * tax.sgst_pct / 100.0,
            selling_price * tax.cgst_pct / 100.0,
            0.0,
        )
    if tax.mode == TAX_MODE_CONSOLIDATED:
        return 0.0, 0.0, selling_price * tax.igst_pct / 100.0
    return 0.0, 0.0, 0.0


def convert_to_secondary(amount: float, exchange_rate: float) -> Optional[float]:
    """
    Express a primary-currency amount in the secondary currency.

    A non-positive rate yields None instead of an infinite or negative total.
    """
    if exchange_rate <= 0:
        logger.warning(f"Exchange rate {exchange_rate} is not positive; secondary total unavailable")
        return None
    return amount / exchange_rate


@dataclass(frozen=True)
class InvoiceTotals:
    total_cost: float = 0.0
    margin_amount: float = 0.0
    final_selling_price: float = 0.0
    sgst_amount: float = 0.0
    cgst_amount: float = 0.0
    igst_amount: float = 0.0
    tax_total: float = 0.0
    shipping_charge: float = 0.0
    grand_total: float = 0.0
    total_in_secondary_currency: Optional[float] = None


def compute_totals(
    items: Iterable[LineItem],
    margin_pct: float,
    tax: TaxConfiguration,
) -> InvoiceTotals:
    """
    Invoice aggregation rule.

    Formula:
        total_cost  = Σ subtotal
        fsp         = total_cost × (1 + margin / 100)
        grand_total = fsp + sgst + cgst + igst + shipping
        secondary   = grand_total / exchange_rate
    """
    total_cost = sum(item.subtotal for item in items)
    final_selling_price = apply_margin(total_cost, non_negative(margin_pct))
    sgst, cgst, igst = tax_amounts(final_selling_price, tax)
    grand_total = final_selling_price + sgst + cgst + igst + tax.shipping_charge
    secondary = convert_to_secondary(grand_total, tax.exchange_rate)

    return InvoiceTotals(
        total_cost=round(total_cost, _MONEY_DP),
        margin_amount=round(final_selling_price - total_cost, _MONEY_DP),
        final_selling_price=round(final_selling_price, _MONEY_DP),
        sgst_amount=round(sgst, _MONEY_DP),
        cgst_amount=round(cgst, _MONEY_DP),
        igst_amount=round(igst, _MONEY_DP),
        tax_total=round(sgst + cgst + igst, _MONEY_DP),
        shipping_charge=round(tax.shipping_charge, _MONEY_DP),
        grand_total=round(grand_total, _MONEY_DP),
        total_in_secondary_currency=None if secondary is None else round(secondary, _MONEY_DP),
    )


# ---------------------------------------------------------------------------
# Invoice aggregate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InvoiceAggregate:
    """
    One invoice / estimate with its computed totals.

    Build with ``new_invoice`` or ``InvoiceAggregate(...).recomputed()``;
    every ``with_*`` method returns a fully recomputed copy.
    """
    estimate_name: str = ""
    category: str = CATEGORY_JEWELRY
    template: str = CATEGORY_TEMPLATES[CATEGORY_JEWELRY]
    invoice_number: str = ""
    invoice_date: Optional[date] = None
    payment_terms: str = str(PRICING_DEFAULTS["payment_terms"])
    payment_due_date: Optional[date] = None
    invoice_type: str = str(PRICING_DEFAULTS["invoice_type"])
    payment_status: str = str(PRICING_DEFAULTS["payment_status"])
    invoice_notes: str = ""

    customer_name: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    customer_address: str = ""

    metal_rate_24k: float = 0.0             # per gram
    purity_fraction: float = INVOICE_PURITY_FRACTION  # default for new items
    profit_margin_pct: float = 0.0
    tax: TaxConfiguration = field(default_factory=TaxConfiguration)
    line_items: LineItemCollection = field(default_factory=LineItemCollection)
    totals: InvoiceTotals = field(default_factory=InvoiceTotals)

    def recomputed(self) -> "InvoiceAggregate":
        totals = compute_totals(self.line_items, self.profit_margin_pct, self.tax)
        return replace(self, totals=totals)

    # -- identity / pass-through fields ---------------------------------

    def with_fields(self, **changes: Any) -> "InvoiceAggregate":
        """
        Update plain fields. Numeric inputs are coerced; a category change
        also re-selects the matching template unless one is given.
        """
        if "totals" in changes or "line_items" in changes or "tax" in changes:
            raise ValueError("Use with_line_items / with_tax for collection and tax changes")
        if "profit_margin_pct" in changes:
            changes["profit_margin_pct"] = non_negative(changes["profit_margin_pct"])
        if "purity_fraction" in changes:
            changes["purity_fraction"] = min(1.0, non_negative(changes["purity_fraction"]))
        if "category" in changes:
            category = str(changes["category"])
            if category not in CATEGORIES:
                logger.warning(f"Unknown category {category!r}; keeping {self.category}")
                changes.pop("category")
            elif "template" not in changes:
                changes["template"] = template_for_category(category)

        rate_changed = "metal_rate_24k" in changes
        if rate_changed:
            changes["metal_rate_24k"] = non_negative(changes["metal_rate_24k"])
        updated = replace(self, **changes)
        if rate_changed:
            updated = replace(updated, line_items=updated.line_items.reprice(updated.metal_rate_24k))
        return updated.recomputed()

    # -- configuration ----------------------------------------------------

    def with_tax(self, tax: TaxConfiguration) -> "InvoiceAggregate":
        return replace(self, tax=tax).recomputed()

    def with_line_items(self, line_items: LineItemCollection) -> "InvoiceAggregate":
        return replace(self, line_items=line_items).recomputed()

    # -- line item edits ----------------------------------------------

    def add_line_item(self, item: Optional[LineItem] = None) -> "InvoiceAggregate":
        """Append an item; a blank item inherits the invoice's default purity."""
        if item is None:
            item = replace(new_line_item(), purity_fraction=self.purity_fraction)
        return self.with_line_items(self.line_items.add(aggregate_costs(item, self.metal_rate_24k)))

    def edit_line_item(self, index: int, field_name: str, value: Any) -> "InvoiceAggregate":
        return self.with_line_items(
            self.line_items.edit(index, field_name, value, self.metal_rate_24k)
        )

    def remove_line_item(self, index: int) -> "InvoiceAggregate":
        return self.with_line_items(self.line_items.remove(index))

    @property
    def relevant_sections(self) -> Tuple[str, ...]:
        return relevant_sections(self.category)


def new_invoice(**values: Any) -> InvoiceAggregate:
    """Create an empty invoice with computed (zero) totals."""
    return InvoiceAggregate().with_fields(**values) if values else InvoiceAggregate().recomputed()


def recompute_aggregate(
    line_items: Iterable[LineItem],
    margin_pct: float,
    tax: TaxConfiguration,
) -> InvoiceTotals:
    """Stateless entry point for batch callers: totals from a bare snapshot."""
    return compute_totals(list(line_items), margin_pct, tax)


# ---------------------------------------------------------------------------
# Category routing (consulted by the renderer, never by the cost rules)
# ---------------------------------------------------------------------------

def template_for_category(category: str) -> str:
    return CATEGORY_TEMPLATES.get(category, CATEGORY_TEMPLATES[CATEGORY_JEWELRY])


def relevant_sections(category: str) -> Tuple[str, ...]:
    return CATEGORY_SECTIONS.get(category, CATEGORY_SECTIONS[CATEGORY_JEWELRY])

