"""
InvoiceService — assembly around the InvoiceAggregate.

Covers:
  - Generate-time validation (estimate name, customer, line items, exchange rate)
  - Payment terms → due date
  - Persistence records: flat fields + ordered line items + nested metadata bundle
  - Render payloads: invoice data + vendor branding, no layout
  - Currency display formatting (Indian grouping for INR)

Loaded records are never trusted for totals: every derived value is
recomputed from the stored inputs.
"""

import logging
import re
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from app.config import (
    INVOICE_PURITY_FRACTION,
    INVOICE_TYPES,
    PAYMENT_STATUSES,
    PRICING_DEFAULTS,
)
from app.services.invoice_engine import (
    CATEGORIES,
    CATEGORY_JEWELRY,
    TAX_MODE_CONSOLIDATED,
    TAX_MODE_SPLIT,
    InvoiceAggregate,
    LineItemCollection,
    make_tax_configuration,
    relevant_sections,
    template_for_category,
)
from app.services.invoice_numbering import next_invoice_number
from app.services.line_item_engine import (
    line_item_from_dict,
    line_item_to_dict,
    load_purity,
    non_negative,
    safe_number,
)

logger = logging.getLogger("ratna-api.invoice-service")

# Legacy GST mode labels found in older records
_TAX_MODE_ALIASES: Dict[str, str] = {
    "sgst_cgst": TAX_MODE_SPLIT,
    "igst": TAX_MODE_CONSOLIDATED,
}

_NET_TERMS = re.compile(r"net\s*(\d+)", re.IGNORECASE)
_IMMEDIATE_TERMS = ("due on receipt", "immediate", "cash")


class InvoiceValidationError(ValueError):
    """Raised when an invoice is not complete enough to generate."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class VendorBranding:
    name: str = ""
    logo: str = ""                  # opaque blob-storage reference
    primary_color: str = ""
    secondary_color: str = ""
    tagline: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""


def build_vendor_address(*parts: Optional[str]) -> str:
    """Join the non-empty address parts with ', '."""
    return ", ".join(p.strip() for p in parts if p and p.strip())


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_for_generate(invoice: InvoiceAggregate) -> List[str]:
    """Return the reasons the invoice cannot be generated (empty when valid)."""
    errors: List[str] = []
    if not invoice.estimate_name.strip():
        errors.append("Please enter an estimate/order name")
    if not invoice.customer_name.strip():
        errors.append("Please enter customer name")
    if len(invoice.line_items) == 0:
        errors.append("Add at least one line item")
    if invoice.tax.exchange_rate <= 0:
        errors.append("Exchange rate must be greater than zero")
    return errors


def require_valid(invoice: InvoiceAggregate) -> InvoiceAggregate:
    errors = validate_for_generate(invoice)
    if errors:
        raise InvoiceValidationError(errors)
    return invoice


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def due_date_for_terms(invoice_date: Optional[date], terms: str) -> Optional[date]:
    """'Net 30' → invoice_date + 30 days; 'Due on receipt' → invoice_date."""
    if invoice_date is None or not terms:
        return None
    match = _NET_TERMS.search(terms)
    if match:
        return invoice_date + timedelta(days=int(match.group(1)))
    if terms.strip().lower() in _IMMEDIATE_TERMS:
        return invoice_date
    return None


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable date {value!r}")
        return None


def prepare_for_generate(
    invoice: InvoiceAggregate,
    prior_invoice_number: Optional[str] = None,
    prefix: Optional[str] = None,
    today: Optional[date] = None,
) -> InvoiceAggregate:
    """
    Fill the generate-time defaults and validate.

    Assigns the next invoice number when none is set, dates the invoice
    today when undated and derives the due date from the payment terms when
    no explicit due date exists. Raises InvoiceValidationError.
    """
    today = today or date.today()
    changes: Dict[str, Any] = {}
    invoice_date = invoice.invoice_date or today
    if invoice.invoice_date is None:
        changes["invoice_date"] = invoice_date
    if not invoice.invoice_number:
        changes["invoice_number"] = next_invoice_number(
            prior_invoice_number, prefix=prefix, year=invoice_date.year
        )
    if invoice.payment_due_date is None:
        due = due_date_for_terms(invoice_date, invoice.payment_terms)
        if due is not None:
            changes["payment_due_date"] = due

    prepared = invoice.with_fields(**changes) if changes else invoice
    return require_valid(prepared)


# ---------------------------------------------------------------------------
# Persistence records
# ---------------------------------------------------------------------------

def to_record(invoice: InvoiceAggregate) -> Dict[str, Any]:
    """Serialize an invoice for the persistence service."""
    tax = invoice.tax
    totals = invoice.totals
    return {
        "estimate_name": invoice.estimate_name,
        "estimate_category": invoice.category,
        "invoice_template": invoice.template,
        "invoice_number": invoice.invoice_number or None,
        "invoice_date": invoice.invoice_date.isoformat() if invoice.invoice_date else None,
        "payment_terms": invoice.payment_terms,
        "payment_due_date": invoice.payment_due_date.isoformat() if invoice.payment_due_date else None,
        "invoice_type": invoice.invoice_type,
        "invoice_status": invoice.payment_status,
        "invoice_notes": invoice.invoice_notes,
        "customer_name": invoice.customer_name,
        "customer_phone": invoice.customer_phone,
        "customer_email": invoice.customer_email,
        "customer_address": invoice.customer_address,
        "gold_rate_24k": round(invoice.metal_rate_24k, 2),
        "purity_fraction": round(invoice.purity_fraction, 4),
        "profit_margin_percentage": invoice.profit_margin_pct,
        "total_cost": totals.total_cost,
        "margin_amount": totals.margin_amount,
        "final_selling_price": totals.final_selling_price,
        "sgst_amount": totals.sgst_amount,
        "cgst_amount": totals.cgst_amount,
        "igst_amount": totals.igst_amount,
        "tax_total": totals.tax_total,
        "shipping_charges": totals.shipping_charge,
        "grand_total": totals.grand_total,
        "total_in_secondary_currency": totals.total_in_secondary_currency,
        "line_items": [line_item_to_dict(item) for item in invoice.line_items],
        "metadata": {
            "gst_mode": tax.mode,
            "sgst_percentage": tax.sgst_pct,
            "cgst_percentage": tax.cgst_pct,
            "igst_percentage": tax.igst_pct,
            "shipping_charges": tax.shipping_charge,
            "shipping_zone": tax.shipping_zone,
            "exchange_rate": tax.exchange_rate,
            "primary_currency": tax.primary_currency,
            "secondary_currency": tax.secondary_currency,
            "profit_margin_percentage": invoice.profit_margin_pct,
            "gold_rate_24k": round(invoice.metal_rate_24k, 2),
            "purity_fraction": round(invoice.purity_fraction, 4),
        },
    }


def from_record(record: Dict[str, Any]) -> InvoiceAggregate:
    """
    Load an invoice from a persisted record.

    Unknown keys pass through untouched in the store; here they are ignored.
    Missing numerics default to zero, missing payment terms to the configured
    default. Purity in karat or percent is normalized. Stored totals are
    discarded.
    """
    meta = record.get("metadata") or {}

    mode = str(meta.get("gst_mode") or "").lower()
    tax = make_tax_configuration(
        mode=_TAX_MODE_ALIASES.get(mode, mode) or None,
        sgst_pct=meta.get("sgst_percentage"),
        cgst_pct=meta.get("cgst_percentage"),
        igst_pct=meta.get("igst_percentage"),
        shipping_charge=meta.get("shipping_charges", record.get("shipping_charges")),
        shipping_zone=meta.get("shipping_zone"),
        exchange_rate=meta.get("exchange_rate"),
        primary_currency=meta.get("primary_currency"),
        secondary_currency=meta.get("secondary_currency"),
    )

    category = record.get("estimate_category") or CATEGORY_JEWELRY
    if category not in CATEGORIES:
        logger.warning(f"Record carries unknown category {category!r}; using {CATEGORY_JEWELRY}")
        category = CATEGORY_JEWELRY

    metal_rate = non_negative(meta.get("gold_rate_24k", record.get("gold_rate_24k")))
    purity = load_purity(
        meta.get("purity_fraction", record.get("purity_fraction")), default=INVOICE_PURITY_FRACTION
    )
    items = tuple(line_item_from_dict(row, metal_rate) for row in record.get("line_items") or [])

    invoice_type = record.get("invoice_type") or "tax"
    status = record.get("invoice_status") or "pending"

    invoice = InvoiceAggregate(
        estimate_name=str(record.get("estimate_name") or ""),
        category=category,
        template=record.get("invoice_template") or template_for_category(category),
        invoice_number=str(record.get("invoice_number") or ""),
        invoice_date=_parse_date(record.get("invoice_date")),
        payment_terms=str(record.get("payment_terms") or PRICING_DEFAULTS["payment_terms"]),
        payment_due_date=_parse_date(record.get("payment_due_date")),
        invoice_type=invoice_type if invoice_type in INVOICE_TYPES else "tax",
        payment_status=status if status in PAYMENT_STATUSES else "pending",
        invoice_notes=str(record.get("invoice_notes") or ""),
        customer_name=str(record.get("customer_name") or ""),
        customer_phone=str(record.get("customer_phone") or ""),
        customer_email=str(record.get("customer_email") or ""),
        customer_address=str(record.get("customer_address") or ""),
        metal_rate_24k=metal_rate,
        purity_fraction=purity,
        profit_margin_pct=non_negative(
            meta.get("profit_margin_percentage", record.get("profit_margin_percentage"))
        ),
        tax=tax,
        line_items=LineItemCollection(items),
    )
    return invoice.recomputed()


# ---------------------------------------------------------------------------
# Render payload
# ---------------------------------------------------------------------------

def build_render_payload(
    invoice: InvoiceAggregate,
    branding: Optional[VendorBranding] = None,
) -> Dict[str, Any]:
    """Data handed to the document-rendering service; layout is its concern."""
    totals = invoice.totals
    tax = invoice.tax
    display = {
        "total_cost": format_currency(totals.total_cost, tax.primary_currency),
        "final_selling_price": format_currency(totals.final_selling_price, tax.primary_currency),
        "grand_total": format_currency(totals.grand_total, tax.primary_currency),
        "total_in_secondary_currency": (
            None if totals.total_in_secondary_currency is None
            else format_currency(totals.total_in_secondary_currency, tax.secondary_currency)
        ),
    }
    return {
        "invoice": to_record(invoice),
        "branding": asdict(branding) if branding else None,
        "template": invoice.template,
        "sections": list(relevant_sections(invoice.category)),
        "display": display,
    }


# ---------------------------------------------------------------------------
# Display formatting
# ---------------------------------------------------------------------------

def _indian_grouping(whole: str) -> str:
    if len(whole) <= 3:
        return whole
    head, tail = whole[:-3], whole[-3:]
    groups: List[str] = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount: Any, currency: str) -> str:
    """
    Format money for display.

    INR: rupee sign, lakh/crore grouping, up to 2 decimals  (₹1,00,000)
    USD: dollar sign, thousands grouping, exactly 2 decimals ($1,500.50)
    Other codes fall back to '<CODE> 1,234.00'.
    """
    value = round(safe_number(amount), 2)
    sign = "-" if value < 0 else ""
    value = abs(value)

    if currency == "INR":
        whole, _, frac = f"{value:.2f}".partition(".")
        frac = frac.rstrip("0")
        return f"{sign}₹{_indian_grouping(whole)}{'.' + frac if frac else ''}"
    if currency == "USD":
        return f"{sign}${value:,.2f}"
    return f"{sign}{currency} {value:,.2f}"
