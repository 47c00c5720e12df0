"""
Pricing engine configuration — single source of truth for business constants,
tax presets, template routing and environment-driven defaults.

Import from here in all engines and routes rather than hardcoding values.
"""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


# ── Weight resolution ─────────────────────────────────────────────────────────

# Stone-to-metal displacement approximation: 5 carats ≈ 1 gram.
# Fixed business constant, not configurable per line item.
STONE_CARATS_PER_GRAM: float = 5.0


# ── Purity ────────────────────────────────────────────────────────────────────

# Fallback when a purity input cannot be read (18K)
DEFAULT_PURITY_FRACTION: float = 18 / 24

# Default applied to a fresh invoice (vendor house alloy, 76 %)
INVOICE_PURITY_FRACTION: float = 0.76

KARAT_OPTIONS: list[dict[str, object]] = [
    {"value": "14", "label": "14K", "decimal": 14 / 24, "percentage": "58.3%"},
    {"value": "18", "label": "18K", "decimal": 18 / 24, "percentage": "75%"},
    {"value": "22", "label": "22K", "decimal": 22 / 24, "percentage": "91.7%"},
    {"value": "24", "label": "24K", "decimal": 24 / 24, "percentage": "100%"},
]


# ── Tax ───────────────────────────────────────────────────────────────────────

# Quick-select GST rates (total %). In split mode the rate is halved across
# SGST and CGST; in consolidated mode it is applied as IGST.
GST_RATE_PRESETS: tuple[float, ...] = (0, 3, 5, 12, 18, 28)


# ── Templates ─────────────────────────────────────────────────────────────────

INVOICE_TEMPLATES: tuple[str, ...] = (
    "detailed",
    "summary",
    "minimal",
    "traditional",
    "modern",
    "luxury",
    "loose_diamond",
    "gemstone",
)

# Category → template picked when an estimate is loaded
CATEGORY_TEMPLATES: dict[str, str] = {
    "jewelry":       "detailed",
    "loose_diamond": "loose_diamond",
    "gemstone":      "gemstone",
}

# Category → line item sections the renderer shows. Computation ignores this.
CATEGORY_SECTIONS: dict[str, tuple[str, ...]] = {
    "jewelry":       ("metal", "diamond", "gemstone", "charges"),
    "loose_diamond": ("diamond", "charges"),
    "gemstone":      ("gemstone", "charges"),
}


# ── Invoice defaults ──────────────────────────────────────────────────────────

PRICING_DEFAULTS: dict[str, object] = {
    "invoice_prefix": os.getenv("INVOICE_PREFIX", "INV"),
    "sequence_width": 3,
    "payment_terms": "Net 30",
    "invoice_type": "tax",
    "payment_status": "pending",
    "primary_currency": "INR",
    "secondary_currency": "USD",
    # INR per USD
    "exchange_rate": float(os.getenv("DEFAULT_EXCHANGE_RATE", "83.0")),
    "money_decimals": 2,
}

INVOICE_TYPES: tuple[str, ...] = ("tax", "export", "proforma")
PAYMENT_STATUSES: tuple[str, ...] = ("pending", "paid", "partial")


# ── Logging ───────────────────────────────────────────────────────────────────

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"
