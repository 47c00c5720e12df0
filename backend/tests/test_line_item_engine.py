"""
test_line_item_engine.py — Unit tests for per-item pricing.

Tests cover:
  - safe_number / normalize_purity coercion of raw form input
  - Weight resolution in gross and net modes, including the clamp at zero
  - Cost aggregation: metal, per-carat vs lump-sum stones, fixed charges
  - The field-edit reducer: purity, immutability, mode switching, rejected fields
  - Loading line items from loose records

All tests are pure unit tests; no database or external services required.
"""

import dataclasses
import math

import pytest

from app.services.line_item_engine import (
    LineItem,
    LumpSumPricing,
    PerCaratPricing,
    UnknownFieldError,
    aggregate_costs,
    apply_field_edit,
    line_item_from_dict,
    line_item_to_dict,
    new_line_item,
    normalize_purity,
    resolve_net_weight,
    safe_number,
)


# ---------------------------------------------------------------------------
# Constants mirrored from config (for assertion math)
# ---------------------------------------------------------------------------
STONE_CARATS_PER_GRAM = 5.0
RATE = 6000.0


def _edit(item, **changes):
    for name, value in changes.items():
        item = apply_field_edit(item, name, value, RATE)
    return item


def _component_sum(item: LineItem) -> float:
    return (
        item.gold_cost
        + item.making_charges
        + item.certification_cost
        + item.cad_design_charges
        + item.camming_charges
        + item.diamond_cost
        + item.gemstone_cost
    )


# ===========================================================================
# Class 1: Coercion
# ===========================================================================

class TestCoercion:

    @pytest.mark.parametrize("raw, expected", [
        (12.5, 12.5),
        (7, 7.0),
        ("1250.50", 1250.5),
        ("₹1,250.50", 1250.5),
        ("12.5 g", 12.5),
        ("-3", -3.0),
        ("1.2.3", 1.2),
        ("", 0.0),
        ("abc", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        ([1, 2], 0.0),
    ])
    def test_safe_number(self, raw, expected):
        assert safe_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw, expected", [
        (0.75, 0.75),
        (18, 0.75),
        (22, 22 / 24),
        ("75%", 0.75),
        (76, 0.76),
        ("0.916", 0.916),
        (None, 0.75),
        ("", 0.75),
        (0, 0.75),
        (-4, 0.75),
        ("n/a", 0.75),
    ])
    def test_normalize_purity(self, raw, expected):
        assert normalize_purity(raw) == pytest.approx(expected)


# ===========================================================================
# Class 2: Weight Resolution
# ===========================================================================

class TestWeightResolution:

    def test_new_item_is_zeroed_in_gross_mode(self):
        item = new_line_item()
        assert item.weight_mode == "gross"
        assert item.id.startswith("item-")
        assert item.subtotal == 0.0
        assert item.net_weight == 0.0

    def test_gross_mode_subtracts_stone_displacement(self):
        item = _edit(new_line_item(), gross_weight=10, diamond_weight=1, gemstone_weight=1.5)
        # 10 − (1 + 1.5) / 5 = 9.5
        assert item.net_weight == pytest.approx(9.5)

    def test_stone_weight_exceeding_gross_clamps_to_zero(self):
        item = _edit(new_line_item(), gross_weight=1, diamond_weight=10)
        assert item.net_weight == 0.0

    @pytest.mark.parametrize("gross, diamond, gem", [
        (0, 0, 0),
        (5, 0, 0),
        (5, 25, 0),
        (3.2, 1.1, 0.4),
        (100, 7, 13),
    ])
    def test_gross_mode_invariant(self, gross, diamond, gem):
        item = _edit(new_line_item(), gross_weight=gross, diamond_weight=diamond, gemstone_weight=gem)
        expected = max(0.0, gross - (diamond + gem) / STONE_CARATS_PER_GRAM)
        assert item.net_weight == pytest.approx(expected)
        assert item.net_weight >= 0.0

    def test_switch_to_net_keeps_resolved_value(self):
        item = _edit(new_line_item(), gross_weight=10, diamond_weight=1)
        item = _edit(item, weight_mode="net")
        assert item.net_weight == pytest.approx(9.8)

    def test_net_mode_weight_is_never_overwritten(self):
        item = _edit(new_line_item(), gross_weight=10, diamond_weight=1, weight_mode="net")
        item = _edit(item, net_weight=7)
        item = _edit(item, gross_weight=20, diamond_weight=3, gemstone_weight=2)
        assert item.net_weight == 7.0
        assert item.gross_weight == 20.0

    def test_switch_back_to_gross_rederives(self):
        item = _edit(new_line_item(), weight_mode="net", net_weight=4)
        item = _edit(item, gross_weight=20, diamond_weight=1)
        assert item.net_weight == 4.0
        item = _edit(item, weight_mode="GROSS")
        assert item.net_weight == pytest.approx(19.8)

    def test_resolve_net_weight_ignores_gross_in_net_mode(self):
        item = dataclasses.replace(new_line_item(), weight_mode="net", net_weight=3, gross_weight=50)
        assert resolve_net_weight(item) == 3.0


# ===========================================================================
# Class 3: Cost Aggregation
# ===========================================================================

class TestCostAggregation:

    def test_reference_ring(self, ring_item):
        assert ring_item.net_weight == pytest.approx(9.8)
        assert ring_item.gold_cost == pytest.approx(44_100.0)
        assert ring_item.diamond_cost == pytest.approx(50_000.0)
        assert ring_item.gemstone_cost == 0.0
        assert ring_item.subtotal == pytest.approx(96_100.0)

    def test_subtotal_is_sum_of_components_after_every_edit(self):
        item = new_line_item()
        for name, value in [
            ("gross_weight", 12), ("purity_fraction", 0.916), ("diamond_weight", 0.8),
            ("diamond_per_carat_price", 65_000), ("gemstone_weight", 2),
            ("gemstone_cost", 8_000), ("making_charges", 15_300),
            ("certification_cost", 3_000), ("cad_design_charges", 5_000),
            ("camming_charges", 2_000),
        ]:
            item = apply_field_edit(item, name, value, RATE)
            assert item.subtotal == pytest.approx(_component_sum(item))

    def test_aggregation_is_idempotent(self, ring_item):
        once = aggregate_costs(ring_item, RATE)
        twice = aggregate_costs(once, RATE)
        assert once == twice

    def test_charges_are_never_derived(self):
        item = _edit(new_line_item(), making_charges=1500, gross_weight=5, purity_fraction=1)
        assert item.making_charges == 1500.0
        assert item.subtotal == pytest.approx(5 * 1 * RATE + 1500)

    def test_gemstone_per_carat_derivation(self):
        item = _edit(new_line_item(), gemstone_weight=2.5, gemstone_per_carat_price=4_000)
        assert item.gemstone_cost == pytest.approx(10_000.0)
        assert isinstance(item.gemstone_pricing, PerCaratPricing)

    def test_gemstone_lump_sum_when_no_per_carat_price(self):
        item = _edit(new_line_item(), gemstone_weight=2.5, gemstone_cost=8_000)
        assert item.gemstone_cost == 8_000.0
        assert isinstance(item.gemstone_pricing, LumpSumPricing)

    def test_zeroing_per_carat_price_restores_manual_cost(self):
        """Regression: per-carat price back to 0 must not erase the manual amount."""
        item = _edit(new_line_item(), gemstone_weight=2, gemstone_cost=8_000)
        item = _edit(item, gemstone_per_carat_price=1_000)
        assert item.gemstone_cost == pytest.approx(2_000.0)
        item = _edit(item, gemstone_per_carat_price=0)
        assert item.gemstone_cost == 8_000.0
        assert item.subtotal == pytest.approx(8_000.0)

    def test_manual_gemstone_cost_ignored_while_per_carat_active(self):
        item = _edit(new_line_item(), gemstone_weight=2, gemstone_per_carat_price=1_000)
        item = _edit(item, gemstone_cost=99_999)
        assert item.gemstone_cost == pytest.approx(2_000.0)

    def test_diamond_cost_follows_weight_and_rate(self):
        item = _edit(new_line_item(), diamond_weight=0.5, diamond_per_carat_price=80_000)
        assert item.diamond_cost == pytest.approx(40_000.0)
        item = _edit(item, diamond_weight=0.75)
        assert item.diamond_cost == pytest.approx(60_000.0)

    def test_metal_rate_scales_gold_cost(self):
        item = apply_field_edit(new_line_item(), "gross_weight", 10, 0)
        assert item.gold_cost == 0.0
        item = apply_field_edit(item, "purity_fraction", 0.5, 7000)
        assert item.gold_cost == pytest.approx(35_000.0)


# ===========================================================================
# Class 4: Field Edit Reducer
# ===========================================================================

class TestFieldEdits:

    def test_edit_returns_new_item(self):
        item = new_line_item()
        edited = apply_field_edit(item, "gross_weight", 4, RATE)
        assert item.gross_weight == 0.0
        assert edited.gross_weight == 4.0
        assert edited.id == item.id

    def test_invalid_text_coerces_to_zero(self):
        item = _edit(new_line_item(), making_charges="abc")
        assert item.making_charges == 0.0

    def test_negative_input_clamps_to_zero(self):
        item = _edit(new_line_item(), gross_weight=-5, making_charges=-100)
        assert item.gross_weight == 0.0
        assert item.making_charges == 0.0
        assert item.subtotal == 0.0

    def test_purity_is_clamped_to_one(self):
        item = _edit(new_line_item(), purity_fraction=18)
        assert item.purity_fraction == 1.0

    def test_text_fields_stored_verbatim(self):
        item = _edit(new_line_item(), image_url="estimates/abc.png", diamond_clarity="VS1")
        item = _edit(item, certificate_url=None)
        assert item.image_url == "estimates/abc.png"
        assert item.diamond_clarity == "VS1"
        assert item.certificate_url == ""

    def test_unknown_weight_mode_is_ignored(self):
        item = _edit(new_line_item(), gross_weight=3)
        assert _edit(item, weight_mode="troy") == item

    @pytest.mark.parametrize("field_name", ["subtotal", "gold_cost", "id", "gemstone_manual_cost"])
    def test_derived_fields_cannot_be_edited(self, field_name):
        with pytest.raises(UnknownFieldError):
            apply_field_edit(new_line_item(), field_name, 1, RATE)

    def test_unknown_field_rejected(self):
        with pytest.raises(UnknownFieldError, match="Unknown line item field"):
            apply_field_edit(new_line_item(), "sparkle", 1, RATE)


# ===========================================================================
# Class 5: Records
# ===========================================================================

class TestRecords:

    def test_stored_derived_values_are_recomputed(self):
        item = line_item_from_dict(
            {"id": "item-1", "subtotal": 999_999, "gold_cost": 5, "making_charges": "500"},
            RATE,
        )
        assert item.id == "item-1"
        assert item.gold_cost == 0.0
        assert item.subtotal == pytest.approx(500.0)

    def test_stored_gemstone_cost_seeds_lump_sum(self):
        item = line_item_from_dict({"gemstone_weight": 3, "gemstone_cost": 12_000}, RATE)
        assert item.gemstone_manual_cost == 12_000.0
        assert item.gemstone_cost == 12_000.0

    @pytest.mark.parametrize("stored, expected", [
        (18, 0.75),
        ("22", 22 / 24),
        ("75%", 0.75),
        (91.6, 0.916),
        (0.585, 0.585),
        (None, 0.0),
        (-0.5, 0.0),
    ])
    def test_stored_purity_is_normalized(self, stored, expected):
        item = line_item_from_dict({"gross_weight": 10, "purity_fraction": stored}, RATE)
        assert item.purity_fraction == pytest.approx(expected)
        assert item.gold_cost == pytest.approx(10 * expected * RATE)

    def test_missing_id_is_generated(self):
        assert line_item_from_dict({}, RATE).id.startswith("item-")

    def test_unknown_weight_mode_falls_back_to_gross(self):
        item = line_item_from_dict({"weight_mode": "carat", "gross_weight": 2}, RATE)
        assert item.weight_mode == "gross"
        assert item.net_weight == 2.0

    def test_to_dict_rounds_money_and_labels_basis(self, ring_item):
        data = line_item_to_dict(ring_item)
        assert data["gold_cost"] == 44_100.0
        assert data["subtotal"] == 96_100.0
        assert data["net_weight"] == 9.8
        assert data["diamond_pricing_basis"] == "per_carat"
        assert data["gemstone_pricing_basis"] == "lump_sum"
        assert not any(isinstance(v, float) and math.isnan(v) for v in data.values())
