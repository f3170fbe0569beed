"""
Unit tests for src/order_reconciler.py — OrderLineReconciler.

Tests cover:
- Packing-unit rounding (idempotence, floor at one unit)
- Scan outcomes applied to the order (found in view / via lookup)
- +/- controls, typed quantities, toggling selection
- Per-customer persistence: debounced writes, restore, clear
- Review summary lines and total
"""

from unittest.mock import MagicMock

import pytest

from conftest import make_product
from exceptions import StorageError
from order_reconciler import OrderLineReconciler, round_to_packing_unit
from order_store import LocalOrderStore, quantities_key, selected_key


@pytest.fixture
def store(tmp_path):
    return LocalOrderStore(tmp_path / "order_store.db")


@pytest.fixture
def reconciler(qapp, store):
    rec = OrderLineReconciler(store, save_debounce_ms=100)
    rec.load_customer("C-1042")
    return rec


# ============================================================================
# round_to_packing_unit
# ============================================================================

class TestRoundToPackingUnit:
    @pytest.mark.parametrize("requested, expected", [
        (1, 6), (5, 6), (6, 6), (7, 12), (12, 12), (13, 18),
    ])
    def test_rounds_up_to_multiple(self, requested, expected):
        assert round_to_packing_unit(requested, 6) == expected

    @pytest.mark.parametrize("requested", [0, -1, -5, -600])
    def test_never_below_one_packing_unit(self, requested):
        assert round_to_packing_unit(requested, 6) == 6

    @pytest.mark.parametrize("packing_unit", [1, 4, 6, 24])
    @pytest.mark.parametrize("requested", [-3, 0, 1, 5, 23, 100])
    def test_idempotent(self, requested, packing_unit):
        once = round_to_packing_unit(requested, packing_unit)
        assert round_to_packing_unit(once, packing_unit) == once
        assert once % packing_unit == 0
        assert once >= packing_unit

    def test_packing_unit_one_is_identity_for_positive(self):
        assert round_to_packing_unit(17, 1) == 17

    @pytest.mark.parametrize("packing_unit", [0, -6])
    def test_invalid_packing_unit(self, packing_unit):
        with pytest.raises(ValueError):
            round_to_packing_unit(5, packing_unit)


# ============================================================================
# Scan outcomes
# ============================================================================

class TestScanOutcomes:
    def test_found_in_view_adds_one_packing_unit_to_default(self, reconciler, blanket):
        new_qty = reconciler.apply_found_in_view(blanket)
        assert new_qty == 12
        assert reconciler.quantities[blanket.id] == 12
        assert reconciler.is_selected(blanket.id)

    def test_found_in_view_repeated(self, reconciler, blanket):
        reconciler.apply_found_in_view(blanket)
        reconciler.apply_found_in_view(blanket)
        assert reconciler.quantity_for(blanket.id) == 18

    def test_found_in_view_keeps_existing_quantity(self, reconciler, blanket):
        reconciler.register_products([blanket])
        reconciler.set_quantity(blanket.id, 30)
        reconciler.apply_found_in_view(blanket)
        assert reconciler.quantity_for(blanket.id) == 36

    def test_found_via_lookup_sets_exactly_one_unit(self, reconciler, blanket):
        reconciler.register_products([blanket])
        reconciler.set_quantity(blanket.id, 30)
        assert reconciler.apply_found_via_lookup(blanket) == 6
        assert reconciler.quantities[blanket.id] == 6
        assert reconciler.is_selected(blanket.id)

    def test_order_changed_emitted(self, qtbot, reconciler, blanket):
        with qtbot.waitSignal(reconciler.order_changed, timeout=1000):
            reconciler.apply_found_in_view(blanket)


# ============================================================================
# Manual controls
# ============================================================================

class TestManualControls:
    def test_quantity_defaults_to_packing_unit(self, reconciler, blanket):
        reconciler.register_products([blanket])
        assert reconciler.quantity_for(blanket.id) == 6

    def test_unknown_product_defaults_to_one(self, reconciler):
        assert reconciler.packing_unit_for("missing") == 1
        assert reconciler.quantity_for("missing") == 1

    def test_typed_quantity_is_rounded(self, reconciler, blanket):
        reconciler.register_products([blanket])
        assert reconciler.set_quantity(blanket.id, 7) == 12
        assert reconciler.set_quantity(blanket.id, 0) == 6

    def test_increment_and_decrement(self, reconciler, blanket):
        reconciler.register_products([blanket])
        assert reconciler.increment(blanket.id) == 12
        assert reconciler.increment(blanket.id) == 18
        assert reconciler.decrement(blanket.id) == 12
        assert reconciler.decrement(blanket.id) == 6

    def test_decrement_disabled_at_one_packing_unit(self, reconciler, blanket):
        reconciler.register_products([blanket])
        assert reconciler.can_decrement(blanket.id) is False
        assert reconciler.decrement(blanket.id) == 6
        assert reconciler.quantity_for(blanket.id) == 6

    def test_toggle_initializes_quantity(self, reconciler, blanket):
        assert reconciler.toggle_selected(blanket) is True
        assert reconciler.quantities[blanket.id] == 6

    def test_toggle_off_keeps_quantity_for_readd(self, reconciler, blanket):
        reconciler.toggle_selected(blanket)
        reconciler.set_quantity(blanket.id, 24)

        assert reconciler.toggle_selected(blanket) is False
        assert not reconciler.is_selected(blanket.id)

        assert reconciler.toggle_selected(blanket) is True
        assert reconciler.quantity_for(blanket.id) == 24

    def test_quantity_always_positive_multiple(self, reconciler, blanket):
        reconciler.register_products([blanket])
        for requested in (-4, 1, 13, 5, 0):
            reconciler.set_quantity(blanket.id, requested)
            reconciler.increment(blanket.id)
            reconciler.decrement(blanket.id)
            qty = reconciler.quantity_for(blanket.id)
            assert qty >= 6 and qty % 6 == 0


# ============================================================================
# Persistence
# ============================================================================

class TestPersistence:
    def test_burst_of_changes_writes_once_per_key(self, qtbot, qapp, store, blanket, cushion):
        spy = MagicMock(wraps=store)
        rec = OrderLineReconciler(spy, save_debounce_ms=100)
        rec.load_customer("C-1042")

        rec.apply_found_in_view(blanket)
        rec.apply_found_in_view(blanket)
        rec.toggle_selected(cushion)
        rec.increment(cushion.id)
        rec.apply_found_in_view(blanket)
        assert spy.set_json.call_count == 0

        qtbot.waitUntil(lambda: spy.set_json.call_count >= 2, timeout=2000)
        qtbot.wait(200)

        assert spy.set_json.call_count == 2
        written_keys = [c.args[0] for c in spy.set_json.call_args_list]
        assert sorted(written_keys) == sorted([selected_key("C-1042"), quantities_key("C-1042")])
        assert store.get_json(selected_key("C-1042")) == {blanket.id: True, cushion.id: True}
        assert store.get_json(quantities_key("C-1042")) == {blanket.id: 24, cushion.id: 2}

    def test_flush_writes_immediately(self, reconciler, store, blanket):
        reconciler.apply_found_in_view(blanket)
        reconciler.flush()
        assert store.get_json(quantities_key("C-1042")) == {blanket.id: 12}

    def test_unselected_quantities_not_persisted(self, reconciler, store, blanket, cushion):
        reconciler.toggle_selected(blanket)
        reconciler.toggle_selected(cushion)
        reconciler.toggle_selected(cushion)
        reconciler.flush()

        assert store.get_json(selected_key("C-1042")) == {blanket.id: True, cushion.id: False}
        assert store.get_json(quantities_key("C-1042")) == {blanket.id: 6}

    def test_no_customer_no_writes(self, qtbot, qapp, blanket):
        spy = MagicMock()
        rec = OrderLineReconciler(spy, save_debounce_ms=10)
        rec.apply_found_in_view(blanket)
        qtbot.wait(100)
        rec.flush()
        spy.set_json.assert_not_called()

    def test_restore_on_load_customer(self, qapp, store, blanket):
        store.set_json(selected_key("C-7"), {blanket.id: True})
        store.set_json(quantities_key("C-7"), {blanket.id: 18})

        rec = OrderLineReconciler(store)
        rec.load_customer("C-7")

        assert rec.is_selected(blanket.id)
        assert rec.quantities == {blanket.id: 18}

    def test_switching_customer_flushes_and_isolates(self, reconciler, store, blanket):
        reconciler.apply_found_in_view(blanket)
        reconciler.load_customer("C-2")

        assert store.get_json(quantities_key("C-1042")) == {blanket.id: 12}
        assert reconciler.selected == {}
        assert reconciler.quantities == {}

    def test_malformed_stored_values_ignored(self, qapp, store):
        store.set_json(selected_key("C-8"), ["not", "a", "dict"])
        store.set_json(quantities_key("C-8"), {"p-1": "lots", "p-2": 6})

        rec = OrderLineReconciler(store)
        rec.load_customer("C-8")

        assert rec.selected == {}
        assert rec.quantities == {"p-2": 6}

    def test_negative_stored_quantity_dropped(self, qapp, store, blanket):
        store.set_json(selected_key("C-9"), {blanket.id: True})
        store.set_json(quantities_key("C-9"), {blanket.id: -3})

        rec = OrderLineReconciler(store)
        rec.register_products([blanket])
        rec.load_customer("C-9")

        assert blanket.id not in rec.quantities
        assert rec.quantity_for(blanket.id) == 6
        assert rec.selected_lines([blanket]) == [(blanket, 6)]
        assert rec.order_total([blanket]) == 270.0

    def test_stored_quantity_rounded_for_known_product(self, qapp, store, blanket):
        store.set_json(selected_key("C-9"), {blanket.id: True})
        store.set_json(quantities_key("C-9"), {blanket.id: 5})

        rec = OrderLineReconciler(store)
        rec.register_products([blanket])
        rec.load_customer("C-9")

        assert rec.quantities == {blanket.id: 6}

    def test_stored_quantity_rounded_when_product_loads_later(self, qapp, store, blanket):
        store.set_json(selected_key("C-9"), {blanket.id: True})
        store.set_json(quantities_key("C-9"), {blanket.id: 5})

        rec = OrderLineReconciler(store, save_debounce_ms=100)
        rec.load_customer("C-9")
        assert rec.quantities == {blanket.id: 5}

        rec.register_products([blanket])
        assert rec.quantities == {blanket.id: 6}

        rec.flush()
        assert store.get_json(quantities_key("C-9")) == {blanket.id: 6}

    def test_storage_failure_keeps_in_memory_state(self, qapp, blanket):
        failing = MagicMock()
        failing.get_json.return_value = {}
        failing.set_json.side_effect = StorageError("disk full")
        rec = OrderLineReconciler(failing)
        rec.load_customer("C-1")

        rec.apply_found_in_view(blanket)
        rec.flush()

        assert rec.quantity_for(blanket.id) == 12
        assert rec.is_selected(blanket.id)

    def test_clear_order_empties_maps_and_removes_keys(self, reconciler, store, blanket, cushion):
        reconciler.apply_found_in_view(blanket)
        reconciler.toggle_selected(cushion)
        reconciler.flush()
        assert store.contains(selected_key("C-1042"))

        reconciler.apply_found_in_view(blanket)  # pending write must not resurrect the keys
        reconciler.clear_order()

        assert reconciler.selected == {}
        assert reconciler.quantities == {}
        assert not store.contains(selected_key("C-1042"))
        assert not store.contains(quantities_key("C-1042"))

    def test_clear_order_pending_write_cancelled(self, qtbot, reconciler, store, blanket):
        reconciler.apply_found_in_view(blanket)
        reconciler.clear_order()
        qtbot.wait(250)
        assert not store.contains(selected_key("C-1042"))


# ============================================================================
# Review summary
# ============================================================================

class TestSummary:
    def test_selected_lines_and_total(self, reconciler, blanket, cushion):
        other = make_product("p-300", "ELV-MUG-03", cost_price=3.0)
        reconciler.apply_found_in_view(blanket)  # 12 x 45.0
        reconciler.toggle_selected(cushion)       # 1 x 12.5
        reconciler.register_products([other])

        lines = reconciler.selected_lines([blanket, cushion, other])

        assert lines == [(blanket, 12), (cushion, 1)]
        assert reconciler.order_total([blanket, cushion, other]) == pytest.approx(552.5)

    def test_empty_order_total(self, reconciler, blanket):
        assert reconciler.selected_lines([blanket]) == []
        assert reconciler.order_total([blanket]) == 0
