"""
Unit tests for src/barcode_resolver.py — BarcodeResolver.

Tests cover:
- Local matching against visible products (exact SKU / EAN)
- Remote lookup classification (found via lookup, wrong brand, not found)
- Scan event recording for every terminal outcome
- Lookup failures propagating without an event
"""

from unittest.mock import MagicMock

import pytest

from barcode_resolver import BarcodeResolver, ScanOutcomeKind, match_local
from conftest import make_product
from exceptions import CatalogLookupError


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def event_log():
    return MagicMock()


@pytest.fixture
def resolver(client, event_log):
    return BarcodeResolver(client, event_log)


class TestMatchLocal:
    def test_matches_ean(self, blanket, cushion):
        assert match_local("5701581000002", [blanket, cushion]) is cushion

    def test_matches_sku(self, blanket, cushion):
        assert match_local("ELV-BLANKET-01", [blanket, cushion]) is blanket

    def test_match_is_exact_and_case_sensitive(self, blanket):
        assert match_local("elv-blanket-01", [blanket]) is None
        assert match_local("ELV-BLANKET", [blanket]) is None
        assert match_local("570158100000", [blanket]) is None

    def test_first_visible_wins(self):
        first = make_product("p-2", "DUP-1", ean="1111111111111")
        second = make_product("p-1", "OTHER", ean="DUP-1")
        assert match_local("DUP-1", [first, second]) is first

    def test_product_without_ean(self):
        product = make_product("p-1", "SKU-ONLY-1")
        assert match_local("SKU-ONLY-1", [product]) is product


class TestResolve:
    def test_found_in_view_skips_lookup(self, resolver, client, event_log, blanket):
        outcome = resolver.resolve("5701581000001", [blanket], "elvang")

        assert outcome.kind is ScanOutcomeKind.FOUND_IN_VIEW
        assert outcome.product is blanket
        assert outcome.is_success
        client.find_product_by_barcode.assert_not_called()
        event_log.record.assert_called_once_with("5701581000001", True, blanket.id)

    def test_found_via_lookup(self, resolver, client, event_log, cushion):
        client.find_product_by_barcode.return_value = cushion

        outcome = resolver.resolve("5701581000002", [], "elvang")

        assert outcome.kind is ScanOutcomeKind.FOUND_VIA_LOOKUP
        assert outcome.product is cushion
        client.find_product_by_barcode.assert_called_once_with("5701581000002")
        event_log.record.assert_called_once_with("5701581000002", True, cushion.id)

    def test_wrong_brand(self, resolver, client, event_log, blanket, rader_vase):
        client.find_product_by_barcode.return_value = rader_vase

        outcome = resolver.resolve("4021213000009", [blanket], "elvang")

        assert outcome.kind is ScanOutcomeKind.WRONG_BRAND
        assert outcome.product is rader_vase
        assert not outcome.is_success
        event_log.record.assert_called_once_with("4021213000009", True, rader_vase.id)

    def test_not_found(self, resolver, client, event_log, blanket):
        client.find_product_by_barcode.return_value = None

        outcome = resolver.resolve("0000000000000", [blanket], "elvang")

        assert outcome.kind is ScanOutcomeKind.NOT_FOUND
        assert outcome.product is None
        event_log.record.assert_called_once_with("0000000000000", False, None)

    def test_lookup_failure_propagates_without_event(self, resolver, client, event_log):
        client.find_product_by_barcode.side_effect = CatalogLookupError("timeout", barcode="123")

        with pytest.raises(CatalogLookupError):
            resolver.resolve("12345678", [], "elvang")

        event_log.record.assert_not_called()


class TestSplitSteps:
    def test_resolve_local_returns_none_when_not_visible(self, resolver, event_log, blanket):
        assert resolver.resolve_local("4021213000009", [blanket]) is None
        event_log.record.assert_not_called()

    def test_lookup_does_not_record(self, resolver, client, event_log, cushion):
        client.find_product_by_barcode.return_value = cushion
        assert resolver.lookup("5701581000002") is cushion
        event_log.record.assert_not_called()

    def test_classify_lookup_records_once(self, resolver, event_log, cushion):
        outcome = resolver.classify_lookup("5701581000002", cushion, "elvang")
        assert outcome.kind is ScanOutcomeKind.FOUND_VIA_LOOKUP
        assert event_log.record.call_count == 1
