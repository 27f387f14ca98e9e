"""Tests for the cross-session variety bank."""

from __future__ import annotations

import pytest

from mealweave.cache.store import SqliteStore
from mealweave.variety.bank import VarietyBank
from mealweave.variety.signature import meal_signature


class TestMealSignature:
    """Tests for meal_signature."""

    def test_name_and_first_five_ingredients(self, meal_factory):
        meal = meal_factory(
            " Protein Oats ",
            ingredients=[(f"item {i}", 1, "cup") for i in range(7)],
        )
        assert meal_signature(meal) == "protein oats::item 0|item 1|item 2|item 3|item 4"

    def test_ids_do_not_matter(self, meal_factory):
        a = meal_factory("Bowl", id="one")
        b = meal_factory("Bowl", id="two")
        assert meal_signature(a) == meal_signature(b)


class TestVarietyBank:
    """Tests for TTL, capacity and refresh behavior."""

    def test_add_and_contains(self, clock):
        bank = VarietyBank(ttl_seconds=100, clock=clock)
        bank.add("u1", "sig-a")
        assert bank.contains("u1", "sig-a")
        assert not bank.contains("u2", "sig-a")

    def test_ttl_expiry(self, clock):
        bank = VarietyBank(ttl_seconds=100, clock=clock)
        bank.add("u1", "sig-a")
        clock.advance(99)
        assert bank.contains("u1", "sig-a")
        clock.advance(2)
        assert not bank.contains("u1", "sig-a")
        assert bank.size("u1") == 0

    def test_capacity_evicts_oldest(self, clock):
        bank = VarietyBank(capacity=500, clock=clock)
        for i in range(501):
            bank.add("u1", f"sig-{i}")
        assert bank.size("u1") == 500
        assert not bank.contains("u1", "sig-0")
        assert bank.contains("u1", "sig-1")
        assert bank.contains("u1", "sig-500")

    def test_add_many_reports_evictions(self, clock):
        bank = VarietyBank(capacity=3, clock=clock)
        assert bank.add_many("u1", ["a", "b", "c", "d", "e"]) == 2
        assert bank.signatures("u1") == ["c", "d", "e"]

    def test_re_add_refreshes(self, clock):
        bank = VarietyBank(ttl_seconds=100, clock=clock)
        bank.add_many("u1", ["a", "b"])
        clock.advance(10)
        bank.add("u1", "a")
        assert bank.signatures("u1") == ["b", "a"]
        expiries = bank.expiries("u1")
        assert expiries["a"] == expiries["b"] + 10

    def test_clear(self, clock):
        bank = VarietyBank(clock=clock)
        bank.add_many("u1", ["a", "b"])
        bank.clear("u1")
        assert bank.signatures("u1") == []

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            VarietyBank(capacity=0)

    def test_sqlite_persistence(self, temp_db, clock):
        VarietyBank(SqliteStore(temp_db, "variety"), clock=clock).add_many("u1", ["a", "b"])
        reopened = VarietyBank(SqliteStore(temp_db, "variety"), clock=clock)
        assert reopened.signatures("u1") == ["a", "b"]
