"""Unit tests for ProductDjangoRepository.

Focus on the look-ups the ledger depends on and on the guarded
counter update.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.products.models import ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def repo():
    return ProductDjangoRepository()


class TestLookups:
    def test_get_by_id_returns_live_product(self, repo, product):
        assert repo.get_by_id(str(product.id)) == product

    def test_get_by_id_hides_deleted(self, repo, product):
        product.delete()
        assert repo.get_by_id(str(product.id)) is None

    def test_get_by_id_invalid_uuid(self, repo):
        assert repo.get_by_id("not-a-uuid") is None

    def test_list_by_ids_skips_unknown_invalid_and_deleted(self, repo, make_product):
        alive = make_product(name="Alive")
        dead = make_product(name="Dead")
        dead.delete()

        found = repo.list_by_ids([str(alive.id), str(dead.id), str(uuid4()), "garbage"])

        assert found == {str(alive.id): alive}

    def test_get_for_update_includes_deleted(self, repo, product):
        product.delete()
        assert repo.get_for_update(str(product.id)) == product

    def test_lock_many_orders_by_primary_key(self, repo, make_product):
        products = [make_product(name=f"P{i}") for i in range(3)]
        ids = [str(p.id) for p in reversed(products)]

        locked = repo.lock_many(ids)

        assert [p.id for p in locked] == sorted(p.id for p in products)

    def test_save_keeps_ledger_counters(self, repo, make_product):
        product = make_product(stock=5)
        stale = repo.get_by_id(str(product.id))
        repo.apply_stock_delta(str(product.id), remaining_delta=-2)

        stale.discount = 10
        repo.save(stale)

        product.refresh_from_db()
        assert (product.discount, product.stock_remaining) == (10, 3)

    def test_delete_is_soft(self, repo, product):
        assert repo.delete(str(product.id)) is True
        assert repo.delete(str(product.id)) is False
        product.refresh_from_db()
        assert product.is_deleted


class TestApplyStockDelta:
    def test_applies_deltas_and_bumps_version(self, repo, make_product):
        product = make_product(stock=10)

        updated = repo.apply_stock_delta(
            str(product.id), remaining_delta=-3, reserved_delta=2
        )

        assert updated.stock_remaining == 7
        assert updated.stock_reserved == 2
        assert updated.version == product.version + 1

    def test_min_remaining_guard(self, repo, make_product):
        product = make_product(stock=2)

        assert repo.apply_stock_delta(str(product.id), remaining_delta=-3, min_remaining=3) is None

        product.refresh_from_db()
        assert product.stock_remaining == 2
        assert product.version == 0

    def test_min_available_guard_counts_reserved(self, repo, make_product):
        product = make_product(stock=5, reserved=3)

        assert repo.apply_stock_delta(str(product.id), reserved_delta=3, min_available=3) is None
        assert repo.apply_stock_delta(str(product.id), reserved_delta=2, min_available=2) is not None

    def test_decrement_never_below_zero(self, repo, make_product):
        product = make_product(stock=1)
        assert repo.apply_stock_delta(str(product.id), reserved_delta=-1) is None

    def test_require_active_rejects_inactive(self, repo, make_product):
        product = make_product(stock=5, status=ProductStatus.INACTIVE)
        assert (
            repo.apply_stock_delta(str(product.id), remaining_delta=-1, require_active=True)
            is None
        )

    def test_require_active_rejects_deleted(self, repo, make_product):
        product = make_product(stock=5)
        product.delete()
        assert (
            repo.apply_stock_delta(str(product.id), remaining_delta=-1, require_active=True)
            is None
        )

    def test_deleted_product_can_still_be_credited(self, repo, make_product):
        product = make_product(stock=5)
        product.delete()

        updated = repo.apply_stock_delta(str(product.id), remaining_delta=2)

        assert updated.stock_remaining == 7
