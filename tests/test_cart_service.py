from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from storefront.data.models import CartItemModel
from storefront.domain.owner import Customer, Guest
from storefront.domain.results import ErrorKind
from storefront.repos.cart_repo import CartRepo
from storefront.services.cart_service import CartService


@pytest.fixture()
def svc(catalog):
    return CartService(catalog)


def product_ids(snapshot):
    return [item.product_id for item in snapshot.items]


class TestAddToCart:
    def test_added_line_shows_in_cart(self, svc, customer):
        added = svc.add_to_cart(2, 3, customer)

        assert added.success
        assert added.data.action == "added"
        cart = svc.get_cart(customer).data
        assert [(i.product_id, i.quantity) for i in cart.items] == [(2, 3)]

    def test_second_add_merges_quantities(self, svc, customer):
        svc.add_to_cart(1, 2, customer)
        second = svc.add_to_cart(1, 3, customer)

        assert second.data.quantity == 5
        assert second.data.action == "updated"
        assert len(svc.repo.list_raw(customer)) == 1

    def test_quantity_defaults_to_one(self, svc, guest):
        assert svc.add_to_cart(1, owner=guest).data.quantity == 1

    def test_invalid_input_touches_nothing(self, svc, customer):
        result = svc.add_to_cart("abc", 0, customer)

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert result.error.details["failed_fields"] == 2
        assert svc.repo.list_raw(customer) == []

    def test_unknown_product_is_stored_but_not_listed(self, svc, customer):
        assert svc.add_to_cart(999, 1, customer).success

        assert svc.get_cart(customer).data.count == 0
        assert len(svc.repo.list_raw(customer)) == 1

    def test_unknown_customer_is_a_foreign_key_failure(self, svc):
        result = svc.add_to_cart(1, 1, Customer(42))

        assert result.kind == ErrorKind.FOREIGN_KEY_CONSTRAINT
        assert not result.error.retryable
        # the session is still usable afterwards
        assert svc.add_to_cart(1, 1, Customer(1)).success

    def test_invalid_owner(self, svc):
        assert svc.add_to_cart(1, 1, Guest("not-an-ip")).kind == ErrorKind.VALIDATION_ERROR


class TestUpdateAndRemove:
    def test_zero_is_remove(self, svc, customer):
        svc.add_to_cart(1, 2, customer)

        result = svc.update_cart_quantity(1, 0, customer)

        assert result.data.action == "removed"
        assert 1 not in product_ids(svc.get_cart(customer).data)

    def test_sets_quantity_in_place(self, svc, customer):
        svc.add_to_cart(1, 2, customer)

        assert svc.update_cart_quantity(1, "7", customer).data.quantity == 7
        assert svc.get_line(1, customer).data.quantity == 7

    def test_negative_is_validation_error(self, svc, customer):
        svc.add_to_cart(1, 2, customer)

        assert svc.update_cart_quantity(1, -1, customer).kind == ErrorKind.VALIDATION_ERROR
        assert svc.get_line(1, customer).data.quantity == 2

    def test_missing_line_is_not_found(self, svc, customer):
        assert svc.update_cart_quantity(3, 4, customer).kind == ErrorKind.NOT_FOUND

    def test_remove_is_idempotent(self, svc, guest):
        svc.add_to_cart(2, 1, guest)

        assert svc.remove_from_cart(2, guest).data.affected_rows == 1
        again = svc.remove_from_cart(2, guest)
        assert again.success
        assert again.data.affected_rows == 0


class TestOwnership:
    def test_guest_and_customer_partitions_never_mix(self, svc, guest, customer):
        svc.add_to_cart(1, 1, guest)
        svc.add_to_cart(2, 1, customer)

        assert product_ids(svc.get_cart(guest).data) == [1]
        assert product_ids(svc.get_cart(customer).data) == [2]
        assert product_ids(svc.get_cart(Customer(2)).data) == []
        assert product_ids(svc.get_cart(Guest("4.3.2.1")).data) == []

    def test_stored_columns_are_exclusive(self, svc, guest, customer):
        svc.add_to_cart(1, 1, guest)
        svc.add_to_cart(1, 1, customer)

        guest_row = svc.repo.list_raw(guest)[0]
        customer_row = svc.repo.list_raw(customer)[0]
        assert (guest_row.customer_id, guest_row.ip_address) == (None, "1.2.3.4")
        assert (customer_row.customer_id, customer_row.ip_address) == (1, "")

    def test_empty_cart_only_touches_owner(self, svc, guest, customer):
        svc.add_to_cart(1, 1, guest)
        svc.add_to_cart(1, 1, customer)
        svc.add_to_cart(2, 1, customer)

        assert svc.empty_cart(customer).data.removed_items == 2
        assert svc.get_cart(customer).data.count == 0
        assert svc.get_cart(guest).data.count == 1


class TestSnapshot:
    def test_ordered_by_title_with_totals(self, svc, customer):
        svc.add_to_cart(3, 1, customer)
        svc.add_to_cart(1, 2, customer)

        cart = svc.get_cart(customer).data

        assert [i.title for i in cart.items] == ["Alpha Cable", "Gamma Book"]
        assert cart.count == 2
        assert cart.total_items == 3
        assert cart.total_amount == Decimal("60.00")
        assert cart.items[0].subtotal == Decimal("20.00")
        assert cart.items[0].category == "Accessories"
        assert cart.items[1].brand is None

    def test_count(self, svc, guest):
        svc.add_to_cart(1, 2, guest)
        svc.add_to_cart(2, 5, guest)

        count = svc.get_cart_count(guest).data
        assert (count.count, count.total_items) == (2, 7)

    def test_valid_cart_drops_orphans(self, svc, customer):
        svc.add_to_cart(1, 1, customer)
        svc.add_to_cart(999, 1, customer)

        cart = svc.get_valid_cart(customer).data

        assert product_ids(cart) == [1]
        assert [row.product_id for row in svc.repo.list_raw(customer)] == [1]

    def test_restore_user_cart(self, svc, customer):
        svc.add_to_cart(2, 2, customer)

        restored = svc.restore_user_cart(1).data
        assert restored.customer_id == 1
        assert product_ids(restored) == [2]
        assert svc.restore_user_cart(None).kind == ErrorKind.VALIDATION_ERROR

    def test_get_line(self, svc, customer):
        assert svc.get_line(1, customer).data.found is False
        svc.add_to_cart(1, 4, customer)
        assert svc.get_line(1, customer).data.quantity == 4


class TestRepeatedRows:
    @pytest.fixture()
    def repeated(self, svc, catalog, customer):
        svc.repo.add_line(1, 5, customer)
        svc.repo.add_line(1, 1, customer)
        catalog.commit()

    def rows(self, svc, owner):
        return [(row.product_id, row.quantity) for row in svc.repo.list_raw(owner)]

    def test_add_adds_to_the_total_and_collapses(self, svc, repeated, customer):
        added = svc.add_to_cart(1, 1, customer)

        assert added.data.quantity == 7
        assert self.rows(svc, customer) == [(1, 7)]

    def test_update_leaves_one_row(self, svc, repeated, customer):
        svc.update_cart_quantity(1, 4, customer)

        assert self.rows(svc, customer) == [(1, 4)]

    def test_snapshot_has_one_item_per_product(self, svc, repeated, customer):
        svc.add_to_cart(2, 2, customer)

        cart = svc.get_cart(customer).data

        assert [(i.product_id, i.quantity) for i in cart.items] == [(1, 6), (2, 2)]
        assert cart.count == 2
        assert cart.total_items == 8
        assert cart.items[0].subtotal == Decimal("60.00")
        assert cart.count == svc.get_cart_count(customer).data.count
        assert svc.get_line(1, customer).data.quantity == 6


class TestGuestCarts:
    def test_statistics(self, svc):
        svc.add_to_cart(1, 2, Guest("1.1.1.1"))
        svc.add_to_cart(2, 4, Guest("1.1.1.1"))
        svc.add_to_cart(1, 3, Guest("2.2.2.2"))
        svc.add_to_cart(1, 9, Customer(1))

        stats = svc.guest_cart_statistics().data

        assert stats.unique_guest_ips == 2
        assert stats.total_guest_items == 3
        assert stats.total_guest_quantity == 9
        assert stats.avg_items_per_guest == Decimal("3.00")

    def test_session(self, svc, guest):
        assert svc.validate_guest_cart_session("1.2.3.4").data.has_cart_items is False
        svc.add_to_cart(1, 2, guest)

        session = svc.validate_guest_cart_session("1.2.3.4").data
        assert session.has_cart_items
        assert (session.item_count, session.total_quantity) == (1, 2)

    def test_cleanup_removes_only_stale_guest_lines(self, svc, catalog, guest, customer):
        svc.add_to_cart(1, 1, guest)
        svc.add_to_cart(2, 1, Guest("9.9.9.9"))
        svc.add_to_cart(1, 1, customer)
        catalog.execute(
            update(CartItemModel)
            .where(CartItemModel.ip_address == "1.2.3.4")
            .values(updated_at=datetime(2000, 1, 1, tzinfo=timezone.utc))
        )
        catalog.execute(
            update(CartItemModel)
            .where(CartItemModel.customer_id == 1)
            .values(updated_at=datetime(2000, 1, 1, tzinfo=timezone.utc))
        )
        catalog.commit()

        result = svc.cleanup_expired_guest_carts(24)

        assert result.data.removed_items == 1
        assert svc.get_cart(guest).data.count == 0
        assert svc.get_cart(Guest("9.9.9.9")).data.count == 1
        assert svc.get_cart(customer).data.count == 1

    def test_cleanup_rejects_bad_hours(self, svc):
        assert svc.cleanup_expired_guest_carts(0).kind == ErrorKind.VALIDATION_ERROR


def test_repo_filters_by_exactly_one_owner_column(catalog):
    repo = CartRepo(catalog)
    repo.add_line(1, 1, Guest("1.2.3.4"))
    catalog.commit()

    assert repo.get_line(1, Guest("1.2.3.4")) is not None
    assert repo.get_line(1, Customer(1)) is None
