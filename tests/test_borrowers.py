import pytest

from conftest import count_rows
from shopbook.errors import BorrowerNotFound, InvalidInput, OrderNotFound, StorageFailure
from shopbook.services.borrowers import (
    ALREADY_LINKED_MESSAGE,
    LinkStatus,
    add_borrower,
    count_borrowers,
    delete_borrower,
    get_borrower,
    get_borrowers,
    get_snapshot_orders_for_borrower,
    link_order_to_borrower,
    link_order_to_new_borrower,
    recompute_borrower_amount,
    update_borrower_amount_direct,
)
from shopbook.services.orders import delete_order, get_order, place_order


@pytest.fixture
def order_150(stocked):
    # 2 x Milk @ 75.00
    return place_order(stocked, [(1, 2)])


def test_add_borrower_returns_new_id(db):
    first = add_borrower(db, "Karim", "2026-01-01", 10.0)
    second = add_borrower(db, "  Amina ", "2026-02-01")

    assert second != first
    assert get_borrower(db, first) == {"id": first, "name": "Karim", "date": "2026-01-01", "amount": 10.0}
    assert get_borrower(db, second)["name"] == "Amina"
    assert get_borrower(db, second)["amount"] == 0.0


def test_add_borrower_requires_a_name(db):
    with pytest.raises(InvalidInput):
        add_borrower(db, "   ")


def test_link_freezes_order_into_history(stocked, order_150, borrower):
    result = link_order_to_borrower(stocked, order_150, borrower)

    assert result.success
    assert result.status is LinkStatus.LINKED
    assert result.total_price == 150.0
    assert get_borrower(stocked, borrower)["amount"] == 150.0

    snap = stocked.execute("SELECT * FROM orders_snapshots WHERE id = ?", (result.snapshot_id,))[0]
    assert snap["original_order_id"] == order_150
    assert snap["borrower_id"] == borrower
    assert snap["date"] == get_order(stocked, order_150)["created_at"]
    assert count_rows(stocked, "orders_snapshots_products", "order_snapshot_id = ?", (result.snapshot_id,)) == 1


def test_order_links_at_most_once(stocked, order_150, borrower):
    other = add_borrower(stocked, "Amina", "2026-02-01", 5.0)
    assert link_order_to_borrower(stocked, order_150, borrower).success

    again = link_order_to_borrower(stocked, order_150, other)

    assert again.success is False
    assert again.status is LinkStatus.ALREADY_LINKED
    assert again.error == ALREADY_LINKED_MESSAGE
    assert get_borrower(stocked, other)["amount"] == 5.0
    assert get_borrower(stocked, borrower)["amount"] == 150.0
    assert count_rows(stocked, "orders_snapshots") == 1
    assert not stocked.in_transaction


def test_link_missing_order_raises_and_changes_nothing(stocked, order_150, borrower):
    delete_order(stocked, order_150)

    with pytest.raises(OrderNotFound):
        link_order_to_borrower(stocked, order_150, borrower)

    assert count_rows(stocked, "orders_snapshots") == 0
    assert get_borrower(stocked, borrower)["amount"] == 0.0
    assert not stocked.in_transaction


def test_link_missing_borrower_raises(stocked, order_150):
    with pytest.raises(BorrowerNotFound):
        link_order_to_borrower(stocked, order_150, 404)
    assert count_rows(stocked, "orders_snapshots") == 0
    assert count_rows(stocked, "orders_snapshots_products") == 0


def test_link_order_without_lines_totals_zero(db, borrower):
    order_id = db.run("INSERT INTO orders (created_at) VALUES ('2026-03-01T10:00:00+00:00')")

    result = link_order_to_borrower(db, order_id, borrower)

    assert result.success
    assert result.total_price == 0.0
    assert get_snapshot_orders_for_borrower(db, borrower)[0]["products"] == []


def test_history_survives_order_deletion(stocked, order_150, borrower):
    link_order_to_borrower(stocked, order_150, borrower)
    delete_order(stocked, order_150)

    assert get_order(stocked, order_150) is None
    history = get_snapshot_orders_for_borrower(stocked, borrower)
    assert [h["total_price"] for h in history] == [150.0]
    assert history[0]["products"] == [{"name": "Milk", "quantity": 2, "price_sell": 75.0}]


def test_history_is_newest_first(stocked, borrower):
    older = place_order(stocked, [(1, 1)])
    newer = place_order(stocked, [(2, 1)])
    stocked.run("UPDATE orders SET created_at = '2026-01-01T00:00:00+00:00' WHERE id = ?", (older,))
    stocked.run("UPDATE orders SET created_at = '2026-02-01T00:00:00+00:00' WHERE id = ?", (newer,))
    link_order_to_borrower(stocked, older, borrower)
    link_order_to_borrower(stocked, newer, borrower)

    history = get_snapshot_orders_for_borrower(stocked, borrower)

    assert [h["original_order_id"] for h in history] == [newer, older]
    assert [h["order_date"] for h in history] == ["2026-02-01T00:00:00+00:00", "2026-01-01T00:00:00+00:00"]
    assert get_borrower(stocked, borrower)["amount"] == 125.0


def test_direct_amount_update_and_recompute(stocked, order_150, borrower):
    link_order_to_borrower(stocked, order_150, borrower)

    update_borrower_amount_direct(stocked, borrower, 20.0)
    assert get_borrower(stocked, borrower)["amount"] == 20.0

    assert recompute_borrower_amount(stocked, borrower) == 150.0
    assert get_borrower(stocked, borrower)["amount"] == 150.0


def test_recompute_unknown_borrower(db):
    with pytest.raises(BorrowerNotFound):
        recompute_borrower_amount(db, 1)


def test_delete_borrower_cascades_only_their_history(stocked):
    b1 = add_borrower(stocked, "Karim", "2026-01-01", 0.0)
    b2 = add_borrower(stocked, "Amina", "2026-01-02", 0.0)
    o1 = place_order(stocked, [(1, 1), (2, 1)])
    o2 = place_order(stocked, [(1, 1), (3, 1)])
    o3 = place_order(stocked, [(3, 2)])
    link_order_to_borrower(stocked, o1, b1)
    link_order_to_borrower(stocked, o2, b1)
    kept = link_order_to_borrower(stocked, o3, b2)
    assert count_rows(stocked, "orders_snapshots_products") == 5

    delete_borrower(stocked, b1)

    assert get_borrower(stocked, b1) is None
    assert count_rows(stocked, "orders_snapshots", "borrower_id = ?", (b1,)) == 0
    assert count_rows(stocked, "orders_snapshots_products") == 1
    assert [h["snapshot_id"] for h in get_snapshot_orders_for_borrower(stocked, b2)] == [kept.snapshot_id]
    # live orders are not part of borrower history
    assert get_order(stocked, o1) is not None


def test_link_failing_midway_changes_nothing(stocked, order_150, borrower):
    # The amount update is the last write, after both snapshot inserts.
    stocked.run("CREATE TRIGGER freeze_amount BEFORE UPDATE ON borrowers BEGIN SELECT RAISE(ABORT, 'blocked'); END")

    with pytest.raises(StorageFailure):
        link_order_to_borrower(stocked, order_150, borrower)

    assert not stocked.in_transaction
    assert count_rows(stocked, "orders_snapshots") == 0
    assert count_rows(stocked, "orders_snapshots_products") == 0
    assert get_borrower(stocked, borrower)["amount"] == 0.0

    stocked.run("DROP TRIGGER freeze_amount")
    assert link_order_to_borrower(stocked, order_150, borrower).success


def test_delete_borrower_failing_midway_keeps_history(stocked, order_150, borrower):
    link_order_to_borrower(stocked, order_150, borrower)
    stocked.run("CREATE TRIGGER keep_borrowers BEFORE DELETE ON borrowers BEGIN SELECT RAISE(ABORT, 'blocked'); END")

    with pytest.raises(StorageFailure):
        delete_borrower(stocked, borrower)

    assert not stocked.in_transaction
    assert get_borrower(stocked, borrower)["amount"] == 150.0
    assert count_rows(stocked, "orders_snapshots", "borrower_id = ?", (borrower,)) == 1
    assert count_rows(stocked, "orders_snapshots_products") == 1


def test_link_to_new_borrower_creates_and_links(stocked, order_150):
    result = link_order_to_new_borrower(stocked, order_150, "  Amina ", "2026-02-01")

    assert result.success
    [amina] = get_borrowers(stocked, "Amina")
    assert amina["amount"] == 150.0
    assert amina["date"] == "2026-02-01"
    assert [h["snapshot_id"] for h in get_snapshot_orders_for_borrower(stocked, amina["id"])] == [result.snapshot_id]


def test_link_to_new_borrower_keeps_nobody_when_link_does_not_happen(stocked, order_150, borrower):
    link_order_to_borrower(stocked, order_150, borrower)

    again = link_order_to_new_borrower(stocked, order_150, "Amina")
    assert again.status is LinkStatus.ALREADY_LINKED
    assert count_borrowers(stocked) == 1

    with pytest.raises(OrderNotFound):
        link_order_to_new_borrower(stocked, 404, "Yacine")
    assert count_borrowers(stocked) == 1

    with pytest.raises(InvalidInput):
        link_order_to_new_borrower(stocked, order_150, "   ")


def test_list_search_sort_and_count(db):
    add_borrower(db, "Karim", "2026-01-03", 50.0)
    add_borrower(db, "Karima", "2026-01-01", 300.0)
    add_borrower(db, "Amina", "2026-01-02", 10.0)
    add_borrower(db, "100% Bob", "2026-01-04", 0.0)

    assert count_borrowers(db) == 4
    assert count_borrowers(db, "kar") == 2
    assert count_borrowers(db, "%") == 1

    by_date = [b["name"] for b in get_borrowers(db)]
    assert by_date == ["100% Bob", "Karim", "Amina", "Karima"]

    by_amount = [b["name"] for b in get_borrowers(db, sort_by="amount", ascending=True)]
    assert by_amount == ["100% Bob", "Amina", "Karim", "Karima"]

    page = get_borrowers(db, "kar", sort_by="amount", limit=1, offset=1)
    assert [b["name"] for b in page] == ["Karim"]
