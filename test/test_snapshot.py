import os
import sys
from datetime import timedelta

_test_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, _test_dir)

from _helper import NOW, make_record, minutes_ago

from order_board.config import BoardPolicy
from order_board.models import Order
from order_board.order_state import OrderStatus
from order_board.snapshot import build_working_set, is_retained


def test_open_orders_are_always_kept():
    records = [
        ("p1", make_record("pending", age_min=600)),
        ("p2", make_record("preparing", age_min=None)),
        ("r1", make_record("ready", age_min=90)),
    ]
    working = build_working_set(records, NOW)
    assert list(working) == ["p1", "p2", "r1"]


def test_completed_orders_kept_only_within_retention_window():
    records = [
        ("c-recent", make_record("completed", age_min=10)),
        ("c-old", make_record("completed", age_min=31)),
        ("c-unknown", make_record("completed", age_min=None)),
    ]
    working = build_working_set(records, NOW)
    assert list(working) == ["c-recent"]


def test_retention_window_follows_policy():
    records = [("c1", make_record("completed", age_min=45))]
    assert build_working_set(records, NOW) == {}
    assert list(build_working_set(records, NOW, BoardPolicy(completed_retention_minutes=60))) == ["c1"]


def test_every_output_order_satisfies_retention():
    records = []
    for i, age in enumerate([None, 0, 1, 29, 29.9, 30, 30.1, 45, 120]):
        for status in OrderStatus:
            records.append((f"{status.value}-{i}", make_record(status.value, age_min=age)))
    cutoff = NOW - timedelta(minutes=30)
    for order in build_working_set(records, NOW).values():
        assert order.status != OrderStatus.COMPLETED or (order.timestamp is not None and order.timestamp > cutoff)


def test_malformed_records_are_skipped_not_fatal():
    no_table = make_record()
    del no_table["tableNumber"]
    records = [
        ("ok-1", make_record()),
        ("bad-json", "{not json"),
        ("no-table", no_table),
        ("zero-qty", make_record(items=[{"name": "Idli", "quantity": 0, "price": 40}])),
        ("neg-total", make_record(total=-1)),
        ("unknown-status", make_record(status="cancelled")),
        ("not-an-object", "[1, 2, 3]"),
        ("ok-2", make_record("ready")),
    ]
    working = build_working_set(records, NOW)
    assert list(working) == ["ok-1", "ok-2"]


def test_json_text_records_are_parsed():
    raw = '{"status": "pending", "tableNumber": "7", "orderNumber": 12, "items": [], "total": 0}'
    working = build_working_set([("j1", raw)], NOW)
    order = working["j1"]
    assert order.id == "j1"
    assert order.table_number == "7"
    assert order.order_number_display == "12"
    assert order.timestamp is None


def test_duplicate_ids_keep_first_position_and_latest_record():
    records = [
        ("a", make_record("pending")),
        ("b", make_record("pending")),
        ("a", make_record("preparing")),
    ]
    working = build_working_set(records, NOW)
    assert list(working) == ["a", "b"]
    assert working["a"].status == OrderStatus.PREPARING


def test_is_retained_uses_strictly_after_cutoff():
    at_cutoff = Order.from_record("c", make_record("completed", age_min=30))
    assert is_retained(at_cutoff, NOW) is False
    assert is_retained(at_cutoff, minutes_ago(1)) is True
