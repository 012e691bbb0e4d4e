from decimal import Decimal

import pytest
from boto3.dynamodb.conditions import ConditionExpressionBuilder
from botocore.exceptions import ClientError

from app.core.errors import StoreError
from app.db.dynamo import EntryStore, compile_filter, compile_key_condition
from app.models.entry import EntryInDB, EntryType
from app.utils.predicate import FilterParams, build_filter_predicate, owner_predicate
from conftest import OWNER, utc

INDEX = "owner-created_at-index"


def client_error(code, operation="Query"):
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


class FakeTable:
    """Records the boto3 Table calls made by EntryStore and replays canned responses."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def _respond(self, name, kwargs):
        self.calls.append((name, kwargs))
        if self.error is not None:
            raise self.error
        return self.responses.pop(0) if self.responses else {}

    def query(self, **kwargs):
        return self._respond("query", kwargs)

    def get_item(self, **kwargs):
        return self._respond("get_item", kwargs)

    def put_item(self, **kwargs):
        return self._respond("put_item", kwargs)

    def update_item(self, **kwargs):
        return self._respond("update_item", kwargs)

    def delete_item(self, **kwargs):
        return self._respond("delete_item", kwargs)

    def scan(self, **kwargs):
        return self._respond("scan", kwargs)


def stored_item(entry_id="salary-jan", amount=Decimal("100"), **overrides):
    item = {
        "entry_id": entry_id,
        "owner": OWNER,
        "title": "Monthly salary",
        "title_lc": "monthly salary",
        "amount": amount,
        "type": "income",
        "category": "salary",
        "created_at": "2025-01-10T00:00:00.000000Z",
        "updated_at": "2025-01-10T00:00:00.000000Z",
    }
    item.update(overrides)
    return item


def render(condition):
    return ConditionExpressionBuilder().build_expression(condition)


def test_owner_only_predicate_has_no_filter():
    assert compile_filter(owner_predicate(OWNER)) is None


def test_find_queries_owner_index_newest_first():
    table = FakeTable(responses=[{"Items": [stored_item()]}])
    entries = EntryStore(table, INDEX).find(owner_predicate(OWNER), newest_first=True)

    name, kwargs = table.calls[0]
    assert name == "query"
    assert kwargs["IndexName"] == INDEX
    assert kwargs["ScanIndexForward"] is False
    assert "FilterExpression" not in kwargs

    key = ConditionExpressionBuilder().build_expression(kwargs["KeyConditionExpression"], is_key_condition=True)
    assert list(key.attribute_name_placeholders.values()) == ["owner"]
    assert list(key.attribute_value_placeholders.values()) == [OWNER]

    assert entries == [
        EntryInDB(entry_id="salary-jan", owner=OWNER, title="Monthly salary", amount=100.0,
                  type="income", category="salary", created_at=utc(2025, 1, 10), updated_at=utc(2025, 1, 10)),
    ]


def test_find_follows_pagination():
    table = FakeTable(responses=[
        {"Items": [stored_item("a")], "LastEvaluatedKey": {"entry_id": "a"}},
        {"Items": [stored_item("b", amount=Decimal("12.5"))]},
    ])
    entries = EntryStore(table, INDEX).find(owner_predicate(OWNER))

    assert [entry.entry_id for entry in entries] == ["a", "b"]
    assert entries[1].amount == 12.5
    assert "ExclusiveStartKey" not in table.calls[0][1]
    assert table.calls[1][1]["ExclusiveStartKey"] == {"entry_id": "a"}


def test_filter_expression_covers_every_non_key_clause():
    predicate = build_filter_predicate(OWNER, FilterParams(
        type="expense", category="food", year="2025", month="12",
        min_amount="10", max_amount="99.5", keyword="Lunch",
    ))
    built = render(compile_filter(predicate))

    # created_at is the index range key and may only appear in the key condition
    assert set(built.attribute_name_placeholders.values()) == {
        "type", "category", "amount", "title_lc",
    }
    values = list(built.attribute_value_placeholders.values())
    assert "expense" in values
    assert "food" in values
    assert Decimal("10.0") in values
    assert Decimal("99.5") in values
    # keyword is compared lower-cased against both attributes
    assert values.count("lunch") == 2
    assert "contains" in built.condition_expression
    assert " OR " in built.condition_expression


def render_key(condition):
    return ConditionExpressionBuilder().build_expression(condition, is_key_condition=True)


def test_calendar_window_becomes_key_range():
    predicate = build_filter_predicate(OWNER, FilterParams(year="2025", month="12"))
    built = render_key(compile_key_condition(predicate))

    assert list(built.attribute_name_placeholders.values()) == ["owner", "created_at"]
    # half-open [Dec 1, Jan 1) as an inclusive BETWEEN ending one microsecond early
    assert list(built.attribute_value_placeholders.values()) == [
        OWNER, "2025-12-01T00:00:00.000000Z", "2025-12-31T23:59:59.999999Z",
    ]
    assert "BETWEEN" in built.condition_expression
    assert compile_filter(predicate) is None


def test_explicit_window_compiles_to_closed_key_range():
    predicate = build_filter_predicate(OWNER, FilterParams(start_date="2025-01-01", end_date="2025-01-31"))
    built = render_key(compile_key_condition(predicate))
    assert list(built.attribute_value_placeholders.values()) == [
        OWNER, "2025-01-01T00:00:00.000000Z", "2025-01-31T00:00:00.000000Z",
    ]
    assert "BETWEEN" in built.condition_expression


def test_open_ended_windows_use_a_single_key_operator():
    start_only = render_key(compile_key_condition(
        build_filter_predicate(OWNER, FilterParams(start_date="2025-01-01"))
    ))
    assert " >= " in start_only.condition_expression
    assert list(start_only.attribute_value_placeholders.values())[1] == "2025-01-01T00:00:00.000000Z"

    end_only = render_key(compile_key_condition(
        build_filter_predicate(OWNER, FilterParams(end_date="2025-01-31"))
    ))
    assert " <= " in end_only.condition_expression
    assert list(end_only.attribute_value_placeholders.values())[1] == "2025-01-31T00:00:00.000000Z"


def test_find_sends_window_in_key_condition_only():
    table = FakeTable(responses=[{"Items": [stored_item()]}])
    predicate = build_filter_predicate(OWNER, FilterParams(year="2025", type="income"))
    EntryStore(table, INDEX).find(predicate)

    kwargs = table.calls[0][1]
    key = render_key(kwargs["KeyConditionExpression"])
    assert "created_at" in key.attribute_name_placeholders.values()
    assert "created_at" not in render(kwargs["FilterExpression"]).attribute_name_placeholders.values()


def test_inverted_explicit_window_skips_the_query():
    table = FakeTable()
    predicate = build_filter_predicate(OWNER, FilterParams(start_date="2025-02-01", end_date="2025-01-01"))
    assert EntryStore(table, INDEX).find(predicate) == []
    assert table.calls == []


def test_find_wraps_client_errors():
    table = FakeTable(error=client_error("ResourceNotFoundException"))
    with pytest.raises(StoreError):
        EntryStore(table, INDEX).find(owner_predicate(OWNER))


def test_create_writes_decimal_amount_and_search_title():
    table = FakeTable()
    entry = EntryInDB(owner=OWNER, title="Weekly Groceries", amount=42.75, type="expense",
                      category="food", created_at=utc(2025, 1, 20))
    assert EntryStore(table, INDEX).create(entry) is entry

    name, kwargs = table.calls[0]
    assert name == "put_item"
    item = kwargs["Item"]
    assert item["amount"] == Decimal("42.75")
    assert item["title_lc"] == "weekly groceries"
    assert item["type"] == "expense"
    assert item["created_at"] == "2025-01-20T00:00:00.000000Z"
    assert kwargs["ConditionExpression"] == "attribute_not_exists(entry_id)"


def test_find_by_id_missing_returns_none():
    table = FakeTable(responses=[{}])
    assert EntryStore(table, INDEX).find_by_id("nope") is None
    assert table.calls[0][1] == {"Key": {"entry_id": "nope"}}


def test_update_sets_only_given_fields():
    table = FakeTable(responses=[{"Attributes": stored_item(title="Bonus", title_lc="bonus")}])
    updated = EntryStore(table, INDEX).update_by_id("salary-jan", {"title": "Bonus", "type": EntryType.INCOME})

    assert updated.title == "Bonus"
    kwargs = table.calls[0][1]
    assert kwargs["ConditionExpression"] == "attribute_exists(entry_id)"
    assert set(kwargs["ExpressionAttributeNames"].values()) == {"title", "type", "title_lc", "updated_at"}
    values = kwargs["ExpressionAttributeValues"].values()
    assert "income" in values
    assert "bonus" in values


def test_update_of_missing_entry_returns_none():
    table = FakeTable(error=client_error("ConditionalCheckFailedException", "UpdateItem"))
    assert EntryStore(table, INDEX).update_by_id("gone", {"amount": 5.0}) is None


def test_update_store_failure_raises():
    table = FakeTable(error=client_error("ProvisionedThroughputExceededException", "UpdateItem"))
    with pytest.raises(StoreError):
        EntryStore(table, INDEX).update_by_id("salary-jan", {"amount": 5.0})


def test_delete_reports_whether_anything_was_removed():
    table = FakeTable(responses=[{"Attributes": stored_item()}, {}])
    store = EntryStore(table, INDEX)
    assert store.delete_by_id("salary-jan") is True
    assert store.delete_by_id("salary-jan") is False
