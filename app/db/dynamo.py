import logging
import operator
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from functools import lru_cache, reduce
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr, ConditionBase, Key
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.errors import StoreError
from app.models.entry import EntryInDB
from app.utils.dates import from_iso, to_iso, utcnow
from app.utils.predicate import (
    AmountRange,
    CategoryEquals,
    Clause,
    CreatedAtRange,
    KeywordMatch,
    OwnerEquals,
    Predicate,
    TypeEquals,
)

logger = logging.getLogger(__name__)

# DynamoDB `contains` is case sensitive, so keyword search runs against a
# lower-cased copy of the title kept next to it. Category literals are lower case.
TITLE_SEARCH_ATTR = "title_lc"


class EntryStore:
    """
    Ledger entries in a DynamoDB table keyed by ``entry_id``.

    Owner scoped reads go through a global secondary index with ``owner`` as
    hash key and ``created_at`` as range key.
    """

    def __init__(self, table, owner_index: str):
        self.table = table
        self.owner_index = owner_index

    def find(self, predicate: Predicate, newest_first: bool = False) -> List[EntryInDB]:
        if _is_empty_window(predicate):
            # BETWEEN rejects an upper bound below the lower one
            return []

        query_kwargs: Dict[str, Any] = {
            "IndexName": self.owner_index,
            "KeyConditionExpression": compile_key_condition(predicate),
            "ScanIndexForward": not newest_first,
        }
        filter_expression = compile_filter(predicate)
        if filter_expression is not None:
            query_kwargs["FilterExpression"] = filter_expression

        items: List[dict] = []
        try:
            while True:
                response = self.table.query(**query_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                query_kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            raise _store_error("find", e)
        return [_to_entry(item) for item in items]

    def find_by_id(self, entry_id: str) -> Optional[EntryInDB]:
        try:
            response = self.table.get_item(Key={"entry_id": entry_id})
        except (ClientError, BotoCoreError) as e:
            raise _store_error("find_by_id", e)
        item = response.get("Item")
        return _to_entry(item) if item else None

    def create(self, entry: EntryInDB) -> EntryInDB:
        try:
            self.table.put_item(
                Item=_to_item(entry),
                ConditionExpression="attribute_not_exists(entry_id)",
            )
        except (ClientError, BotoCoreError) as e:
            raise _store_error("create", e)
        return entry

    def update_by_id(self, entry_id: str, updates: Dict[str, Any]) -> Optional[EntryInDB]:
        """
        Apply partial updates to an entry. Returns the updated entry, or None
        when the entry does not exist (it is never created by an update).
        """
        if not updates:
            return None

        values = {key: _plain(value) for key, value in updates.items()}
        if "title" in values:
            values[TITLE_SEARCH_ATTR] = values["title"].lower()
        values["updated_at"] = to_iso(utcnow())

        update_expression_parts = []
        expression_attribute_values = {}
        expression_attribute_names = {}

        for idx, (key, value) in enumerate(values.items()):
            placeholder = f"#f{idx}"
            value_placeholder = f":u{idx}"
            update_expression_parts.append(f"{placeholder} = {value_placeholder}")
            expression_attribute_names[placeholder] = key
            expression_attribute_values[value_placeholder] = value

        update_expression = "SET " + ", ".join(update_expression_parts)

        try:
            response = self.table.update_item(
                Key={"entry_id": entry_id},
                UpdateExpression=update_expression,
                ConditionExpression="attribute_exists(entry_id)",
                ExpressionAttributeNames=expression_attribute_names,
                ExpressionAttributeValues=_convert_for_dynamo(expression_attribute_values),
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return None
            raise _store_error("update_by_id", e)
        except BotoCoreError as e:
            raise _store_error("update_by_id", e)

        attributes = response.get("Attributes")
        return _to_entry(attributes) if attributes else None

    def delete_by_id(self, entry_id: str) -> bool:
        try:
            response = self.table.delete_item(
                Key={"entry_id": entry_id},
                ReturnValues="ALL_OLD",
            )
        except (ClientError, BotoCoreError) as e:
            raise _store_error("delete_by_id", e)
        return "Attributes" in response

    def ping(self) -> None:
        """Raise StoreError when the table cannot be reached."""
        try:
            self.table.scan(Limit=1)
        except (ClientError, BotoCoreError) as e:
            raise _store_error("ping", e)


def compile_key_condition(predicate: Predicate) -> ConditionBase:
    """
    Owner hash key plus the created_at window on the range key. DynamoDB
    rejects key attributes in a FilterExpression and allows one range operator.
    """
    condition = Key("owner").eq(predicate.owner)
    window = predicate.find(CreatedAtRange)
    if window is None:
        return condition

    start, end = _created_at_bounds(window)

    if start is not None and end is not None:
        return condition & Key("created_at").between(start, end)
    if start is not None:
        return condition & Key("created_at").gte(start)
    if end is not None:
        return condition & Key("created_at").lte(end)
    return condition


def _created_at_bounds(window: CreatedAtRange) -> Tuple[Optional[str], Optional[str]]:
    """Inclusive string bounds for the created_at range key."""
    start = to_iso(window.start) if window.start is not None else None
    end = None
    if window.end is not None:
        # stored timestamps have microsecond resolution, so [start, end) == [start, end - 1us]
        end = window.end if window.end_inclusive else window.end - timedelta(microseconds=1)
        end = to_iso(end)
    return start, end


def _is_empty_window(predicate: Predicate) -> bool:
    window = predicate.find(CreatedAtRange)
    if window is None:
        return False
    start, end = _created_at_bounds(window)
    return start is not None and end is not None and start > end


def compile_filter(predicate: Predicate) -> Optional[ConditionBase]:
    """Turn every non-key clause into a FilterExpression (None if there are none)."""
    conditions = [_clause_condition(clause) for clause in predicate.clauses]
    conditions = [condition for condition in conditions if condition is not None]
    if not conditions:
        return None
    return reduce(operator.and_, conditions)


def _clause_condition(clause: Clause) -> Optional[ConditionBase]:
    if isinstance(clause, OwnerEquals):
        # owner is the index hash key, handled by the key condition
        return None

    if isinstance(clause, TypeEquals):
        return Attr("type").eq(clause.value.value)

    if isinstance(clause, CategoryEquals):
        return Attr("category").eq(clause.value)

    if isinstance(clause, AmountRange):
        parts = []
        if clause.minimum is not None:
            parts.append(Attr("amount").gte(_convert_for_dynamo(float(clause.minimum))))
        if clause.maximum is not None:
            parts.append(Attr("amount").lte(_convert_for_dynamo(float(clause.maximum))))
        return reduce(operator.and_, parts) if parts else None

    if isinstance(clause, CreatedAtRange):
        # created_at is the index range key, handled by the key condition
        return None

    if isinstance(clause, KeywordMatch):
        return Attr(TITLE_SEARCH_ATTR).contains(clause.needle) | Attr("category").contains(clause.needle)

    raise TypeError(f"Unsupported clause: {clause!r}")


def _store_error(operation: str, error: Exception) -> StoreError:
    if isinstance(error, ClientError):
        message = error.response.get("Error", {}).get("Message", str(error))
    else:
        message = str(error)
    logger.error(f"DynamoDB {operation} failed: {message}")
    return StoreError(f"{operation} failed")


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _to_item(entry: EntryInDB) -> Dict[str, Any]:
    return _convert_for_dynamo({
        "entry_id": entry.entry_id,
        "owner": entry.owner,
        "title": entry.title,
        TITLE_SEARCH_ATTR: entry.title.lower(),
        "amount": entry.amount,
        "type": entry.type.value,
        "category": entry.category.value,
        "created_at": to_iso(entry.created_at),
        "updated_at": to_iso(entry.updated_at),
    })


def _to_entry(item: Dict[str, Any]) -> EntryInDB:
    data = _from_dynamo(item)
    return EntryInDB(
        entry_id=data["entry_id"],
        owner=data["owner"],
        title=data["title"],
        amount=data["amount"],
        type=data["type"],
        category=data["category"],
        created_at=from_iso(data["created_at"]),
        updated_at=from_iso(data.get("updated_at", data["created_at"])),
    )


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj


@lru_cache()
def get_entry_store() -> EntryStore:
    """FastAPI dependency returning the process-wide store."""
    resource_kwargs = {"region_name": settings.DYNAMO_REGION}
    if settings.DYNAMO_ENDPOINT_URL:
        resource_kwargs["endpoint_url"] = settings.DYNAMO_ENDPOINT_URL
    dynamodb = boto3.resource("dynamodb", **resource_kwargs)
    return EntryStore(dynamodb.Table(settings.DYNAMO_ENTRIES_TABLE), settings.DYNAMO_OWNER_INDEX)
