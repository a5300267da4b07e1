"""DynamoDB service wrapper for booking, payment and catalog tables."""

import os
from enum import Enum
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import BaseModel

# DynamoDB error codes that indicate a transient condition worth retrying
TRANSIENT_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "TransactionConflictException",
        "InternalServerError",
    }
)


def model_to_item(model: BaseModel) -> dict[str, Any]:
    """Dump a pydantic model as a DynamoDB item.

    Decimals stay Decimal, enums become their values, datetimes become ISO
    strings and None values are dropped.
    """
    return to_attribute_value(model.model_dump(exclude_none=True))


def to_attribute_value(value: Any) -> Any:
    """Convert a python value to something boto3 can serialize."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: to_attribute_value(inner) for key, inner in value.items()}
    if isinstance(value, list):
        return [to_attribute_value(inner) for inner in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def is_transient_error(error: Exception) -> bool:
    """Check whether a boto ClientError is a throttling or conflict error."""
    if not isinstance(error, ClientError):
        return False
    return error.response.get("Error", {}).get("Code") in TRANSIENT_ERROR_CODES


class DynamoDBService:
    """Thin boto3 wrapper over the booking, payment, catalog and webhook tables.

    Physical table names are ``{prefix}-{table}``, e.g.
    ``charter-prod-tour-booking-payments``. Services pass the unprefixed name.
    """

    def __init__(self, environment: str | None = None) -> None:
        self.environment = environment or os.getenv("ENVIRONMENT", "dev")
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        self.name_prefix = os.getenv(
            "DYNAMODB_TABLE_PREFIX", f"charter-{self.environment}"
        )
        self._dynamodb = boto3.resource("dynamodb")

    def table_name(self, table: str) -> str:
        return f"{self.name_prefix}-{table}"

    def _get_table(self, table: str) -> Any:
        return self._dynamodb.Table(self.table_name(table))

    @staticmethod
    def _condition_failed(error: ClientError) -> bool:
        return error.response["Error"]["Code"] == "ConditionalCheckFailedException"

    # Items

    def get_item(
        self,
        table: str,
        key: dict[str, Any],
        consistent_read: bool = False,
    ) -> dict[str, Any] | None:
        """Fetch one item, or None when the key is absent.

        Refund claims re-read payments with ``consistent_read=True`` so the
        expected ``refunded_amount`` is never stale.
        """
        response = self._get_table(table).get_item(
            Key=key, ConsistentRead=consistent_read
        )
        item: dict[str, Any] | None = response.get("Item")
        return item

    def put_item(
        self,
        table: str,
        item: dict[str, Any],
        condition_expression: str | None = None,
    ) -> bool:
        """Write an item. Returns False when ``condition_expression`` fails."""
        kwargs: dict[str, Any] = {"Item": item}
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        try:
            self._get_table(table).put_item(**kwargs)
        except ClientError as e:
            if self._condition_failed(e):
                return False
            raise
        return True

    def update_item(
        self,
        table: str,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_values: dict[str, Any],
        expression_attribute_names: dict[str, str] | None = None,
        condition_expression: str | None = None,
    ) -> dict[str, Any] | None:
        """Apply an update expression and return the item as stored afterwards.

        Returns None instead of raising when ``condition_expression`` fails,
        which is how a lost refund claim is detected.
        """
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": update_expression,
            "ExpressionAttributeValues": expression_attribute_values,
            "ReturnValues": "ALL_NEW",
        }
        if expression_attribute_names:
            kwargs["ExpressionAttributeNames"] = expression_attribute_names
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression
        try:
            response = self._get_table(table).update_item(**kwargs)
        except ClientError as e:
            if self._condition_failed(e):
                return None
            raise
        attrs: dict[str, Any] | None = response.get("Attributes")
        return attrs

    # Queries

    def query(
        self,
        table: str,
        key_condition: Any,
        index_name: str | None = None,
        filter_expression: Any | None = None,
        scan_index_forward: bool = True,
    ) -> list[dict[str, Any]]:
        """Query a table or index and return every matching item.

        All pages are read, so a filter expression never hides matches
        behind a LastEvaluatedKey. Payments of a booking are returned
        newest first with ``scan_index_forward=False`` on ``booking-index``.
        """
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": scan_index_forward,
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression

        table_resource = self._get_table(table)
        items: list[dict[str, Any]] = []
        while True:
            response = table_resource.query(**kwargs)
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def query_by_gsi(
        self,
        table: str,
        index_name: str,
        partition_key_name: str,
        partition_key_value: str,
    ) -> list[dict[str, Any]]:
        """Look up items through a single-attribute GSI (intent or refund ID)."""
        return self.query(
            table,
            Key(partition_key_name).eq(partition_key_value),
            index_name=index_name,
        )
