"""Durable event queue backed by a DynamoDB table and its stream.

The webhook listener writes every verified GitHub delivery as one item.
The table's stream then delivers each new item to the builder.
Only ``INSERT`` stream records are work; modifications and removals of
items are housekeeping on the table itself.

Item layout::

    id         S   X-GitHub-Delivery
    type       S   X-GitHub-Event (e.g. "push")
    payload    S   compacted JSON body of the webhook
    timestamp  S   ISO-8601 receipt time
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import boto3
from boto3.dynamodb.types import TypeDeserializer

EVENT_TYPE_PUSH = "push"
STREAM_INSERT = "INSERT"

_deserializer = TypeDeserializer()


@dataclass(frozen=True)
class StoredEvent:
    """A webhook delivery as written to the event table."""

    id: str
    type: str
    payload: str


class EventStore(Protocol):
    """Protocol for persisting inbound webhook deliveries."""

    async def put(self, delivery_id: str, event_type: str, payload: str) -> None:
        """Persist one delivery."""
        ...


def compact_json(payload: str) -> str:
    """Strip insignificant whitespace; non-JSON payloads pass through."""
    try:
        return json.dumps(json.loads(payload), separators=(",", ":"))
    except ValueError:
        return payload


def event_item(delivery_id: str, event_type: str, payload: str) -> dict[str, dict[str, str]]:
    """Build the low-level DynamoDB item for a delivery."""
    return {
        "id": {"S": delivery_id},
        "type": {"S": event_type},
        "payload": {"S": compact_json(payload)},
        "timestamp": {"S": datetime.now(timezone.utc).isoformat()},
    }


class DynamoEventStore:
    """Production implementation backed by DynamoDB ``PutItem``."""

    def __init__(self, table: str, region: str | None = None, client: Any = None) -> None:
        self._table = table
        self._client = client or boto3.client("dynamodb", region_name=region)

    async def put(self, delivery_id: str, event_type: str, payload: str) -> None:
        await asyncio.to_thread(
            self._client.put_item,
            TableName=self._table,
            Item=event_item(delivery_id, event_type, payload),
        )


class InMemoryEventStore:
    """Test double that records stored deliveries."""

    def __init__(self) -> None:
        self.events: list[StoredEvent] = []

    async def put(self, delivery_id: str, event_type: str, payload: str) -> None:
        self.events.append(StoredEvent(delivery_id, event_type, compact_json(payload)))


def read_stream_record(record: Mapping[str, Any]) -> StoredEvent | None:
    """Decode a DynamoDB stream record into a stored event.

    Returns None for anything other than an ``INSERT``.

    Raises:
        KeyError: If the new image lacks a required attribute.
    """
    if record.get("eventName") != STREAM_INSERT:
        return None

    image = record.get("dynamodb", {}).get("NewImage", {})
    item = {key: _deserializer.deserialize(value) for key, value in image.items()}
    return StoredEvent(
        id=str(item.get("id", "")),
        type=str(item["type"]),
        payload=str(item["payload"]),
    )
