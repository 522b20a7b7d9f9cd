"""Self-invocation: dispatch a fresh, independent execution of a function.

Used by the timeout-continuation controllers to hand unfinished work to a
new Lambda invocation.  ``LambdaInvoker`` performs an asynchronous
(``InvocationType="Event"``) invoke, which Lambda acknowledges with 202 and
queues; ``InMemoryInvoker`` records dispatched payloads for assertions.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Protocol

import boto3


class InvocationError(Exception):
    """Lambda did not accept the asynchronous invocation."""


class SelfInvoker(Protocol):
    """Protocol for fire-and-forget function dispatch."""

    async def invoke(self, function_name: str, payload: Any) -> None:
        """Queue an invocation of *function_name* carrying *payload*."""
        ...


class LambdaInvoker:
    """Production implementation backed by ``lambda:InvokeFunction``."""

    def __init__(self, region: str | None = None, client: Any = None) -> None:
        self._client = client or boto3.client("lambda", region_name=region)

    async def invoke(self, function_name: str, payload: Any) -> None:
        """Invoke asynchronously; anything other than 202 is an error."""
        response = await asyncio.to_thread(
            self._client.invoke,
            FunctionName=function_name,
            InvocationType="Event",
            Payload=json.dumps(payload).encode("utf-8"),
        )
        status_code = response.get("StatusCode")
        if status_code != 202:
            if response.get("FunctionError"):
                raise InvocationError(response["FunctionError"])
            raise InvocationError(f"lambda invocation resulted in status code: {status_code}")


class InMemoryInvoker:
    """Test double that records invocations for assertions."""

    def __init__(self) -> None:
        self.invocations: list[dict] = []

    async def invoke(self, function_name: str, payload: Any) -> None:
        """Append the invocation to the in-memory list."""
        self.invocations.append({"function_name": function_name, "payload": payload})
