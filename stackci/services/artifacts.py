"""Artifact store abstraction for templates handed to the pipeline stack.

``S3ArtifactStore`` writes objects into the shared artifact bucket and
returns their ``bucket/key`` location, which is the form CodePipeline
parameters expect.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import boto3


class ArtifactStore(Protocol):
    """Protocol for storing build artifacts."""

    @property
    def location(self) -> str:
        """Name of the bucket (or equivalent) backing the store."""
        ...

    async def put(self, key: str, body: bytes) -> str:
        """Store *body* under *key* and return its ``bucket/key`` location."""
        ...


class S3ArtifactStore:
    """Production implementation backed by an S3 bucket."""

    def __init__(self, bucket: str, region: str | None = None, client: Any = None) -> None:
        self._bucket = bucket
        self._client = client or boto3.client("s3", region_name=region)

    @property
    def location(self) -> str:
        return self._bucket

    async def put(self, key: str, body: bytes) -> str:
        await asyncio.to_thread(
            self._client.put_object, Bucket=self._bucket, Key=key, Body=body,
        )
        return f"{self._bucket}/{key}"


class InMemoryArtifactStore:
    """Test double that keeps objects in a dict."""

    def __init__(self, bucket: str = "artifact-store") -> None:
        self._bucket = bucket
        self.objects: dict[str, bytes] = {}

    @property
    def location(self) -> str:
        return self._bucket

    async def put(self, key: str, body: bytes) -> str:
        self.objects[key] = body
        return f"{self._bucket}/{key}"
