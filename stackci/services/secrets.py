"""Secret lookup with protocol-based swappable implementations.

Production code uses ``SSMSecretStore``, which reads SecureString parameters
from AWS Systems Manager Parameter Store.  The synchronous boto3 call runs in
``asyncio.to_thread`` so it never blocks the event loop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

import boto3


class SecretStore(Protocol):
    """Protocol for resolving secrets by logical key."""

    async def get(self, key: str) -> str:
        """Return the decrypted secret stored under *key*."""
        ...


class SSMSecretStore:
    """Secrets held as SSM parameters, decrypted on read."""

    def __init__(self, region: str | None = None, client: Any = None) -> None:
        self._client = client or boto3.client("ssm", region_name=region)

    async def get(self, key: str) -> str:
        response = await asyncio.to_thread(
            self._client.get_parameter, Name=key, WithDecryption=True,
        )
        return response["Parameter"]["Value"]


class InMemorySecretStore:
    """Test double backed by a plain dict; unknown keys raise ``KeyError``."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self.secrets: dict[str, str] = dict(secrets or {})

    async def get(self, key: str) -> str:
        return self.secrets[key]
