"""
Cosmos DB cursor store.

Stores one document per stream key, partitioned on the key itself:

    {
        "id": "{stream_key}",
        "stream_key": "{stream_key}",
        "position": {"kind": "block", "height": 1234, "ordinal": 0},
        "updated_at": "{iso_timestamp}"
    }

``upsert_item`` replaces the whole document in one request, so a failed
save leaves the previous document intact.

Supports multiple authentication methods:
- Key-based authentication (if org policy allows)
- Azure AD via DefaultAzureCredential (recommended)
- Azure Managed Identity
- Service Principal
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError, CosmosResourceNotFoundError

from ..exceptions import ConfigurationError, CursorPersistError
from ..position import Position, position_from_dict
from .base import CursorStore

logger = logging.getLogger(__name__)


class CosmosAuthMethod(Enum):
    """Authentication method for Cosmos DB.

    KEY: Use account key (not recommended for production)
    DEFAULT_CREDENTIAL: Use Azure DefaultAzureCredential (recommended)
    MANAGED_IDENTITY: Use Azure Managed Identity explicitly
    SERVICE_PRINCIPAL: Use Service Principal with client_id/client_secret
    """

    KEY = "key"
    DEFAULT_CREDENTIAL = "default_credential"
    MANAGED_IDENTITY = "managed_identity"
    SERVICE_PRINCIPAL = "service_principal"


@dataclass
class CosmosCursorConfig:
    """Configuration for the Cosmos DB cursor store.

    Environment Variables:
        STREAM_CHECKPOINT_COSMOS_ENDPOINT: Cosmos DB endpoint URL
        STREAM_CHECKPOINT_COSMOS_KEY: Cosmos DB key (if using key auth)
        STREAM_CHECKPOINT_COSMOS_DATABASE: Database name (default: stream-checkpoint)
        STREAM_CHECKPOINT_COSMOS_CONTAINER: Container name (default: stream_cursors)
        STREAM_CHECKPOINT_COSMOS_AUTH_METHOD: Auth method (default: default_credential)
        AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET: Service principal
    """

    endpoint: str
    auth_method: CosmosAuthMethod = CosmosAuthMethod.DEFAULT_CREDENTIAL
    key: str | None = None
    database_name: str = "stream-checkpoint"
    container_name: str = "stream_cursors"
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    @classmethod
    def from_env(cls) -> CosmosCursorConfig:
        """Create config from environment variables.

        Raises:
            ConfigurationError: If the endpoint is not set
        """
        endpoint = os.environ.get("STREAM_CHECKPOINT_COSMOS_ENDPOINT")
        if not endpoint:
            raise ConfigurationError(
                "STREAM_CHECKPOINT_COSMOS_ENDPOINT", "environment variable not set"
            )

        auth_method_str = os.environ.get("STREAM_CHECKPOINT_COSMOS_AUTH_METHOD", "default_credential")
        try:
            auth_method = CosmosAuthMethod(auth_method_str.lower())
        except ValueError:
            auth_method = CosmosAuthMethod.DEFAULT_CREDENTIAL

        return cls(
            endpoint=endpoint,
            auth_method=auth_method,
            key=os.environ.get("STREAM_CHECKPOINT_COSMOS_KEY"),
            database_name=os.environ.get("STREAM_CHECKPOINT_COSMOS_DATABASE", "stream-checkpoint"),
            container_name=os.environ.get("STREAM_CHECKPOINT_COSMOS_CONTAINER", "stream_cursors"),
            azure_tenant_id=os.environ.get("AZURE_TENANT_ID"),
            azure_client_id=os.environ.get("AZURE_CLIENT_ID"),
            azure_client_secret=os.environ.get("AZURE_CLIENT_SECRET"),
        )


def _get_credential(config: CosmosCursorConfig) -> Any:
    """Get the appropriate credential based on auth method.

    Raises:
        ConfigurationError: If required credential settings are missing
    """
    auth_method = config.auth_method

    if auth_method == CosmosAuthMethod.KEY:
        if not config.key:
            raise ConfigurationError("cosmos_key", "required for KEY authentication")
        return config.key

    if auth_method == CosmosAuthMethod.DEFAULT_CREDENTIAL:
        from azure.identity.aio import DefaultAzureCredential

        return DefaultAzureCredential()

    if auth_method == CosmosAuthMethod.MANAGED_IDENTITY:
        from azure.identity.aio import ManagedIdentityCredential

        # User-assigned identity when a client_id is given, system-assigned otherwise
        if config.azure_client_id:
            return ManagedIdentityCredential(client_id=config.azure_client_id)
        return ManagedIdentityCredential()

    if auth_method == CosmosAuthMethod.SERVICE_PRINCIPAL:
        if not all([config.azure_tenant_id, config.azure_client_id, config.azure_client_secret]):
            raise ConfigurationError(
                "azure_client_secret",
                "azure_tenant_id, azure_client_id and azure_client_secret "
                "required for SERVICE_PRINCIPAL authentication",
            )
        from azure.identity.aio import ClientSecretCredential

        return ClientSecretCredential(
            tenant_id=config.azure_tenant_id,
            client_id=config.azure_client_id,
            client_secret=config.azure_client_secret,
        )

    raise ConfigurationError("auth_method", "unsupported auth method", str(auth_method))


class CosmosCursorStore(CursorStore):
    """Cursor store persisting positions as Cosmos DB documents."""

    def __init__(self, config: CosmosCursorConfig, container: ContainerProxy | None = None):
        """
        Args:
            config: Cosmos DB configuration
            container: Pre-built container proxy (skips client setup)
        """
        self.config = config
        self._client: CosmosClient | None = None
        self._credential: Any = None
        self._container = container
        self._initialized = container is not None

    @classmethod
    async def create(cls, config: CosmosCursorConfig | None = None) -> CosmosCursorStore:
        """Create and initialize the store."""
        if config is None:
            config = CosmosCursorConfig.from_env()

        store = cls(config)
        await store.initialize()
        return store

    async def initialize(self) -> None:
        """Connect and ensure database and container exist."""
        if self._initialized:
            return

        self._credential = _get_credential(self.config)
        self._client = CosmosClient(self.config.endpoint, credential=self._credential)
        try:
            database = await self._client.create_database_if_not_exists(id=self.config.database_name)
            self._container = await database.create_container_if_not_exists(
                id=self.config.container_name,
                partition_key=PartitionKey(path="/stream_key"),
            )
        except CosmosHttpResponseError as e:
            await self.close()
            raise CursorPersistError("initialize", self.config.container_name, e) from e

        self._initialized = True
        logger.info(
            f"Cosmos cursor store ready: {self.config.database_name}/{self.config.container_name}"
        )

    def _get_container(self, stream_key: str, operation: str) -> ContainerProxy:
        if self._container is None:
            raise CursorPersistError(operation, stream_key, RuntimeError("Store not initialized"))
        return self._container

    async def load(self, stream_key: str) -> Position | None:
        container = self._get_container(stream_key, "load")
        try:
            document = await container.read_item(item=stream_key, partition_key=stream_key)
        except CosmosResourceNotFoundError:
            return None
        except CosmosHttpResponseError as e:
            raise CursorPersistError("load", stream_key, e) from e

        try:
            return position_from_dict(document["position"])
        except (KeyError, TypeError, ValueError) as e:
            raise CursorPersistError("load", stream_key, e) from e

    async def save(self, stream_key: str, position: Position) -> None:
        container = self._get_container(stream_key, "save")
        document = {
            "id": stream_key,
            "stream_key": stream_key,
            "position": position.to_dict(),
            "updated_at": datetime.now(UTC).isoformat(),
        }
        try:
            await container.upsert_item(document)
        except CosmosHttpResponseError as e:
            raise CursorPersistError("save", stream_key, e) from e

    async def delete(self, stream_key: str) -> bool:
        container = self._get_container(stream_key, "delete")
        try:
            await container.delete_item(item=stream_key, partition_key=stream_key)
            return True
        except CosmosResourceNotFoundError:
            return False
        except CosmosHttpResponseError as e:
            raise CursorPersistError("delete", stream_key, e) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._container = None
            self._initialized = False
        if self._credential is not None and hasattr(self._credential, "close"):
            await self._credential.close()
        self._credential = None
