"""Azure provider - connection configuration for the management API."""

from functools import cached_property
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from asa_provisioner.core.client import DEFAULT_API_VERSION, DEFAULT_ENDPOINT, InputsClient


class TokenAuth(BaseModel):
    """Bearer token authentication for Azure Resource Manager."""

    access_token: SecretStr


class Timeouts(BaseModel):
    """Per-operation deadlines, in seconds."""

    model_config = ConfigDict(extra="forbid")

    create: float = Field(default=30 * 60, gt=0)
    read: float = Field(default=5 * 60, gt=0)
    update: float = Field(default=30 * 60, gt=0)
    delete: float = Field(default=30 * 60, gt=0)


class AzureProvider(BaseModel):
    """Connection configuration for one Azure subscription.

    For normal use, provide ``subscription_id`` and ``auth``. For tests, use the
    ``from_client`` classmethod to inject a client.

    Examples:
        provider = AzureProvider(
            subscription_id="00000000-0000-0000-0000-000000000000",
            auth=TokenAuth(access_token="eyJ0eXAi..."),
        )
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    subscription_id: str
    endpoint: str = DEFAULT_ENDPOINT
    api_version: str = DEFAULT_API_VERSION
    auth: TokenAuth | None = None
    timeouts: Timeouts = Field(default_factory=Timeouts)

    # Injected client (for testing)
    _injected_client: InputsClient | None = None

    @classmethod
    def from_client(
        cls,
        client: InputsClient,
        *,
        subscription_id: str = "00000000-0000-0000-0000-000000000000",
        timeouts: Timeouts | None = None,
    ) -> Self:
        """Create a provider with an injected client.

        Args:
            client: A pre-configured ``InputsClient`` (or a test double)
            subscription_id: Subscription the client operates in
            timeouts: Optional per-operation deadlines
        """
        provider = cls.model_construct(
            subscription_id=subscription_id,
            endpoint=DEFAULT_ENDPOINT,
            api_version=DEFAULT_API_VERSION,
            auth=None,
            timeouts=timeouts or Timeouts(),
        )
        provider._injected_client = client
        return provider

    @cached_property
    def client(self) -> InputsClient:
        """Get the inputs client."""
        if self._injected_client is not None:
            return self._injected_client

        if self.auth is None:
            raise ValueError(
                "Either provide auth, or use AzureProvider.from_client() to inject a client"
            )

        return InputsClient(
            self.auth.access_token.get_secret_value(),
            endpoint=self.endpoint,
            api_version=self.api_version,
        )
