"""Provider clients for the remote video generation API."""

from typing import TYPE_CHECKING

from videogen.clients.base import (
    ProviderClient,
    ProviderFailure,
    ProviderHandle,
    ProviderResult,
    ProviderStatus,
    ProviderStatusResponse,
    ProviderVideoRequest,
    parse_provider_status,
)
from videogen.clients.contracts import CONTRACTS, SORA_1, SORA_LEGACY, ProviderContract, get_contract
from videogen.clients.http import HttpProviderClient
from videogen.clients.mock import MockProviderClient

if TYPE_CHECKING:
    from videogen.config import Settings


def create_provider_client(settings: "Settings") -> ProviderClient:
    """
    Create the provider client selected by configuration.

    Args:
        settings: Application settings

    Returns:
        HttpProviderClient, or MockProviderClient when provider_mode is "mock"
    """
    if settings.provider_mode == "mock":
        return MockProviderClient()

    return HttpProviderClient(
        api_key=settings.provider_api_key,
        contract=get_contract(settings.provider_contract),
        base_url=settings.provider_base_url,
        model=settings.provider_model or None,
        timeout=settings.provider_timeout_seconds,
        retry_policy=settings.retry_policy,
    )


__all__ = [
    "ProviderClient",
    "ProviderFailure",
    "ProviderHandle",
    "ProviderResult",
    "ProviderStatus",
    "ProviderStatusResponse",
    "ProviderVideoRequest",
    "parse_provider_status",
    "CONTRACTS",
    "SORA_1",
    "SORA_LEGACY",
    "ProviderContract",
    "get_contract",
    "HttpProviderClient",
    "MockProviderClient",
    "create_provider_client",
]
