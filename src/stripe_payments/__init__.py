"""
Public facade for the stripe-payments client package.

The most useful pieces are re-exported here so integrators can
``from stripe_payments import ...`` without navigating the package.
"""

from ._version import __version__
from .api import create_api_client, create_token, retrieve_source
from .core import (
    API_VERSION,
    APIClient,
    Card,
    ClientConfig,
    ConfigError,
    Customer,
    DecodingError,
    EphemeralKey,
    InvalidInputError,
    NotFoundError,
    PaymentsError,
    PlatformError,
    RequestCancelledError,
    RequestHandle,
    Source,
    Token,
    TransportError,
    UnauthorizedError,
    load_client_config,
)

__all__ = (
    "API_VERSION",
    "APIClient",
    "Card",
    "ClientConfig",
    "ConfigError",
    "Customer",
    "DecodingError",
    "EphemeralKey",
    "InvalidInputError",
    "NotFoundError",
    "PaymentsError",
    "PlatformError",
    "RequestCancelledError",
    "RequestHandle",
    "Source",
    "Token",
    "TransportError",
    "UnauthorizedError",
    "__version__",
    "create_api_client",
    "create_token",
    "load_client_config",
    "retrieve_source",
)
