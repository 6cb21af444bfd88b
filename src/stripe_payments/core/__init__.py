"""
Core primitives: configuration, records, transport and the API client.
"""

from .client import APIClient
from .config import (
    API_VERSION,
    DEFAULT_API_URL,
    ClientConfig,
    ConfigError,
    layered_environment,
    load_client_config,
    read_dotenv,
)
from .customers import (
    CustomerContext,
    add_source,
    detach_source,
    retrieve_customer,
    shared_session,
    update_customer,
)
from .dispatch import Dispatcher, RequestHandle
from .errors import (
    DecodingError,
    InvalidInputError,
    NotFoundError,
    PaymentsError,
    PlatformError,
    RequestCancelledError,
    TransportError,
    UnauthorizedError,
)
from .models import Card, Customer, EphemeralKey, Source, Token, parse_source_object
from .payloads import encode_form, flatten_parameters, parse_bracketed_pairs

__all__ = [
    "API_VERSION",
    "APIClient",
    "Card",
    "ClientConfig",
    "ConfigError",
    "Customer",
    "CustomerContext",
    "DEFAULT_API_URL",
    "DecodingError",
    "Dispatcher",
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
    "add_source",
    "detach_source",
    "encode_form",
    "flatten_parameters",
    "load_client_config",
    "layered_environment",
    "parse_bracketed_pairs",
    "parse_source_object",
    "read_dotenv",
    "retrieve_customer",
    "shared_session",
    "update_customer",
]
