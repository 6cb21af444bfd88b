"""
Records returned by the platform.

Each record keeps the decoded JSON in ``raw`` and exposes only the fields
integrations commonly read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar, Union

from .errors import DecodingError

__all__ = [
    "Card",
    "Customer",
    "EphemeralKey",
    "Source",
    "Token",
    "decode_payload",
    "parse_source_object",
]

T = TypeVar("T")


def _require_mapping(payload: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise DecodingError(f"Expected a JSON object for {kind}, got {type(payload).__name__}")
    return payload


def _require_id(payload: Mapping[str, Any], kind: str) -> str:
    identifier = payload.get("id")
    if not isinstance(identifier, str) or not identifier:
        raise DecodingError(f"{kind} payload is missing 'id'")
    return identifier


def _check_object(payload: Mapping[str, Any], expected: str) -> None:
    # Older API versions omit the discriminator; only a mismatch is an error.
    actual = payload.get("object")
    if actual is not None and actual != expected:
        raise DecodingError(f"Expected a '{expected}' object, got '{actual}'")


def _optional_mapping(payload: Mapping[str, Any], key: str, kind: str) -> Dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise DecodingError(f"{kind} '{key}' must be a JSON object, got {type(value).__name__}")
    return dict(value)


def _optional_list(payload: Mapping[str, Any], key: str, kind: str) -> List[Any]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodingError(f"{kind} '{key}' must be a JSON array, got {type(value).__name__}")
    return value


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as exc:
        raise DecodingError(f"Invalid timestamp {value!r}") from exc


def decode_payload(decode: Callable[[Any], T], payload: Any) -> T:
    """Run a record decoder, reporting any malformed payload as :class:`DecodingError`."""
    try:
        return decode(payload)
    except DecodingError:
        raise
    except (TypeError, ValueError, AttributeError) as exc:
        raise DecodingError(f"Malformed response payload: {exc}") from exc


@dataclass(frozen=True)
class Card:
    id: str
    brand: Optional[str]
    last4: Optional[str]
    exp_month: Optional[int]
    exp_year: Optional[int]
    funding: Optional[str]
    country: Optional[str]
    customer: Optional[str]
    raw: Dict[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_response(cls, payload: Any) -> "Card":
        data = _require_mapping(payload, "card")
        _check_object(data, "card")
        return cls(
            id=_require_id(data, "Card"),
            brand=data.get("brand"),
            last4=data.get("last4"),
            exp_month=data.get("exp_month"),
            exp_year=data.get("exp_year"),
            funding=data.get("funding"),
            country=data.get("country"),
            customer=data.get("customer"),
            raw=dict(data),
        )


@dataclass(frozen=True)
class Token:
    id: str
    type: Optional[str]
    livemode: bool
    created: Optional[datetime]
    used: bool
    card: Optional[Card]
    raw: Dict[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_response(cls, payload: Any) -> "Token":
        data = _require_mapping(payload, "token")
        _check_object(data, "token")
        card_payload = data.get("card")
        return cls(
            id=_require_id(data, "Token"),
            type=data.get("type"),
            livemode=bool(data.get("livemode", False)),
            created=_timestamp(data.get("created")),
            used=bool(data.get("used", False)),
            card=Card.from_response(card_payload) if card_payload else None,
            raw=dict(data),
        )


@dataclass(frozen=True)
class Source:
    id: str
    type: Optional[str]
    status: Optional[str]
    flow: Optional[str]
    usage: Optional[str]
    amount: Optional[int]
    currency: Optional[str]
    client_secret: Optional[str] = field(repr=False)
    livemode: bool
    created: Optional[datetime]
    metadata: Dict[str, Any]
    raw: Dict[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_response(cls, payload: Any) -> "Source":
        data = _require_mapping(payload, "source")
        _check_object(data, "source")
        return cls(
            id=_require_id(data, "Source"),
            type=data.get("type"),
            status=data.get("status"),
            flow=data.get("flow"),
            usage=data.get("usage"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            client_secret=data.get("client_secret"),
            livemode=bool(data.get("livemode", False)),
            created=_timestamp(data.get("created")),
            metadata=_optional_mapping(data, "metadata", "Source"),
            raw=dict(data),
        )


PaymentSource = Union[Card, Source]


def parse_source_object(payload: Any) -> PaymentSource:
    """Decode a customer source, which is either a card or a source."""
    data = _require_mapping(payload, "customer source")
    kind = data.get("object")
    if kind == "card":
        return Card.from_response(data)
    if kind == "source":
        return Source.from_response(data)
    raise DecodingError(f"Unsupported customer source object '{kind}'")


@dataclass(frozen=True)
class Customer:
    id: str
    email: Optional[str]
    description: Optional[str]
    default_source: Optional[str]
    sources: List[PaymentSource]
    metadata: Dict[str, Any]
    raw: Dict[str, Any] = field(repr=False, compare=False)

    @classmethod
    def from_response(cls, payload: Any) -> "Customer":
        data = _require_mapping(payload, "customer")
        _check_object(data, "customer")

        sources: List[PaymentSource] = []
        source_list = _optional_mapping(data, "sources", "Customer")
        for item in _optional_list(source_list, "data", "Customer sources"):
            # Skip source kinds this client does not model (bank accounts, ...).
            if isinstance(item, Mapping) and item.get("object") in ("card", "source"):
                sources.append(parse_source_object(item))

        default_source = data.get("default_source")
        if isinstance(default_source, Mapping):
            default_source = default_source.get("id")

        return cls(
            id=_require_id(data, "Customer"),
            email=data.get("email"),
            description=data.get("description"),
            default_source=default_source,
            sources=sources,
            metadata=_optional_mapping(data, "metadata", "Customer"),
            raw=dict(data),
        )


@dataclass(frozen=True)
class EphemeralKey:
    """
    Short-lived, customer-scoped credential minted by the integration's backend.

    The client reads the key once per call and never caches it; refreshing an
    expiring key is the caller's job.
    """

    id: str
    secret: str = field(repr=False)
    customer_id: Optional[str]
    created: Optional[datetime]
    expires: Optional[datetime]
    livemode: bool = False

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires is None:
            return False
        current = now if now is not None else datetime.now(timezone.utc)
        if current.tzinfo is None:
            # Naive datetimes are taken to be UTC.
            current = current.replace(tzinfo=timezone.utc)
        expires = self.expires
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return current >= expires

    @classmethod
    def from_response(cls, payload: Any) -> "EphemeralKey":
        data = _require_mapping(payload, "ephemeral key")
        _check_object(data, "ephemeral_key")

        secret = data.get("secret")
        if not isinstance(secret, str) or not secret:
            raise DecodingError("Ephemeral key payload is missing 'secret'")

        customer_id = None
        for associated in _optional_list(data, "associated_objects", "Ephemeral key"):
            if isinstance(associated, Mapping) and associated.get("type") == "customer":
                customer_id = associated.get("id")
                if not isinstance(customer_id, str) or not customer_id:
                    raise DecodingError(
                        f"Ephemeral key customer id must be a string, got {customer_id!r}"
                    )
                break

        return cls(
            id=_require_id(data, "Ephemeral key"),
            secret=secret,
            customer_id=customer_id,
            created=_timestamp(data.get("created")),
            expires=_timestamp(data.get("expires")),
            livemode=bool(data.get("livemode", False)),
        )
