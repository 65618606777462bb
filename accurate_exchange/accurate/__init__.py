"""Accurate Online API client: OAuth, discovery, signing, and rate-limited dispatch."""

from .dispatcher import (
    ApiRequest,
    ApiResponse,
    Dispatcher,
    calculate_exponential_backoff,
    parse_retry_after,
)
from .host_resolver import HostResolver, normalize_host
from .inventory import InventoryAdjustmentResource
from .oauth import OAuthClient, build_authorize_url
from .rate_limiter import LimiterRegistry, RateLimiter
from .resources import ResourceAdapter, get_resource, register_resource, registered_resources
from .signer import sign, signed_headers

__all__ = [
    "ApiRequest",
    "ApiResponse",
    "Dispatcher",
    "calculate_exponential_backoff",
    "parse_retry_after",
    "HostResolver",
    "normalize_host",
    "InventoryAdjustmentResource",
    "OAuthClient",
    "build_authorize_url",
    "LimiterRegistry",
    "RateLimiter",
    "ResourceAdapter",
    "get_resource",
    "register_resource",
    "registered_resources",
    "sign",
    "signed_headers",
]
