"""
Rate-limited, signed dispatch of Accurate API calls.

Every outbound call goes through ``Dispatcher``:

- the credential's limiter bounds in-flight requests and request rate,
- signed headers are rebuilt on every attempt,
- 429 responses back off exponentially (honouring ``Retry-After``),
- 5xx responses, timeouts, and connection failures are retried a few times,
- any other 4xx is returned to the caller as ``RequestError`` at once.

Backoff sleeps happen after the limiter slot is released so a throttled
request never blocks other callers of the same credential.
"""

import hashlib
import json
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

import requests
from requests.structures import CaseInsensitiveDict

from ..config import AccurateConfig, DispatcherConfig, get_config
from ..exceptions import ProviderError, RateLimitExceededError, RecordRejectedError, RequestError
from ..utils.logger import get_logger
from .rate_limiter import LimiterRegistry
from .signer import signed_headers

Params = Union[Mapping[str, Any], List[tuple]]


class SigningCredential(Protocol):
    """Attributes the dispatcher reads from a stored credential."""

    id: Any
    host: Any
    api_token: Any
    signature_secret: Any
    session: Any


def calculate_exponential_backoff(
    retry_count: int,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    multiplier: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        retry_count: Current retry attempt (0-based)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        multiplier: Exponential multiplier
        jitter: Whether to add ±25% randomization to prevent thundering herd

    Returns:
        Delay in seconds before next retry

    Example (base 0.5s, cap 8s):
        retry_count=0: ~0.5s
        retry_count=1: ~1s
        retry_count=2: ~2s
        retry_count=3: ~4s
        retry_count=4: ~8s (capped)
    """
    if retry_count < 0:
        return base_delay

    delay = min(base_delay * (multiplier**retry_count), max_delay)

    if jitter:
        jitter_range = delay * 0.25
        delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(delay, 0.0)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a numeric ``Retry-After`` header; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


@dataclass
class ApiRequest:
    """A provider call, relative to the credential's API base unless ``base_url`` is set."""

    method: str
    path: str
    params: Optional[Params] = None
    json: Optional[Any] = None
    data: Optional[Mapping[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    base_url: Optional[str] = None


@dataclass
class ApiResponse:
    """A fully-read provider response."""

    status: int
    headers: Mapping[str, str]
    text: str
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise ProviderError(
                f"Accurate returned a non-JSON body: {self.text[:200]}",
                status=self.status,
                body=self.text[:2000],
                cause=e,
            )

    def payload(self) -> Dict[str, Any]:
        """
        Decode an ``{s, d}`` envelope.

        Raises:
            RecordRejectedError: If the provider flagged the call as failed
        """
        data = self.json()
        if not isinstance(data, dict):
            raise ProviderError(
                "Accurate returned an unexpected payload", status=self.status, body=self.text[:2000]
            )
        if data.get("s") is False:
            raise RecordRejectedError(extract_messages(data))
        return data


def extract_messages(data: Mapping[str, Any]) -> List[str]:
    """Human-readable messages from a failed ``{s: false, d: ...}`` envelope."""
    detail = data.get("d")
    if isinstance(detail, list):
        messages = [str(m) for m in detail if m]
    elif detail:
        messages = [str(detail)]
    else:
        messages = [str(m) for m in data.get("d_message") or [] if m]
    return messages or ["Accurate rejected the request"]


@dataclass(frozen=True)
class CredentialView:
    """Immutable snapshot of a credential, safe to share with worker threads."""

    id: str
    host: str
    api_token: str
    signature_secret: str
    session: Optional[str] = None

    @classmethod
    def of(cls, credential: SigningCredential) -> "CredentialView":
        return cls(
            id=str(credential.id),
            host=credential.host,
            api_token=credential.api_token,
            signature_secret=credential.signature_secret,
            session=credential.session,
        )


def token_key(api_token: str) -> str:
    """Limiter key for calls made before a credential exists."""
    return "token:" + hashlib.sha256(api_token.encode("utf-8")).hexdigest()[:16]


class Dispatcher:
    """Sends provider calls under per-credential limits with retries."""

    def __init__(
        self,
        config: Optional[DispatcherConfig] = None,
        accurate_config: Optional[AccurateConfig] = None,
        session: Optional[requests.Session] = None,
        registry: Optional[LimiterRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        app_config = get_config()
        self.config = config or app_config.dispatcher
        self.accurate_config = accurate_config or app_config.accurate
        self.session = session or requests.Session()
        self.registry = registry or LimiterRegistry(self.config)
        self._sleep = sleep
        self.logger = get_logger()

    def api_base_url(self, host: str) -> str:
        return f"https://{host}{self.accurate_config.api_prefix}"

    def dispatch(self, credential: SigningCredential, request: ApiRequest) -> ApiResponse:
        """Send a signed call for a stored credential."""

        def build_headers(method: str, path: str) -> Dict[str, str]:
            return signed_headers(
                method,
                path,
                api_token=credential.api_token,
                signature_secret=credential.signature_secret,
                session=credential.session,
            )

        base_url = request.base_url or self.api_base_url(credential.host)
        return self._execute(str(credential.id), request, base_url, build_headers)

    def dispatch_unsigned(self, api_token: str, request: ApiRequest) -> ApiResponse:
        """Send a bearer-only call (database discovery) keyed by the token itself."""
        return self.dispatch_account(
            token_key(api_token), request, {"Authorization": f"Bearer {api_token}"}
        )

    def dispatch_account(
        self, key: str, request: ApiRequest, auth_headers: Mapping[str, str]
    ) -> ApiResponse:
        """Send an unsigned call to the account server (OAuth, discovery) under limiter ``key``."""

        def build_headers(method: str, path: str) -> Dict[str, str]:
            return dict(auth_headers)

        base_url = request.base_url or self.accurate_config.account_url
        return self._execute(key, request, base_url, build_headers)

    def _prepare(
        self,
        request: ApiRequest,
        base_url: str,
        build_headers: Callable[[str, str], Dict[str, str]],
    ) -> requests.PreparedRequest:
        prepared = requests.Request(
            method=request.method.upper(),
            url=base_url.rstrip("/") + request.path,
            params=request.params,
            json=request.json,
            data=request.data,
            headers={"Accept": "application/json", **request.headers},
        ).prepare()
        prepared.headers.update(build_headers(prepared.method or request.method, prepared.path_url))
        return prepared

    def _send(self, prepared: requests.PreparedRequest) -> ApiResponse:
        response = self.session.send(prepared, timeout=self.config.timeout_seconds)
        try:
            return ApiResponse(
                status=response.status_code,
                headers=CaseInsensitiveDict(response.headers),
                text=response.text,
                url=prepared.url or "",
            )
        finally:
            response.close()

    def _execute(
        self,
        key: str,
        request: ApiRequest,
        base_url: str,
        build_headers: Callable[[str, str], Dict[str, str]],
    ) -> ApiResponse:
        limiter = self.registry.get(key)
        rate_limit_retries = 0
        transient_retries = 0
        attempt = 0

        while True:
            attempt += 1
            prepared = self._prepare(request, base_url, build_headers)
            failure: Optional[requests.RequestException] = None
            response: Optional[ApiResponse] = None

            with limiter.slot():
                try:
                    response = self._send(prepared)
                except (
                    requests.Timeout,
                    requests.ConnectionError,
                    requests.exceptions.ChunkedEncodingError,
                ) as e:
                    failure = e

            log_extra = {
                "limiter_key": key,
                "method": prepared.method,
                "path": request.path,
                "attempt": attempt,
            }

            if response is not None and response.ok:
                return response

            if response is not None and response.status == 429:
                if rate_limit_retries >= self.config.max_rate_limit_retries:
                    raise RateLimitExceededError(
                        f"Accurate rate limit persisted after {attempt} attempts",
                        attempts=attempt,
                        path=request.path,
                    )
                delay = parse_retry_after(response.headers.get("Retry-After"))
                if delay is None:
                    delay = calculate_exponential_backoff(
                        rate_limit_retries,
                        base_delay=self.config.backoff_base_seconds,
                        max_delay=self.config.backoff_max_seconds,
                    )
                rate_limit_retries += 1
                self.logger.warning(
                    "Rate limited by Accurate, backing off",
                    extra={**log_extra, "delay_seconds": round(delay, 3)},
                )
                self._sleep(delay)
                continue

            if failure is not None or (response is not None and response.status >= 500):
                if transient_retries >= self.config.max_server_error_retries:
                    if failure is not None:
                        raise ProviderError(
                            f"Accurate unreachable after {attempt} attempts: {failure}",
                            attempts=attempt,
                            cause=failure,
                            path=request.path,
                        )
                    raise ProviderError(
                        f"Accurate server error {response.status} after {attempt} attempts",
                        status=response.status,
                        body=response.text[:2000],
                        attempts=attempt,
                        path=request.path,
                    )
                delay = calculate_exponential_backoff(
                    transient_retries,
                    base_delay=self.config.backoff_base_seconds,
                    max_delay=self.config.backoff_max_seconds,
                )
                transient_retries += 1
                self.logger.warning(
                    "Transient Accurate failure, retrying",
                    extra={
                        **log_extra,
                        "status": response.status if response is not None else None,
                        "error_type": type(failure).__name__ if failure else None,
                        "delay_seconds": round(delay, 3),
                    },
                )
                self._sleep(delay)
                continue

            raise RequestError(response.status, response.text[:2000], path=request.path)
