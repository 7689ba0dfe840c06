"""
Royal API Client

Wrapper for the upstream reservation API that handles:
- Bearer token lifecycle shared by every client in the process
  (refresh ahead of expiry, one refresh in flight, 401 -> refresh + retry once)
- Response envelope {result, isSuccess, message, statusCode} unwrapping
- Structured error mapping onto the broker error taxonomy
- Exponential backoff for idempotent reads; writes are sent exactly once
- Request logging with request_id and redacted payloads
"""

import time
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Any, Type, TypeVar
from dataclasses import dataclass

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from ..config import settings
from ..exceptions import (
    ConfigurationError,
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from ..schemas.royal import (
    BoardTypeDto,
    CancelBookingRequest,
    CancelBookingResponse,
    CreateBookingRequest,
    CreateBookingResponse,
    CurrencyDto,
    FacilityDto,
    HotelDetailResponse,
    HotelListItem,
    HotelListRequest,
    HotelSearchRequest,
    HotelSearchResponse,
    LocationDto,
    ReservationDetailResponse,
    RoomAttributeDto,
    RoomSearchRequest,
    RoomSearchResponse,
    RoyalEnvelope,
    TokenResponse,
)
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

M = TypeVar('M', bound=BaseModel)


@dataclass
class RoyalError:
    """Structured error from the Royal API"""
    code: str
    message: str
    status_code: int
    retryable: bool = False


# Error mapping for Royal API responses
ERROR_MAP = {
    400: RoyalError("bad_request", "Invalid request", 400, False),
    401: RoyalError("unauthorized", "Invalid or expired access token", 401, False),
    403: RoyalError("forbidden", "Access denied to this resource", 403, False),
    404: RoyalError("not_found", "Resource not found", 404, False),
    409: RoyalError("conflict", "Request conflicts with upstream state", 409, False),
    422: RoyalError("validation_error", "Invalid request data", 422, False),
    429: RoyalError("rate_limited", "Too many requests", 429, True),
    500: RoyalError("server_error", "Royal API server error", 500, True),
    502: RoyalError("bad_gateway", "Royal API gateway error", 502, True),
    503: RoyalError("service_unavailable", "Royal API unavailable", 503, True),
    504: RoyalError("gateway_timeout", "Royal API gateway timeout", 504, True),
}

SENSITIVE_KEYS = ["password", "token", "secret", "authorization", "email", "phone"]


def _sanitize_payload(payload: Any) -> Any:
    """Remove credentials and contact data before logging"""
    if isinstance(payload, dict):
        result = {}
        for k, v in payload.items():
            if any(sk in k.lower() for sk in SENSITIVE_KEYS):
                result[k] = "[REDACTED]"
            else:
                result[k] = _sanitize_payload(v)
        return result
    if isinstance(payload, list):
        return [_sanitize_payload(i) for i in payload]
    return payload


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ==================
# Token lifecycle
# ==================

class TokenManager:
    """
    Holds the upstream access token for the whole process.

    The token is refreshed ``skew_seconds`` before it expires. Concurrent
    callers that find it stale block on one lock, and only the first one
    through performs the login.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 20.0,
        skew_seconds: int = 60,
        transport: Optional[httpx.BaseTransport] = None,
        clock=None
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self.skew = timedelta(seconds=skew_seconds)
        self.transport = transport
        self._clock = clock or datetime.utcnow

        self._lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self.refresh_count = 0

    def _is_fresh(self) -> bool:
        if not self._access_token or not self._expires_at:
            return False
        return self._clock() + self.skew < self._expires_at

    def get_token(self) -> str:
        if self._is_fresh():
            return self._access_token

        with self._lock:
            # Another thread may have refreshed while we waited
            if self._is_fresh():
                return self._access_token
            self._login()
            return self._access_token

    def invalidate(self, token: Optional[str] = None) -> None:
        """
        Drop the cached token. When ``token`` is given, only drop it if it is
        still the current one, so a 401 on an old token does not discard a
        newer token another thread just fetched.
        """
        with self._lock:
            if token is None or token == self._access_token:
                self._access_token = None
                self._expires_at = None

    def _login(self) -> None:
        if not self.username or not self.password:
            raise ConfigurationError("Royal API credentials are not configured")

        url = f"{self.base_url}/api/auth/login"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json={"username": self.username, "password": self.password})
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Royal API login timed out: {e}")
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Royal API login failed: {e}")

        if response.status_code >= 500:
            raise UpstreamUnavailable(f"Royal API login failed: {response.status_code}", response.status_code)
        if response.status_code >= 400:
            raise UpstreamRejected(f"Royal API login failed: {response.status_code}", response.status_code)

        try:
            envelope = RoyalEnvelope[TokenResponse].model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UpstreamUnavailable(f"Malformed Royal API login response: {e}")

        if not envelope.is_success or envelope.result is None:
            raise UpstreamRejected(f"Royal API login error: {envelope.message}", envelope.status_code)

        self._access_token = envelope.result.access_token
        self._expires_at = _to_naive_utc(envelope.result.expiration)
        self.refresh_count += 1
        logger.info(f"Royal API token refreshed, expires at {self._expires_at.isoformat()}")


_token_manager: Optional[TokenManager] = None
_token_manager_lock = threading.Lock()


def get_token_manager() -> TokenManager:
    """Process-wide token manager built from settings"""
    global _token_manager
    if _token_manager is None:
        with _token_manager_lock:
            if _token_manager is None:
                _token_manager = TokenManager(
                    base_url=settings.royal_api_base_url,
                    username=settings.royal_api_username,
                    password=settings.royal_api_password,
                    timeout=settings.royal_api_timeout_seconds,
                    skew_seconds=settings.royal_api_token_skew_seconds,
                )
    return _token_manager


# ==================
# Client
# ==================

class RoyalClient:
    """
    Typed client for Royal API operations.

    Every method returns pydantic DTOs from ``schemas.royal`` or raises
    UpstreamRejected / UpstreamUnavailable / UpstreamTimeout.
    """

    def __init__(
        self,
        token_manager: Optional[TokenManager] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        request_id: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        base_delay: float = 1.0
    ):
        self.token_manager = token_manager or get_token_manager()
        self.base_url = (base_url or settings.royal_api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.royal_api_timeout_seconds
        self.max_retries = max(1, max_retries if max_retries is not None else settings.royal_api_max_retries)
        self.request_id = request_id or "no-request-id"
        self.transport = transport

        self.base_delay = base_delay
        self.max_delay = 30.0

    def _get_headers(self, token: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "User-Agent": "Hotel-Broker/1.0",
            "X-Request-ID": self.request_id
        }

    def _map_error(self, status_code: int, response_data: Optional[Dict]) -> RoyalError:
        """Map HTTP status code to structured error"""
        message = None
        if isinstance(response_data, dict):
            message = response_data.get("message")

        if status_code in ERROR_MAP:
            error = ERROR_MAP[status_code]
            if message:
                return RoyalError(error.code, message, status_code, error.retryable)
            return error

        if status_code >= 500:
            return RoyalError("server_error", message or f"Server error: {status_code}", status_code, True)

        return RoyalError("unknown", message or f"Unknown error: {status_code}", status_code, False)

    def _backoff(self, attempt: int) -> None:
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if delay > 0:
            time.sleep(delay)

    def _send(self, method: str, url: str, token: str, payload: Optional[Dict], params: Optional[Dict]) -> httpx.Response:
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            return client.request(method, url, headers=self._get_headers(token), json=payload, params=params)

    def _make_request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict] = None,
        params: Optional[Dict] = None,
        idempotent: bool = True,
        retry_auth: bool = True
    ) -> Any:
        """
        Make an HTTP request and return the envelope ``result``.

        Idempotent requests retry timeouts, transport errors, 429 and 5xx with
        exponential backoff. Non-idempotent requests get a single attempt.
        """
        url = f"{self.base_url}{path}"
        attempts = self.max_retries if idempotent else 1
        last_error: Optional[UpstreamUnavailable] = None

        for attempt in range(attempts):
            token = self.token_manager.get_token()
            start_time = time.time()

            try:
                response = self._send(method, url, token, payload, params)
            except httpx.TimeoutException as e:
                last_error = UpstreamTimeout(f"Royal API {method} {path} timed out: {e}")
                logger.warning(f"[{self.request_id}] {last_error.message} (attempt {attempt + 1}/{attempts})")
                if attempt + 1 < attempts:
                    self._backoff(attempt)
                continue
            except httpx.HTTPError as e:
                last_error = UpstreamUnavailable(f"Royal API {method} {path} failed: {e}")
                logger.warning(f"[{self.request_id}] {last_error.message} (attempt {attempt + 1}/{attempts})")
                if attempt + 1 < attempts:
                    self._backoff(attempt)
                continue

            duration_ms = round((time.time() - start_time) * 1000, 2)
            status_code = response.status_code
            logger.upstream_call(method, path, status_code, duration_ms)

            if status_code == 401 and retry_auth:
                logger.info(f"[{self.request_id}] Royal API token rejected, refreshing once")
                self.token_manager.invalidate(token)
                return self._make_request(method, path, payload, params, idempotent, retry_auth=False)

            try:
                data = response.json()
            except ValueError:
                data = None

            if 200 <= status_code < 300:
                if not isinstance(data, dict):
                    raise UpstreamUnavailable(f"Royal API {method} {path} returned a non-JSON body", status_code)
                envelope = RoyalEnvelope[Any].model_validate(data)
                if not envelope.is_success:
                    reason = envelope.message or "Request rejected by Royal API"
                    logger.info(f"[{self.request_id}] Royal API {method} {path} rejected: {reason}")
                    raise UpstreamRejected(reason, envelope.status_code or status_code)
                return envelope.result

            error = self._map_error(status_code, data)
            if error.retryable:
                last_error = UpstreamUnavailable(error.message, status_code)
                logger.warning(
                    f"[{self.request_id}] Royal API {method} {path} -> {status_code} "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                if attempt + 1 < attempts:
                    self._backoff(attempt)
                continue

            logger.info(
                f"[{self.request_id}] Royal API {method} {path} -> {status_code} {error.code}: "
                f"{error.message} payload={_sanitize_payload(payload)}"
            )
            raise UpstreamRejected(error.message, status_code)

        raise last_error

    def _parse(self, model: Type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise UpstreamUnavailable(f"Malformed Royal API response for {model.__name__}: {e}")

    def _parse_list(self, model: Type[M], data: Any) -> List[M]:
        try:
            return TypeAdapter(List[model]).validate_python(data or [])
        except ValidationError as e:
            raise UpstreamUnavailable(f"Malformed Royal API response for {model.__name__} list: {e}")

    # ==================
    # Content
    # ==================

    def get_currencies(self) -> List[CurrencyDto]:
        return self._parse_list(CurrencyDto, self._make_request("GET", "/api/content/currencies"))

    def get_board_types(self) -> List[BoardTypeDto]:
        return self._parse_list(BoardTypeDto, self._make_request("GET", "/api/content/board-types"))

    def get_facilities(self) -> List[FacilityDto]:
        return self._parse_list(FacilityDto, self._make_request("GET", "/api/content/facilities"))

    def get_room_attributes(self) -> List[RoomAttributeDto]:
        return self._parse_list(RoomAttributeDto, self._make_request("GET", "/api/content/room-attributes"))

    def get_locations(self) -> List[LocationDto]:
        return self._parse_list(LocationDto, self._make_request("GET", "/api/content/locations"))

    # ==================
    # Hotels
    # ==================

    def get_hotel_detail(self, hotel_code: str) -> HotelDetailResponse:
        return self._parse(HotelDetailResponse, self._make_request("GET", f"/api/hotel/{hotel_code}"))

    def get_hotel_list(self, feed_id: str, last_revision_date=None) -> List[HotelListItem]:
        """Full hotel list, or only hotels revised since ``last_revision_date``"""
        body = HotelListRequest(feed_id=feed_id, last_revision_date=last_revision_date).to_wire()
        return self._parse_list(HotelListItem, self._make_request("POST", "/api/hotel/list", payload=body))

    def search_hotels(self, request: HotelSearchRequest) -> HotelSearchResponse:
        """Availability for a set of hotel codes"""
        data = self._make_request("POST", "/api/hotel/search", payload=request.to_wire())
        return self._parse(HotelSearchResponse, data)

    # ==================
    # Booking
    # ==================

    def search_rooms(self, request: RoomSearchRequest) -> RoomSearchResponse:
        data = self._make_request("POST", "/api/booking/room-search", payload=request.to_wire())
        return self._parse(RoomSearchResponse, data)

    def create_booking(self, request: CreateBookingRequest) -> CreateBookingResponse:
        """Sent once. A timeout here means the outcome is unknown."""
        data = self._make_request("POST", "/api/booking/create", payload=request.to_wire(), idempotent=False)
        return self._parse(CreateBookingResponse, data)

    def get_reservation_detail(self, booking_number: str) -> ReservationDetailResponse:
        data = self._make_request("GET", f"/api/booking/detail/{booking_number}")
        return self._parse(ReservationDetailResponse, data)

    def find_reservation(self, client_reference_id: str) -> Optional[ReservationDetailResponse]:
        """
        Look up a booking by the reference we sent with it.

        Returns None when upstream has no booking for that reference.
        """
        try:
            data = self._make_request("GET", f"/api/booking/by-reference/{client_reference_id}")
        except UpstreamRejected as e:
            if e.status == 404:
                return None
            raise
        if not data:
            return None
        return self._parse(ReservationDetailResponse, data)

    def cancel_booking(self, booking_number: str) -> CancelBookingResponse:
        body = CancelBookingRequest(booking_number=booking_number).to_wire()
        data = self._make_request("POST", "/api/booking/cancel", payload=body, idempotent=False)
        return self._parse(CancelBookingResponse, data)


def get_royal_client(request_id: Optional[str] = None) -> RoyalClient:
    """Create a client sharing the process-wide token"""
    return RoyalClient(request_id=request_id)
