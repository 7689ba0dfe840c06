"""
Broker error taxonomy.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer answers with. Services raise these; only ``main.py`` turns them into
responses.
"""

from typing import Optional


class BrokerError(Exception):
    code = "broker_error"
    status_code = 500

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


# ==================
# Upstream provider
# ==================

class UpstreamUnavailable(BrokerError):
    """Upstream provider could not be reached"""
    code = "upstream_unavailable"
    status_code = 503

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UpstreamTimeout(UpstreamUnavailable):
    """Upstream provider did not answer in time"""
    code = "upstream_timeout"
    status_code = 504


class UpstreamRejected(BrokerError):
    """Upstream provider rejected the request"""
    code = "upstream_rejected"
    status_code = 422

    def __init__(self, reason: str, status: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status = status


# ==================
# Quote cache
# ==================

class SessionNotFound(BrokerError):
    """Room search session not found"""
    code = "session_not_found"
    status_code = 404


class SessionExpired(SessionNotFound):
    """Room search session has expired"""
    code = "session_expired"
    status_code = 410


# ==================
# Booking
# ==================

class InvalidPriceCode(BrokerError):
    """Room or price code is not bookable in this session"""
    code = "invalid_price_code"
    status_code = 422


class DuplicateClientReference(BrokerError):
    """A reservation already exists for this client reference"""
    code = "duplicate_client_reference"
    status_code = 409

    def __init__(self, client_reference_id: str):
        super().__init__(f"Reservation already exists for {client_reference_id}")
        self.client_reference_id = client_reference_id


class Indeterminate(BrokerError):
    """Booking outcome unknown, reservation awaits reconciliation"""
    code = "booking_indeterminate"
    status_code = 202

    def __init__(self, reservation_id: str, message: Optional[str] = None):
        super().__init__(message or f"Outcome of reservation {reservation_id} is unknown")
        self.reservation_id = reservation_id


class PersistenceFailure(BrokerError):
    """Local store unavailable"""
    code = "persistence_failure"
    status_code = 500

    def __init__(self, message: Optional[str] = None, booking_number: Optional[str] = None):
        super().__init__(message)
        self.booking_number = booking_number


class InvalidStateTransition(BrokerError):
    """Reservation cannot move to the requested status"""
    code = "invalid_state_transition"
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move reservation from {current} to {target}")
        self.current = current
        self.target = target


class ReservationNotFound(BrokerError):
    """Reservation not found"""
    code = "reservation_not_found"
    status_code = 404


# ==================
# Catalog & configuration
# ==================

class HotelNotFound(BrokerError):
    """Hotel not found locally or upstream"""
    code = "hotel_not_found"
    status_code = 404


class SyncInProgress(BrokerError):
    """A content sync is already running"""
    code = "sync_in_progress"
    status_code = 409


class ConfigurationError(BrokerError):
    """Broker configuration is incomplete"""
    code = "configuration_error"
    status_code = 500


# ==================
# Administration
# ==================

class RecordNotFound(BrokerError):
    """Record not found"""
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, record_id: str):
        super().__init__(f"{entity} {record_id} not found")
        self.entity = entity
        self.record_id = record_id


class InvalidPricingDefinition(BrokerError):
    """Price rule, commission or agency terms are not valid"""
    code = "invalid_pricing_definition"
    status_code = 422


class AgencyAlreadyApproved(BrokerError):
    """Agency is already approved"""
    code = "agency_already_approved"
    status_code = 409
