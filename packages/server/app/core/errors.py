"""
Typed error taxonomy.

Authentication failures, not-found, conflicts and upstream resolution errors are
exceptions. Authorization denials are not: they are ``AccessDecision`` values
(see ``app.core.access``), so callers can always tell a denial from an error.
"""

from __future__ import annotations

from typing import Optional


class OTAError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "", *, code: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code is not None:
            self.code = code


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class InputError(OTAError):
    code = "INVALID_INPUT"
    status_code = 400


# ---------------------------------------------------------------------------
# Authentication (never conflated with authorization denials)
# ---------------------------------------------------------------------------

class AuthFailure(OTAError):
    code = "UNAUTHENTICATED"
    status_code = 401


class MalformedCredential(AuthFailure):
    code = "MALFORMED_CREDENTIAL"


class InvalidCredential(AuthFailure):
    code = "INVALID_CREDENTIAL"


class Unauthenticated(AuthFailure):
    """No usable credential, unknown/expired session or inactive account."""


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

class ResourceNotFound(OTAError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(OTAError):
    code = "CONFLICT"
    status_code = 409


class OperationNotPermitted(OTAError):
    """A business rule forbids the operation for this caller (e.g. admins editing owners)."""
    code = "FORBIDDEN"
    status_code = 403


# ---------------------------------------------------------------------------
# Upstream / store resolution errors (access checks default-deny on these)
# ---------------------------------------------------------------------------

class ResolutionError(OTAError):
    code = "RESOLUTION_ERROR"
    status_code = 503


class StoreError(ResolutionError):
    code = "STORE_ERROR"


class StoreConflict(StoreError):
    """A unique or check constraint rejected the write."""
    code = "CONFLICT"
    status_code = 409


class PermissionResolutionError(ResolutionError):
    code = "PERMISSION_RESOLUTION_ERROR"


class IdentityProviderError(ResolutionError):
    code = "IDENTITY_PROVIDER_ERROR"


class TokenVerificationError(Exception):
    """Raised by identity providers when a token is rejected.

    Internal to the identity layer; the resolver turns it into ``InvalidCredential``.
    """


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------

class ProvisioningError(OTAError):
    """A saga step failed. ``cause`` is the original error, never a compensation failure."""

    code = "PROVISIONING_FAILED"
    status_code = 500

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"{step} failed: {cause}")
        self.step = step
        self.cause = cause
        # A typed cause (e.g. a unique-constraint conflict) keeps its status
        if isinstance(cause, OTAError):
            self.status_code = cause.status_code
