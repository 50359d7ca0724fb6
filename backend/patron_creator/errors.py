"""Exception hierarchy for patron-creator.

Every error a caller may see over HTTP derives from ``PatronCreatorError``
and knows its status code and problem-detail type.  Contract violations
(``NoILSClient``, ``NotILSValid``) derive from ``RuntimeError`` instead so
they are never turned into a user-facing response.
"""

from __future__ import annotations

from typing import Any

PROBLEM_TYPE_BASE: str = "http://librarysimplified.org/terms/problem/"


class PatronCreatorError(Exception):
    """Base class for errors that map onto a problem-detail response."""

    status: int = 500
    type: str = "patron-creator-error"
    title: str = "Internal Server Error"

    def __init__(self, message: str = "", *, debug_message: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.debug_message = debug_message

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {
            "status": self.status,
            "type": PROBLEM_TYPE_BASE + self.type,
            "title": self.title,
            "detail": self.message,
        }
        if self.debug_message:
            detail["debug_message"] = self.debug_message
        return detail


class ConfigurationError(PatronCreatorError):
    type = "configuration-error"


# -- Caller input errors --


class InvalidRequest(PatronCreatorError):
    status = 400
    type = "invalid-request"
    title = "Invalid Request"

    def __init__(
        self,
        message: str = "",
        *,
        errors: dict[str, str] | None = None,
        debug_message: str | None = None,
    ) -> None:
        super().__init__(message, debug_message=debug_message)
        self.errors = dict(errors or {})

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        if self.errors:
            detail["errors"] = self.errors
        return detail


class TermsNotAccepted(InvalidRequest):
    type = "terms-not-accepted"
    title = "Terms Not Accepted"


class MissingRequiredValues(InvalidRequest):
    type = "missing-required-values"
    title = "Missing Required Values"


class InvalidBarcode(InvalidRequest):
    type = "invalid-barcode"
    title = "Invalid Barcode"


class CardValidationFailed(InvalidRequest):
    type = "invalid-card"
    title = "Card Validation Failed"


class DependentIneligible(InvalidRequest):
    type = "no-dependent-eligibility"
    title = "Not Eligible For Dependents"


class BadUsername(InvalidRequest):
    title = "Bad Username"

    def __init__(self, message: str, *, response_type: str) -> None:
        super().__init__(message)
        self.type = response_type


class PatronNotFound(PatronCreatorError):
    status = 404
    type = "patron-not-found"
    title = "Patron Not Found"


class DuplicatePatrons(PatronCreatorError):
    status = 409
    type = "duplicate-patrons"
    title = "Duplicate Patrons"


# -- Integration errors --


class ILSIntegrationError(PatronCreatorError):
    status = 502
    type = "ils-integration-error"
    title = "ILS Integration Error"


class ServiceUnavailable(ILSIntegrationError):
    status = 503
    type = "service-unavailable"
    title = "Service Unavailable"


class AllocationFailure(PatronCreatorError):
    status = 503
    type = "barcode-allocation-error"
    title = "Barcode Allocation Failure"


class SOIntegrationError(PatronCreatorError):
    """The address vendor failed in a way that carries no usable detail."""

    status = 502
    type = "service-objects-integration-error"
    title = "Address Validation Error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code

    def to_error(self) -> dict[str, Any]:
        """Return the compact error object attached to address responses."""
        return {
            "name": type(self).__name__,
            "type": self.type,
            "status": self.status,
            "code": self.code,
            "message": self.message,
        }


class SOAuthorizationError(SOIntegrationError):
    type = "service-objects-authorization-error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(f"SO Authorization Error: {message}", code=code)


class SODomainSpecificError(SOIntegrationError):
    type = "service-objects-domain-specific-error"


# -- Contract violations --


class NoILSClient(RuntimeError):
    pass


class NotILSValid(RuntimeError):
    pass
