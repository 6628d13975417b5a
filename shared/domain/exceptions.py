"""
Domain Error Taxonomy

Every error raised by the domain and application layers belongs to one kind:
- NotFound: a referenced aggregate does not exist
- Conflict: the aggregate is not in a state that permits the operation
- ValidationFailed: malformed or out-of-range input
- AuthorizationDenied: the actor may not perform this transition
- ExternalDependencyFailure: a collaborator outside the core failed

Contexts subclass a kind to add a stable machine-readable code.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain errors"""

    kind = 'domain_error'
    default_code = 'DOMAIN_ERROR'
    status_code = 400

    def __init__(self, message: str = '', *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message or self.__class__.__doc__ or self.default_code)
        self.message = str(self.args[0])
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            'kind': self.kind,
            'code': self.code,
            'message': self.message,
            'details': self.details,
        }


class NotFound(DomainError):
    """Requested object does not exist"""
    kind = 'not_found'
    default_code = 'NOT_FOUND'
    status_code = 404


class Conflict(DomainError):
    """Object state does not permit this operation"""
    kind = 'conflict'
    default_code = 'CONFLICT'
    status_code = 409


class ValidationFailed(DomainError):
    """Input failed validation"""
    kind = 'validation_failed'
    default_code = 'VALIDATION_FAILED'
    status_code = 400


class AuthorizationDenied(DomainError):
    """Actor is not permitted to perform this operation"""
    kind = 'authorization_denied'
    default_code = 'AUTHORIZATION_DENIED'
    status_code = 403


class ExternalDependencyFailure(DomainError):
    """An external collaborator failed"""
    kind = 'external_dependency_failure'
    default_code = 'EXTERNAL_DEPENDENCY_FAILURE'
    status_code = 502
