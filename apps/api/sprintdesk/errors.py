from __future__ import annotations


class DomainError(Exception):
  status_code = 500

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class Unauthenticated(DomainError):
  status_code = 401

  def __init__(self, message: str = "Unauthorized") -> None:
    super().__init__(message)


class Forbidden(DomainError):
  status_code = 403

  def __init__(self, message: str = "Forbidden") -> None:
    super().__init__(message)


class NotFound(DomainError):
  status_code = 404


class ValidationError(DomainError):
  status_code = 400


class PreconditionFailed(DomainError):
  status_code = 409


class ExternalServiceDegraded(DomainError):
  """Blob storage (or another collaborator) failed or is unreachable."""

  status_code = 502
