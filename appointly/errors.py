"""Error taxonomy shared by the tenancy, availability and booking layers.

Every error carries the HTTP status it maps to; ``appointly.main`` renders
them as ``{"success": false, "error": <message>}``.
"""

from __future__ import annotations


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequest(AppError):
    status_code = 400


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class InternalError(AppError):
    status_code = 500


class TenantNotFound(NotFound):
    def __init__(self, domain: str) -> None:
        super().__init__(f"Tenant not found for domain: {domain}")
        self.domain = domain


class SlotAlreadyBooked(Conflict):
    def __init__(self, message: str = "appointment time is already booked") -> None:
        super().__init__(message)


class SchemaProvisioningError(InternalError):
    def __init__(self, schema_name: str, cause: str) -> None:
        super().__init__(f"Failed to create tenant schema {schema_name}: {cause}")
        self.schema_name = schema_name


class TenantCacheStartupError(RuntimeError):
    """Raised when the tenant cache cannot perform its initial load."""
