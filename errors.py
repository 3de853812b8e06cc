"""
Error taxonomy for the API.

Every error raised by the core modules is an ``ApiError``; ``main.py``
renders it as ``{"error": message, **extra}`` with the error's status code.
"""

from typing import Any, Dict, List, Optional


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, headers: Optional[Dict[str, str]] = None, **extra: Any):
        self.message = message or self.default_message
        self.headers = headers
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class DuplicateKey(ApiError):
    status_code = 400
    default_message = "Duplicate value"


class ValidationFailure(ApiError):
    status_code = 400
    default_message = "Validation failed"


class ReferencedEntityConflict(ApiError):
    status_code = 409

    def __init__(self, kind: str, product_count: int, sample_products: List[str]):
        noun = "product" if product_count == 1 else "products"
        super().__init__(
            f"Cannot delete {kind}: {product_count} {noun} still reference it",
            product_count=product_count,
            sample_products=sample_products,
        )


class InvalidType(ApiError):
    status_code = 400
    default_message = "Invalid type. Must be Brand, Category, or Subcategory"


class ReferentNotFound(ApiError):
    status_code = 404


class DuplicatePriority(ApiError):
    status_code = 400


class AuthFailure(ApiError):
    status_code = 401
    default_message = "Could not validate credentials"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(ApiError):
    status_code = 403
    default_message = "Admin access required"


class CorruptSequenceState(ApiError):
    status_code = 500


class SequenceConflict(ApiError):
    status_code = 409
    default_message = "Could not allocate an enquiry number, please retry"


class DatabaseUnavailable(ApiError):
    status_code = 500
    default_message = "Database not configured"
