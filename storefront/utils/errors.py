# storefront/utils/errors.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any

from flask import jsonify
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

from ..extensions import db
from .api import api_ok, api_error

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


class ServiceError(Exception):
    """Base of the core error taxonomy. Raised inside services, never past them."""
    kind = "error"
    code = "ERROR"
    http_status = 400

    def __init__(self, message: str, code: str | None = None, **data):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.data = data


class ValidationError(ServiceError):
    kind = "validation"
    code = "VALIDATION_ERROR"
    http_status = 400


class BusinessRuleViolation(ServiceError):
    kind = "business_rule"
    code = "BUSINESS_RULE_VIOLATION"
    http_status = 422


class NotFound(ServiceError):
    kind = "not_found"
    code = "NOT_FOUND"
    http_status = 404


class StateConflict(ServiceError):
    kind = "state_conflict"
    code = "STATE_CONFLICT"
    http_status = 409


class ExternalServiceFailure(ServiceError):
    kind = "external_service"
    code = "EXTERNAL_SERVICE_FAILURE"
    http_status = 502


class IntegrityFailure(ServiceError):
    kind = "integrity"
    code = "INTEGRITY_FAILURE"
    http_status = 400


@dataclass
class ServiceResult:
    """Discriminated result returned by every core operation."""
    ok: bool
    data: Any = None
    message: str = ""
    code: str | None = None
    kind: str | None = None
    http_status: int = 200
    extra: dict = field(default_factory=dict)

    @classmethod
    def success(cls, data=None, message="ok", http_status=200):
        return cls(ok=True, data=data, message=message, http_status=http_status)

    @classmethod
    def failure(cls, error: ServiceError):
        return cls(
            ok=False,
            message=error.message,
            code=error.code,
            kind=error.kind,
            http_status=error.http_status,
            extra=dict(error.data),
        )


def service_operation(name: str):
    """Run a core operation as one unit of work.

    Commits on success. A ServiceError rolls back and becomes a failed
    ServiceResult. An optimistic-lock conflict rolls back and reruns the
    operation, up to MAX_ATTEMPTS times. Anything else rolls back and
    propagates.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            for attempt in range(1, MAX_ATTEMPTS + 1):
                try:
                    result = fn(*args, **kwargs)
                    db.session.commit()
                    return result
                except ServiceError as e:
                    db.session.rollback()
                    logger.warning("%s rejected: %s (%s)", name, e.message, e.code)
                    return ServiceResult.failure(e)
                except StaleDataError:
                    db.session.rollback()
                    logger.warning("%s hit a concurrent modification (attempt %d/%d)",
                                   name, attempt, MAX_ATTEMPTS)
                except Exception:
                    db.session.rollback()
                    logger.exception("%s failed", name)
                    raise
            return ServiceResult.failure(StateConflict(
                "The record was modified by another request, please retry",
                code="CONCURRENT_MODIFICATION",
            ))
        return wrapper
    return decorator


def result_response(result: ServiceResult, success_status: int | None = None):
    """Map a ServiceResult onto the JSON envelope."""
    if result.ok:
        r = jsonify(api_ok_payload(result))
        r.status_code = success_status or result.http_status
        return r
    r = jsonify(api_error(result.message, {"code": result.code, **result.extra}))
    r.status_code = result.http_status
    return r


def api_ok_payload(result: ServiceResult):
    data = result.data
    if hasattr(data, "as_api"):
        data = data.as_api()
    return api_ok(result.message, data)


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def handle_service_error(e):
        r = jsonify(api_error(e.message, {"code": e.code}))
        r.status_code = e.http_status
        return r

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        r = jsonify(api_error(e.description or e.name))
        r.status_code = e.code or 500
        return r
