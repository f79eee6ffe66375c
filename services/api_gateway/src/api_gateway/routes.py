import logging
from typing import Any
from uuid import UUID

from flask import Blueprint, Response, current_app, g, jsonify, request
from pydantic import ValidationError

from notify_shared.enums import UserRole
from notify_shared.errors import (
    AddressValidationError,
    ConflictError,
    DispatchError,
    InvalidTransitionError,
    NotFoundError,
)
from notify_shared.schemas import (
    CreateChannelRequest,
    CreateNotificationRequest,
    ListNotificationsQuery,
    UpdateChannelRequest,
)

from dispatcher.service import ChannelService, NotificationService

from api_gateway.health import HealthChecker
from api_gateway.retry import RetryPublisher

logger = logging.getLogger(__name__)

notifications_bp = Blueprint("notifications", __name__, url_prefix="/notifications")
health_bp = Blueprint("health", __name__)

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"

SENDER_ROLES = frozenset({UserRole.TEACHER, UserRole.ADMIN})

# Most specific first: PreconditionError is a NotFoundError.
_ERROR_STATUS: list[tuple[type[DispatchError], int]] = [
    (NotFoundError, 404),
    (AddressValidationError, 400),
    (ConflictError, 409),
    (InvalidTransitionError, 409),
]


def _error(message: str, status: int, **extra: Any) -> tuple[Response, int]:
    body: dict[str, Any] = {"error": message}
    body.update(extra)
    return jsonify(body), status


def _notifications() -> NotificationService:
    return current_app.extensions["notification_service"]


def _channels() -> ChannelService:
    return current_app.extensions["channel_service"]


@notifications_bp.before_request
def _load_identity() -> tuple[Response, int] | None:
    raw_user_id = request.headers.get(USER_ID_HEADER)
    raw_role = request.headers.get(USER_ROLE_HEADER)
    if not raw_user_id or not raw_role:
        return _error("Missing identity headers", 401)
    try:
        g.user_id = UUID(raw_user_id)
        g.user_role = UserRole(raw_role.lower())
    except ValueError:
        return _error("Invalid identity headers", 401)
    return None


@notifications_bp.errorhandler(DispatchError)
def _handle_dispatch_error(exc: DispatchError) -> tuple[Response, int]:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return _error(str(exc), status)
    logger.exception("Unmapped dispatch error")
    return _error("Internal error", 500)


@notifications_bp.errorhandler(ValidationError)
def _handle_validation_error(exc: ValidationError) -> tuple[Response, int]:
    return _error(
        "Request validation failed",
        400,
        details=exc.errors(include_url=False, include_context=False),
    )


@notifications_bp.post("")
def create_notification() -> tuple[Response, int]:
    if g.user_role not in SENDER_ROLES:
        return _error("Only teachers and admins can create notifications", 403)

    body = request.get_json(silent=True)
    if body is None:
        return _error("Request body must be valid JSON", 400)

    payload = CreateNotificationRequest.model_validate(body)
    view = _notifications().create_notification(g.user_id, payload)
    return jsonify(view.model_dump(mode="json")), 201


@notifications_bp.get("")
def list_notifications() -> tuple[Response, int]:
    query = ListNotificationsQuery.model_validate(request.args.to_dict())
    views = _notifications().list_notifications(
        g.user_id, status=query.status, category=query.category
    )
    return jsonify([v.model_dump(mode="json") for v in views]), 200


@notifications_bp.patch("/<uuid:notification_id>/read")
def mark_read(notification_id: UUID) -> tuple[Response, int]:
    view = _notifications().mark_read(g.user_id, notification_id)
    return jsonify(view.model_dump(mode="json")), 200


@notifications_bp.post("/<uuid:notification_id>/retry")
def retry_notification(notification_id: UUID) -> tuple[Response, int]:
    if g.user_role not in SENDER_ROLES:
        return _error("Only teachers and admins can retry notifications", 403)

    # Surfaces 404 before anything is enqueued.
    _notifications().get_notification(notification_id)

    publisher: RetryPublisher = current_app.extensions["retry_publisher"]
    try:
        task_id = publisher.enqueue(notification_id)
    except Exception:
        logger.exception("Failed to enqueue retry")
        return _error("Task broker unavailable", 503)

    return jsonify({
        "status": "accepted",
        "notification_id": str(notification_id),
        "task_id": task_id,
    }), 202


@notifications_bp.post("/channels")
def create_channel() -> tuple[Response, int]:
    body = request.get_json(silent=True)
    if body is None:
        return _error("Request body must be valid JSON", 400)

    payload = CreateChannelRequest.model_validate(body)
    view = _channels().create_channel(g.user_id, payload)
    return jsonify(view.model_dump(mode="json")), 201


@notifications_bp.get("/channels")
def list_channels() -> tuple[Response, int]:
    views = _channels().list_channels(g.user_id)
    return jsonify([v.model_dump(mode="json") for v in views]), 200


@notifications_bp.patch("/channels/<uuid:channel_id>")
def update_channel(channel_id: UUID) -> tuple[Response, int]:
    body = request.get_json(silent=True)
    if body is None:
        return _error("Request body must be valid JSON", 400)

    payload = UpdateChannelRequest.model_validate(body)
    view = _channels().update_channel(g.user_id, channel_id, payload)
    return jsonify(view.model_dump(mode="json")), 200


@notifications_bp.delete("/channels/<uuid:channel_id>")
def delete_channel(channel_id: UUID) -> tuple[Response, int]:
    _channels().delete_channel(g.user_id, channel_id)
    return Response(status=204), 204


@notifications_bp.post("/channels/<uuid:channel_id>/test")
def test_channel(channel_id: UUID) -> tuple[Response, int]:
    result = _channels().test_channel(g.user_id, channel_id)
    return jsonify(result.model_dump()), 200


@health_bp.get("/health")
def health() -> tuple[Response, int]:
    checker: HealthChecker = current_app.extensions["health_checker"]
    report = checker.check()
    code = 200 if report["status"] == "healthy" else 503
    return jsonify(report), code
