from __future__ import annotations

import logging
from http import HTTPStatus

from flask import Blueprint, Response, current_app, render_template_string, request, url_for
from pydantic import ValidationError

from app.api.schemas import (
    HealthResponse,
    PasteCreateRequest,
    PasteCreatedResponse,
    PasteViewResponse,
)
from app.api.templates import PASTE_PAGE, TEST_FORM_PAGE
from app.clock import Clock, to_iso8601
from app.observability import get_correlation_id
from app.services.paste_service import (
    InvalidPasteParameters,
    PasteNotFoundError,
    PasteStore,
    StorageFailure,
)

api_bp = Blueprint("api", __name__)

logger = logging.getLogger(__name__)

TEST_NOW_HEADER = "x-test-now-ms"


def _store() -> PasteStore:
    return current_app.extensions["paste_store"]


def request_now() -> int:
    """
    Decide the instant for the current request.

    In test mode an ``x-test-now-ms`` header overrides the app clock.
    """
    clock: Clock = current_app.extensions["clock"]
    if current_app.config.get("TEST_MODE"):
        override = request.headers.get(TEST_NOW_HEADER)
        if override:
            try:
                return int(override)
            except ValueError:
                logger.warning(
                    "Ignoring malformed test clock header",
                    extra={
                        "event": "test_now_header_invalid",
                        "correlation_id": get_correlation_id(),
                    },
                )
    return clock.now_ms()


def _paste_url(paste_id: str) -> str:
    base_url = current_app.config.get("BASE_URL")
    if base_url:
        return f"{base_url.rstrip('/')}/p/{paste_id}"
    return url_for("api.view_paste_html", paste_id=paste_id, _external=True)


@api_bp.route("/api/healthz", methods=["GET"])
def health() -> tuple[dict, int]:
    """Health check; also verifies the store is reachable."""

    try:
        _store().ping()
    except StorageFailure:
        return HealthResponse(ok=False).model_dump(), HTTPStatus.SERVICE_UNAVAILABLE
    return HealthResponse().model_dump(), HTTPStatus.OK


@api_bp.route("/api/pastes", methods=["POST"])
def create_paste() -> tuple[dict, int]:
    """
    Create a new paste from a JSON or form body.

    Validation is handled by Pydantic; business rules by the store.
    """
    if request.is_json:
        raw = request.get_json(silent=True)
    else:
        raw = request.form.to_dict()
    if not isinstance(raw, dict):
        raw = {}

    try:
        payload = PasteCreateRequest.model_validate(raw)
    except ValidationError as exc:
        if any(err["loc"][:1] == ("content",) for err in exc.errors()):
            return {"error": "Invalid content"}, HTTPStatus.BAD_REQUEST
        return {"error": "Invalid request body", "details": str(exc)}, HTTPStatus.BAD_REQUEST

    try:
        paste_id = _store().create(
            payload.content,
            request_now(),
            max_views=payload.max_views,
            ttl_seconds=payload.ttl_seconds,
        )
    except InvalidPasteParameters as exc:
        return {"error": str(exc)}, HTTPStatus.BAD_REQUEST
    except StorageFailure:
        return {"error": "Database error"}, HTTPStatus.INTERNAL_SERVER_ERROR

    body = PasteCreatedResponse(id=paste_id, url=_paste_url(paste_id))
    return body.model_dump(), HTTPStatus.OK


@api_bp.route("/api/pastes/<paste_id>", methods=["GET", "HEAD"])
def get_paste(paste_id: str) -> tuple[dict, int] | Response:
    """
    Consume one view of a paste and return it as JSON.

    HEAD only reports whether the paste is still visible and never
    consumes a view.
    """
    if request.method == "HEAD":
        return _peek_paste(paste_id)

    try:
        view = _store().fetch_and_consume(paste_id, request_now())
    except PasteNotFoundError:
        return {"error": "Not found"}, HTTPStatus.NOT_FOUND
    except StorageFailure:
        return {"error": "Database error"}, HTTPStatus.INTERNAL_SERVER_ERROR

    body = PasteViewResponse(
        content=view.content,
        remaining_views=view.remaining_views,
        expires_at=to_iso8601(view.expires_at) if view.expires_at is not None else None,
    )
    return body.model_dump(), HTTPStatus.OK


def _peek_paste(paste_id: str) -> Response:
    try:
        visible = _store().exists(paste_id, request_now())
    except StorageFailure:
        return Response(status=HTTPStatus.INTERNAL_SERVER_ERROR)
    return Response(status=HTTPStatus.OK if visible else HTTPStatus.NOT_FOUND)


@api_bp.route("/p/<paste_id>", methods=["GET"])
def view_paste_html(paste_id: str) -> tuple[str, int] | Response:
    if request.method == "HEAD":
        return _peek_paste(paste_id)

    try:
        view = _store().fetch_and_consume(paste_id, request_now())
    except PasteNotFoundError:
        return "Paste not found", HTTPStatus.NOT_FOUND
    except StorageFailure:
        return "Database error", HTTPStatus.INTERNAL_SERVER_ERROR

    return render_template_string(PASTE_PAGE, content=view.content), HTTPStatus.OK


@api_bp.route("/test", methods=["GET"])
def test_form() -> str:
    """Minimal HTML form for creating pastes by hand."""

    return render_template_string(TEST_FORM_PAGE, action=url_for("api.create_paste"))
