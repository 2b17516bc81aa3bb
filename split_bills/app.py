from __future__ import annotations

import logging
from datetime import timedelta
from functools import wraps
from typing import Any, List, Optional

import click
from flask import Flask, current_app, jsonify, request
from flask_cors import CORS

from .ai import ExtractionError, OpenAIProvider
from .calculator import calculate_split
from .config import config
from .db import db
from .idempotency import RequestDeduplicator
from .image_utils import optimize_image
from .mailer import Mailer, MailerError
from .models import CalculateRequest, is_finite_number, parse_people
from .sessions import SessionForbidden, SessionNotFound, SessionStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "split_bills"


def create_app(
    settings=config,
    session_store: Optional[SessionStore] = None,
    ai_provider=None,
    mailer=None,
    deduplicator: Optional[RequestDeduplicator] = None,
) -> Flask:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.SECRET_KEY
    app.config["IDEMPOTENCY_TTL"] = timedelta(seconds=settings.IDEMPOTENCY_TTL_SECONDS)
    app.config["MAX_CONTENT_LENGTH"] = settings.MAX_UPLOAD_BYTES

    CORS(app, resources={r"/api/*": {"origins": settings.CORS_ORIGINS}})

    app.extensions[EXTENSION_KEY] = {
        "sessions": session_store or SessionStore(db),
        "ai": ai_provider if ai_provider is not None else _build_ai_provider(settings),
        "mailer": mailer if mailer is not None else _build_mailer(settings),
        "deduplicator": deduplicator or RequestDeduplicator(),
    }

    register_routes(app)

    @app.cli.command("init-db")
    def init_db_command():
        """Create the sessions table if it does not exist."""
        app.extensions[EXTENSION_KEY]["sessions"].init_schema()
        click.echo("sessions table ready")

    return app


def _build_ai_provider(settings) -> Optional[OpenAIProvider]:
    if not settings.OPENAI_API_KEY or not settings.OPENAI_API_MODEL:
        logger.warning("OPENAI_API_KEY or OPENAI_API_MODEL not set; AI extraction disabled")
        return None
    return OpenAIProvider(settings.OPENAI_API_KEY, settings.OPENAI_API_MODEL, settings.OPENAI_API_TEMPERATURE)


def _build_mailer(settings) -> Optional[Mailer]:
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set; email delivery disabled")
        return None
    return Mailer(settings.RESEND_API_KEY, settings.RESEND_FROM_EMAIL)


def _service(name: str):
    return current_app.extensions[EXTENSION_KEY][name]


def deduplicated(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        request_id = request.headers.get("X-Request-ID")
        if request_id:
            ttl = current_app.config["IDEMPOTENCY_TTL"]
            if not _service("deduplicator").check_and_register(request_id, ttl):
                logger.info("Ignoring duplicate request %s", request_id)
                return jsonify({"error": "duplicate_request"}), 409

        try:
            response = current_app.make_response(func(*args, **kwargs))
        except Exception:
            if request_id:
                _service("deduplicator").release(request_id)
            raise
        # Only accepted work blocks a repeat
        if request_id and not 200 <= response.status_code < 300:
            _service("deduplicator").release(request_id)
        return response

    return wrapper


def register_routes(app: Flask) -> None:
    @app.get("/api/health")
    def health_check():
        return jsonify({"status": "healthy"})

    @app.post("/api/calculate")
    def calculate():
        payload = request.get_json(silent=True)
        try:
            calc_request = CalculateRequest.from_dict(payload)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        if calc_request.restrict_sponsor_to_spent is False:
            logger.warning("restrict_sponsor_to_spent=false is ignored; sponsorship is always capped at total spend")

        return jsonify(calculate_split(calc_request).to_dict())

    @app.post("/api/sessions")
    def create_session():
        payload = request.get_json(silent=True)
        try:
            people, fund_amount, tip_percentage = _parse_session_payload(payload)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        session_id, edit_secret = _service("sessions").create(people, fund_amount, tip_percentage)
        return jsonify({"id": session_id, "edit_secret": edit_secret}), 201

    @app.get("/api/sessions/<session_id>")
    def get_session(session_id: str):
        try:
            data = _service("sessions").get(session_id)
        except SessionNotFound:
            return jsonify({"error": "not_found"}), 404

        return jsonify(
            {
                "people": [line.to_dict() for line in data.people],
                "fund_amount": data.fund_amount,
                "tip_percentage": data.tip_percentage,
            }
        )

    @app.put("/api/sessions/<session_id>")
    def update_session(session_id: str):
        payload = request.get_json(silent=True)
        try:
            people, fund_amount, tip_percentage = _parse_session_payload(payload)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        try:
            _service("sessions").update(
                session_id,
                request.headers.get("X-Edit-Secret"),
                people,
                fund_amount,
                tip_percentage,
            )
        except SessionNotFound:
            return jsonify({"error": "not_found"}), 404
        except SessionForbidden:
            return jsonify({"error": "forbidden"}), 403

        return jsonify({"success": True})

    @app.post("/api/ai/text")
    @deduplicated
    def ai_receipt_text():
        provider = _service("ai")
        if provider is None:
            return jsonify({"error": "service_unavailable"}), 503

        text = _text_field(request.get_json(silent=True))
        if not text:
            return jsonify({"error": "missing_text"}), 400

        try:
            receipt = provider.extract_from_text(text)
        except ExtractionError as exc:
            logger.warning("Receipt text extraction failed: %s", exc)
            return jsonify({"error": "service_unavailable"}), 503
        return jsonify(receipt.to_dict())

    @app.post("/api/ai/split")
    @deduplicated
    def ai_split_text():
        provider = _service("ai")
        if provider is None:
            return jsonify({"error": "service_unavailable"}), 503

        text = _text_field(request.get_json(silent=True))
        if not text:
            return jsonify({"error": "missing_text"}), 400

        try:
            split = provider.extract_split_from_text(text)
        except ExtractionError as exc:
            logger.warning("Split text extraction failed: %s", exc)
            return jsonify({"error": "service_unavailable"}), 503
        return jsonify(split.to_dict())

    @app.post("/api/ai/image")
    @deduplicated
    def ai_receipt_image():
        provider = _service("ai")
        if provider is None:
            return jsonify({"error": "service_unavailable"}), 503

        upload = request.files.get("image")
        if upload is None:
            return jsonify({"error": "missing_image"}), 400

        data = upload.read()
        if not data:
            return jsonify({"error": "missing_image"}), 400

        try:
            image_bytes, mime_type = optimize_image(data, upload.mimetype or "application/octet-stream")
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        try:
            receipt = provider.extract_from_image(image_bytes, mime_type)
        except ExtractionError as exc:
            logger.warning("Receipt image extraction failed: %s", exc)
            return jsonify({"error": "service_unavailable"}), 503
        return jsonify(receipt.to_dict())

    @app.post("/api/email/send")
    def send_email():
        mailer = _service("mailer")
        if mailer is None:
            return jsonify({"error": "service_unavailable"}), 503

        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "invalid_payload"}), 400

        try:
            to = _address_list(payload.get("to"), required=True)
            cc = _address_list(payload.get("cc"))
            bcc = _address_list(payload.get("bcc"))
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        subject = payload.get("subject")
        html_content = payload.get("html_content")
        if not isinstance(subject, str) or not subject.strip() or not isinstance(html_content, str) or not html_content:
            return jsonify({"error": "missing_fields"}), 400

        try:
            mailer.send(to, subject, html_content, cc=cc, bcc=bcc)
        except MailerError:
            return jsonify({"error": "service_unavailable"}), 503
        return jsonify({"success": True})


def _parse_session_payload(payload: Any):
    if not isinstance(payload, dict):
        raise ValueError("invalid_payload")
    people = parse_people(payload.get("people"))
    fund_amount = payload.get("fund_amount") or 0
    tip_percentage = payload.get("tip_percentage") or 0
    for value, code in ((fund_amount, "invalid_fund_amount"), (tip_percentage, "invalid_tip_percentage")):
        if not is_finite_number(value):
            raise ValueError(code)
    return people, float(fund_amount), float(tip_percentage)


def _text_field(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    text = payload.get("text")
    return text.strip() if isinstance(text, str) else ""


def _address_list(value: Any, required: bool = False) -> Optional[List[str]]:
    if value is None or value == []:
        if required:
            raise ValueError("missing_recipients")
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) and "@" in item for item in value):
        raise ValueError("invalid_recipients")
    return value


app = create_app()


if __name__ == "__main__":
    app.run(debug=True, port=7777)
