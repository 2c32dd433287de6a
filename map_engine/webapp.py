"""Flask web interface for Map Engine."""

from __future__ import annotations

import datetime as dt
import io
import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

from flask import (
    Flask,
    abort,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)
from werkzeug.exceptions import RequestEntityTooLarge

from .analysis import StatementAnalyzer
from .analytics import locations_with_totals, spending_summary
from .coerce import parse_amount, parse_date
from .config import PROJECT_ROOT, AppConfig, GeometrySettings
from .db import init_app, init_db
from .errors import ExtractionError, MapEngineError, NotFound, ProviderError
from .extraction import extract_pdf
from .geometry import LAYOUTS, PALETTES, build_buildings
from .pipeline import UploadPipeline
from .scene import build_scene, format_currency
from .session import current_user, load_user_session, login_required, sign_in, sign_out, sign_up
from .storage import BlobStorage
from .store import Store

PACKAGE_ROOT = Path(__file__).resolve().parent

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

logger = logging.getLogger(__name__)


def _owned_location(store: Store, user_id: str, location_id: str):
    location = store.locations.get_by_id(location_id)
    if location.user_id != user_id:
        raise NotFound(f"spending location {location_id} not found")
    return location


def _owned_upload(store: Store, user_id: str, upload_id: str):
    upload = store.uploads.get_by_id(upload_id)
    if upload.user_id != user_id:
        raise NotFound(f"upload {upload_id} not found")
    return upload


def _load_locations(store: Store, user_id: str):
    locations = store.locations.get_by_user_id(user_id)
    totals = store.amounts.get_all_totals_by_location_ids([loc.id for loc in locations])
    return locations_with_totals(locations, totals)


def _geometry_settings(cfg: AppConfig, args) -> GeometrySettings:
    settings = cfg.geometry
    layout = args.get("layout")
    palette = args.get("palette")
    if layout in LAYOUTS:
        settings = replace(settings, layout=layout)
    if palette in PALETTES:
        settings = replace(settings, palette=palette)
    return settings


def create_app(
    config: Optional[AppConfig] = None,
    config_path: Optional[str] = None,
    ai_client=None,
) -> Flask:
    cfg = (config or AppConfig.load(_resolve_config_path(config_path))).validate()
    logging.basicConfig(level=cfg.log_level, format=LOG_FORMAT)

    app = Flask(
        __name__,
        template_folder=str(PACKAGE_ROOT / "templates"),
        static_folder=str(PACKAGE_ROOT / "static"),
    )
    app.config["SECRET_KEY"] = cfg.secret_key
    # Leave headroom so oversized files reach the selection check.
    app.config["MAX_CONTENT_LENGTH"] = cfg.max_upload_bytes * 2
    init_app(app, cfg.database_url)

    storage = BlobStorage(cfg.storage_root, cfg.bucket, cfg.secret_key)
    analyzer = StatementAnalyzer(
        client=ai_client,
        model=cfg.ai_model,
        max_tokens=cfg.ai_max_tokens,
        api_key=cfg.anthropic_api_key,
    )

    app.before_request(load_user_session)
    app.jinja_env.filters["currency"] = format_currency
    with app.app_context():
        init_db()

    @app.context_processor
    def inject_user():
        return {"current_user": current_user(), "categories": cfg.categories}

    @app.route("/", methods=["GET"])
    def home():
        if current_user() is not None:
            return redirect(url_for("dashboard"))
        return render_template("home.html", errors=[], form={"email": ""})

    @app.route("/login", methods=["POST"])
    def login():
        email = (request.form.get("email") or "").strip()
        password = request.form.get("password") or ""
        try:
            sign_in(Store(), email, password)
        except MapEngineError as exc:
            return render_template("home.html", errors=[str(exc)], form={"email": email}), 400
        return redirect(url_for("dashboard"))

    @app.route("/signup", methods=["GET", "POST"])
    def signup():
        if current_user() is not None:
            return redirect(url_for("dashboard"))
        errors: List[str] = []
        form: Dict[str, str] = {}
        if request.method == "POST":
            form = {k: v for k, v in request.form.items() if k != "password"}
            try:
                sign_up(Store(), request.form)
            except MapEngineError as exc:
                errors.append(str(exc))
            else:
                return redirect(url_for("dashboard"))
        return render_template("signup.html", errors=errors, form=form), (400 if errors else 200)

    @app.route("/logout", methods=["POST"])
    @login_required
    def logout():
        sign_out()
        return redirect(url_for("home"))

    @app.route("/dashboard", methods=["GET", "POST"])
    @login_required
    def dashboard():
        user = g.user_session.require_user()
        store = Store()
        errors: List[str] = []
        location_form = {"name": "", "category": ""}

        if request.method == "POST":
            action = request.form.get("action", "")
            try:
                if action == "add_location":
                    location_form = {
                        "name": (request.form.get("name") or "").strip(),
                        "category": (request.form.get("category") or "").strip(),
                    }
                    store.locations.create(user.id, location_form["name"], location_form["category"])
                    return redirect(url_for("dashboard"))
                elif action == "edit_location":
                    location = _owned_location(store, user.id, request.form.get("location_id") or "")
                    amount_raw = (request.form.get("amount") or "").strip()
                    date_raw = (request.form.get("transaction_date") or "").strip()
                    amount, when = None, None
                    # Validate the new amount before touching the location.
                    if amount_raw:
                        try:
                            amount = parse_amount(amount_raw)
                        except ValueError:
                            errors.append("Amount must be a valid number.")
                        else:
                            if amount <= 0:
                                errors.append("Amount must be greater than zero.")
                        if date_raw:
                            try:
                                when = parse_date(date_raw)
                            except ValueError:
                                errors.append("Date must be a valid date.")
                    if not errors:
                        with store.atomic("edit location"):
                            store.locations.update(
                                location.id,
                                {
                                    "name": request.form.get("name") or location.name,
                                    "category": request.form.get("category") or location.category,
                                },
                                commit=False,
                            )
                            if amount is not None:
                                store.amounts.create(
                                    location.id,
                                    amount,
                                    when,
                                    (request.form.get("description") or "").strip() or None,
                                    commit=False,
                                )
                        return redirect(url_for("dashboard", edit=location.id))
                elif action == "delete_amount":
                    amount_id = request.form.get("amount_id") or ""
                    location = _owned_location(store, user.id, request.form.get("location_id") or "")
                    if amount_id not in {a.id for a in store.amounts.get_by_location_id(location.id)}:
                        raise NotFound(f"spending amount {amount_id} not found")
                    store.amounts.delete(amount_id)
                    return redirect(url_for("dashboard", edit=location.id))
                else:
                    errors.append("Unknown action.")
            except MapEngineError as exc:
                logger.warning("dashboard action %s failed: %s", action, exc)
                errors.append(str(exc))

        try:
            locations = _load_locations(store, user.id)
        except ProviderError as exc:
            errors.append(str(exc))
            locations = []

        editing = None
        editing_amounts = []
        edit_id = request.args.get("edit")
        if edit_id:
            try:
                editing = _owned_location(store, user.id, edit_id)
                editing_amounts = store.amounts.get_by_location_id(editing.id)
            except MapEngineError as exc:
                errors.append(str(exc))
                editing = None

        return render_template(
            "dashboard.html",
            user=user,
            locations=locations,
            summary=spending_summary(locations),
            editing=editing,
            editing_amounts=editing_amounts,
            editing_total=round(sum(a.amount for a in editing_amounts), 2),
            location_form=location_form,
            errors=errors,
            today=dt.date.today().isoformat(),
        )

    @app.route("/neighborhood")
    @login_required
    def neighborhood():
        return render_template(
            "neighborhood.html",
            layouts=LAYOUTS,
            palettes=PALETTES,
            layout=request.args.get("layout", cfg.geometry.layout),
            palette=request.args.get("palette", cfg.geometry.palette),
        )

    @app.route("/api/scene")
    @login_required
    def api_scene():
        user = g.user_session.require_user()
        try:
            locations = _load_locations(Store(), user.id)
        except ProviderError as exc:
            return jsonify({"error": "Failed to load locations", "details": str(exc)}), 500
        settings = _geometry_settings(cfg, request.args)
        buildings = build_buildings(locations, settings)
        return jsonify(build_scene(buildings, settings))

    @app.route("/api/locations/<location_id>/amounts")
    @login_required
    def api_location_amounts(location_id: str):
        user = g.user_session.require_user()
        store = Store()
        try:
            location = _owned_location(store, user.id, location_id)
            amounts = store.amounts.get_by_location_id(location.id)
            total = store.amounts.get_total_by_location_id(location.id)
        except NotFound as exc:
            return jsonify({"error": str(exc)}), 404
        except ProviderError as exc:
            return jsonify({"error": "Failed to load transactions", "details": str(exc)}), 500
        return jsonify(
            {
                "location": location.to_dict(),
                "total_spent": total,
                "amounts": [a.to_dict() for a in amounts],
            }
        )

    def _render_upload(attempt=None, errors: Optional[List[str]] = None, status: int = 200):
        user = g.user_session.require_user()
        errors = list(errors or [])
        try:
            past_uploads = Store().uploads.get_by_user_id(user.id)
        except ProviderError as exc:
            errors.append(str(exc))
            past_uploads = []
        try:
            files = storage.list(user.id)
        except MapEngineError as exc:
            errors.append(str(exc))
            files = []
        return (
            render_template(
                "upload.html",
                attempt=attempt,
                past_uploads=past_uploads,
                files=files,
                errors=errors,
                mode=cfg.extraction_mode,
                max_mb=cfg.max_upload_bytes // (1024 * 1024),
            ),
            status,
        )

    @app.route("/upload", methods=["GET", "POST"])
    @login_required
    def upload():
        if request.method == "GET":
            return _render_upload()
        user = g.user_session.require_user()
        file = request.files.get("statement")
        if not file or not file.filename:
            return _render_upload(errors=["Please select a PDF file"], status=400)
        data = file.read()
        pipeline = UploadPipeline(Store(), storage, cfg, analyzer)
        attempt = pipeline.process(user.id, file.filename, file.mimetype, data)
        if attempt.succeeded:
            return redirect(url_for("upload_detail", upload_id=attempt.upload.id, done=1))
        return _render_upload(attempt=attempt, errors=[attempt.message], status=400)

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(_exc):
        if request.path.startswith("/api/"):
            return jsonify({"error": "File too large"}), 413
        if current_user() is None:
            return redirect(url_for("home"))
        limit_mb = cfg.max_upload_bytes // (1024 * 1024)
        return _render_upload(errors=[f"File size must be less than {limit_mb}MB"], status=413)

    @app.route("/uploads/<upload_id>")
    @login_required
    def upload_detail(upload_id: str):
        user = g.user_session.require_user()
        store = Store()
        try:
            item = _owned_upload(store, user.id, upload_id)
            transactions = store.transactions.get_by_upload_id(item.id)
        except NotFound:
            abort(404)
        preview_url = None
        if item.storage_path:
            try:
                token = storage.create_signed_url(item.storage_path, cfg.signed_url_expiry)
                preview_url = url_for("signed_object", token=token)
            except MapEngineError as exc:
                logger.warning("no preview for upload %s: %s", item.id, exc)
        return render_template(
            "upload_detail.html",
            upload=item,
            transactions=transactions,
            preview_url=preview_url,
            just_completed=bool(request.args.get("done")),
        )

    @app.route("/uploads/<upload_id>/preview")
    @login_required
    def upload_preview(upload_id: str):
        user = g.user_session.require_user()
        try:
            item = _owned_upload(Store(), user.id, upload_id)
            if not item.storage_path:
                raise NotFound("No stored file for this upload")
            token = storage.create_signed_url(item.storage_path, cfg.signed_url_expiry)
        except NotFound:
            abort(404)
        return redirect(url_for("signed_object", token=token))

    @app.route("/uploads/<upload_id>/download")
    @login_required
    def upload_download(upload_id: str):
        user = g.user_session.require_user()
        try:
            item = _owned_upload(Store(), user.id, upload_id)
            if not item.storage_path:
                raise NotFound("No stored file for this upload")
            data = storage.download(item.storage_path)
        except NotFound:
            abort(404)
        return send_file(
            io.BytesIO(data),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=item.file_name,
        )

    @app.route("/uploads/<upload_id>/remove", methods=["POST"])
    @login_required
    def upload_remove(upload_id: str):
        user = g.user_session.require_user()
        store = Store()
        try:
            item = _owned_upload(store, user.id, upload_id)
            if item.storage_path:
                storage.remove([item.storage_path])
                store.uploads.set_storage_path(item.id, None)
        except NotFound:
            abort(404)
        except MapEngineError as exc:
            return _render_upload(errors=[str(exc)], status=500)
        return redirect(url_for("upload"))

    @app.route("/storage/<token>")
    def signed_object(token: str):
        try:
            path = storage.resolve_signed_url(token)
            data = storage.download(path)
        except NotFound:
            abort(404)
        except ProviderError:
            abort(403)
        return send_file(io.BytesIO(data), mimetype="application/pdf", download_name=path.rsplit("/", 1)[-1])

    @app.route("/api/parse-pdf", methods=["POST"])
    def api_parse_pdf():
        file = request.files.get("pdf")
        if not file or not file.filename:
            return jsonify({"error": "No PDF file uploaded"}), 400
        try:
            parsed = extract_pdf(file.read())
        except ExtractionError as exc:
            return jsonify({"error": "Failed to parse PDF", "details": str(exc)}), 500
        return jsonify({"success": True, "data": parsed})

    @app.route("/api/session")
    def api_session():
        user_session = g.user_session
        user = user_session.current_user()
        return jsonify({"state": user_session.state.value, "user": user.to_dict() if user else None})

    @app.route("/api/uploads")
    @login_required
    def api_uploads():
        user = g.user_session.require_user()
        try:
            uploads = Store().uploads.get_by_user_id(user.id)
        except ProviderError as exc:
            return jsonify({"error": "Failed to load uploads", "details": str(exc)}), 500
        return jsonify({"uploads": [u.to_dict() for u in uploads]})

    @app.route("/api/uploads/<upload_id>")
    @login_required
    def api_upload(upload_id: str):
        user = g.user_session.require_user()
        store = Store()
        try:
            item = _owned_upload(store, user.id, upload_id)
            transactions = store.transactions.get_by_upload_id(item.id)
        except NotFound as exc:
            return jsonify({"error": str(exc)}), 404
        return jsonify({"upload": item.to_dict(), "transactions": [t.to_dict() for t in transactions]})

    @app.route("/banking")
    def banking():
        return render_template("banking.html")

    @app.route("/health")
    def health():
        return {"status": "healthy"}

    return app


def _resolve_config_path(config_path: Optional[str]) -> Optional[Path]:
    if not config_path:
        return None
    path = Path(config_path)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


if __name__ == "__main__":
    create_app().run(debug=True)
