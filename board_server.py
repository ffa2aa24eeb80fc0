#!/usr/bin/env python3
"""
Volunteer Board Server
----------------------
Serves the board UI and a JSON API over the volunteer board package.

Usage:
    python board_server.py
    python board_server.py --host 0.0.0.0 --port 3000 --db /var/lib/volunteer-board/storage.db

API (abridged):
    GET  /                          → board UI (HTML)
    GET  /api/board                 → { lists, stats, storage }
    POST /api/lists                 → { title }
    POST /api/lists/<id>/cards      → new volunteer in a list
    POST /api/cards/<id>/move       → { from, to }
    GET  /api/checklist             → master onboarding checklist
    POST /api/csv/import            → form-export CSV (file or raw body)
    GET  /api/csv/export            → board as CSV
    POST /api/reports               → CSV/HTML report
    GET  /api/storage               → storage usage
    POST /api/storage/force-save    → repair images and rewrite storage
    POST /api/lgl-webhook           → LGL form submission intake
    GET  /health

Mutating routes require an X-API-Key header when an API secret is configured.
"""

import hmac
import json
import logging
import sys
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import Flask, Response, abort, jsonify, request

from pkg.volunteers import debug_log as debug_log_module
from pkg.volunteers.autosave import AutoSaver
from pkg.volunteers.backup import BackupError, create_backup, restore_backup
from pkg.volunteers.board import KanbanBoard
from pkg.volunteers.checklist import ChecklistService
from pkg.volunteers.config import Config
from pkg.volunteers.csv_service import (
    CSVParseError,
    export_csv,
    export_filename,
    export_volunteer_data,
    import_csv,
)
from pkg.volunteers.debug_log import clear_debug_logs, debug_log, get_debug_logs
from pkg.volunteers.images import (
    COMPRESS_ON_SAVE_SIZE,
    ImageCompressionError,
    UploadTooLargeError,
    compress_image_for_storage,
    prepare_attachment,
)
from pkg.volunteers.lgl import (
    LGLAPIError,
    LGLClient,
    LGLConfigError,
    LGLService,
    build_volunteer_card,
    process_form_submission,
    verify_webhook_secret,
)
from pkg.volunteers.reports import (
    ReportError,
    filter_volunteers,
    generate_csv_report,
    generate_html_report,
    report_filename,
    resolve_fields,
)
from pkg.volunteers.schema import ChecklistItem, ChecklistProgress, VolunteerCard, new_id, utc_now
from pkg.volunteers.storage import LocalStorage, QuotaExceededError
from pkg.volunteers.store import VolunteerStore

logger = logging.getLogger("volunteer_board")

UI_FILE = Path(__file__).parent / "board_ui.html"

app = Flask(__name__)

# Set by init_app()
CONFIG: Optional[Config] = None
STORAGE: Optional[LocalStorage] = None
BOARD: Optional[KanbanBoard] = None
CHECKLIST: Optional[ChecklistService] = None
LGL_CLIENT: Optional[LGLClient] = None
LGL_SERVICE: Optional[LGLService] = None

# Volunteers posted to /api/add-volunteer (test harness, not persisted)
_test_volunteers: list = []
# Last webhook result, for the webhook test page
_last_processed_volunteer: Optional[dict] = None


def init_app(config: Config) -> Flask:
    """Wire storage, board and services for the given configuration."""
    global CONFIG, STORAGE, BOARD, CHECKLIST, LGL_CLIENT, LGL_SERVICE, _last_processed_volunteer
    CONFIG = config
    STORAGE = LocalStorage(config.db_path, quota=config.storage_quota)
    debug_log_module.attach_storage(STORAGE)
    store = VolunteerStore(STORAGE)
    BOARD = KanbanBoard(store, AutoSaver(store, delay=config.autosave_delay)).load()
    CHECKLIST = ChecklistService(STORAGE)
    LGL_CLIENT = LGLClient(config.lgl_api_token, config.lgl_api_url)
    LGL_SERVICE = LGLService(LGL_CLIENT, cache_ttl=config.lgl_cache_ttl)
    _test_volunteers.clear()
    _last_processed_volunteer = None
    return app


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_api_key(f):
    """Decorator: with an API secret configured, reject requests without a valid X-API-Key."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = CONFIG.api_secret if CONFIG else ""
        if secret:
            provided = request.headers.get("X-API-Key", "").strip()
            if not hmac.compare_digest(provided, secret):
                code = 401 if not provided else 403
                return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


# ── Helpers ──────────────────────────────────────────────────────────────────

@app.errorhandler(QuotaExceededError)
def handle_quota(e):
    logger.error(f"Storage quota exceeded: {e}")
    return jsonify({
        "error": "Storage is full. Compress or remove images to free space.",
        "message": str(e),
    }), 507


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _download(body: str, filename: str, mimetype: str) -> Response:
    return Response(
        body,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _card_or_404(card_id: str):
    found = BOARD.find_card(card_id)
    if not found:
        abort(404, "Volunteer not found")
    return found


def _card_from_body(data: dict, base: Optional[VolunteerCard] = None) -> VolunteerCard:
    merged = base.to_dict() if base else {}
    merged.update(data)
    return VolunteerCard.from_dict(merged)


# ── UI ───────────────────────────────────────────────────────────────────────

@app.route("/")
def index():
    if not UI_FILE.exists():
        abort(404, "board_ui.html not found. Place it alongside board_server.py")
    html = UI_FILE.read_text(encoding="utf-8")
    secret = CONFIG.api_secret if CONFIG else ""
    return html.replace(
        "/* INJECT_API_KEY */",
        f"const API_KEY = {json.dumps(secret)};",
    )


# ── Board ────────────────────────────────────────────────────────────────────

@app.route("/api/board")
def api_board():
    data = BOARD.to_dict()
    data["storage"] = {
        "usagePercentage": round(STORAGE.usage_percentage(), 2),
        "nearlyFull": STORAGE.is_nearly_full(),
    }
    return jsonify(data)


@app.route("/api/lists", methods=["POST"])
@require_api_key
def api_add_list():
    title = (_json_body().get("title") or "").strip()
    if not title:
        return jsonify({"error": "title is required"}), 400
    new_list = BOARD.add_list(title)
    return jsonify({"list": new_list.to_dict(with_cards=True)}), 201


@app.route("/api/lists/<list_id>", methods=["PUT"])
@require_api_key
def api_rename_list(list_id):
    title = (_json_body().get("title") or "").strip()
    if not title:
        return jsonify({"error": "title is required"}), 400
    if not BOARD.rename_list(list_id, title):
        return jsonify({"error": "List not found"}), 404
    return jsonify({"list": BOARD.get_list(list_id).to_dict()})


@app.route("/api/lists/<list_id>", methods=["DELETE"])
@require_api_key
def api_delete_list(list_id):
    if not BOARD.delete_list(list_id):
        return jsonify({"error": "List not found"}), 404
    return jsonify({"deleted": list_id})


@app.route("/api/lists/move", methods=["POST"])
@require_api_key
def api_move_list():
    data = _json_body()
    try:
        from_index, to_index = int(data["from"]), int(data["to"])
    except (KeyError, TypeError, ValueError):
        return jsonify({"error": "from and to indexes are required"}), 400
    if not BOARD.move_list(from_index, to_index):
        return jsonify({"error": "Index out of range"}), 400
    return jsonify({"lists": [lst.to_dict() for lst in BOARD.lists]})


# ── Cards ────────────────────────────────────────────────────────────────────

@app.route("/api/lists/<list_id>/cards", methods=["POST"])
@require_api_key
def api_add_card(list_id):
    data = _json_body()
    card = VolunteerCard(
        id=new_id(),
        title=(data.get("title") or "").strip() or "Unnamed Volunteer",
        email=data.get("email") or "",
        phone=data.get("phone") or "",
        description=data.get("description") or "",
        tags=list(data.get("tags") or []),
        current_roles=list(data.get("currentRoles") or []),
        created_at=utc_now(),
        attachments=[],
        data={},
    )
    if BOARD.add_card(list_id, card) is None:
        return jsonify({"error": "List not found"}), 404
    BOARD.flush(strict=True)
    return jsonify({"card": card.to_dict()}), 201


@app.route("/api/cards/<card_id>")
def api_get_card(card_id):
    lst, card = _card_or_404(card_id)
    return jsonify({"card": card.to_dict(), "list": lst.to_dict()})


@app.route("/api/lists/<list_id>/cards/<card_id>", methods=["PUT"])
@require_api_key
def api_update_card(list_id, card_id):
    found = BOARD.find_card(card_id)
    if not found or found[0].id != list_id:
        return jsonify({"error": "Volunteer not found in list"}), 404
    _, existing = found

    data = _json_body()
    data["id"] = card_id
    updated = _card_from_body(data, existing)
    with BOARD.sync() as store:
        if not store.update_volunteer(updated):
            return jsonify({"error": "Volunteer not found in list"}), 404
        card = store.get_volunteer(card_id)
    return jsonify({"card": card.to_dict()})


@app.route("/api/lists/<list_id>/cards/<card_id>", methods=["DELETE"])
@require_api_key
def api_delete_card(list_id, card_id):
    if not BOARD.delete_card(list_id, card_id):
        return jsonify({"error": "Volunteer not found in list"}), 404
    return jsonify({"deleted": card_id})


@app.route("/api/cards/<card_id>/move", methods=["POST"])
@require_api_key
def api_move_card(card_id):
    data = _json_body()
    to_list = data.get("to")
    if not to_list:
        return jsonify({"error": "to is required"}), 400
    from_list = data.get("from")
    if not from_list:
        found = BOARD.find_card(card_id)
        if not found:
            return jsonify({"error": "Volunteer not found"}), 404
        from_list = found[0].id
    if not BOARD.move_card(card_id, from_list, to_list):
        return jsonify({"error": "Invalid move"}), 400
    _, card = BOARD.find_card(card_id)
    return jsonify({"card": card.to_dict()})


@app.route("/api/cards/<card_id>/attachments", methods=["POST"])
@require_api_key
def api_add_attachment(card_id):
    lst, card = _card_or_404(card_id)
    upload = request.files.get("file")
    if upload is None:
        return jsonify({"error": "file is required"}), 400

    warning = None
    if STORAGE.is_nearly_full():
        warning = "Storage is nearly full. The image will be heavily compressed."

    try:
        attachment = prepare_attachment(upload.filename or "upload", upload.mimetype, upload.read())
    except UploadTooLargeError as e:
        return jsonify({"error": str(e)}), 413

    card.attachments.append(attachment)
    if attachment.type.startswith("image/") and not card.image:
        card.image = attachment.url
        debug_log("Automatically setting profile image from new attachment", {
            "attachmentId": attachment.id, "attachmentName": attachment.name,
        })
    BOARD.update_card(lst.id, card)
    BOARD.flush(strict=True)
    return jsonify({"attachment": attachment.to_dict(), "card": card.to_dict(), "warning": warning}), 201


@app.route("/api/cards/<card_id>/attachments/<attachment_id>", methods=["DELETE"])
@require_api_key
def api_remove_attachment(card_id, attachment_id):
    lst, card = _card_or_404(card_id)
    removed = next((a for a in card.attachments if a.id == attachment_id), None)
    if removed is None:
        return jsonify({"error": "Attachment not found"}), 404
    card.attachments = [a for a in card.attachments if a.id != attachment_id]
    if card.image and card.image == removed.url:
        card.image = None
    BOARD.update_card(lst.id, card)
    BOARD.flush(strict=True)
    return jsonify({"card": card.to_dict()})


@app.route("/api/cards/<card_id>/profile-picture", methods=["POST"])
@require_api_key
def api_set_profile_picture(card_id):
    lst, card = _card_or_404(card_id)
    attachment_id = _json_body().get("attachmentId")
    attachment = next((a for a in card.attachments if a.id == attachment_id), None)
    if attachment is None or not attachment.url:
        return jsonify({"error": "Invalid attachment. Cannot set as profile picture."}), 400
    image = attachment.url
    if len(image) > COMPRESS_ON_SAVE_SIZE:
        try:
            image = compress_image_for_storage(image)
        except ImageCompressionError as e:
            return jsonify({"error": str(e)}), 400
    card.image = image
    BOARD.update_card(lst.id, card)
    BOARD.flush(strict=True)
    return jsonify({"card": card.to_dict()})


# ── Checklist ────────────────────────────────────────────────────────────────

@app.route("/api/checklist", methods=["GET"])
def api_checklist():
    return jsonify({"items": [i.to_dict() for i in CHECKLIST.get_items()]})


@app.route("/api/checklist", methods=["PUT"])
@require_api_key
def api_save_checklist():
    raw = _json_body().get("items")
    if not isinstance(raw, list):
        return jsonify({"error": "items must be a list"}), 400
    items = [ChecklistItem.from_dict(i) for i in raw if isinstance(i, dict)]
    for item in items:
        if not item.id:
            item.id = new_id()
    with BOARD.sync():
        new_items = CHECKLIST.save_items(items)
    debug_log("Saved checklist items", {"count": len(items), "new": len(new_items)})
    return jsonify({"items": [i.to_dict() for i in items], "added": len(new_items)})


@app.route("/api/checklist/items", methods=["POST"])
@require_api_key
def api_add_checklist_item():
    text = (_json_body().get("text") or "").strip()
    if not text:
        return jsonify({"error": "text is required"}), 400
    with BOARD.sync():
        item = CHECKLIST.add_item(text)
    return jsonify({"item": item.to_dict()}), 201


@app.route("/api/checklist/items/<item_id>", methods=["PUT"])
@require_api_key
def api_update_checklist_item(item_id):
    data = _json_body()
    changes = {}
    if "text" in data:
        changes["text"] = str(data["text"])
    if "showScheduledDate" in data:
        changes["show_scheduled_date"] = bool(data["showScheduledDate"])
    if "showCompletedDate" in data:
        changes["show_completed_date"] = bool(data["showCompletedDate"])
    with BOARD.sync():
        item = CHECKLIST.update_item(item_id, **changes)
    if item is None:
        return jsonify({"error": "Checklist item not found"}), 404
    return jsonify({"item": item.to_dict()})


@app.route("/api/checklist/items/<item_id>", methods=["DELETE"])
@require_api_key
def api_remove_checklist_item(item_id):
    with BOARD.sync():
        removed = CHECKLIST.remove_item(item_id)
    if not removed:
        return jsonify({"error": "Checklist item not found"}), 404
    return jsonify({"deleted": item_id})


@app.route("/api/checklist/move", methods=["POST"])
@require_api_key
def api_move_checklist_item():
    data = _json_body()
    try:
        with BOARD.sync():
            items = CHECKLIST.move_item(int(data["from"]), int(data["to"]))
    except (KeyError, TypeError, ValueError):
        return jsonify({"error": "from and to indexes are required"}), 400
    except IndexError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [i.to_dict() for i in items]})


@app.route("/api/cards/<card_id>/checklist", methods=["GET"])
def api_card_checklist(card_id):
    _card_or_404(card_id)
    BOARD.flush()
    progress = CHECKLIST.get_volunteer_progress(card_id)
    return jsonify({"progress": [p.to_dict() for p in progress]})


@app.route("/api/cards/<card_id>/checklist", methods=["PUT"])
@require_api_key
def api_save_card_checklist(card_id):
    _card_or_404(card_id)
    raw = _json_body().get("progress")
    if not isinstance(raw, list):
        return jsonify({"error": "progress must be a list"}), 400
    progress = [ChecklistProgress.from_dict(p) for p in raw if isinstance(p, dict)]
    with BOARD.sync():
        CHECKLIST.update_volunteer_progress(card_id, progress)
    return jsonify({"progress": [p.to_dict() for p in progress]})


def _parse_date(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@app.route("/api/cards/<card_id>/checklist/<item_id>", methods=["POST"])
@require_api_key
def api_update_card_checklist_item(card_id, item_id):
    _card_or_404(card_id)
    data = _json_body()
    completed_by = data.get("completedBy") or "Current User"
    try:
        with BOARD.sync():
            progress = None
            if "completed" in data:
                progress = CHECKLIST.toggle_item(card_id, item_id, bool(data["completed"]), completed_by)
            if "scheduledDate" in data:
                progress = CHECKLIST.set_scheduled_date(card_id, item_id, _parse_date(data["scheduledDate"]))
            if "completedDate" in data:
                progress = CHECKLIST.set_completed_date(
                    card_id, item_id, _parse_date(data["completedDate"]), completed_by
                )
    except KeyError:
        return jsonify({"error": "Checklist item not found"}), 404
    except ValueError as e:
        return jsonify({"error": f"Invalid date: {e}"}), 400
    if progress is None:
        return jsonify({"error": "completed, scheduledDate or completedDate is required"}), 400
    return jsonify({"progress": [p.to_dict() for p in progress]})


# ── CSV ──────────────────────────────────────────────────────────────────────

@app.route("/api/csv/import", methods=["POST"])
@require_api_key
def api_csv_import():
    upload = request.files.get("file")
    if upload is not None:
        text = upload.read().decode("utf-8-sig", errors="replace")
    else:
        text = request.get_data(as_text=True)
    if not text.strip():
        return jsonify({"success": False, "error": "No CSV data provided",
                        "added": 0, "skipped": 0, "total": 0}), 400
    try:
        with BOARD.sync() as store:
            result = import_csv(store, text)
    except CSVParseError as e:
        return jsonify({"success": False, "error": str(e),
                        "added": 0, "skipped": 0, "total": 0}), 400
    return jsonify(result.to_dict())


@app.route("/api/csv/export")
def api_csv_export():
    cards = BOARD.all_volunteers().cards
    if not cards:
        return jsonify({"error": "No volunteer data found to export."}), 404
    return _download(export_csv(cards, BOARD.lists), export_filename(), "text/csv; charset=utf-8")


# ── Reports ──────────────────────────────────────────────────────────────────

@app.route("/api/reports", methods=["POST"])
def api_report():
    data = _json_body()
    title = data.get("title") or "Volunteer Report"
    fmt = (data.get("format") or "csv").lower()
    if fmt not in ("csv", "html"):
        return jsonify({"error": "format must be 'csv' or 'html'"}), 400

    volunteers = BOARD.all_volunteers().cards
    if data.get("filtered"):
        volunteers = filter_volunteers(
            volunteers,
            roles=data.get("roles") or [],
            tags=data.get("tags") or [],
            lists=data.get("lists") or [],
        )
    volunteers = filter_volunteers(
        volunteers, list_id=data.get("listId"), exclude=data.get("exclude") or [],
    )
    include_header = data.get("includeHeader", True)

    try:
        fields = resolve_fields(data.get("fields"))
        if fmt == "csv":
            body = generate_csv_report(volunteers, fields, BOARD.lists, include_header)
            return _download(body, report_filename(title, "csv"), "text/csv; charset=utf-8")
        body = generate_html_report(title, volunteers, fields, BOARD.lists, include_header)
        return _download(body, report_filename(title, "html"), "text/html; charset=utf-8")
    except ReportError as e:
        return jsonify({"error": str(e)}), 400


# ── Storage tools ────────────────────────────────────────────────────────────

@app.route("/api/storage")
def api_storage():
    BOARD.flush()
    report = STORAGE.analyze()
    data = report.to_dict()
    data["nearlyFull"] = STORAGE.is_nearly_full()
    data["message"] = (
        f"Storage analysis complete. Using {round(report.usage_percentage)}% of available storage."
    )
    return jsonify(data)


@app.route("/api/storage/compress", methods=["POST"])
@require_api_key
def api_storage_compress():
    with BOARD.sync() as store:
        result = store.compress_all_images()
    return jsonify(result.to_dict())


@app.route("/api/storage/compress-aggressive", methods=["POST"])
@require_api_key
def api_storage_compress_aggressive():
    with BOARD.sync() as store:
        result = store.aggressively_compress_images()
    return jsonify(result.to_dict())


@app.route("/api/storage/remove-images", methods=["POST"])
@require_api_key
def api_storage_remove_images():
    ids = _json_body().get("ids") or []
    if not ids:
        return jsonify({"error": "No volunteers selected. Please select at least one volunteer."}), 400
    with BOARD.sync() as store:
        removed = store.remove_images(ids)
    return jsonify({"removed": removed})


@app.route("/api/storage/force-save", methods=["POST"])
@require_api_key
def api_storage_force_save():
    """Re-validate every stored image, write everything back and reload the board."""
    with BOARD.sync() as store:
        lists, volunteers = BOARD.autosaver.load_all_data()
        if not volunteers:
            return jsonify({"error": "No volunteers found in storage."}), 404
        result = store.repair_images(volunteers)
        BOARD.autosaver.force_save(lists, volunteers)
    debug_log("Force-saved volunteer data", result.to_dict())
    return jsonify(result.to_dict())


@app.route("/api/storage/images")
def api_storage_images():
    BOARD.flush()
    return jsonify(BOARD.store.image_diagnostics())


@app.route("/api/storage/export")
def api_storage_export():
    cards = BOARD.all_volunteers().cards
    if not cards:
        return jsonify({"error": "No volunteers found in storage."}), 404
    return _download(
        export_volunteer_data(cards),
        export_filename("volunteers-export"),
        "text/csv; charset=utf-8",
    )


@app.route("/api/backup")
def api_backup():
    BOARD.flush()
    stamp = datetime.now(timezone.utc).date().isoformat()
    return _download(create_backup(STORAGE), f"volunteer-tracker-backup-{stamp}.json", "application/json")


@app.route("/api/restore", methods=["POST"])
@require_api_key
def api_restore():
    try:
        with BOARD.sync():
            counts = restore_backup(STORAGE, request.get_data(as_text=True))
    except BackupError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"restored": True, **counts})


# ── Little Green Light ───────────────────────────────────────────────────────

@app.route("/api/lgl", methods=["GET", "POST"])
@require_api_key
def api_lgl_proxy():
    endpoint = request.args.get("endpoint") or "/constituents"
    if not endpoint.startswith("/"):
        return jsonify({"error": "endpoint must start with '/'"}), 400
    try:
        if request.method == "POST":
            return jsonify(LGL_CLIENT.post(endpoint, _json_body()))
        return jsonify(LGL_CLIENT.get(endpoint))
    except LGLConfigError as e:
        return jsonify({"error": str(e)}), 500
    except (LGLAPIError, ValueError) as e:
        logger.error(f"Error in LGL API proxy: {e}")
        return jsonify({"error": str(e)}), 500
    except Exception as e:
        logger.error(f"Error in LGL API proxy: {e}")
        return jsonify({"error": str(e)}), 502


@app.route("/api/lgl/volunteers")
def api_lgl_volunteers():
    volunteers = LGL_SERVICE.fetch_volunteers()
    return jsonify({"volunteers": [v.to_dict() for v in volunteers], "count": len(volunteers)})


@app.route("/api/lgl-webhook", methods=["POST"])
def api_lgl_webhook():
    """Ingest an LGL form submission into the first list, merging into an existing card."""
    global _last_processed_volunteer
    logger.info("Webhook endpoint called")

    provided = request.headers.get("X-Webhook-Secret") or request.args.get("secret", "")
    if not verify_webhook_secret(provided, CONFIG.lgl_webhook_secret):
        logger.warning("Webhook rejected: bad secret")
        return jsonify({"error": "Unauthorized"}), 401 if not provided else 403

    payload = request.get_json(force=True, silent=True)
    if payload is None:
        logger.error("Error parsing webhook payload")
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        volunteer = process_form_submission(payload)
    except ValueError as e:
        return jsonify({"error": "Invalid JSON payload", "message": str(e)}), 400

    try:
        card = BOARD.upsert_first_list(build_volunteer_card(volunteer, CHECKLIST.initial_progress()))
        BOARD.flush(strict=True)
    except QuotaExceededError:
        raise
    except Exception as e:
        logger.error(f"Error processing webhook: {e}")
        return jsonify({"error": "Failed to process webhook", "message": str(e)}), 500

    _last_processed_volunteer = card.to_dict()
    logger.info(f"Volunteer card saved from webhook: {card.title} (ID: {card.id})")
    return jsonify({
        "success": True,
        "message": "Form submission processed successfully",
        "volunteer": _last_processed_volunteer,
    })


@app.route("/api/lgl-webhook", methods=["GET"])
def api_lgl_webhook_last():
    return jsonify({"lastProcessedVolunteer": _last_processed_volunteer, "timestamp": utc_now()})


@app.route("/api/add-volunteer", methods=["POST"])
@require_api_key
def api_add_test_volunteer():
    volunteer = _json_body()
    if not volunteer.get("id") or not volunteer.get("title"):
        return jsonify({"error": "Invalid volunteer data"}), 400
    for i, existing in enumerate(_test_volunteers):
        if existing.get("id") == volunteer["id"]:
            _test_volunteers[i] = volunteer
            break
    else:
        _test_volunteers.append(volunteer)
    logger.info(f"Stored test volunteer: {volunteer['title']} (ID: {volunteer['id']})")
    return jsonify({"success": True, "message": "Volunteer added successfully"})


@app.route("/api/add-volunteer", methods=["GET"])
def api_list_test_volunteers():
    return jsonify({"volunteers": _test_volunteers})


# ── Debug ────────────────────────────────────────────────────────────────────

@app.route("/api/debug")
def api_debug():
    # Only report whether secrets exist, never their values
    environment = {
        "LGL_API_TOKEN": "set" if CONFIG.lgl_api_token else None,
        "LGL_API_URL": CONFIG.lgl_api_url or "not set",
        "LGL_WEBHOOK_SECRET": "set" if CONFIG.lgl_webhook_secret else None,
        "API_SECRET": "set" if CONFIG.api_secret else None,
    }
    return jsonify({"environment": environment, "timestamp": utc_now()})


@app.route("/api/debug-logs", methods=["GET"])
def api_debug_logs():
    return jsonify({"logs": get_debug_logs()})


@app.route("/api/debug-logs", methods=["DELETE"])
@require_api_key
def api_clear_debug_logs():
    clear_debug_logs()
    return jsonify({"cleared": True})


@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": CONFIG.db_path if CONFIG else None})


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Volunteer Board Server")
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to the storage database")
    args = parser.parse_args()

    config = Config.load(args.config)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.db:
        config.db_path = args.db

    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="%(asctime)s [volunteer-board] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    init_app(config)
    logger.info(f"Volunteer board on http://{config.host}:{config.port} (db: {config.db_path})")
    try:
        app.run(host=config.host, port=config.port, debug=False, threaded=True)
    finally:
        BOARD.flush()
