"""
Module Lifecycle & Context Blueprint.

Endpoints (all scoped by ``user_id`` query param or JSON body field):
    GET  /api/v1/modules                                         — user's module records
    GET  /api/v1/modules/catalog                                 — static catalog
    GET  /api/v1/modules/next                                    — unlocked, not yet completed
    POST /api/v1/modules/<module_id>/activate                    — activate / restart
    POST /api/v1/modules/<module_id>/progress                    — set progress (0-100)
    POST /api/v1/modules/<module_id>/pause                       — active → paused
    POST /api/v1/modules/<module_id>/resume                      — paused → active
    POST /api/v1/modules/<module_id>/sub-modules/<sub_id>/complete
    GET  /api/v1/modules/<module_id>/dependencies                — dependency gate
    POST /api/v1/context/refresh                                 — synthesize + persist
    GET  /api/v1/context                                         — stored snapshot

Layer contract:
    - No ORM calls here; all record work goes through ModuleLifecycleService
      and ContextSynthesisService.
    - The profile is supplied by the caller (``profile`` in the JSON body);
      profiles are owned by another service.
"""

import logging
import math

from flask import Blueprint, jsonify, request

from app.core.exceptions import (
    NotFoundError,
    StoreUnavailableError,
    UnknownModuleError,
    WrongStateError,
)
from app.services.context_synthesis import ContextSynthesisService
from app.services.module_catalog import default_catalog
from app.services.module_lifecycle import ModuleLifecycleService

logger = logging.getLogger(__name__)

modules_bp = Blueprint("modules", __name__, url_prefix="/api/v1/modules")
context_bp = Blueprint("context", __name__, url_prefix="/api/v1/context")


# ── Error handlers ────────────────────────────────────────────────────────────


def _register_error_handlers(bp):
    @bp.errorhandler(UnknownModuleError)
    def handle_unknown_module(e):
        return jsonify({"error": str(e), "code": "UNKNOWN_MODULE", "module_id": e.module_id}), 404

    @bp.errorhandler(NotFoundError)
    def handle_not_found(e):
        return jsonify({"error": str(e), "code": "NOT_FOUND"}), 404

    @bp.errorhandler(WrongStateError)
    def handle_wrong_state(e):
        return jsonify({"error": str(e), "code": "WRONG_STATE", "status": e.current}), 409

    @bp.errorhandler(StoreUnavailableError)
    def handle_store_unavailable(e):
        logger.error("Store unavailable: %s", e)
        return jsonify({"error": "Record store unavailable", "code": "STORE_UNAVAILABLE"}), 503


_register_error_handlers(modules_bp)
_register_error_handlers(context_bp)


# ── Private helpers ───────────────────────────────────────────────────────────


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _user_id():
    """Resolve the owning user; returns (user_id, err_response)."""
    user_id = request.args.get("user_id") or _body().get("user_id")
    if not user_id:
        return None, (jsonify({"error": "user_id is required"}), 400)
    return str(user_id), None


def _not_provisioned():
    return jsonify({"error": "Module tracking is not provisioned",
                    "code": "FEATURE_NOT_PROVISIONED"}), 503


def _service(user_id: str) -> ModuleLifecycleService:
    # no profile in the body: completions leave the stored snapshot alone
    profile = _body().get("profile") or None
    return ModuleLifecycleService(
        user_id,
        context_service=ContextSynthesisService(),
        profile_provider=lambda _uid: profile,
    )


# ── Catalog ───────────────────────────────────────────────────────────────────


@modules_bp.route("/catalog", methods=["GET"])
def get_catalog():
    category = request.args.get("category")
    modules = default_catalog.by_category(category) if category else list(default_catalog)
    return jsonify({"modules": [m.to_dict() for m in modules], "total": len(modules)})


# ── Module records ────────────────────────────────────────────────────────────


@modules_bp.route("", methods=["GET"])
def list_modules():
    user_id, err = _user_id()
    if err:
        return err
    svc = _service(user_id)
    items = svc.fetch_modules()
    status = request.args.get("status")
    if status:
        items = [m for m in items if m["status"] == status]
    return jsonify({"items": items, "total": len(items)})


@modules_bp.route("/next", methods=["GET"])
def next_modules():
    user_id, err = _user_id()
    if err:
        return err
    modules = _service(user_id).next_modules()
    return jsonify({"modules": [m.to_dict() for m in modules]})


@modules_bp.route("/<module_id>/activate", methods=["POST"])
def activate_module(module_id):
    user_id, err = _user_id()
    if err:
        return err
    record = _service(user_id).activate(module_id, _body().get("metadata"))
    if record is None:
        return _not_provisioned()
    return jsonify(record), 200


@modules_bp.route("/<module_id>/progress", methods=["POST"])
def update_progress(module_id):
    user_id, err = _user_id()
    if err:
        return err
    data = _body()
    progress = data.get("progress")
    if isinstance(progress, bool) or not isinstance(progress, (int, float)):
        return jsonify({"error": "progress must be a number"}), 400
    if not math.isfinite(progress):
        return jsonify({"error": "progress must be a finite number"}), 400

    record = _service(user_id).update_progress(module_id, progress, data.get("metadata"))
    if record is None:
        raise NotFoundError("ModuleActivation", module_id, user_id)
    return jsonify(record), 200


@modules_bp.route("/<module_id>/pause", methods=["POST"])
def pause_module(module_id):
    user_id, err = _user_id()
    if err:
        return err
    svc = _service(user_id)
    record = svc.pause(module_id)
    if record is None:
        raise WrongStateError(module_id, "pause", svc.get_module_status(module_id))
    return jsonify(record), 200


@modules_bp.route("/<module_id>/resume", methods=["POST"])
def resume_module(module_id):
    user_id, err = _user_id()
    if err:
        return err
    svc = _service(user_id)
    record = svc.resume(module_id)
    if record is None:
        raise WrongStateError(module_id, "resume", svc.get_module_status(module_id))
    return jsonify(record), 200


@modules_bp.route("/<module_id>/sub-modules/<sub_module_id>/complete", methods=["POST"])
def complete_sub_module(module_id, sub_module_id):
    user_id, err = _user_id()
    if err:
        return err
    svc = _service(user_id)
    if not svc.complete_sub_module(module_id, sub_module_id, _body().get("data")):
        return _not_provisioned()
    return jsonify({
        "module_id": module_id,
        "sub_module_id": sub_module_id,
        "completed_sub_modules": svc.get_completed_sub_modules(module_id),
        "module": svc.get_module(module_id),
    }), 200


@modules_bp.route("/<module_id>/dependencies", methods=["GET"])
def check_dependencies(module_id):
    user_id, err = _user_id()
    if err:
        return err
    svc = _service(user_id)
    unlocked = svc.check_dependencies(module_id)
    return jsonify({
        "module_id": module_id,
        "unlocked": unlocked,
        "dependencies": [
            {"module_id": dep.id, "status": svc.get_module_status(dep.id)}
            for dep in default_catalog.dependencies(module_id)
        ],
    })


# ── Context snapshot ──────────────────────────────────────────────────────────


@context_bp.route("/refresh", methods=["POST"])
def refresh_context():
    user_id, err = _user_id()
    if err:
        return err
    svc = ContextSynthesisService()
    snapshot = svc.synthesize(user_id, _body().get("profile") or {})
    stored = svc.persist(user_id, snapshot["rendered"], snapshot["structured"], snapshot["hash"])
    return jsonify({
        "hash": snapshot["hash"],
        "stored": stored,
        "context": snapshot["structured"],
        "rendered": snapshot["rendered"],
    }), 200


@context_bp.route("", methods=["GET"])
def get_context():
    user_id, err = _user_id()
    if err:
        return err
    snapshot = ContextSynthesisService().get_snapshot(user_id)
    if snapshot is None:
        raise NotFoundError("UserContext", user_id=user_id)
    include_json = request.args.get("include_json", "false").lower() == "true"
    return jsonify(snapshot.to_dict(include_json=include_json))
