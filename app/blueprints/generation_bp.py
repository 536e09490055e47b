"""
Generation Blueprint.

Endpoints:
    POST /api/v1/generate/business-plan       — {business_idea, profile?, priority?, model?}
    POST /api/v1/generate/marketing-strategy  — {business_idea, profile?, priority?, model?}
    POST /api/v1/generate/business-names      — {industry, keywords?}
    POST /api/v1/generate/custom              — {prompt, task_type?}
    GET  /api/v1/generate/cache/stats         — lookaside cache statistics

Provider failures after retries come back as an offline answer
(``offline: true``, HTTP 200). An unparseable provider answer is a 502.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from app.ai.assistants.business_planner import BusinessPlanner
from app.ai.gateway import GenerationGateway
from app.core.exceptions import GenerationError, MalformedResponseError, classify_generation_error

logger = logging.getLogger(__name__)

generation_bp = Blueprint("generation", __name__, url_prefix="/api/v1/generate")

# ── Rate limiting ─────────────────────────────────────────────────────────
from app import limiter  # noqa: E402

_generate_limit = limiter.shared_limit("30/minute", scope="generate")


# ── Lazy singletons stored on Flask app (test-isolation safe) ───────────────

def _get_gateway() -> GenerationGateway:
    if not hasattr(current_app, "_generation_gateway"):
        current_app._generation_gateway = GenerationGateway.from_config(current_app.config)
    return current_app._generation_gateway


def _get_planner() -> BusinessPlanner:
    if not hasattr(current_app, "_business_planner"):
        current_app._business_planner = BusinessPlanner(_get_gateway())
    return current_app._business_planner


@generation_bp.errorhandler(MalformedResponseError)
def handle_malformed_response(e):
    return jsonify({"error": str(e), "code": "MALFORMED_RESPONSE"}), 502


@generation_bp.errorhandler(GenerationError)
def handle_generation_error(e):
    logger.error("Generation failed: %s", e)
    return jsonify({"error": str(e), "code": classify_generation_error(e).upper()}), 502


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _required(data: dict, field: str):
    value = (data.get(field) or "").strip() if isinstance(data.get(field), str) else None
    if not value:
        return None, (jsonify({"error": f"{field} is required"}), 400)
    return value, None


# ── Routes ────────────────────────────────────────────────────────────────────


@generation_bp.route("/business-plan", methods=["POST"])
@_generate_limit
def business_plan():
    data = _body()
    idea, err = _required(data, "business_idea")
    if err:
        return err
    outcome = _get_planner().generate_business_plan(
        idea, data.get("profile"), user_id=data.get("user_id"),
        priority=data.get("priority", "quality"), model=data.get("model"),
    )
    return jsonify(outcome), 200


@generation_bp.route("/marketing-strategy", methods=["POST"])
@_generate_limit
def marketing_strategy():
    data = _body()
    idea, err = _required(data, "business_idea")
    if err:
        return err
    outcome = _get_planner().generate_marketing_strategy(
        idea, data.get("profile"), user_id=data.get("user_id"),
        priority=data.get("priority", "quality"), model=data.get("model"),
    )
    return jsonify(outcome), 200


@generation_bp.route("/business-names", methods=["POST"])
@_generate_limit
def business_names():
    data = _body()
    industry, err = _required(data, "industry")
    if err:
        return err
    keywords = data.get("keywords") or []
    if not isinstance(keywords, list):
        return jsonify({"error": "keywords must be a list"}), 400
    outcome = _get_planner().generate_business_names(
        industry, [str(k) for k in keywords], user_id=data.get("user_id"),
        priority=data.get("priority", "quality"), model=data.get("model"),
    )
    return jsonify(outcome), 200


@generation_bp.route("/custom", methods=["POST"])
@_generate_limit
def custom():
    data = _body()
    prompt, err = _required(data, "prompt")
    if err:
        return err
    outcome = _get_planner().generate_custom(
        prompt, data.get("task_type", "general"),
        user_id=data.get("user_id"), model=data.get("model"),
    )
    return jsonify(outcome), 200


@generation_bp.route("/cache/stats", methods=["GET"])
def cache_stats():
    return jsonify(_get_gateway().cache.get_stats())
