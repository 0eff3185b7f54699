import logging

from botocore.exceptions import BotoCoreError, ClientError
from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from backend.core import OrganMatchBackend
from backend.exceptions import (
    InvalidConfigurationError,
    InvalidRecordError,
    InvalidStatusTransitionError,
    RequestNotFoundError,
)

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')


def get_backend():
    backend = current_app.extensions.get("organ_backend")
    if backend is None:
        backend = OrganMatchBackend.from_config(current_app.config)
        current_app.extensions["organ_backend"] = backend
    return backend


def config_overrides():
    """Matching configuration fields given as query arguments"""
    return request.args.to_dict() or None


# -------------------------------
# Error mapping
# -------------------------------
@api_bp.errorhandler(InvalidConfigurationError)
@api_bp.errorhandler(InvalidRecordError)
@api_bp.errorhandler(ValidationError)
def handle_bad_input(e):
    return jsonify({"error": str(e)}), 400


@api_bp.errorhandler(RequestNotFoundError)
def handle_not_found(e):
    return jsonify({"error": str(e)}), 404


@api_bp.errorhandler(InvalidStatusTransitionError)
def handle_conflict(e):
    return jsonify({"error": str(e), "status": e.current}), 409


@api_bp.errorhandler(ClientError)
@api_bp.errorhandler(BotoCoreError)
def handle_store_error(e):
    logger.error("Document store call failed: %s", e)
    return jsonify({"error": "Could not reach the donor database, please retry"}), 502


# -------------------------------
# Matching
# -------------------------------
@api_bp.route('/matching-config', methods=['GET'])
def get_matching_config():
    return jsonify(get_backend().matching_config().to_dict())


@api_bp.route('/matches', methods=['GET'])
def get_matches():
    """Ranked donor matches for every pending organ request"""
    matches = get_backend().find_matches(config_overrides())
    return jsonify([m.to_dict() for m in matches])


@api_bp.route('/matches/summary', methods=['GET'])
def get_match_summary():
    return jsonify(get_backend().match_summary(config_overrides()))


@api_bp.route('/matches/pairs', methods=['GET'])
def get_match_pairs():
    """Donor/request pairs above 70% compatibility"""
    return jsonify([p.to_dict() for p in get_backend().find_pairs()])


@api_bp.route('/stats', methods=['GET'])
def get_stats():
    return jsonify(get_backend().request_stats())


# -------------------------------
# Donors and requests
# -------------------------------
@api_bp.route('/donors', methods=['GET'])
def get_donors():
    return jsonify([d.to_dict() for d in get_backend().load_donors()])


@api_bp.route('/requests', methods=['GET'])
def get_requests():
    status = request.args.get('status')
    return jsonify([r.to_dict() for r in get_backend().load_requests(status)])


@api_bp.route('/requests/<request_id>/approve', methods=['POST'])
def approve_request(request_id):
    data = request.get_json(silent=True) or {}
    approved = get_backend().approve_request(request_id, donor_id=data.get('donorId'))
    return jsonify(approved.to_dict())


@api_bp.route('/requests/<request_id>/reject', methods=['POST'])
def reject_request(request_id):
    return jsonify(get_backend().reject_request(request_id).to_dict())


# Health check endpoint for Vercel
@api_bp.route('/health', methods=['GET'])
def health_check():
    return jsonify({"status": "healthy", "service": "OrganConnect API"})
