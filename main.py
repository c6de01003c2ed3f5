from flask import Flask, request, jsonify
from flask_cors import CORS
from deal_engine import DealProcessor, RoutingConfig
from deal_engine.errors import (
    InvalidStateTransition,
    NotAuthorized,
    ValidationError,
    WorkflowAlreadyInitiated,
)
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_routing_config():
    """Routing thresholds from the JSON file named by DEAL_ROUTING_CONFIG, if set"""
    path = os.environ.get("DEAL_ROUTING_CONFIG")
    if not path:
        return RoutingConfig()
    logger.info(f"Loading routing config from {path}")
    return RoutingConfig.from_file(path)


def error_response(e):
    """Map engine errors to a JSON body and HTTP status"""
    if isinstance(e, ValidationError):
        body = {"error": str(e), "status": "validation_failed", "validationErrors": [
            {"tierNumber": i.tier_number, "field": i.field, "message": i.message} for i in e.issues
        ]}
        return jsonify(body), 400
    if isinstance(e, ValueError):
        return jsonify({"error": str(e), "status": "validation_failed"}), 400
    if isinstance(e, LookupError):
        return jsonify({"error": str(e), "status": "not_found"}), 404
    if isinstance(e, NotAuthorized):
        return jsonify({"error": str(e), "status": "not_authorized"}), 403
    if isinstance(e, (InvalidStateTransition, WorkflowAlreadyInitiated)):
        return jsonify({"error": str(e), "status": "conflict"}), 409
    return jsonify({"error": "An unexpected error occurred during processing", "status": "failed"}), 500


def create_app(processor=None):
    app = Flask(__name__)

    # Enable CORS for all routes
    CORS(app)

    processor = processor or DealProcessor(
        config=load_routing_config(),
        max_tiers=int(os.environ.get("MAX_TIERS", 5)),
    )
    app.config["DEAL_PROCESSOR"] = processor

    def read_json():
        data = request.get_json(force=True, silent=True)
        if not data:
            raise ValueError("No input data provided")
        return data

    @app.route("/api", methods=["GET"])
    def api_info():
        """API information endpoint"""
        return jsonify({
            "status": "ok",
            "message": "Deal Desk Approval API",
            "version": "1.0",
            "endpoints": {
                "summary": "/deals/summary [POST]",
                "approval_chain": "/deals/approval-chain [POST]",
                "initiate_approval": "/deals/<deal_id>/initiate-approval [POST]",
                "review_approval": "/deals/<deal_id>/approvals/<approval_id> [PATCH]",
                "approvals": "/deals/<deal_id>/approvals [GET]",
                "approval_status": "/deals/<deal_id>/approval-status [GET]",
                "departments": "/approval-departments [GET]",
                "health": "/health [GET]"
            }
        }), 200

    @app.route("/health", methods=["GET"])
    def health():
        """Health check for monitoring"""
        return jsonify({"status": "healthy"}), 200

    @app.route("/deals/summary", methods=["POST"])
    def deal_summary():
        """Financial summary, tier growth and validation feedback for a deal"""
        try:
            return jsonify(processor.summarize_from_dict(read_json())), 200
        except Exception as e:
            logger.error(f"Summary error: {str(e)}", exc_info=not isinstance(e, ValueError))
            return error_response(e)

    @app.route("/deals/approval-chain", methods=["POST"])
    def approval_chain():
        """Preview the approval chain a deal would be routed through"""
        try:
            return jsonify(processor.preview_chain_from_dict(read_json())), 200
        except Exception as e:
            logger.error(f"Approval chain error: {str(e)}", exc_info=not isinstance(e, ValueError))
            return error_response(e)

    @app.route("/deals/<int:deal_id>/initiate-approval", methods=["POST"])
    def initiate_approval(deal_id):
        """Submit a deal and create its approval workflow"""
        try:
            logger.info(f"Initiating approval for deal {deal_id}")
            result = processor.initiate_from_dict(deal_id, read_json())
            return jsonify(result), 201
        except Exception as e:
            logger.error(f"Initiation error for deal {deal_id}: {str(e)}")
            return error_response(e)

    @app.route("/deals/<int:deal_id>/approvals/<int:approval_id>", methods=["PATCH"])
    def review_approval(deal_id, approval_id):
        """Approve, reject or request revision on one approval"""
        try:
            result = processor.review_from_dict(deal_id, approval_id, read_json())
            return jsonify(result), 200
        except Exception as e:
            logger.error(f"Review error for approval {approval_id}: {str(e)}")
            return error_response(e)

    @app.route("/deals/<int:deal_id>/approvals", methods=["GET"])
    def list_approvals(deal_id):
        try:
            return jsonify(processor.approvals_to_dict(deal_id)), 200
        except Exception as e:
            logger.error(f"Approval listing error for deal {deal_id}: {str(e)}", exc_info=True)
            return error_response(e)

    @app.route("/deals/<int:deal_id>/approval-status", methods=["GET"])
    def approval_status(deal_id):
        try:
            return jsonify(processor.progress_to_dict(deal_id)), 200
        except Exception as e:
            logger.error(f"Approval status error for deal {deal_id}: {str(e)}", exc_info=True)
            return error_response(e)

    @app.route("/approval-departments", methods=["GET"])
    def approval_departments():
        try:
            return jsonify(processor.departments_to_dict()), 200
        except Exception as e:
            logger.error(f"Department listing error: {str(e)}", exc_info=True)
            return error_response(e)

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
