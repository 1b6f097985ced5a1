import json

from flask import Blueprint, current_app, jsonify, request

from ..jobs import Job, JobResult, JobValidationError
from ..services.job_runner import RunnerBusyError

bp = Blueprint("rotate_api", __name__)


def _parse_job(payload) -> Job:
    settings = current_app.extensions["rotate_workflow"].settings
    return Job.from_payload(payload, default_rotation=settings.default_rotation)


@bp.post("/rotate-and-update")
def rotate_and_update():
    """
    JSON body:
      - image_url, product_id, metafield_namespace, metafield_key (required)
      - rotation (optional, default 90)
      - order_id, line_item_id (optional; both needed to update the order)

    detached mode acknowledges immediately and runs the job on the worker pool;
    sync mode runs it inline and returns the outcome.
    """
    payload = request.get_json(silent=True)
    current_app.logger.info("Incoming /rotate-and-update: %s", json.dumps(payload))
    sync = current_app.config.get("PROCESSING_MODE", "detached") == "sync"

    try:
        job = _parse_job(payload)
    except JobValidationError as e:
        current_app.logger.warning("Rejected rotate job: %s", e)
        if sync:
            result = JobResult(status="skipped", error=str(e), error_kind="validation")
            return jsonify(result.to_dict()), 400
        return jsonify({"status": "accepted"}), 200

    if sync:
        result = current_app.extensions["rotate_workflow"].run(job)
        return jsonify(result.to_dict()), (200 if result.ok else 500)

    try:
        current_app.extensions["rotate_job_runner"].submit(job)
    except RunnerBusyError as e:
        current_app.logger.error("Refusing rotate job for product %s: %s", job.product_id, e)
        return jsonify({"status": "busy"}), 503
    return jsonify({"status": "accepted"}), 200
