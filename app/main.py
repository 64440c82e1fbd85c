"""Quart application exposing the retrieval service over HTTP."""
import logging

from quart import Quart, current_app, jsonify, request
import structlog

from app import config
from app.errors import BackendExhaustedError, ValidationError
from app.rag.service import RetrievalService, build_service


def configure_logging() -> None:
    """Configure structured logging (JSON lines at config.LOG_LEVEL)."""
    logging.basicConfig(level=config.LOG_LEVEL, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging()

logger = structlog.get_logger()

# Initialize Quart app
app = Quart(__name__)


@app.before_serving
async def startup():
    """Build the retrieval service and run the one-time backend probe."""
    if app.config.get("RETRIEVAL_SERVICE") is None:
        app.config["RETRIEVAL_SERVICE"] = await build_service()


@app.after_serving
async def shutdown():
    """Close the primary store client."""
    service = app.config.get("RETRIEVAL_SERVICE")
    if service is not None:
        await service.close()


def get_service() -> RetrievalService:
    return current_app.config["RETRIEVAL_SERVICE"]


async def _json_body() -> dict:
    data = await request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@app.route("/api/chatbots/<owner>/documents/text", methods=["POST"])
async def ingest_text(owner: str):
    """Ingest raw text.

    Expects JSON body:
    {
        "text": "document text",
        "title": "optional title",
        "document_id": "optional-id",
        "metadata": {"optional": "map"}
    }
    """
    data = await _json_body()
    result = await get_service().ingest_text(
        owner,
        data.get("text") or "",
        document_id=data.get("document_id"),
        metadata=data.get("metadata"),
        title=data.get("title"),
    )
    return jsonify({"success": True, **result.to_dict()})


@app.route("/api/chatbots/<owner>/documents/upload", methods=["POST"])
async def ingest_upload(owner: str):
    """Ingest an uploaded text/plain or application/json file (field "file")."""
    files = await request.files
    upload = files.get("file")
    if upload is None:
        raise ValidationError("No file uploaded")

    result = await get_service().ingest_file(
        owner,
        filename=upload.filename or "upload",
        mime_type=upload.mimetype,
        data=upload.read(),
    )
    return jsonify({"success": True, **result.to_dict()})


@app.route("/api/chatbots/<owner>/documents/url", methods=["POST"])
async def ingest_url(owner: str):
    """Ingest already-fetched web content.

    Expects JSON body: {"url": "...", "content": "..."}
    """
    data = await _json_body()
    result = await get_service().ingest_url(
        owner,
        url=data.get("url") or "",
        content=data.get("content") or "",
        document_id=data.get("document_id"),
    )
    return jsonify({"success": True, **result.to_dict()})


@app.route("/api/chatbots/<owner>/search", methods=["POST"])
async def search(owner: str):
    """Similarity search.

    Expects JSON body: {"query": "...", "limit": 5, "threshold": 0.5}
    """
    data = await _json_body()
    results = await get_service().search(
        owner,
        data.get("query") or "",
        limit=data.get("limit", config.DEFAULT_SEARCH_LIMIT),
        threshold=data.get("threshold", config.DEFAULT_SCORE_THRESHOLD),
    )
    return jsonify({
        "query": data.get("query"),
        "results": [r.to_dict() for r in results],
        "count": len(results),
    })


@app.route("/api/chatbots/<owner>/context", methods=["POST"])
async def context(owner: str):
    """Assemble generation context.

    Expects JSON body: {"query": "...", "max_length": 3000}
    """
    data = await _json_body()
    context_text = await get_service().get_context(
        owner,
        data.get("query") or "",
        max_length=data.get("max_length", config.MAX_CONTEXT_LENGTH),
    )
    return jsonify({"context": context_text, "length": len(context_text)})


@app.route("/api/chatbots/<owner>/documents/<document_id>", methods=["DELETE"])
async def delete_document(owner: str, document_id: str):
    """Delete every chunk of a document. Idempotent."""
    await get_service().delete_document(owner, document_id)
    return "", 204


@app.route("/api/chatbots/<owner>/vectors", methods=["DELETE"])
async def delete_namespace(owner: str):
    """Delete every chunk of an owner. Idempotent."""
    await get_service().delete_namespace(owner)
    return "", 204


@app.route("/api/chatbots/<owner>/vectors/stats", methods=["GET"])
async def vector_stats(owner: str):
    """Per-owner document and chunk counts."""
    return jsonify(await get_service().stats(owner))


@app.route("/api/vectors/status", methods=["GET"])
async def vector_status():
    """Which backend is active and whether the primary was demoted."""
    return jsonify(get_service().status())


@app.route("/api/vectors/recheck", methods=["POST"])
async def vector_recheck():
    """Re-probe the primary backend (the only way to promote back to it)."""
    return jsonify(await get_service().recheck())


@app.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(ValidationError)
async def validation_error(error):
    """Handle invalid input."""
    logger.warning("request_validation_failed", error=str(error))
    return jsonify({"error": str(error)}), 400


@app.errorhandler(BackendExhaustedError)
async def backend_exhausted(error):
    """Handle retrieval being unavailable on every backend."""
    logger.error("request_backend_exhausted", operation=error.operation, error=str(error))
    return jsonify({"error": "Retrieval unavailable", "details": str(error)}), 503


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
