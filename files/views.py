# files/views.py
"""HTTP front for the object store. Failures answer 500 with ``{error, message}``."""
import base64
import binascii
import logging

from flask import Response, jsonify, request, stream_with_context

from . import files_bp
from utilities.file_storage import file_storage, is_missing_object
from utilities.responses import attachment_disposition
from utilities.schemas import FileUpload, format_errors

logger = logging.getLogger(__name__)


def _failure(action: str, exc: Exception):
    logger.error("%s failed: %s", action, exc)
    return jsonify({"error": f"Failed to {action}", "message": str(exc)}), 500


def _not_found():
    return jsonify({"error": "File not found"}), 404


@files_bp.route("", methods=["GET"])
def list_files():
    prefix = request.args.get("prefix", "")
    try:
        return jsonify({"files": file_storage.list_files(prefix)})
    except Exception as exc:
        return _failure("list files", exc)


@files_bp.route("/upload", methods=["POST"])
def upload_file():
    payload = request.get_json(silent=True) or {}
    missing = [name for name in ("fileName", "fileData", "contentType") if not payload.get(name)]
    if missing:
        return jsonify({"error": "fileName, fileData and contentType are required", "missing": missing}), 400
    try:
        body = FileUpload.model_validate(payload)
    except ValueError as exc:
        return jsonify({"error": "Invalid upload", "errors": format_errors(exc)}), 400

    try:
        data = base64.b64decode(body.file_data, validate=True)
    except (binascii.Error, ValueError):
        return jsonify({"error": "fileData is not valid base64"}), 400

    try:
        file_name = file_storage.upload_file(body.file_name, data, body.content_type)
    except Exception as exc:
        return _failure("upload file", exc)
    return jsonify({"fileName": file_name, "size": len(data), "message": "File uploaded successfully"}), 201


@files_bp.route("/<path:file_name>", methods=["GET"])
def download_file(file_name):
    if not file_storage.file_exists(file_name):
        return _not_found()
    try:
        chunks = file_storage.iter_file(file_name)
        # pull the first chunk now so storage errors surface before headers are sent
        first = next(chunks, b"")
    except Exception as exc:
        return _failure("download file", exc)

    def generate():
        yield first
        yield from chunks

    response = Response(stream_with_context(generate()), mimetype="application/octet-stream")
    response.headers["Content-Disposition"] = attachment_disposition(file_name)
    return response


@files_bp.route("/<path:file_name>/url", methods=["GET"])
def file_url(file_name):
    expiry = request.args.get("expirySeconds", default=3600, type=int)
    try:
        url = file_storage.get_file_url(file_name, expiry)
    except Exception as exc:
        if is_missing_object(exc):
            return _not_found()
        return _failure("generate file URL", exc)
    return jsonify({"url": url, "expiresIn": expiry})


@files_bp.route("/<path:file_name>/metadata", methods=["GET"])
def file_metadata(file_name):
    try:
        metadata = file_storage.get_file_metadata(file_name)
    except Exception as exc:
        if is_missing_object(exc):
            return _not_found()
        return _failure("get file metadata", exc)
    return jsonify(metadata)


@files_bp.route("/<path:file_name>/exists", methods=["GET"])
def file_exists(file_name):
    return jsonify({"exists": file_storage.file_exists(file_name)})


@files_bp.route("/<path:file_name>", methods=["DELETE"])
def delete_file(file_name):
    if not file_storage.file_exists(file_name):
        return _not_found()
    try:
        file_storage.delete_file(file_name)
    except Exception as exc:
        return _failure("delete file", exc)
    return jsonify({"message": "File deleted successfully"})
