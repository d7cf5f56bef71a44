"""
Document routes - read-only listing and download of client attachments
"""
import os

from flask import Blueprint, jsonify, send_file

from database import get_db
from db_backend import QueryError
from routes.client_routes import client_visible
from utils.auth import token_required
from utils.logger import get_logger

logger = get_logger(__name__)

document_bp = Blueprint('documents', __name__, url_prefix='/api/documents')


@document_bp.route('/clients/<int:client_id>', methods=['GET'])
@token_required
def list_client_documents(client_id):
    try:
        db = get_db()
        if not client_visible(db, client_id):
            return jsonify({"error": "Client not found"}), 404

        documents = db.fetch_all(
            """
            SELECT cd.*, u.name AS uploaded_by_name
            FROM client_documents cd
            LEFT JOIN users u ON cd.uploaded_by = u.id
            WHERE cd.client_id = ?
            ORDER BY cd.uploaded_at DESC, cd.id DESC
            """,
            [client_id],
        )
        return jsonify({"documents": documents, "count": len(documents)})
    except QueryError as e:
        logger.error(f"Error fetching documents: {e}")
        return jsonify({"error": "Failed to fetch documents"}), 500


@document_bp.route('/<int:document_id>/download', methods=['GET'])
@token_required
def download_document(document_id):
    try:
        db = get_db()
        document = db.fetch_one("SELECT * FROM client_documents WHERE id = ?", [document_id])
        if not document or not client_visible(db, document['client_id']):
            return jsonify({"error": "Document not found"}), 404
    except QueryError as e:
        logger.error(f"Error downloading document: {e}")
        return jsonify({"error": "Failed to download document"}), 500

    if not os.path.exists(document['file_path']):
        logger.warning(f"⚠️ Document {document_id} missing on disk: {document['file_path']}")
        return jsonify({"error": "File not found on server"}), 404

    return send_file(
        document['file_path'],
        mimetype=document['mime_type'] or 'application/octet-stream',
        download_name=document['original_name'],
    )
