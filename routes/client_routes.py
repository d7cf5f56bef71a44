"""
Client routes - client records and their uploaded documents
"""
import os
import secrets
import time

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.utils import secure_filename

from database import get_db
from db_backend import QueryError
from utils.auth import admin_required, is_admin, token_required, validate_required
from utils.logger import get_logger
from utils.pagination import like_pattern, pagination_block, parse_pagination

logger = get_logger(__name__)

client_bp = Blueprint('clients', __name__, url_prefix='/api/clients')

ALLOWED_EXTENSIONS = {'.pdf', '.doc', '.docx', '.xls', '.xlsx', '.jpg', '.jpeg', '.png'}
CLIENT_FIELDS = (
    'name', 'company_name', 'email', 'phone', 'business_type', 'pan_number', 'gstin',
    'tan_number', 'address', 'city', 'state', 'pincode', 'financial_year_end',
    'assigned_to', 'notes', 'last_conversation',
)


def client_visible(db, client_id):
    """Admins see every client; employees only the ones assigned to them."""
    if is_admin():
        return db.fetch_one("SELECT id FROM clients WHERE id = ?", [client_id]) is not None
    row = db.fetch_one(
        "SELECT id FROM clients WHERE id = ? AND assigned_to = ?",
        [client_id, g.current_user['id']],
    )
    return row is not None


def active_user_exists(db, user_id):
    row = db.fetch_one("SELECT id FROM users WHERE id = ? AND is_active = ?", [user_id, True])
    return row is not None


def client_upload_dir():
    path = os.path.join(current_app.config['UPLOAD_PATH'], 'clients')
    os.makedirs(path, exist_ok=True)
    return path


def _remove_file(path):
    try:
        if path and os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"⚠️ Could not remove {path}: {e}")


def _client_values(data):
    values = [data.get(field) or None for field in CLIENT_FIELDS]
    values[CLIENT_FIELDS.index('financial_year_end')] = data.get('financial_year_end') or '31-03'
    return values


def _fetch_client(db, client_id):
    return db.fetch_one(
        """
        SELECT c.*, u.name AS assigned_user_name, u.email AS assigned_user_email
        FROM clients c
        LEFT JOIN users u ON c.assigned_to = u.id
        WHERE c.id = ?
        """,
        [client_id],
    )


@client_bp.route('', methods=['GET'])
@token_required
def list_clients():
    page, limit, offset = parse_pagination()
    search = (request.args.get('search') or '').strip()
    status = request.args.get('status')
    assigned_to = request.args.get('assigned_to', type=int)

    where = " WHERE 1=1"
    params = []
    if not is_admin():
        where += " AND c.assigned_to = ?"
        params.append(g.current_user['id'])
    elif assigned_to:
        where += " AND c.assigned_to = ?"
        params.append(assigned_to)
    if search:
        where += (
            " AND (LOWER(c.name) LIKE ? OR LOWER(c.company_name) LIKE ?"
            " OR LOWER(c.email) LIKE ? OR LOWER(c.phone) LIKE ?)"
        )
        pattern = like_pattern(search)
        params.extend([pattern] * 4)
    if status:
        where += " AND c.status = ?"
        params.append(status)

    try:
        db = get_db()
        clients = db.fetch_all(
            f"""
            SELECT c.*, u.name AS assigned_user_name
            FROM clients c
            LEFT JOIN users u ON c.assigned_to = u.id
            {where}
            ORDER BY c.updated_at DESC, c.id DESC
            LIMIT ? OFFSET ?
            """,
            params + [limit, offset],
        )
        total = db.fetch_one(f"SELECT COUNT(*) AS total FROM clients c{where}", params)
        return jsonify({"clients": clients, "pagination": pagination_block(page, limit, total['total'])})
    except QueryError as e:
        logger.error(f"Clients fetch error: {e}")
        return jsonify({"error": "Failed to fetch clients"}), 500


@client_bp.route('/<int:client_id>', methods=['GET'])
@token_required
def get_client(client_id):
    try:
        db = get_db()
        if not client_visible(db, client_id):
            return jsonify({"error": "Client not found"}), 404

        client = _fetch_client(db, client_id)
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
        return jsonify({"client": client, "documents": documents})
    except QueryError as e:
        logger.error(f"Client fetch error: {e}")
        return jsonify({"error": "Failed to fetch client"}), 500


@client_bp.route('', methods=['POST'])
@token_required
@validate_required(['name'], text_fields=['name'])
def create_client():
    data = request.get_json(silent=True) or {}
    requested = data.get('assigned_to') if is_admin() else None
    # employees can only create clients for themselves
    data['assigned_to'] = requested or g.current_user['id']

    columns = ', '.join(CLIENT_FIELDS)
    placeholders = ', '.join('?' for _ in CLIENT_FIELDS)
    try:
        db = get_db()
        if requested and not active_user_exists(db, requested):
            return jsonify({"error": "Assigned user not found or inactive"}), 400

        result = db.execute(
            f"INSERT INTO clients ({columns}) VALUES ({placeholders})",
            _client_values(data),
            id_column="id",
        )
        client = _fetch_client(db, result.inserted_id)
        logger.info(f"✅ Client {result.inserted_id} created by user {g.current_user['id']}")
        return jsonify({"message": "Client created successfully", "client": client}), 201
    except QueryError as e:
        logger.error(f"Client creation error: {e}")
        return jsonify({"error": "Failed to create client"}), 500


@client_bp.route('/<int:client_id>', methods=['PUT'])
@token_required
@validate_required(['name'], text_fields=['name'])
def update_client(client_id):
    data = request.get_json(silent=True) or {}
    try:
        db = get_db()
        existing = db.fetch_one("SELECT id, assigned_to FROM clients WHERE id = ?", [client_id])
        if not existing or not client_visible(db, client_id):
            return jsonify({"error": "Client not found"}), 404
        if not is_admin() or not data.get('assigned_to'):
            data['assigned_to'] = existing['assigned_to']
        elif data['assigned_to'] != existing['assigned_to'] and not active_user_exists(db, data['assigned_to']):
            return jsonify({"error": "Assigned user not found or inactive"}), 400

        assignments = ', '.join(f"{field} = ?" for field in CLIENT_FIELDS)
        db.execute(
            f"UPDATE clients SET {assignments}, status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            _client_values(data) + [data.get('status') or 'active', client_id],
        )
        client = _fetch_client(db, client_id)
        return jsonify({"message": "Client updated successfully", "client": client})
    except QueryError as e:
        logger.error(f"Client update error: {e}")
        return jsonify({"error": "Failed to update client"}), 500


@client_bp.route('/<int:client_id>', methods=['DELETE'])
@token_required
@admin_required
def delete_client(client_id):
    """Delete a client together with its documents; tasks keep running without a client."""
    try:
        db = get_db()
        if not db.fetch_one("SELECT id FROM clients WHERE id = ?", [client_id]):
            return jsonify({"error": "Client not found"}), 404

        documents = db.fetch_all("SELECT file_path FROM client_documents WHERE client_id = ?", [client_id])
        with db.transaction() as tx:
            tx.execute("DELETE FROM client_documents WHERE client_id = ?", [client_id])
            tx.execute("UPDATE tasks SET client_id = NULL WHERE client_id = ?", [client_id])
            tx.execute("DELETE FROM clients WHERE id = ?", [client_id])
    except QueryError as e:
        logger.error(f"Client deletion error: {e}")
        return jsonify({"error": "Failed to delete client"}), 500

    for document in documents:
        _remove_file(document['file_path'])
    logger.info(f"Client {client_id} deleted by user {g.current_user['id']}")
    return jsonify({"message": "Client deleted successfully"})


@client_bp.route('/<int:client_id>/documents', methods=['POST'])
@token_required
def upload_document(client_id):
    upload = request.files.get('document')
    if upload is None or not upload.filename:
        return jsonify({"error": "No file uploaded"}), 400

    ext = os.path.splitext(upload.filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        return jsonify({"error": "Invalid file type. Only PDF, DOC, DOCX, XLS, XLSX, JPG, PNG files are allowed."}), 400

    try:
        db = get_db()
        if not client_visible(db, client_id):
            return jsonify({"error": "Client not found"}), 404
    except QueryError as e:
        logger.error(f"Document upload error: {e}")
        return jsonify({"error": "Failed to upload document"}), 500

    filename = f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"
    file_path = os.path.join(client_upload_dir(), filename)
    upload.save(file_path)
    original_name = secure_filename(upload.filename) or filename

    try:
        result = db.execute(
            """
            INSERT INTO client_documents
                (client_id, filename, original_name, file_path, file_size, mime_type, category, description, uploaded_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                client_id,
                filename,
                original_name,
                file_path,
                os.path.getsize(file_path),
                upload.mimetype,
                request.form.get('category') or None,
                request.form.get('description') or None,
                g.current_user['id'],
            ],
            id_column="id",
        )
        document = db.fetch_one(
            """
            SELECT cd.*, u.name AS uploaded_by_name
            FROM client_documents cd
            LEFT JOIN users u ON cd.uploaded_by = u.id
            WHERE cd.id = ?
            """,
            [result.inserted_id],
        )
        logger.info(f"✅ Document {result.inserted_id} uploaded for client {client_id}")
        return jsonify({"message": "Document uploaded successfully", "document": document}), 201
    except QueryError as e:
        _remove_file(file_path)
        logger.error(f"Document upload error: {e}")
        return jsonify({"error": "Failed to upload document"}), 500


@client_bp.route('/<int:client_id>/documents/<int:document_id>', methods=['DELETE'])
@token_required
def delete_document(client_id, document_id):
    try:
        db = get_db()
        if not client_visible(db, client_id):
            return jsonify({"error": "Client not found"}), 404

        document = db.fetch_one(
            "SELECT file_path FROM client_documents WHERE id = ? AND client_id = ?",
            [document_id, client_id],
        )
        if not document:
            return jsonify({"error": "Document not found"}), 404

        db.execute("DELETE FROM client_documents WHERE id = ?", [document_id])
    except QueryError as e:
        logger.error(f"Document deletion error: {e}")
        return jsonify({"error": "Failed to delete document"}), 500

    _remove_file(document['file_path'])
    return jsonify({"message": "Document deleted successfully"})


@client_bp.route('/stats/summary', methods=['GET'])
@token_required
def client_stats():
    where = ""
    params = []
    if not is_admin():
        where = " WHERE c.assigned_to = ?"
        params.append(g.current_user['id'])

    try:
        db = get_db()
        counts = db.fetch_one(
            f"""
            SELECT
                COUNT(*) AS total_clients,
                COUNT(CASE WHEN c.status = 'active' THEN 1 END) AS active_clients,
                COUNT(CASE WHEN c.status = 'inactive' THEN 1 END) AS inactive_clients
            FROM clients c{where}
            """,
            params,
        )
        documents = db.fetch_one(
            f"SELECT COUNT(*) AS total FROM client_documents cd JOIN clients c ON cd.client_id = c.id{where}",
            params,
        )
        return jsonify({
            "total_clients": int(counts['total_clients']),
            "active_clients": int(counts['active_clients']),
            "inactive_clients": int(counts['inactive_clients']),
            "total_documents": int(documents['total']),
        })
    except QueryError as e:
        logger.error(f"Client stats error: {e}")
        return jsonify({"error": "Failed to fetch client statistics"}), 500
