"""
User routes - admin management of staff accounts
"""
from flask import Blueprint, current_app, g, jsonify, request

from database import get_db
from db_backend import QueryError
from utils.auth import admin_required, is_valid_email, normalize_email, token_required, validate_required
from utils.logger import get_logger
from utils.pagination import like_pattern, pagination_block, parse_pagination
from utils.passwords import hash_password

logger = get_logger(__name__)

user_bp = Blueprint('users', __name__, url_prefix='/api/users')

ROLES = ('admin', 'employee')
USER_COLUMNS = "id, name, email, role, phone, department, is_active, created_at, updated_at"


def _user_errors(data, require_password=True):
    errors = []
    name = data.get('name')
    if not isinstance(name, str) or len(name.strip()) < 2:
        errors.append("Name must be at least 2 characters long")
    if not is_valid_email(data.get('email')):
        errors.append("Valid email is required")
    if require_password:
        password = data.get('password')
        if not isinstance(password, str) or len(password) < 6:
            errors.append("Password must be at least 6 characters long")
    if data.get('role') is not None and data.get('role') not in ROLES:
        errors.append("Role must be admin or employee")
    return errors


@user_bp.route('', methods=['GET'])
@token_required
@admin_required
def list_users():
    page, limit, offset = parse_pagination()
    search = (request.args.get('search') or '').strip()
    role = request.args.get('role')
    active = request.args.get('is_active')

    where = " WHERE 1=1"
    params = []
    if search:
        where += " AND (LOWER(name) LIKE ? OR LOWER(email) LIKE ?)"
        pattern = like_pattern(search)
        params.extend([pattern, pattern])
    if role:
        where += " AND role = ?"
        params.append(role)
    if active in ('true', 'false'):
        where += " AND is_active = ?"
        params.append(active == 'true')

    try:
        db = get_db()
        users = db.fetch_all(
            f"SELECT {USER_COLUMNS} FROM users{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            params + [limit, offset],
        )
        total = db.fetch_one(f"SELECT COUNT(*) AS total FROM users{where}", params)
        return jsonify({"users": users, "pagination": pagination_block(page, limit, total['total'])})
    except QueryError as e:
        logger.error(f"Users fetch error: {e}")
        return jsonify({"error": "Failed to fetch users"}), 500


@user_bp.route('/<int:user_id>', methods=['GET'])
@token_required
@admin_required
def get_user(user_id):
    try:
        user = get_db().fetch_one(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", [user_id])
        if not user:
            return jsonify({"error": "User not found"}), 404
        return jsonify({"user": user})
    except QueryError as e:
        logger.error(f"User fetch error: {e}")
        return jsonify({"error": "Failed to fetch user"}), 500


@user_bp.route('', methods=['POST'])
@token_required
@admin_required
def create_user():
    data = request.get_json(silent=True) or {}
    errors = _user_errors(data)
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    email = normalize_email(data['email'])
    try:
        db = get_db()
        if db.fetch_one("SELECT id FROM users WHERE email = ?", [email]):
            return jsonify({"error": "User with this email already exists"}), 400

        result = db.execute(
            """
            INSERT INTO users (name, email, password, role, phone, department)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                data['name'].strip(),
                email,
                hash_password(data['password'], current_app.config['BCRYPT_ROUNDS']),
                data.get('role') or 'employee',
                data.get('phone') or None,
                data.get('department') or None,
            ],
            id_column="id",
        )
        user = db.fetch_one(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", [result.inserted_id])
        logger.info(f"✅ User {user['id']} created by {g.current_user['id']}")
        return jsonify({"message": "User created successfully", "user": user}), 201
    except QueryError as e:
        logger.error(f"User creation error: {e}")
        return jsonify({"error": "Failed to create user"}), 500


@user_bp.route('/<int:user_id>', methods=['PUT'])
@token_required
@admin_required
@validate_required(['name', 'email'], text_fields=['name', 'email'])
def update_user(user_id):
    data = request.get_json(silent=True) or {}
    errors = _user_errors(data, require_password=False)
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    email = normalize_email(data['email'])
    try:
        db = get_db()
        if not db.fetch_one("SELECT id FROM users WHERE id = ?", [user_id]):
            return jsonify({"error": "User not found"}), 404
        if db.fetch_one("SELECT id FROM users WHERE email = ? AND id != ?", [email, user_id]):
            return jsonify({"error": "Email already taken by another user"}), 400

        db.execute(
            """
            UPDATE users
            SET name = ?, email = ?, role = ?, phone = ?, department = ?, is_active = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [
                data['name'].strip(),
                email,
                data.get('role') or 'employee',
                data.get('phone') or None,
                data.get('department') or None,
                data.get('is_active') is not False,
                user_id,
            ],
        )
        user = db.fetch_one(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", [user_id])
        return jsonify({"message": "User updated successfully", "user": user})
    except QueryError as e:
        logger.error(f"User update error: {e}")
        return jsonify({"error": "Failed to update user"}), 500


@user_bp.route('/<int:user_id>/reset-password', methods=['PUT'])
@token_required
@admin_required
def reset_password(user_id):
    data = request.get_json(silent=True) or {}
    new_password = data.get('newPassword')
    if not isinstance(new_password, str) or len(new_password) < 6:
        return jsonify({"error": "Password must be at least 6 characters long"}), 400

    try:
        result = get_db().execute(
            "UPDATE users SET password = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            [hash_password(new_password, current_app.config['BCRYPT_ROUNDS']), user_id],
        )
        if result.affected_count == 0:
            return jsonify({"error": "User not found"}), 404
        logger.info(f"Password reset for user {user_id} by {g.current_user['id']}")
        return jsonify({"message": "Password reset successfully"})
    except QueryError as e:
        logger.error(f"Password reset error: {e}")
        return jsonify({"error": "Failed to reset password"}), 500


@user_bp.route('/<int:user_id>', methods=['DELETE'])
@token_required
@admin_required
def deactivate_user(user_id):
    """Soft delete: the row stays so tasks and clients keep their owner."""
    if user_id == g.current_user['id']:
        return jsonify({"error": "Cannot delete your own account"}), 400

    try:
        result = get_db().execute(
            "UPDATE users SET is_active = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            [False, user_id],
        )
        if result.affected_count == 0:
            return jsonify({"error": "User not found"}), 404
        logger.info(f"User {user_id} deactivated by {g.current_user['id']}")
        return jsonify({"message": "User deactivated successfully"})
    except QueryError as e:
        logger.error(f"User deletion error: {e}")
        return jsonify({"error": "Failed to delete user"}), 500


@user_bp.route('/stats/summary', methods=['GET'])
@token_required
@admin_required
def user_stats():
    try:
        stats = get_db().fetch_one(
            """
            SELECT
                COUNT(CASE WHEN is_active = ? THEN 1 END) AS total_active,
                COUNT(CASE WHEN is_active = ? AND role = 'admin' THEN 1 END) AS total_admins,
                COUNT(CASE WHEN is_active = ? AND role = 'employee' THEN 1 END) AS total_employees,
                COUNT(CASE WHEN is_active = ? THEN 1 END) AS total_inactive
            FROM users
            """,
            [True, True, True, False],
        )
        return jsonify({key: int(value) for key, value in stats.items()})
    except QueryError as e:
        logger.error(f"User stats error: {e}")
        return jsonify({"error": "Failed to fetch user statistics"}), 500
