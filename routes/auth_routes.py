"""
Auth routes - login, profile and password changes
"""
from flask import Blueprint, current_app, g, jsonify, request

from database import get_db
from db_backend import QueryError
from utils.auth import generate_token, is_valid_email, normalize_email, token_required, validate_required
from utils.logger import get_logger
from utils.passwords import check_password, hash_password

logger = get_logger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

PROFILE_COLUMNS = "id, name, email, role, phone, department, created_at"


@auth_bp.route('/login', methods=['POST'])
def login():
    """Exchange email + password for a bearer token"""
    data = request.get_json(silent=True) or {}
    email = data.get('email')
    password = data.get('password')

    if not is_valid_email(email) or not isinstance(password, str) or not password:
        return jsonify({"error": "Invalid email or password format"}), 400

    try:
        user = get_db().fetch_one(
            "SELECT id, name, email, password, role, is_active FROM users WHERE email = ?",
            [normalize_email(email)],
        )
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401
        if not user['is_active']:
            return jsonify({"error": "Account is deactivated"}), 401
        if not check_password(password, user['password']):
            return jsonify({"error": "Invalid credentials"}), 401

        token = generate_token(user)
        user_data = {k: v for k, v in user.items() if k != 'password'}
        logger.info(f"User {user['id']} logged in")
        return jsonify({"message": "Login successful", "token": token, "user": user_data})
    except QueryError as e:
        logger.error(f"Login error: {e}")
        return jsonify({"error": "Login failed"}), 500


@auth_bp.route('/profile', methods=['GET'])
@token_required
def get_profile():
    try:
        user = get_db().fetch_one(
            f"SELECT {PROFILE_COLUMNS} FROM users WHERE id = ?", [g.current_user['id']]
        )
        if not user:
            return jsonify({"error": "User not found"}), 404
        return jsonify({"user": user})
    except QueryError as e:
        logger.error(f"Profile fetch error: {e}")
        return jsonify({"error": "Failed to fetch profile"}), 500


@auth_bp.route('/profile', methods=['PUT'])
@token_required
@validate_required(['name'], text_fields=['name'])
def update_profile():
    data = request.get_json(silent=True) or {}
    user_id = g.current_user['id']
    try:
        db = get_db()
        db.execute(
            "UPDATE users SET name = ?, phone = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            [data['name'].strip(), data.get('phone') or None, user_id],
        )
        user = db.fetch_one(f"SELECT {PROFILE_COLUMNS} FROM users WHERE id = ?", [user_id])
        return jsonify({"message": "Profile updated successfully", "user": user})
    except QueryError as e:
        logger.error(f"Profile update error: {e}")
        return jsonify({"error": "Failed to update profile"}), 500


@auth_bp.route('/change-password', methods=['PUT'])
@token_required
def change_password():
    data = request.get_json(silent=True) or {}
    current_password = data.get('currentPassword') or ''
    new_password = data.get('newPassword') or ''

    if not isinstance(current_password, str) or not isinstance(new_password, str):
        return jsonify({"error": "Passwords must be strings"}), 400
    if not current_password or len(new_password) < 6:
        return jsonify({"error": "Password must be at least 6 characters long"}), 400

    user_id = g.current_user['id']
    try:
        db = get_db()
        user = db.fetch_one("SELECT password FROM users WHERE id = ?", [user_id])
        if not user or not check_password(current_password, user['password']):
            return jsonify({"error": "Current password is incorrect"}), 400

        db.execute(
            "UPDATE users SET password = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            [hash_password(new_password, current_app.config['BCRYPT_ROUNDS']), user_id],
        )
        logger.info(f"User {user_id} changed password")
        return jsonify({"message": "Password changed successfully"})
    except QueryError as e:
        logger.error(f"Password change error: {e}")
        return jsonify({"error": "Failed to change password"}), 500


@auth_bp.route('/verify', methods=['GET'])
@token_required
def verify():
    user = g.current_user
    return jsonify({
        "valid": True,
        "user": {
            "id": user['id'],
            "name": user['name'],
            "email": user['email'],
            "role": user['role'],
        },
    })
