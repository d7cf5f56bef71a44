"""
Notification routes - per-user inbox
"""
from flask import Blueprint, g, jsonify, request

from database import get_db
from db_backend import QueryError
from services import get_notifier
from utils.auth import token_required
from utils.logger import get_logger
from utils.pagination import pagination_block, parse_pagination

logger = get_logger(__name__)

notification_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')

# registered only when DEBUG is on
notification_debug_bp = Blueprint('notifications_debug', __name__, url_prefix='/api/notifications')


@notification_bp.route('', methods=['GET'])
@token_required
def list_notifications():
    page, limit, offset = parse_pagination()
    user_id = g.current_user['id']

    where = " WHERE n.user_id = ?"
    params = [user_id]
    if request.args.get('unread_only') == 'true':
        where += " AND n.is_read = ?"
        params.append(False)

    try:
        db = get_db()
        notifications = db.fetch_all(
            f"""
            SELECT
                n.*,
                CASE
                    WHEN n.related_type = 'task' THEN t.title
                    WHEN n.related_type = 'client' THEN c.name
                    ELSE NULL
                END AS related_title
            FROM notifications n
            LEFT JOIN tasks t ON n.related_type = 'task' AND n.related_id = t.id
            LEFT JOIN clients c ON n.related_type = 'client' AND n.related_id = c.id
            {where}
            ORDER BY n.created_at DESC, n.id DESC
            LIMIT ? OFFSET ?
            """,
            params + [limit, offset],
        )
        total = db.fetch_one(f"SELECT COUNT(*) AS total FROM notifications n{where}", params)
        return jsonify({
            "notifications": notifications,
            "pagination": pagination_block(page, limit, total['total']),
        })
    except QueryError as e:
        logger.error(f"Get notifications error: {e}")
        return jsonify({"error": "Failed to fetch notifications"}), 500


@notification_bp.route('/unread-count', methods=['GET'])
@token_required
def unread_count():
    try:
        row = get_db().fetch_one(
            "SELECT COUNT(*) AS count FROM notifications WHERE user_id = ? AND is_read = ?",
            [g.current_user['id'], False],
        )
        return jsonify({"unread_count": int(row['count'])})
    except QueryError as e:
        logger.error(f"Get unread count error: {e}")
        return jsonify({"error": "Failed to fetch unread count"}), 500


@notification_bp.route('/<int:notification_id>/read', methods=['PATCH'])
@token_required
def mark_read(notification_id):
    try:
        result = get_db().execute(
            "UPDATE notifications SET is_read = ?, read_at = CURRENT_TIMESTAMP WHERE id = ? AND user_id = ?",
            [True, notification_id, g.current_user['id']],
        )
        if result.affected_count == 0:
            return jsonify({"error": "Notification not found"}), 404
        return jsonify({"message": "Notification marked as read"})
    except QueryError as e:
        logger.error(f"Mark notification read error: {e}")
        return jsonify({"error": "Failed to mark notification as read"}), 500


@notification_bp.route('/mark-all-read', methods=['PATCH'])
@token_required
def mark_all_read():
    try:
        result = get_db().execute(
            "UPDATE notifications SET is_read = ?, read_at = CURRENT_TIMESTAMP WHERE user_id = ? AND is_read = ?",
            [True, g.current_user['id'], False],
        )
        return jsonify({"message": "All notifications marked as read", "updated": result.affected_count})
    except QueryError as e:
        logger.error(f"Mark all notifications read error: {e}")
        return jsonify({"error": "Failed to mark all notifications as read"}), 500


@notification_bp.route('/<int:notification_id>', methods=['DELETE'])
@token_required
def delete_notification(notification_id):
    try:
        result = get_db().execute(
            "DELETE FROM notifications WHERE id = ? AND user_id = ?",
            [notification_id, g.current_user['id']],
        )
        if result.affected_count == 0:
            return jsonify({"error": "Notification not found"}), 404
        return jsonify({"message": "Notification deleted successfully"})
    except QueryError as e:
        logger.error(f"Delete notification error: {e}")
        return jsonify({"error": "Failed to delete notification"}), 500


@notification_debug_bp.route('/debug-create', methods=['POST'])
@token_required
def debug_create():
    data = request.get_json(silent=True) or {}
    try:
        notification_id = get_notifier().create_notification(
            data.get('user_id') or g.current_user['id'],
            data.get('title') or 'Debug Test',
            data.get('message') or 'Testing notification creation',
            type='debug',
        )
        return jsonify({"message": "Debug notification created", "notification_id": notification_id})
    except QueryError as e:
        logger.error(f"Debug notification creation error: {e}")
        return jsonify({"error": "Failed to create debug notification"}), 500
