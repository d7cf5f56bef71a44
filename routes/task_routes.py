"""
Task routes - assignment, progress tracking and comments
"""
from datetime import datetime, timezone

from flask import Blueprint, g, jsonify, request

from database import get_db
from db_backend import QueryError
from services import get_notifier
from utils.auth import admin_required, is_admin, token_required, validate_required
from utils.logger import get_logger
from utils.pagination import like_pattern, pagination_block, parse_pagination

logger = get_logger(__name__)

task_bp = Blueprint('tasks', __name__, url_prefix='/api/tasks')

VALID_STATUSES = ('pending', 'in_progress', 'under_review', 'completed', 'cancelled')
VALID_PRIORITIES = ('low', 'medium', 'high', 'urgent')

TASK_SELECT = """
    SELECT
        t.*,
        c.name AS client_name,
        c.company_name AS client_company,
        u_assigned.name AS assigned_to_name,
        u_assigned_by.name AS assigned_by_name
    FROM tasks t
    LEFT JOIN clients c ON t.client_id = c.id
    LEFT JOIN users u_assigned ON t.assigned_to = u_assigned.id
    LEFT JOIN users u_assigned_by ON t.assigned_by = u_assigned_by.id
"""

# NULL due dates sort last on both SQLite and PostgreSQL
TASK_ORDER = """
    ORDER BY
        CASE t.priority
            WHEN 'urgent' THEN 1
            WHEN 'high' THEN 2
            WHEN 'medium' THEN 3
            WHEN 'low' THEN 4
        END,
        CASE WHEN t.due_date IS NULL THEN 1 ELSE 0 END,
        t.due_date ASC,
        t.created_at DESC,
        t.id DESC
"""


def _to_int(value):
    try:
        return int(value) if value not in (None, '') else None
    except (TypeError, ValueError):
        return None


def _access_clause(alias='t.'):
    """Employees only reach tasks assigned to them or created by them."""
    if is_admin():
        return "", []
    user_id = g.current_user['id']
    return f" AND ({alias}assigned_to = ? OR {alias}assigned_by = ?)", [user_id, user_id]


def _completed_at(new_status, existing):
    if new_status != 'completed':
        return None
    if existing['status'] == 'completed':
        return existing['completed_at']
    return datetime.now(timezone.utc).isoformat()


def _fetch_task(db, task_id):
    return db.fetch_one(f"{TASK_SELECT} WHERE t.id = ?", [task_id])


def _notify(send, *args):
    """Run a notification call; failures are logged and never reach the client."""
    try:
        send(*args)
    except QueryError as e:
        logger.error(f"❌ Task notification failed: {e}")


def _notify_assignment(db, task):
    if task['assigned_to'] == g.current_user['id']:
        return
    assignee = db.fetch_one("SELECT id, name, email FROM users WHERE id = ?", [task['assigned_to']])
    if assignee:
        get_notifier().send_task_assignment_notification(task, assignee, g.current_user)


def _notify_update(db, task, update_type):
    actor_id = g.current_user['id']
    if update_type == 'reassigned' or task['assigned_to'] != actor_id:
        recipient_id = task['assigned_to']
    else:
        recipient_id = task['assigned_by']
    if recipient_id == actor_id:
        return
    recipient = db.fetch_one("SELECT id, name, email FROM users WHERE id = ?", [recipient_id])
    if recipient:
        get_notifier().send_task_update_notification(task, recipient, g.current_user, update_type)


@task_bp.route('', methods=['GET'])
@token_required
def list_tasks():
    page, limit, offset = parse_pagination()
    search = (request.args.get('search') or '').strip()

    where, params = _access_clause()
    where = " WHERE 1=1" + where
    if search:
        where += " AND (LOWER(t.title) LIKE ? OR LOWER(t.description) LIKE ? OR LOWER(c.name) LIKE ?)"
        pattern = like_pattern(search)
        params.extend([pattern] * 3)
    for column in ('status', 'priority', 'category'):
        value = request.args.get(column)
        if value:
            where += f" AND t.{column} = ?"
            params.append(value)
    assigned_to = request.args.get('assigned_to', type=int)
    if assigned_to and is_admin():
        where += " AND t.assigned_to = ?"
        params.append(assigned_to)
    client_id = request.args.get('client_id', type=int)
    if client_id:
        where += " AND t.client_id = ?"
        params.append(client_id)

    try:
        db = get_db()
        tasks = db.fetch_all(f"{TASK_SELECT}{where}{TASK_ORDER} LIMIT ? OFFSET ?", params + [limit, offset])
        total = db.fetch_one(
            f"SELECT COUNT(*) AS total FROM tasks t LEFT JOIN clients c ON t.client_id = c.id{where}",
            params,
        )
        return jsonify({"tasks": tasks, "pagination": pagination_block(page, limit, total['total'])})
    except QueryError as e:
        logger.error(f"Tasks fetch error: {e}")
        return jsonify({"error": "Failed to fetch tasks"}), 500


@task_bp.route('/<int:task_id>', methods=['GET'])
@token_required
def get_task(task_id):
    access, params = _access_clause()
    try:
        db = get_db()
        task = db.fetch_one(f"{TASK_SELECT} WHERE t.id = ?{access}", [task_id] + params)
        if not task:
            return jsonify({"error": "Task not found or access denied"}), 404

        task['comments'] = db.fetch_all(
            """
            SELECT tc.*, u.name AS user_name
            FROM task_comments tc
            LEFT JOIN users u ON tc.user_id = u.id
            WHERE tc.task_id = ?
            ORDER BY tc.created_at ASC, tc.id ASC
            """,
            [task_id],
        )
        return jsonify({"task": task})
    except QueryError as e:
        logger.error(f"Task fetch error: {e}")
        return jsonify({"error": "Failed to fetch task"}), 500


@task_bp.route('', methods=['POST'])
@token_required
@validate_required(['title', 'assigned_to'], text_fields=['title'])
def create_task():
    data = request.get_json(silent=True) or {}
    priority = data.get('priority') or 'medium'
    if priority not in VALID_PRIORITIES:
        return jsonify({"error": "Invalid priority"}), 400
    assigned_to = _to_int(data.get('assigned_to'))
    client_id = _to_int(data.get('client_id'))

    try:
        db = get_db()
        if assigned_to is None or not db.fetch_one(
            "SELECT id FROM users WHERE id = ? AND is_active = ?", [assigned_to, True]
        ):
            return jsonify({"error": "Assigned user not found or inactive"}), 400
        if client_id and not db.fetch_one("SELECT id FROM clients WHERE id = ?", [client_id]):
            return jsonify({"error": "Client not found"}), 400

        result = db.execute(
            """
            INSERT INTO tasks
                (title, description, client_id, assigned_to, assigned_by, priority, category, due_date, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                data['title'].strip(),
                data.get('description') or None,
                client_id,
                assigned_to,
                g.current_user['id'],
                priority,
                data.get('category') or None,
                data.get('due_date') or None,
                data.get('notes') or None,
            ],
            id_column="id",
        )
        task = _fetch_task(db, result.inserted_id)
    except QueryError as e:
        logger.error(f"Task creation error: {e}")
        return jsonify({"error": "Failed to create task"}), 500

    _notify(_notify_assignment, db, task)
    logger.info(f"✅ Task {task['id']} assigned to user {assigned_to}")
    return jsonify({"message": "Task created successfully", "task": task}), 201


@task_bp.route('/<int:task_id>', methods=['PUT'])
@token_required
@validate_required(['title'], text_fields=['title'])
def update_task(task_id):
    data = request.get_json(silent=True) or {}
    status = data.get('status') or 'pending'
    priority = data.get('priority') or 'medium'
    if status not in VALID_STATUSES:
        return jsonify({"error": "Invalid status"}), 400
    if priority not in VALID_PRIORITIES:
        return jsonify({"error": "Invalid priority"}), 400

    access, params = _access_clause(alias='')
    try:
        db = get_db()
        existing = db.fetch_one(
            f"SELECT id, assigned_to, assigned_by, status, completed_at FROM tasks WHERE id = ?{access}",
            [task_id] + params,
        )
        if not existing:
            return jsonify({"error": "Task not found or access denied"}), 404

        # only admins or the task creator may reassign
        assigned_to = existing['assigned_to']
        requested = _to_int(data.get('assigned_to'))
        if requested and (is_admin() or g.current_user['id'] == existing['assigned_by']):
            if not db.fetch_one("SELECT id FROM users WHERE id = ? AND is_active = ?", [requested, True]):
                return jsonify({"error": "Assigned user not found or inactive"}), 400
            assigned_to = requested

        db.execute(
            """
            UPDATE tasks SET
                title = ?, description = ?, client_id = ?, assigned_to = ?, priority = ?, status = ?,
                category = ?, due_date = ?, notes = ?, completed_at = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            [
                data['title'].strip(),
                data.get('description') or None,
                _to_int(data.get('client_id')),
                assigned_to,
                priority,
                status,
                data.get('category') or None,
                data.get('due_date') or None,
                data.get('notes') or None,
                _completed_at(status, existing),
                task_id,
            ],
        )
        task = _fetch_task(db, task_id)
    except QueryError as e:
        logger.error(f"Task update error: {e}")
        return jsonify({"error": "Failed to update task"}), 500

    if assigned_to != existing['assigned_to']:
        _notify(_notify_update, db, task, 'reassigned')
    elif status != existing['status']:
        _notify(_notify_update, db, task, 'status_change')
    return jsonify({"message": "Task updated successfully", "task": task})


@task_bp.route('/<int:task_id>/comments', methods=['POST'])
@token_required
@validate_required(['comment'], text_fields=['comment'])
def add_comment(task_id):
    data = request.get_json(silent=True) or {}
    access, params = _access_clause(alias='')
    try:
        db = get_db()
        if not db.fetch_one(f"SELECT id FROM tasks WHERE id = ?{access}", [task_id] + params):
            return jsonify({"error": "Task not found or access denied"}), 404

        result = db.execute(
            "INSERT INTO task_comments (task_id, user_id, comment) VALUES (?, ?, ?)",
            [task_id, g.current_user['id'], str(data['comment']).strip()],
            id_column="id",
        )
        comment = db.fetch_one(
            """
            SELECT tc.*, u.name AS user_name
            FROM task_comments tc
            LEFT JOIN users u ON tc.user_id = u.id
            WHERE tc.id = ?
            """,
            [result.inserted_id],
        )
        return jsonify({"message": "Comment added successfully", "comment": comment}), 201
    except QueryError as e:
        logger.error(f"Add comment error: {e}")
        return jsonify({"error": "Failed to add comment"}), 500


@task_bp.route('/<int:task_id>/status', methods=['PATCH'])
@token_required
@validate_required(['status'])
def update_task_status(task_id):
    status = (request.get_json(silent=True) or {}).get('status')
    if status not in VALID_STATUSES:
        return jsonify({"error": "Invalid status"}), 400

    access, params = _access_clause(alias='')
    try:
        db = get_db()
        existing = db.fetch_one(
            f"SELECT id, status, completed_at FROM tasks WHERE id = ?{access}",
            [task_id] + params,
        )
        if not existing:
            return jsonify({"error": "Task not found or access denied"}), 404

        db.execute(
            "UPDATE tasks SET status = ?, completed_at = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            [status, _completed_at(status, existing), task_id],
        )
        task = _fetch_task(db, task_id)
    except QueryError as e:
        logger.error(f"Task status update error: {e}")
        return jsonify({"error": "Failed to update task status"}), 500

    if status != existing['status']:
        _notify(_notify_update, db, task, 'status_change')
    return jsonify({"message": "Task status updated successfully"})


@task_bp.route('/stats/summary', methods=['GET'])
@token_required
def task_stats():
    access, params = _access_clause(alias='')
    try:
        stats = get_db().fetch_one(
            f"""
            SELECT
                COUNT(*) AS total_tasks,
                COUNT(CASE WHEN status = 'pending' THEN 1 END) AS pending_tasks,
                COUNT(CASE WHEN status = 'in_progress' THEN 1 END) AS in_progress_tasks,
                COUNT(CASE WHEN status = 'completed' THEN 1 END) AS completed_tasks,
                COUNT(CASE WHEN priority = 'urgent' THEN 1 END) AS urgent_tasks,
                COUNT(CASE WHEN due_date < CURRENT_DATE
                           AND status NOT IN ('completed', 'cancelled') THEN 1 END) AS overdue_tasks
            FROM tasks
            WHERE 1=1{access}
            """,
            params,
        )
        return jsonify({key: int(value) for key, value in stats.items()})
    except QueryError as e:
        logger.error(f"Task stats error: {e}")
        return jsonify({"error": "Failed to fetch task statistics"}), 500


@task_bp.route('/stats/workload', methods=['GET'])
@token_required
@admin_required
def workload_stats():
    try:
        workload = get_db().fetch_all(
            """
            SELECT
                u.id,
                u.name,
                COUNT(t.id) AS total_tasks,
                COUNT(CASE WHEN t.status = 'pending' THEN 1 END) AS pending_tasks,
                COUNT(CASE WHEN t.status = 'in_progress' THEN 1 END) AS in_progress_tasks,
                COUNT(CASE WHEN t.status = 'completed' THEN 1 END) AS completed_tasks,
                COUNT(CASE WHEN t.priority = 'urgent' THEN 1 END) AS urgent_tasks
            FROM users u
            LEFT JOIN tasks t ON u.id = t.assigned_to
            WHERE u.role = 'employee' AND u.is_active = ?
            GROUP BY u.id, u.name
            ORDER BY total_tasks DESC, u.id ASC
            """,
            [True],
        )
        return jsonify({"workload": workload})
    except QueryError as e:
        logger.error(f"Workload stats error: {e}")
        return jsonify({"error": "Failed to fetch workload statistics"}), 500


@task_bp.route('/<int:task_id>', methods=['DELETE'])
@token_required
@admin_required
def delete_task(task_id):
    try:
        db = get_db()
        task = db.fetch_one("SELECT id, title FROM tasks WHERE id = ?", [task_id])
        if not task:
            return jsonify({"error": "Task not found"}), 404

        with db.transaction() as tx:
            tx.execute("DELETE FROM task_comments WHERE task_id = ?", [task_id])
            tx.execute("DELETE FROM tasks WHERE id = ?", [task_id])
        logger.info(f"Task {task_id} deleted by user {g.current_user['id']}")
        return jsonify({"message": f"Task \"{task['title']}\" and all related data deleted successfully"})
    except QueryError as e:
        logger.error(f"Task deletion error: {e}")
        return jsonify({"error": "Failed to delete task"}), 500
