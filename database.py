"""Schema bootstrap and executor access for request handlers.

Tables are written once in the SQLite dialect; `QueryExecutor.execute_ddl`
renders them for PostgreSQL when the app runs against a networked store.
"""
import logging

from flask import current_app

from utils.passwords import hash_password

logger = logging.getLogger(__name__)

EXTENSION_KEY = "db"

USERS_TABLE = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT UNIQUE NOT NULL,
        password TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'employee',
        phone TEXT,
        department TEXT,
        is_active BOOLEAN DEFAULT 1,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
"""

CLIENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS clients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        company_name TEXT,
        email TEXT,
        phone TEXT,
        business_type TEXT,
        pan_number TEXT,
        gstin TEXT,
        tan_number TEXT,
        address TEXT,
        city TEXT,
        state TEXT,
        pincode TEXT,
        financial_year_end TEXT DEFAULT '31-03',
        status TEXT DEFAULT 'active',
        assigned_to INTEGER,
        notes TEXT,
        last_conversation TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (assigned_to) REFERENCES users (id)
    )
"""

TASKS_TABLE = """
    CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        client_id INTEGER,
        assigned_to INTEGER NOT NULL,
        assigned_by INTEGER NOT NULL,
        priority TEXT DEFAULT 'medium',
        status TEXT DEFAULT 'pending',
        category TEXT,
        due_date DATE,
        completed_at DATETIME,
        notes TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (client_id) REFERENCES clients (id),
        FOREIGN KEY (assigned_to) REFERENCES users (id),
        FOREIGN KEY (assigned_by) REFERENCES users (id)
    )
"""

CLIENT_DOCUMENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS client_documents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        client_id INTEGER NOT NULL,
        filename TEXT NOT NULL,
        original_name TEXT NOT NULL,
        file_path TEXT NOT NULL,
        file_size INTEGER,
        mime_type TEXT,
        category TEXT,
        description TEXT,
        uploaded_by INTEGER NOT NULL,
        uploaded_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (client_id) REFERENCES clients (id),
        FOREIGN KEY (uploaded_by) REFERENCES users (id)
    )
"""

TASK_COMMENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS task_comments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        comment TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (task_id) REFERENCES tasks (id),
        FOREIGN KEY (user_id) REFERENCES users (id)
    )
"""

NOTIFICATIONS_TABLE = """
    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        type TEXT DEFAULT 'info',
        related_id INTEGER,
        related_type TEXT,
        is_read BOOLEAN DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        read_at DATETIME,
        FOREIGN KEY (user_id) REFERENCES users (id)
    )
"""

SCHEMA_STATEMENTS = (
    USERS_TABLE,
    CLIENTS_TABLE,
    TASKS_TABLE,
    CLIENT_DOCUMENTS_TABLE,
    TASK_COMMENTS_TABLE,
    NOTIFICATIONS_TABLE,
    "CREATE INDEX IF NOT EXISTS idx_notifications_user_id ON notifications (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_unread ON notifications (user_id, is_read)",
)


def get_db():
    """Executor owned by the running app."""
    return current_app.extensions[EXTENSION_KEY]


def init_schema(executor):
    for statement in SCHEMA_STATEMENTS:
        executor.execute_ddl(statement)
    logger.info(f"✅ Database tables ready ({executor.mode.value})")


def ensure_admin(executor, email, password, rounds=10):
    """Create the default admin account unless that email is already registered."""
    email = email.strip().lower()
    existing = executor.fetch_one("SELECT id FROM users WHERE email = ?", [email])
    if existing:
        logger.info("ℹ️ Admin user already exists")
        return False

    executor.execute(
        "INSERT INTO users (name, email, password, role, department) VALUES (?, ?, ?, ?, ?)",
        ["Admin User", email, hash_password(password, rounds), "admin", "Management"],
    )
    logger.info(f"✅ Default admin user created: {email}")
    logger.warning("⚠️ Change the admin password after first login!")
    return True


def bootstrap(executor, config):
    init_schema(executor)
    ensure_admin(
        executor,
        config.ADMIN_EMAIL,
        config.ADMIN_PASSWORD,
        getattr(config, "BCRYPT_ROUNDS", 10),
    )
