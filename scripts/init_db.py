"""
Create the CRM tables and the default admin account, then exit.

Usage: python scripts/init_db.py
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config  # noqa: E402
from database import bootstrap  # noqa: E402
from db_backend import QueryError, create_executor  # noqa: E402
from utils.logger import get_logger, setup_logging  # noqa: E402

logger = get_logger("init_db")


def main():
    setup_logging(Config.LOG_LEVEL)
    executor = create_executor(Config)
    try:
        bootstrap(executor, Config)
        logger.info("🎉 Database initialization completed")
        logger.info(f"Admin login: {Config.ADMIN_EMAIL}")
        return 0
    except QueryError as e:
        logger.error(f"❌ Database initialization failed: {e}")
        return 1
    finally:
        executor.close()


if __name__ == '__main__':
    sys.exit(main())
