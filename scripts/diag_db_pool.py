# diagnostic script to check the configured database is reachable
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config  # noqa: E402
from db_backend import ConnectionMode, QueryError, create_executor  # noqa: E402


def main():
    mode = ConnectionMode.NETWORKED if Config.DATABASE_URL else ConnectionMode.EMBEDDED
    print('Testing DB connection with:')
    print('MODE=', mode.value)
    if mode is ConnectionMode.NETWORKED:
        print('POOL_SIZE=', Config.DB_POOL_SIZE)
        print('POOL_TIMEOUT=', Config.DB_POOL_TIMEOUT)
        print('SSLMODE=', Config.DB_SSLMODE)
    else:
        print('DB_PATH=', Config.DB_PATH)

    try:
        executor = create_executor(Config)
    except QueryError as e:
        print('ERROR opening database:', repr(e))
        return 1

    try:
        print('Executor created OK')
        row = executor.fetch_one('SELECT 1 AS ok')
        print('Query ok, result:', row)
        print('Ping ok?', executor.ping())
        return 0
    except QueryError as e:
        print('ERROR querying database:', repr(e))
        return 1
    finally:
        executor.close()


if __name__ == '__main__':
    sys.exit(main())
