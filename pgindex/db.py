"""실습용 데이터베이스 연결"""

import time

import psycopg2

from pgindex.config import lab_db_config
from pgindex.log import get_logger

logger = get_logger(__name__)


def get_connection(autocommit=False):
    conn = psycopg2.connect(**lab_db_config())
    conn.autocommit = autocommit
    return conn


def wait_for_database(params=None, timeout=60.0, interval=1.0,
                      connect=psycopg2.connect, sleep=time.sleep,
                      clock=time.monotonic):
    """연결이 성공할 때까지 대기 (docker compose up 직후 준비 확인용)

    Returns:
        성공하면 True, timeout 안에 연결하지 못하면 False
    """
    params = params or lab_db_config()
    deadline = clock() + timeout
    attempts = 0

    while True:
        attempts += 1
        try:
            conn = connect(**params)
        except psycopg2.OperationalError as e:
            if clock() >= deadline:
                logger.error(f"{params['host']}:{params['port']} 연결 실패 ({attempts}회 시도): {e}")
                return False
            logger.debug(f"아직 준비되지 않음 ({attempts}회): {str(e).strip()}")
            sleep(interval)
            continue

        conn.close()
        logger.info(f"{params['host']}:{params['port']} 연결 성공 ({attempts}회 시도)")
        return True
