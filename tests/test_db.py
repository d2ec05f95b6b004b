"""DB 준비 대기 테스트"""

import psycopg2

from pgindex.db import wait_for_database

PARAMS = {'host': 'localhost', 'port': 5000, 'database': 'postgres',
          'user': 'postgres', 'password': 'postgres'}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class Conn:
    closed = False

    def close(self):
        self.closed = True


def test_ready_immediately():
    conn = Conn()
    clock = FakeClock()

    assert wait_for_database(PARAMS, connect=lambda **p: conn,
                             sleep=clock.sleep, clock=clock)
    assert conn.closed
    assert clock.now == 0.0


def test_ready_after_retries():
    attempts = []
    clock = FakeClock()

    def connect(**params):
        attempts.append(params)
        if len(attempts) < 3:
            raise psycopg2.OperationalError("the database system is starting up")
        return Conn()

    assert wait_for_database(PARAMS, timeout=10, interval=2, connect=connect,
                             sleep=clock.sleep, clock=clock)
    assert len(attempts) == 3
    assert clock.now == 4.0
    assert attempts[0] == PARAMS


def test_timeout():
    clock = FakeClock()

    def connect(**params):
        raise psycopg2.OperationalError("connection refused")

    assert not wait_for_database(PARAMS, timeout=3, interval=1, connect=connect,
                                 sleep=clock.sleep, clock=clock)
    assert clock.now == 3.0
