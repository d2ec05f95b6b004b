"""테스트 공통 fixture: 가짜 커넥션/이력 테이블, 임시 마이그레이션 디렉토리"""

from datetime import datetime

import psycopg2
import pytest
from psycopg2 import sql

from pgindex.config import MigrateConfig
from pgindex.history import AppliedMigration


def render(query):
    """psycopg2.sql 조합 객체를 커넥션 없이 문자열로 펼침"""
    if isinstance(query, sql.Composed):
        return "".join(render(part) for part in query.seq)
    if isinstance(query, sql.SQL):
        return query.string
    if isinstance(query, sql.Identifier):
        return ".".join('"' + s.replace('"', '""') + '"' for s in query.strings)
    return query


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self.rowcount = -1
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, query, params=None):
        query = render(query)
        if self.conn.fail_on and self.conn.fail_on in query:
            raise psycopg2.ProgrammingError(f"syntax error near {self.conn.fail_on!r}")
        self.conn.executed.append((query, self.conn.autocommit))
        self.conn.params.append(params)
        self._rows = self.conn.results.pop(0) if self.conn.results else []
        self.rowcount = self.conn.rowcount

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)

    def close(self):
        pass


class FakeConnection:
    """실행된 SQL 과 commit/rollback 횟수를 기록하는 psycopg2 커넥션 대역"""

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.autocommit = False
        self.executed = []
        self.params = []
        # execute 마다 하나씩 꺼내 쓰는 결과 행 목록
        self.results = []
        self.rowcount = -1
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True

    @property
    def statements(self):
        return [query for query, _ in self.executed]


class FakeHistory:
    """메모리 안의 schema_history"""

    def __init__(self, conn=None, table="schema_history"):
        self.conn = conn
        self.table = table
        self.created = False
        self.rows = []
        self.others = []
        self.locks = 0
        self.unlocks = 0

    def exists(self):
        return self.created

    def create(self):
        self.created = True

    def other_tables(self):
        return list(self.others)

    def applied(self):
        return sorted(self.rows, key=lambda r: r.installed_rank)

    def record(self, version, description, type_, script, checksum,
               execution_time, success):
        rank = max((r.installed_rank for r in self.rows), default=0) + 1
        self.rows.append(AppliedMigration(
            installed_rank=rank,
            version=version,
            description=description,
            type=type_,
            script=script,
            checksum=checksum,
            installed_by="tester",
            installed_on=datetime(2024, 1, 1, 12, 0, 0),
            execution_time=execution_time,
            success=success,
        ))

    def delete_failed(self):
        before = len(self.rows)
        self.rows = [r for r in self.rows if r.success]
        return before - len(self.rows)

    def update_checksum(self, installed_rank, checksum):
        for r in self.rows:
            if r.installed_rank == installed_rank:
                r.checksum = checksum

    def lock(self):
        self.locks += 1

    def unlock(self):
        self.unlocks += 1


@pytest.fixture
def fake_conn():
    return FakeConnection()


@pytest.fixture
def history():
    return FakeHistory()


@pytest.fixture
def migrations_dir(tmp_path):
    path = tmp_path / "migrations"
    path.mkdir()
    return path


@pytest.fixture
def write_migration(migrations_dir):
    def write(name, text):
        path = migrations_dir / name
        path.write_text(text, encoding="utf-8")
        return path
    return write


@pytest.fixture
def make_config(migrations_dir):
    def make(**overrides):
        options = dict(
            url="jdbc:postgresql://localhost:5432/test",
            user="postgres",
            password="postgres",
            locations=[migrations_dir],
            connect_retries=0,
        )
        options.update(overrides)
        return MigrateConfig(**options)
    return make


@pytest.fixture
def make_migrator(fake_conn, history, make_config):
    """가짜 커넥션/이력으로 동작하는 Migrator 생성기"""
    from pgindex.migrate import Migrator

    def make(**overrides):
        return Migrator(
            make_config(**overrides),
            connect=lambda **params: fake_conn,
            sleep=lambda seconds: None,
            history_factory=lambda conn, table: history,
        )
    return make
