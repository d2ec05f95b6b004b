"""
스키마 이력 테이블
================

적용된 마이그레이션을 대상 데이터베이스 안의 테이블에 기록합니다.

    installed_rank | version | description | type | script | checksum
    installed_by   | installed_on | execution_time | success

트랜잭션 경계(commit/rollback)는 호출하는 쪽(Migrator)이 관리합니다.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from psycopg2 import sql

from pgindex.scripts import Version

TYPE_SQL = "SQL"
TYPE_BASELINE = "BASELINE"
BASELINE_DESCRIPTION = "<< Baseline >>"


@dataclass
class AppliedMigration:
    installed_rank: int
    version: Optional[Version]
    description: str
    type: str
    script: str
    checksum: Optional[int]
    installed_by: str
    installed_on: Optional[datetime]
    execution_time: int
    success: bool

    @property
    def repeatable(self) -> bool:
        return self.version is None

    @property
    def baseline(self) -> bool:
        return self.type == TYPE_BASELINE


class SchemaHistory:
    """psycopg2 커넥션 위에서 동작하는 이력 테이블 접근자"""

    def __init__(self, conn, table="schema_history"):
        self.conn = conn
        self.table = table
        self._ident = sql.Identifier(table)

    def exists(self) -> bool:
        # create() 가 따옴표로 만든 이름이므로 대소문자를 그대로 찾아야 한다
        with self.conn.cursor() as cur:
            cur.execute("SELECT to_regclass(quote_ident(%s)) IS NOT NULL", (self.table,))
            return bool(cur.fetchone()[0])

    def create(self) -> None:
        with self.conn.cursor() as cur:
            cur.execute(sql.SQL("""
                CREATE TABLE IF NOT EXISTS {} (
                    installed_rank INTEGER PRIMARY KEY,
                    version VARCHAR(50),
                    description VARCHAR(200) NOT NULL,
                    type VARCHAR(20) NOT NULL,
                    script VARCHAR(1000) NOT NULL,
                    checksum INTEGER,
                    installed_by VARCHAR(100) NOT NULL,
                    installed_on TIMESTAMP NOT NULL DEFAULT now(),
                    execution_time INTEGER NOT NULL,
                    success BOOLEAN NOT NULL
                )
            """).format(self._ident))

    def other_tables(self) -> list:
        """현재 스키마의 사용자 테이블 중 이력 테이블을 제외한 목록"""
        with self.conn.cursor() as cur:
            cur.execute("""
                SELECT tablename
                FROM pg_tables
                WHERE schemaname = current_schema()
                AND tablename <> %s
                ORDER BY tablename
            """, (self.table,))
            return [row[0] for row in cur.fetchall()]

    def applied(self) -> list:
        with self.conn.cursor() as cur:
            cur.execute(sql.SQL("""
                SELECT installed_rank, version, description, type, script,
                       checksum, installed_by, installed_on, execution_time, success
                FROM {}
                ORDER BY installed_rank
            """).format(self._ident))
            rows = cur.fetchall()

        return [
            AppliedMigration(
                installed_rank=row[0],
                version=Version(row[1]) if row[1] is not None else None,
                description=row[2],
                type=row[3],
                script=row[4],
                checksum=row[5],
                installed_by=row[6],
                installed_on=row[7],
                execution_time=row[8],
                success=row[9],
            )
            for row in rows
        ]

    def record(self, version, description, type_, script, checksum,
               execution_time, success) -> None:
        with self.conn.cursor() as cur:
            cur.execute(sql.SQL("""
                INSERT INTO {table} (installed_rank, version, description, type,
                                     script, checksum, installed_by,
                                     execution_time, success)
                SELECT COALESCE(MAX(installed_rank), 0) + 1,
                       %s, %s, %s, %s, %s, current_user, %s, %s
                FROM {table}
            """).format(table=self._ident), (
                str(version) if version is not None else None,
                description[:200],
                type_,
                script,
                checksum,
                execution_time,
                success,
            ))

    def delete_failed(self) -> int:
        with self.conn.cursor() as cur:
            cur.execute(
                sql.SQL("DELETE FROM {} WHERE NOT success").format(self._ident)
            )
            return cur.rowcount

    def update_checksum(self, installed_rank, checksum) -> None:
        with self.conn.cursor() as cur:
            cur.execute(
                sql.SQL("UPDATE {} SET checksum = %s WHERE installed_rank = %s")
                .format(self._ident),
                (checksum, installed_rank),
            )

    # 같은 테이블을 쓰는 러너끼리 직렬화 (세션 단위 advisory lock)
    def lock(self) -> None:
        with self.conn.cursor() as cur:
            cur.execute("SELECT pg_advisory_lock(hashtext(%s))", (self.table,))

    def unlock(self) -> None:
        with self.conn.cursor() as cur:
            cur.execute("SELECT pg_advisory_unlock(hashtext(%s))", (self.table,))
