"""
SQL 마이그레이션 러너
===================

migrations/ 디렉토리의 스크립트를 버전 순서대로 한 번씩 적용하고,
적용 이력은 대상 데이터베이스의 이력 테이블(기본 schema_history)에 남깁니다.

    migrate   대기 중인 마이그레이션 적용 (이미 최신이면 아무 것도 안 함)
    info      로컬 스크립트와 적용 이력 비교표
    validate  체크섬/누락/실패/순서 위반 검사
    baseline  기존 스키마를 특정 버전으로 간주하고 이력 시작
    repair    실패 기록 삭제 + 체크섬 재정렬

컨테이너 환경에서는 DB가 아직 뜨지 않았을 수 있으므로 연결 단계에서
지수 백오프로 재시도합니다. 그래도 실패하면 0이 아닌 코드로 종료하고,
docker-compose 의 restart: on-failure 정책이 컨테이너를 다시 띄웁니다.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import psycopg2
from tabulate import tabulate

from pgindex.errors import MigrationError, ValidationError
from pgindex.history import (
    BASELINE_DESCRIPTION,
    TYPE_BASELINE,
    TYPE_SQL,
    AppliedMigration,
    SchemaHistory,
)
from pgindex.log import get_logger
from pgindex.scripts import Migration, Version, scan_migrations, split_statements

logger = get_logger(__name__)

# info 상태 값
SUCCESS = "Success"
PENDING = "Pending"
FAILED = "Failed"
MISSING = "Missing"
BASELINE = "Baseline"
BELOW_BASELINE = "Below Baseline"
IGNORED = "Ignored"
OUTDATED = "Outdated"
ABOVE_TARGET = "Above Target"

VERSIONED = "Versioned"
REPEATABLE = "Repeatable"


@dataclass
class InfoRow:
    category: str
    version: str
    description: str
    type: str
    installed_on: Optional[datetime]
    state: str
    migration: Optional[Migration] = None
    applied: Optional[AppliedMigration] = None

    @property
    def checksum_mismatch(self) -> bool:
        return (
            self.state == SUCCESS
            and self.category == VERSIONED
            and self.migration is not None
            and self.applied is not None
            and self.migration.checksum != self.applied.checksum
        )


@dataclass
class RepairResult:
    removed_failed: int
    realigned_checksums: int


def build_info(applied, versioned, repeatable, target=None) -> list:
    """적용 이력과 로컬 스크립트를 맞춰 상태표 생성

    Args:
        applied: AppliedMigration 목록 (installed_rank 순)
        versioned: 로컬 버전 마이그레이션 (버전 순)
        repeatable: 로컬 반복 마이그레이션 (설명 순)
        target: 이 버전보다 높은 대기 마이그레이션은 Above Target
    """
    local_by_version = {m.version: m for m in versioned}
    local_by_description = {m.description: m for m in repeatable}

    applied_versioned = [a for a in applied if not a.repeatable]
    applied_versions = {a.version for a in applied_versioned}

    baseline_version = None
    for a in applied_versioned:
        if a.baseline:
            baseline_version = a.version

    successful = [a.version for a in applied_versioned if a.success]
    latest = max(successful) if successful else None

    rows = []

    for a in applied_versioned:
        local = local_by_version.get(a.version)
        if a.baseline:
            state = BASELINE
        elif not a.success:
            state = FAILED
        elif local is None:
            state = MISSING
        else:
            state = SUCCESS
        rows.append(InfoRow(VERSIONED, str(a.version), a.description, a.type,
                            a.installed_on, state, local, a))

    for m in versioned:
        if m.version in applied_versions:
            continue
        if baseline_version is not None and m.version <= baseline_version:
            state = BELOW_BASELINE
        elif target is not None and m.version > target:
            state = ABOVE_TARGET
        elif latest is not None and m.version < latest:
            state = IGNORED
        else:
            state = PENDING
        rows.append(InfoRow(VERSIONED, str(m.version), m.description, TYPE_SQL,
                            None, state, m, None))

    rows.sort(key=lambda r: Version(r.version))

    # 반복 마이그레이션은 설명별 가장 최근 기록만 본다
    latest_repeatable = {}
    for a in applied:
        if a.repeatable:
            latest_repeatable[a.description] = a

    repeatable_rows = []
    for description, a in latest_repeatable.items():
        local = local_by_description.get(description)
        if not a.success:
            state = FAILED
        elif local is None:
            state = MISSING
        elif local.checksum != a.checksum:
            state = OUTDATED
        else:
            state = SUCCESS
        repeatable_rows.append(InfoRow(REPEATABLE, "", description, a.type,
                                       a.installed_on, state, local, a))

    for m in repeatable:
        if m.description not in latest_repeatable:
            repeatable_rows.append(InfoRow(REPEATABLE, "", m.description, TYPE_SQL,
                                           None, PENDING, m, None))

    repeatable_rows.sort(key=lambda r: r.description)
    return rows + repeatable_rows


def validation_problems(rows) -> list:
    problems = []
    for row in rows:
        label = f"버전 {row.version}" if row.category == VERSIONED else f"반복 '{row.description}'"
        if row.checksum_mismatch:
            problems.append(
                f"{label} 체크섬 불일치: 이력={row.applied.checksum}, "
                f"로컬={row.migration.checksum} ({row.migration.script})"
            )
        elif row.state == MISSING:
            problems.append(f"{label} 이(가) 적용되었지만 로컬 파일이 없습니다")
        elif row.state == FAILED:
            problems.append(f"{label} 적용에 실패한 기록이 있습니다 (repair 필요)")
        elif row.state == IGNORED:
            problems.append(
                f"{label} 이(가) 최신 적용 버전보다 낮아 적용되지 않습니다 ({row.migration.script})"
            )
    return problems


def render_info(rows) -> str:
    table = [
        (
            r.category,
            r.version,
            r.description,
            r.type,
            r.installed_on.strftime("%Y-%m-%d %H:%M:%S") if r.installed_on else "",
            r.state,
        )
        for r in rows
    ]
    return tabulate(
        table,
        headers=["Category", "Version", "Description", "Type", "Installed On", "State"],
        tablefmt="psql",
    )


class Migrator:
    """MigrateConfig 에 따라 마이그레이션을 수행

    Args:
        config: MigrateConfig
        connect: psycopg2.connect 호환 함수 (테스트에서 교체)
        sleep: 재시도 대기 함수
        history_factory: (conn, table) → SchemaHistory 호환 객체
    """

    def __init__(self, config, connect=None, sleep=time.sleep,
                 history_factory=SchemaHistory):
        self.config = config
        self._connect = connect or psycopg2.connect
        self._sleep = sleep
        self._history_factory = history_factory
        self.conn = None
        self.history = None

        if config.target and config.target.lower() != "latest":
            self.target = Version(config.target)
        else:
            self.target = None

    # -------------------------------------------------------------------------
    # 연결
    # -------------------------------------------------------------------------

    def connect(self):
        if self.conn is not None:
            return self.conn

        params = self.config.connect_params()
        retries = self.config.connect_retries
        delay = 1
        attempt = 0

        while True:
            try:
                conn = self._connect(**params)
                break
            except psycopg2.OperationalError as e:
                if attempt >= retries:
                    raise MigrationError(
                        f"데이터베이스에 연결할 수 없습니다 "
                        f"({params['host']}:{params['port']}/{params['database']}): {e}"
                    ) from e
                attempt += 1
                logger.warning(
                    f"연결 실패, {delay}초 후 재시도합니다 ({attempt}/{retries}): "
                    f"{str(e).strip()}"
                )
                self._sleep(delay)
                delay = min(delay * 2, self.config.connect_retry_interval)

        conn.autocommit = False
        self.conn = conn
        self.history = self._history_factory(conn, self.config.table)
        logger.debug(f"연결됨: {params['host']}:{params['port']}/{params['database']}")
        return conn

    def close(self):
        if self.conn is not None:
            self.conn.close()
        self.conn = None
        self.history = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @contextmanager
    def _session(self, lock=True):
        opened_here = self.conn is None
        self.connect()
        try:
            if lock:
                self.history.lock()
                self.conn.commit()
            try:
                yield
            except Exception:
                self.conn.rollback()
                raise
            finally:
                if lock:
                    self.history.unlock()
                    self.conn.commit()
        except psycopg2.Error as e:
            raise MigrationError(f"데이터베이스 오류: {str(e).strip()}") from e
        finally:
            if opened_here:
                self.close()

    def resolve(self):
        return scan_migrations(self.config.locations)

    # -------------------------------------------------------------------------
    # 명령
    # -------------------------------------------------------------------------

    def migrate(self) -> int:
        """대기 중인 마이그레이션을 적용하고 적용 개수를 반환"""
        with self._session():
            self._ensure_history()

            applied = self.history.applied()
            failed = [a for a in applied if not a.success]
            if failed:
                scripts = ", ".join(a.script for a in failed)
                raise MigrationError(
                    f"실패한 마이그레이션 기록이 있습니다: {scripts}. "
                    f"원인을 해결한 뒤 repair 를 먼저 실행하세요"
                )

            versioned, repeatable = self.resolve()
            rows = build_info(applied, versioned, repeatable, self.target)

            if self.config.validate_on_migrate:
                problems = validation_problems(rows)
                if problems:
                    raise ValidationError(problems)

            pending = [r.migration for r in rows if r.state in (PENDING, OUTDATED)]
            if not pending:
                logger.info("스키마가 최신 상태입니다. 적용할 마이그레이션이 없습니다")
                return 0

            logger.info(f"대기 중인 마이그레이션 {len(pending)}개")
            for migration in pending:
                self._apply(migration)

            logger.info(f"마이그레이션 {len(pending)}개 적용 완료")
            return len(pending)

    def info(self) -> list:
        with self._session(lock=False):
            applied = self.history.applied() if self.history.exists() else []
            versioned, repeatable = self.resolve()
            return build_info(applied, versioned, repeatable, self.target)

    def validate(self) -> list:
        """문제가 없으면 빈 목록, 있으면 ValidationError"""
        with self._session(lock=False):
            applied = self.history.applied() if self.history.exists() else []
            versioned, repeatable = self.resolve()
            problems = validation_problems(
                build_info(applied, versioned, repeatable, self.target)
            )
        if problems:
            raise ValidationError(problems)
        logger.info("검증 통과")
        return problems

    def baseline(self) -> None:
        with self._session():
            if self.history.exists() and self.history.applied():
                raise MigrationError(
                    f"{self.config.table} 에 이미 기록이 있어 baseline 할 수 없습니다"
                )
            self.history.create()
            self._record_baseline()
            self.conn.commit()

    def repair(self) -> RepairResult:
        with self._session():
            if not self.history.exists():
                logger.info(f"{self.config.table} 테이블이 없어 복구할 내용이 없습니다")
                return RepairResult(0, 0)

            removed = self.history.delete_failed()

            versioned, _ = self.resolve()
            local_by_version = {m.version: m for m in versioned}
            realigned = 0
            for a in self.history.applied():
                if a.repeatable or a.baseline or not a.success:
                    continue
                local = local_by_version.get(a.version)
                if local is not None and local.checksum != a.checksum:
                    self.history.update_checksum(a.installed_rank, local.checksum)
                    logger.info(
                        f"버전 {a.version} 체크섬 재정렬: {a.checksum} → {local.checksum}"
                    )
                    realigned += 1

            self.conn.commit()
            logger.info(f"repair 완료: 실패 기록 {removed}개 삭제, 체크섬 {realigned}개 재정렬")
            return RepairResult(removed, realigned)

    # -------------------------------------------------------------------------
    # 내부 동작
    # -------------------------------------------------------------------------

    def _ensure_history(self):
        if self.history.exists():
            return

        others = self.history.other_tables()
        if others and not self.config.baseline_on_migrate:
            raise MigrationError(
                f"이력 테이블 없이 비어 있지 않은 스키마입니다 ({', '.join(others)}). "
                f"baseline 을 실행하거나 MIGRATIONS_BASELINE_ON_MIGRATE=true 로 설정하세요"
            )

        logger.info(f"이력 테이블 생성: {self.config.table}")
        self.history.create()
        if others:
            self._record_baseline()
        self.conn.commit()

    def _record_baseline(self):
        version = Version(self.config.baseline_version)
        self.history.record(version, BASELINE_DESCRIPTION, TYPE_BASELINE,
                            BASELINE_DESCRIPTION, None, 0, True)
        logger.info(f"baseline 버전 {version} 기록")

    def _apply(self, migration):
        label = migration.script
        if migration.repeatable:
            logger.info(f"반복 마이그레이션 적용: {migration.description}")
        else:
            logger.info(f"버전 {migration.version} 적용: {migration.description}")

        started = time.monotonic()

        if migration.transactional:
            try:
                with self.conn.cursor() as cur:
                    if split_statements(migration.sql):
                        cur.execute(migration.sql)
                self._record(migration, started, success=True)
                self.conn.commit()
            except psycopg2.Error as e:
                self.conn.rollback()
                raise MigrationError(f"{label} 적용 실패 (롤백됨): {e}") from e
            return

        # 트랜잭션 밖: 문장 단위 autocommit, 실패 시 실패 기록을 남긴다
        self.conn.commit()
        self.conn.autocommit = True
        try:
            try:
                with self.conn.cursor() as cur:
                    for statement in split_statements(migration.sql):
                        logger.debug(statement)
                        cur.execute(statement)
            except psycopg2.Error as e:
                self._record(migration, started, success=False)
                raise MigrationError(
                    f"{label} 적용 실패 (트랜잭션 밖에서 실행되어 일부 변경이 남았을 수 있음): {e}"
                ) from e
            self._record(migration, started, success=True)
        finally:
            self.conn.autocommit = False

    def _record(self, migration, started, success):
        elapsed = int((time.monotonic() - started) * 1000)
        self.history.record(migration.version, migration.description, TYPE_SQL,
                            migration.script, migration.checksum, elapsed, success)
