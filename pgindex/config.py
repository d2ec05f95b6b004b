"""
환경 변수 기반 설정
==================

실습용 접속 정보(DB_CONFIG)와 마이그레이션 러너 설정(MigrateConfig)을
한 곳에서 읽습니다. 작업 디렉토리에 .env 파일이 있으면 먼저 로드합니다.

    POSTGRES_HOST / POSTGRES_PORT / POSTGRES_DB / POSTGRES_USER / POSTGRES_PASSWORD
        → 실습(labs)에서 사용하는 접속 정보

    MIGRATIONS_URL / MIGRATIONS_USER / MIGRATIONS_PASSWORD / MIGRATIONS_LOCATIONS ...
        → pgindex migrate 가 사용하는 접속 정보와 동작 옵션
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, unquote, urlsplit

from dotenv import load_dotenv

from pgindex.errors import ConfigError

load_dotenv()

# docker-compose.yaml 의 포트 매핑(5000:5432) 기준
DEFAULT_LAB_PORT = 5000
DEFAULT_PG_PORT = 5432

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def env_bool(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name}: 불리언 값이 아닙니다: {raw!r}")


def env_int(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name}: 정수 값이 아닙니다: {raw!r}") from None


def lab_db_config() -> dict:
    """실습 스크립트용 psycopg2.connect(**DB_CONFIG) 인자"""
    return {
        'host': os.getenv("POSTGRES_HOST", "localhost"),
        'port': env_int("POSTGRES_PORT", DEFAULT_LAB_PORT),
        'database': os.getenv("POSTGRES_DB", "postgres"),
        'user': os.getenv("POSTGRES_USER", "postgres"),
        'password': os.getenv("POSTGRES_PASSWORD", "postgres"),
    }


def parse_database_url(url: str) -> dict:
    """JDBC 스타일 또는 libpq 스타일 URL을 접속 인자로 변환

    지원 형식:
        jdbc:postgresql://host[:port]/database[?user=..&password=..]
        postgresql://[user[:password]@]host[:port]/database
        postgres://...

    Returns:
        host, port, database 와 (URL에 있으면) user, password 키를 가진 dict
    """
    if not url:
        raise ConfigError("데이터베이스 URL이 비어 있습니다")

    raw = url.strip()
    if raw.startswith("jdbc:"):
        raw = raw[len("jdbc:"):]

    parts = urlsplit(raw)
    if parts.scheme not in ("postgresql", "postgres"):
        raise ConfigError(f"지원하지 않는 URL 스킴입니다: {url!r}")
    if not parts.hostname:
        raise ConfigError(f"URL에 호스트가 없습니다: {url!r}")

    database = unquote(parts.path.lstrip("/"))
    if not database:
        raise ConfigError(f"URL에 데이터베이스 이름이 없습니다: {url!r}")

    try:
        port = parts.port or DEFAULT_PG_PORT
    except ValueError:
        raise ConfigError(f"포트 번호가 잘못되었습니다: {url!r}") from None

    params = {
        'host': parts.hostname,
        'port': port,
        'database': database,
    }

    # userinfo 가 쿼리 파라미터보다 우선
    query = parse_qs(parts.query)
    if "user" in query:
        params['user'] = query["user"][0]
    if "password" in query:
        params['password'] = query["password"][0]
    if parts.username:
        params['user'] = unquote(parts.username)
    if parts.password:
        params['password'] = unquote(parts.password)

    return params


@dataclass
class MigrateConfig:
    """마이그레이션 러너 설정"""

    url: str
    user: Optional[str] = None
    password: Optional[str] = None
    locations: list = field(default_factory=lambda: [Path("migrations")])
    table: str = "schema_history"
    connect_retries: int = 10
    connect_retry_interval: int = 120
    validate_on_migrate: bool = True
    baseline_on_migrate: bool = False
    baseline_version: str = "1"
    target: Optional[str] = None

    def __post_init__(self):
        if not _IDENTIFIER.match(self.table):
            raise ConfigError(f"이력 테이블 이름이 올바른 식별자가 아닙니다: {self.table!r}")
        if self.connect_retries < 0:
            raise ConfigError("MIGRATIONS_CONNECT_RETRIES 는 0 이상이어야 합니다")
        self.locations = [Path(p) for p in self.locations]

    @classmethod
    def from_env(cls) -> "MigrateConfig":
        url = os.getenv("MIGRATIONS_URL")
        if not url:
            raise ConfigError("MIGRATIONS_URL 환경 변수가 설정되지 않았습니다")

        locations = [
            p.strip()
            for p in os.getenv("MIGRATIONS_LOCATIONS", "migrations").split(",")
            if p.strip()
        ]

        return cls(
            url=url,
            user=os.getenv("MIGRATIONS_USER") or None,
            password=os.getenv("MIGRATIONS_PASSWORD") or None,
            locations=locations,
            table=os.getenv("MIGRATIONS_TABLE", "schema_history"),
            connect_retries=env_int("MIGRATIONS_CONNECT_RETRIES", 10),
            connect_retry_interval=env_int("MIGRATIONS_CONNECT_RETRY_INTERVAL", 120),
            validate_on_migrate=env_bool("MIGRATIONS_VALIDATE_ON_MIGRATE", True),
            baseline_on_migrate=env_bool("MIGRATIONS_BASELINE_ON_MIGRATE", False),
            baseline_version=os.getenv("MIGRATIONS_BASELINE_VERSION", "1"),
            target=os.getenv("MIGRATIONS_TARGET") or None,
        )

    def connect_params(self) -> dict:
        """psycopg2.connect 인자 (MIGRATIONS_USER/PASSWORD 가 URL보다 우선)"""
        params = parse_database_url(self.url)
        if self.user:
            params['user'] = self.user
        if self.password:
            params['password'] = self.password
        return params
