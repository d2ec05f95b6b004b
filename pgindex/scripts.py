"""
마이그레이션 스크립트 탐색
========================

파일 이름 규칙:

    V<버전>__<설명>.sql   버전 마이그레이션 (한 번만 적용)
        V1__enable_extensions.sql      → 버전 1
        V1_1__add_column.sql           → 버전 1.1

    R__<설명>.sql         반복 마이그레이션 (체크섬이 바뀔 때마다 재적용)
        R__index_overview_view.sql

스크립트 첫 부분 주석에 `-- migrate:no-transaction` 이 있으면 트랜잭션 밖에서
문장 단위로 실행합니다 (CREATE INDEX CONCURRENTLY 등).
"""

import functools
import re
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pgindex.errors import MigrationError
from pgindex.log import get_logger

logger = get_logger(__name__)

VERSIONED_PREFIX = "V"
REPEATABLE_PREFIX = "R"
SEPARATOR = "__"
SUFFIX = ".sql"
NO_TRANSACTION_DIRECTIVE = "-- migrate:no-transaction"

_VERSION = re.compile(r"^\d+([._]\d+)*$")
_DOLLAR_TAG = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@functools.total_ordering
class Version:
    """숫자 부분 단위로 비교하는 마이그레이션 버전 (1.0 == 1)"""

    def __init__(self, text):
        text = str(text).strip()
        if not _VERSION.match(text):
            raise MigrationError(f"잘못된 버전 형식입니다: {text!r}")
        self.parts = tuple(int(p) for p in re.split(r"[._]", text))

    @property
    def key(self):
        parts = list(self.parts)
        while len(parts) > 1 and parts[-1] == 0:
            parts.pop()
        return tuple(parts)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.key < other.key

    def __hash__(self):
        return hash(self.key)

    def __str__(self):
        return ".".join(str(p) for p in self.parts)

    def __repr__(self):
        return f"Version({str(self)!r})"


@dataclass
class Migration:
    """로컬 디스크에서 찾은 마이그레이션 스크립트"""

    version: Optional[Version]
    description: str
    script: str
    path: Path
    checksum: int
    sql: str
    transactional: bool = True

    @property
    def repeatable(self) -> bool:
        return self.version is None


def checksum(text: str) -> int:
    """줄 단위 CRC32 (줄바꿈 문자 제외, BOM 제거), 부호 있는 32비트 정수"""
    crc = 0
    for i, line in enumerate(_LINE_BREAK.split(text)):
        if i == 0:
            line = line.lstrip("\ufeff")
        crc = zlib.crc32(line.encode("utf-8"), crc)
    if crc >= 2 ** 31:
        crc -= 2 ** 32
    return crc


def is_transactional(sql: str) -> bool:
    """선두 주석 블록에 no-transaction 지시어가 없으면 True"""
    for line in sql.lstrip("\ufeff").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if not stripped.startswith("--"):
            break
        if stripped.lower().replace(" ", "") == NO_TRANSACTION_DIRECTIVE.replace(" ", ""):
            return False
    return True


def parse_filename(name: str):
    """파일 이름 → (버전 또는 None, 설명). 규칙에 맞지 않으면 None"""
    if not name.endswith(SUFFIX):
        return None
    stem = name[:-len(SUFFIX)]

    if stem.startswith(REPEATABLE_PREFIX + SEPARATOR):
        description = stem[len(REPEATABLE_PREFIX + SEPARATOR):]
        if not description:
            return None
        return None, description.replace("_", " ")

    if stem.startswith(VERSIONED_PREFIX) and SEPARATOR in stem:
        raw_version, description = stem[len(VERSIONED_PREFIX):].split(SEPARATOR, 1)
        if not _VERSION.match(raw_version) or not description:
            return None
        return Version(raw_version), description.replace("_", " ")

    return None


def load_migration(path: Path) -> Optional[Migration]:
    parsed = parse_filename(path.name)
    if parsed is None:
        return None
    version, description = parsed

    # utf-8-sig: 편집기가 붙인 BOM 은 SQL 로 보내지 않는다
    sql = path.read_text(encoding="utf-8-sig")
    return Migration(
        version=version,
        description=description,
        script=path.name,
        path=path,
        checksum=checksum(sql),
        sql=sql,
        transactional=is_transactional(sql),
    )


def scan_migrations(locations):
    """모든 위치에서 마이그레이션을 찾아 (버전 목록, 반복 목록) 으로 반환

    버전 목록은 버전 오름차순, 반복 목록은 설명 순으로 정렬됩니다.
    """
    versioned = {}
    repeatable = {}

    for location in locations:
        location = Path(location)
        if not location.is_dir():
            logger.warning(f"마이그레이션 위치를 찾을 수 없습니다: {location}")
            continue

        for path in sorted(location.rglob("*" + SUFFIX)):
            migration = load_migration(path)
            if migration is None:
                logger.warning(f"규칙에 맞지 않는 파일 이름, 건너뜀: {path.name}")
                continue

            if migration.repeatable:
                other = repeatable.get(migration.description)
                if other is not None:
                    raise MigrationError(
                        f"반복 마이그레이션 설명이 중복됩니다: {other.path} / {path}"
                    )
                repeatable[migration.description] = migration
            else:
                other = versioned.get(migration.version)
                if other is not None:
                    raise MigrationError(
                        f"버전 {migration.version} 이(가) 중복됩니다: {other.path} / {path}"
                    )
                versioned[migration.version] = migration

    return (
        sorted(versioned.values(), key=lambda m: m.version),
        sorted(repeatable.values(), key=lambda m: m.description),
    )


def split_statements(sql: str) -> list:
    """세미콜론 기준으로 SQL 문장 분리

    따옴표 문자열, 달러 인용($$ / $tag$), 한 줄 주석, 중첩 블록 주석 안의
    세미콜론은 무시합니다. 주석만 있는 조각은 버립니다.
    """
    statements = []
    buf = []
    has_code = False
    i, n = 0, len(sql)

    def flush():
        text = "".join(buf).strip()
        if has_code and text:
            statements.append(text)
        buf.clear()

    while i < n:
        ch = sql[i]
        nxt = sql[i + 1] if i + 1 < n else ""

        if ch == "-" and nxt == "-":
            end = sql.find("\n", i)
            end = n if end == -1 else end
            buf.append(sql[i:end])
            i = end
            continue

        if ch == "/" and nxt == "*":
            depth, j = 1, i + 2
            while j < n and depth:
                if sql.startswith("/*", j):
                    depth += 1
                    j += 2
                elif sql.startswith("*/", j):
                    depth -= 1
                    j += 2
                else:
                    j += 1
            buf.append(sql[i:j])
            i = j
            continue

        if ch in ("'", '"'):
            # E'...' 문자열은 백슬래시 이스케이프 허용
            backslash = ch == "'" and i > 0 and sql[i - 1] in "eE"
            j = i + 1
            while j < n:
                if backslash and sql[j] == "\\":
                    j += 2
                    continue
                if sql[j] == ch:
                    if j + 1 < n and sql[j + 1] == ch:
                        j += 2
                        continue
                    break
                j += 1
            buf.append(sql[i:j + 1])
            has_code = True
            i = j + 1
            continue

        if ch == "$" and (i == 0 or not (sql[i - 1].isalnum() or sql[i - 1] == "_")):
            m = _DOLLAR_TAG.match(sql, i)
            if m:
                tag = m.group(0)
                end = sql.find(tag, m.end())
                end = n if end == -1 else end + len(tag)
                buf.append(sql[i:end])
                has_code = True
                i = end
                continue

        if ch == ";":
            flush()
            has_code = False
            i += 1
            continue

        buf.append(ch)
        if not ch.isspace():
            has_code = True
        i += 1

    flush()
    return statements
