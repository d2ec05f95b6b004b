#!/usr/bin/env python3
"""
Lab 02: Hash 인덱스
==================

학습 목표:
- 등호(=) 전용 Hash 인덱스 동작 확인
- 범위 조건에서는 Hash 인덱스를 쓸 수 없음을 확인
- 같은 컬럼의 B-tree 와 크기 비교

사용 테이블:
- idx_hash: 10만 건 md5 코드
"""

from pgindex.db import get_connection
from pgindex.labs.common import (
    execute_and_show,
    get_explain_analyze,
    index_sizes,
    print_section,
    print_subsection,
    run_menu,
)


def scenario_1_equality():
    """
    시나리오 1: Hash 인덱스 등호 조회

    PostgreSQL 10 부터 Hash 인덱스도 WAL 로깅되어 복제/복구에 안전합니다.
    """
    print_section("시나리오 1: Hash 인덱스 등호 조회")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ Hash 인덱스                                                      │
├─────────────────────────────────────────────────────────────────┤
│   hash(code) → bucket → (code 해시값, ctid) 목록                  │
│                                                                  │
│ ✓ WHERE code = '...'                                             │
│ ✗ WHERE code > '...', ORDER BY code, LIKE 'ab%'                  │
│   (해시값에는 순서 정보가 없음)                                  │
└─────────────────────────────────────────────────────────────────┘
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_hash_code_hash ON idx_hash USING hash (code)")

        query = "SELECT id, code FROM idx_hash WHERE code = md5('4242')"
        print(get_explain_analyze(cur, query))
        execute_and_show(cur, query, "조회 결과")

    finally:
        cur.close()
        conn.close()


def scenario_2_range_not_supported():
    """
    시나리오 2: 범위 조건

    Hash 인덱스만 있는 상태에서 범위 조건을 실행하면 Seq Scan 이 됩니다.
    """
    print_section("시나리오 2: 범위 조건에는 Hash 인덱스를 쓸 수 없음")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        cur.execute("DROP INDEX IF EXISTS idx_hash_code_btree")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_hash_code_hash ON idx_hash USING hash (code)")

        print_subsection("2-1: code > 'fff' (Hash 인덱스만 존재)")
        print(get_explain_analyze(cur, "SELECT COUNT(*) FROM idx_hash WHERE code > 'fff'"))

        print_subsection("2-2: code LIKE 'abc%'")
        print(get_explain_analyze(cur, "SELECT COUNT(*) FROM idx_hash WHERE code LIKE 'abc%'"))

        print("→ 두 경우 모두 Seq Scan. 범위/정렬이 필요하면 B-tree 를 사용")

    finally:
        cur.close()
        conn.close()


def scenario_3_size_comparison():
    """
    시나리오 3: Hash vs B-tree 크기

    긴 문자열 키에서는 해시값(4바이트)만 저장하는 Hash 인덱스가 작아질 수 있습니다.
    """
    print_section("시나리오 3: Hash vs B-tree 인덱스 크기")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_hash_code_hash ON idx_hash USING hash (code)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_hash_code_btree ON idx_hash (code)")

        execute_and_show(cur, """
            SELECT index_name, method, size
            FROM index_overview
            WHERE table_name = 'idx_hash'
            ORDER BY size_bytes DESC
        """, "idx_hash 인덱스 크기")

        sizes = {name: size for name, _, size in index_sizes(cur, ['idx_hash'])}
        hash_size = sizes.get('idx_hash_code_hash')
        btree_size = sizes.get('idx_hash_code_btree')
        if hash_size and btree_size:
            print(f"\nHash / B-tree = {hash_size / btree_size:.2f}")

        print("""
★ 핵심 정리:
  1. Hash 는 등호 전용, 범위/정렬/유니크 제약 불가
  2. 긴 키에서 크기 이점이 있을 수 있지만 대부분 B-tree 로 충분
  3. 등호만 쓰는 큰 텍스트 키(토큰, 해시값)에서 고려
        """)

    finally:
        cur.close()
        conn.close()


SCENARIOS = {
    '1': scenario_1_equality,
    '2': scenario_2_range_not_supported,
    '3': scenario_3_size_comparison,
}


def main(choice=None):
    return run_menu("""
╔══════════════════════════════════════════════════════════════════╗
║          Lab 02: Hash 인덱스                                      ║
╚══════════════════════════════════════════════════════════════════╝

시나리오 목록:
  1. 등호 조회
  2. 범위 조건 (사용 불가 확인)
  3. Hash vs B-tree 크기

실행할 시나리오 번호를 입력하세요 (1-3, 또는 'all'):
    """, SCENARIOS, choice)


if __name__ == '__main__':
    main()
