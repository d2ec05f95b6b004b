#!/usr/bin/env python3
"""
Lab 01: B-tree 인덱스
====================

학습 목표:
- 인덱스 없는 Seq Scan 과 B-tree Index Scan 비교
- 범위 조건, ORDER BY, 전방 일치 LIKE 에서 B-tree 활용
- 복합 인덱스의 "왼쪽부터 연속으로" 규칙

사용 테이블:
- idx_btree: 10만 건 (value, label)
- idx_composite: 10만 건 주문 (customer_id, status, created_at)
"""

from pgindex.db import get_connection
from pgindex.labs.common import (
    execute_and_show,
    get_explain_analyze,
    print_section,
    print_subsection,
    run_menu,
)


# =============================================================================
# 시나리오 1: 인덱스 유무 비교
# =============================================================================

def scenario_1_seq_vs_index():
    """
    시나리오 1: Seq Scan vs Index Scan

    같은 등호 조건을 인덱스 생성 전/후로 실행해 계획 차이를 봅니다.
    """
    print_section("시나리오 1: Seq Scan vs B-tree Index Scan")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        query = "SELECT id, value, label FROM idx_btree WHERE value = 4242"

        cur.execute("DROP INDEX IF EXISTS idx_btree_value")

        print_subsection("1-1: 인덱스 없음")
        print(get_explain_analyze(cur, query))

        print_subsection("1-2: CREATE INDEX 후")
        execute_and_show(cur, "CREATE INDEX idx_btree_value ON idx_btree (value)",
                         "value 컬럼에 B-tree 인덱스 생성")
        print(get_explain_analyze(cur, query))

        execute_and_show(cur, query, "조회 결과")

        print("""
★ 핵심 정리:
  1. 인덱스가 없으면 10만 건 전체를 읽는 Seq Scan
  2. B-tree 인덱스가 생기면 Index Scan (또는 Bitmap Index Scan)
  3. Buffers 의 shared hit/read 수가 크게 줄어드는 것을 확인
        """)

    finally:
        cur.close()
        conn.close()


# =============================================================================
# 시나리오 2: 범위, 정렬, 전방 일치
# =============================================================================

def scenario_2_range_and_order():
    """
    시나리오 2: 범위 조건과 정렬

    B-tree 리프 노드는 정렬된 상태로 연결되어 있어
    BETWEEN, ORDER BY ... LIMIT, LIKE 'x%' 에 유리합니다.
    """
    print_section("시나리오 2: B-tree 범위/정렬/전방 일치")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ B-tree 구조와 범위 쿼리                                          │
├─────────────────────────────────────────────────────────────────┤
│                    [Root]                                        │
│                   /      \\                                       │
│            [Branch]      [Branch]                                │
│            /     \\       /     \\                                 │
│       [Leaf] → [Leaf] → [Leaf] → [Leaf]  (← 리프 노드는 연결됨)  │
│                                                                  │
│   1. 시작점을 트리 탐색으로 찾고                                  │
│   2. 연결된 리프를 순서대로 읽다가                                │
│   3. 종료 조건에서 멈춤                                           │
└─────────────────────────────────────────────────────────────────┘
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_btree_value ON idx_btree (value)")

        print_subsection("2-1: BETWEEN 범위 조건")
        print(get_explain_analyze(cur, """
            SELECT COUNT(*) FROM idx_btree WHERE value BETWEEN 1000 AND 1100
        """))

        print_subsection("2-2: ORDER BY ... LIMIT (정렬 생략)")
        print(get_explain_analyze(cur, """
            SELECT id, value FROM idx_btree ORDER BY value DESC LIMIT 10
        """))
        print("→ Sort 노드 없이 Index Scan Backward 로 바로 상위 10건")

        print_subsection("2-3: LIKE 'item-99%' (text_pattern_ops)")
        execute_and_show(cur, """
            SELECT indexname, indexdef FROM pg_indexes
            WHERE tablename = 'idx_btree'
        """, "idx_btree 인덱스 목록 (V4 마이그레이션이 CONCURRENTLY 로 생성)")
        print(get_explain_analyze(cur, """
            SELECT id, label FROM idx_btree WHERE label LIKE 'item-9999%'
        """))
        print("→ 기본 collation 에서는 text_pattern_ops 인덱스가 있어야 전방 일치에 사용 가능")

    finally:
        cur.close()
        conn.close()


# =============================================================================
# 시나리오 3: 복합 인덱스
# =============================================================================

def scenario_3_composite():
    """
    시나리오 3: 복합 인덱스 컬럼 순서

    (customer_id, status, created_at) 인덱스에서
    선두 컬럼을 건너뛴 조건은 인덱스를 제대로 쓰지 못합니다.
    """
    print_section("시나리오 3: 복합 인덱스 - 컬럼 순서의 중요성")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ CREATE INDEX ON idx_composite (customer_id, status, created_at)  │
├─────────────────────────────────────────────────────────────────┤
│ ✓ WHERE customer_id = ?                                          │
│ ✓ WHERE customer_id = ? AND status = ?                           │
│ ✓ WHERE customer_id = ? AND status = ? AND created_at > ?        │
│                                                                  │
│ ✗ WHERE status = ?              (선두 컬럼 없음)                 │
│ ✗ WHERE created_at > ?          (앞 컬럼 건너뜀)                 │
└─────────────────────────────────────────────────────────────────┘
        """)

        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_composite_cust_status_date
            ON idx_composite (customer_id, status, created_at)
        """)

        print("\n[좋은 예] 선두 두 컬럼 조건:")
        print(get_explain_analyze(cur, """
            SELECT id, customer_id, status, created_at
            FROM idx_composite
            WHERE customer_id = 100 AND status = 'paid'
        """))

        print("\n[나쁜 예] status 만 조건 (선두 컬럼 건너뜀):")
        print(get_explain_analyze(cur, """
            SELECT id, customer_id, status, created_at
            FROM idx_composite
            WHERE status = 'paid'
            LIMIT 5
        """))

        print("\n[범위는 마지막] customer_id 등호 + created_at 범위:")
        print(get_explain_analyze(cur, """
            SELECT id, created_at
            FROM idx_composite
            WHERE customer_id = 100 AND status = 'paid'
            AND created_at > CURRENT_DATE - 90
        """))

        print("""
★ 핵심 정리:
  1. 복합 인덱스는 "왼쪽부터 연속으로" 사용해야 효과적
  2. 등호 조건 컬럼을 앞에, 범위 조건 컬럼을 마지막에
  3. 선두 컬럼이 빠진 조건은 Seq Scan 으로 떨어지기 쉬움
        """)

    finally:
        cur.close()
        conn.close()


SCENARIOS = {
    '1': scenario_1_seq_vs_index,
    '2': scenario_2_range_and_order,
    '3': scenario_3_composite,
}


def main(choice=None):
    return run_menu("""
╔══════════════════════════════════════════════════════════════════╗
║          Lab 01: B-tree 인덱스                                    ║
╚══════════════════════════════════════════════════════════════════╝

시나리오 목록:
  1. Seq Scan vs Index Scan
  2. 범위, 정렬, 전방 일치
  3. 복합 인덱스 컬럼 순서

실행할 시나리오 번호를 입력하세요 (1-3, 또는 'all'):
    """, SCENARIOS, choice)


if __name__ == '__main__':
    main()
