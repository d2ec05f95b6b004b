#!/usr/bin/env python3
"""
Lab 04: GIN 인덱스
=================

학습 목표:
- JSONB @>, ? 연산자와 GIN (jsonb_ops / jsonb_path_ops)
- 배열 @>, && 연산자와 GIN

사용 테이블:
- idx_jsonb: 5만 건 상품 속성 JSONB
- idx_array: 5만 건 태그 배열
"""

from pgindex.db import get_connection
from pgindex.labs.common import (
    execute_and_show,
    get_explain_analyze,
    print_section,
    print_subsection,
    run_menu,
)


def scenario_1_jsonb():
    """
    시나리오 1: GIN - JSONB

    GIN 은 "값 → 행 목록" 역인덱스입니다.
    """
    print_section("시나리오 1: GIN 인덱스 - JSONB")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ GIN (Generalized Inverted Index)                                 │
├─────────────────────────────────────────────────────────────────┤
│   "brand"="TechCo"   → [Row1, Row5, Row9, ...]                   │
│   "brand"="Acme"     → [Row3, Row7, ...]                         │
│   "specs" (키)       → [Row3, Row6, ...]                         │
│                                                                  │
│ jsonb_ops (기본)   : @>, ?, ?|, ?&                               │
│ jsonb_path_ops     : @> 만, 더 작고 빠름                          │
└─────────────────────────────────────────────────────────────────┘
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_jsonb_doc ON idx_jsonb USING gin (doc)")

        print_subsection("1-1: @> (Contains)")
        query_contains = """
            SELECT id, doc->>'brand' AS brand, doc->>'price' AS price
            FROM idx_jsonb
            WHERE doc @> '{"brand": "TechCo", "in_stock": true}'
            LIMIT 5
        """
        print(get_explain_analyze(cur, query_contains))
        execute_and_show(cur, query_contains)

        print_subsection("1-2: ? (키 존재)")
        query_exists = "SELECT COUNT(*) FROM idx_jsonb WHERE doc ? 'specs'"
        print(get_explain_analyze(cur, query_exists))

        print_subsection("1-3: 중첩 JSON")
        query_nested = """
            SELECT id, doc->'specs'->>'cpu' AS cpu, doc->'specs'->>'ram' AS ram
            FROM idx_jsonb
            WHERE doc @> '{"specs": {"cpu": "i9"}}'
            LIMIT 5
        """
        print(get_explain_analyze(cur, query_nested))
        execute_and_show(cur, query_nested)

        print_subsection("1-4: jsonb_path_ops 와 크기 비교")
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_jsonb_doc_path
            ON idx_jsonb USING gin (doc jsonb_path_ops)
        """)
        execute_and_show(cur, """
            SELECT index_name, method, size, definition
            FROM index_overview
            WHERE table_name = 'idx_jsonb'
            ORDER BY size_bytes DESC
        """, "idx_jsonb 인덱스 크기")

        print("""
★ 핵심 정리:
  1. JSONB 내부 검색에는 GIN
  2. @> 만 쓴다면 jsonb_path_ops (작고 빠름)
  3. 키 존재(?) 검색이 필요하면 기본 jsonb_ops
        """)

    finally:
        cur.close()
        conn.close()


def scenario_2_array():
    """
    시나리오 2: GIN - 배열

    배열 원소 하나하나가 GIN 키가 됩니다.
    """
    print_section("시나리오 2: GIN 인덱스 - 배열")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ 배열 연산자                                                      │
├─────────────────────────────────────────────────────────────────┤
│   @>  : 포함       tags @> ARRAY['gaming']                       │
│   &&  : 겹침       tags && ARRAY['sale', 'limited']              │
│   <@  : 포함됨     tags <@ ARRAY['books', 'new', 'sale']         │
└─────────────────────────────────────────────────────────────────┘
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_array_tags ON idx_array USING gin (tags)")

        print_subsection("2-1: @> 'gaming' 태그 포함")
        query_contains = """
            SELECT id, tags FROM idx_array
            WHERE tags @> ARRAY['gaming', 'sale']
            LIMIT 5
        """
        print(get_explain_analyze(cur, query_contains))
        execute_and_show(cur, query_contains)

        print_subsection("2-2: && 겹침")
        query_overlap = "SELECT COUNT(*) FROM idx_array WHERE tags && ARRAY['limited', 'gaming']"
        print(get_explain_analyze(cur, query_overlap))
        execute_and_show(cur, query_overlap)

        print_subsection("2-3: ANY() 는 GIN 을 쓰지 못함")
        print(get_explain_analyze(cur, "SELECT COUNT(*) FROM idx_array WHERE 'gaming' = ANY(tags)"))
        print("→ 같은 의미라도 @> 로 써야 인덱스 사용")

    finally:
        cur.close()
        conn.close()


SCENARIOS = {
    '1': scenario_1_jsonb,
    '2': scenario_2_array,
}


def main(choice=None):
    return run_menu("""
╔══════════════════════════════════════════════════════════════════╗
║          Lab 04: GIN 인덱스                                       ║
╚══════════════════════════════════════════════════════════════════╝

시나리오 목록:
  1. JSONB (@>, ?, jsonb_path_ops)
  2. 배열 (@>, &&)

실행할 시나리오 번호를 입력하세요 (1-2, 또는 'all'):
    """, SCENARIOS, choice)


if __name__ == '__main__':
    main()
