#!/usr/bin/env python3
"""
Lab 06: EXPLAIN 읽기와 인덱스 현황
================================

학습 목표:
- EXPLAIN / EXPLAIN ANALYZE / BUFFERS 출력 차이
- FORMAT JSON 계획을 노드 단위로 요약
- 실습 테이블 전체의 인덱스 유형/크기 현황 (Graph)

선수 지식: Lab 01~05 (각 lab 에서 인덱스를 만들어 두면 현황이 풍부해짐)
"""

import matplotlib.pyplot as plt
import numpy as np

from pgindex.db import get_connection
from pgindex.labs.common import (
    execute_and_show,
    get_explain,
    get_explain_analyze,
    print_section,
    print_subsection,
    run_menu,
    save_graph,
    show_plan_summary,
)

METHOD_COLORS = {
    'btree': '#3498db',
    'hash': '#9b59b6',
    'brin': '#2ecc71',
    'gin': '#e67e22',
    'gist': '#e74c3c',
}


def scenario_1_explain_variants():
    """
    시나리오 1: EXPLAIN 옵션별 출력
    """
    print_section("시나리오 1: EXPLAIN / ANALYZE / BUFFERS")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ Index Scan using idx_btree_value on idx_btree                    │
│   (cost=0.29..8.31 rows=1 width=18)                              │
│    ───────────── ────── ────────                                 │
│    startup..total 예상행수 행크기                                  │
│   (actual time=0.020..0.021 rows=1 loops=1)   ← ANALYZE          │
│   Buffers: shared hit=3                       ← BUFFERS          │
│                                                                  │
│ ★ EXPLAIN ANALYZE 는 쿼리를 "실제로 실행"합니다                     │
│   UPDATE/DELETE 는 BEGIN ... ROLLBACK 안에서 확인하세요            │
└─────────────────────────────────────────────────────────────────┘
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_btree_value ON idx_btree (value)")
        query = "SELECT id, value FROM idx_btree WHERE value BETWEEN 100 AND 200"

        print_subsection("1-1: EXPLAIN (계획만)")
        print(get_explain(cur, query))

        print_subsection("1-2: EXPLAIN (ANALYZE, COSTS)")
        print(get_explain_analyze(cur, query, buffers=False))

        print_subsection("1-3: EXPLAIN (ANALYZE, COSTS, BUFFERS)")
        print(get_explain_analyze(cur, query))

        print("""
★ 핵심 정리:
  1. rows (예상) 와 actual rows 차이가 크면 ANALYZE 로 통계 갱신
  2. shared hit = 캐시, read = 디스크
  3. Bitmap Heap Scan 은 여러 행을 블록 순서로 모아서 읽음
        """)

    finally:
        cur.close()
        conn.close()


def scenario_2_plan_summary():
    """
    시나리오 2: FORMAT JSON 계획 요약

    인덱스 유형별 대표 쿼리의 계획 노드와 사용된 인덱스를 표로 봅니다.
    """
    print_section("시나리오 2: 인덱스 유형별 계획 요약 (FORMAT JSON)")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        queries = [
            ("B-tree 등호", "SELECT * FROM idx_btree WHERE value = 4242"),
            ("Hash 등호", "SELECT * FROM idx_hash WHERE code = md5('4242')"),
            ("BRIN 범위", "SELECT COUNT(*) FROM idx_brin "
                        "WHERE recorded_at BETWEEN '2024-01-10' AND '2024-01-11'"),
            ("GIN JSONB", "SELECT COUNT(*) FROM idx_jsonb WHERE doc @> '{\"brand\": \"Acme\"}'"),
            ("GIN 배열", "SELECT COUNT(*) FROM idx_array WHERE tags @> ARRAY['gaming']"),
            ("GiST KNN", "SELECT id FROM idx_geom ORDER BY location <-> point '(500,500)' LIMIT 5"),
            ("GiST 범위", "SELECT COUNT(*) FROM idx_gist "
                        "WHERE period && tstzrange('2024-06-01', '2024-06-02')"),
        ]

        for title, query in queries:
            print_subsection(title)
            print(f"SQL: {query}")
            show_plan_summary(cur, query, analyze=True)

        print("\n→ index 열이 비어 있으면 해당 lab 에서 인덱스를 먼저 생성하세요")

    finally:
        cur.close()
        conn.close()


def scenario_3_index_overview():
    """
    시나리오 3: 인덱스 현황과 크기 그래프

    R__index_overview_view.sql 이 만드는 index_overview 뷰를 사용합니다.
    """
    print_section("시나리오 3: 실습 테이블 인덱스 현황 (Graph)")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        rows = execute_and_show(cur, """
            SELECT table_name, index_name, method, size, size_bytes
            FROM index_overview
            ORDER BY table_name, size_bytes DESC
        """, "index_overview")

        execute_and_show(cur, """
            SELECT method, COUNT(*) AS indexes,
                   pg_size_pretty(SUM(size_bytes)) AS total_size
            FROM index_overview
            GROUP BY method
            ORDER BY SUM(size_bytes) DESC
        """, "접근 방식별 합계")

        if rows:
            fig, ax = plt.subplots(figsize=(12, max(4, len(rows) * 0.4)))

            names = [f"{r[0]}.{r[1]}"[:40] for r in rows]
            kb = [max(r[4], 1) / 1024 for r in rows]
            colors = [METHOD_COLORS.get(r[2], '#95a5a6') for r in rows]

            y = np.arange(len(names))
            ax.barh(y, kb, color=colors, edgecolor='black')
            ax.set_yticks(y)
            ax.set_yticklabels(names, fontsize=8)
            ax.invert_yaxis()
            ax.set_xscale('log')
            ax.set_xlabel('Index Size (KB, log scale)', fontsize=12)
            ax.set_title('Index Size by Access Method', fontsize=14, fontweight='bold')

            handles = [plt.Rectangle((0, 0), 1, 1, color=c) for c in METHOD_COLORS.values()]
            ax.legend(handles, list(METHOD_COLORS.keys()), loc='lower right')

            plt.tight_layout()
            save_graph(fig, 'index_overview.png')

    finally:
        cur.close()
        conn.close()


SCENARIOS = {
    '1': scenario_1_explain_variants,
    '2': scenario_2_plan_summary,
    '3': scenario_3_index_overview,
}


def main(choice=None):
    return run_menu("""
╔══════════════════════════════════════════════════════════════════╗
║          Lab 06: EXPLAIN 읽기와 인덱스 현황                        ║
╚══════════════════════════════════════════════════════════════════╝

시나리오 목록:
  1. EXPLAIN / ANALYZE / BUFFERS
  2. 인덱스 유형별 계획 요약 (FORMAT JSON)
  3. 인덱스 현황과 크기 그래프 (matplotlib)

실행할 시나리오 번호를 입력하세요 (1-3, 또는 'all'):
    """, SCENARIOS, choice)


if __name__ == '__main__':
    main()
