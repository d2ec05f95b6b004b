#!/usr/bin/env python3
"""
Lab 03: BRIN 인덱스
==================

학습 목표:
- 블록 범위마다 min/max 만 저장하는 BRIN 원리
- 물리 순서와 값 순서의 상관관계(correlation) 확인
- pages_per_range 에 따른 크기 변화와 B-tree 대비 크기 (Graph)

사용 테이블:
- idx_brin: 20만 건 시계열 센서 데이터 (recorded_at 순으로 적재)
"""

import matplotlib.pyplot as plt
import numpy as np

from pgindex.db import get_connection
from pgindex.labs.common import (
    execute_and_show,
    get_explain_analyze,
    index_sizes,
    print_section,
    print_subsection,
    run_menu,
    save_graph,
)

PAGES_PER_RANGE = (16, 32, 64, 128)


def scenario_1_correlation():
    """
    시나리오 1: 물리 순서 상관관계

    pg_stats.correlation 이 1 에 가까울수록 BRIN 이 효과적입니다.
    """
    print_section("시나리오 1: BRIN 과 correlation")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ BRIN (Block Range Index)                                         │
├─────────────────────────────────────────────────────────────────┤
│   Block 1-128:   min=2024-01-01 00:00, max=2024-01-01 10:40      │
│   Block 129-256: min=2024-01-01 10:40, max=2024-01-01 21:20      │
│   ...                                                            │
│                                                                  │
│ WHERE recorded_at BETWEEN ... → 범위가 겹치는 블록만 읽음          │
│ ★ INSERT 순서 = 검색 컬럼 순서일 때만 효과적                      │
└─────────────────────────────────────────────────────────────────┘
        """)

        execute_and_show(cur, """
            SELECT attname, correlation
            FROM pg_stats
            WHERE tablename = 'idx_brin'
            AND attname IN ('recorded_at', 'sensor_id', 'reading')
            ORDER BY attname
        """, "컬럼별 물리 순서 상관관계")

        print("→ recorded_at ≈ 1.0 (BRIN 적합), sensor_id ≈ 0 (BRIN 부적합)")

    finally:
        cur.close()
        conn.close()


def scenario_2_brin_query():
    """
    시나리오 2: BRIN 으로 범위 조회

    BRIN 은 Bitmap Heap Scan 의 Recheck 로 블록 안의 행을 다시 거릅니다.
    """
    print_section("시나리오 2: BRIN 범위 조회")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_brin_recorded_brin
            ON idx_brin USING brin (recorded_at)
        """)

        query = """
            SELECT COUNT(*), AVG(reading)
            FROM idx_brin
            WHERE recorded_at BETWEEN '2024-01-10' AND '2024-01-11'
        """

        print_subsection("2-1: recorded_at 범위 (상관관계 높음)")
        print(get_explain_analyze(cur, query))
        print("→ Rows Removed by Index Recheck: 블록 범위 안의 범위 밖 행")

        execute_and_show(cur, query, "조회 결과")

        print_subsection("2-2: sensor_id 조건 (상관관계 없음)")
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_brin_sensor_brin
            ON idx_brin USING brin (sensor_id)
        """)
        print(get_explain_analyze(cur, "SELECT COUNT(*) FROM idx_brin WHERE sensor_id = 50"))
        print("→ 모든 블록 범위에 1~100 이 섞여 있어 거를 수 있는 블록이 없음")

        cur.execute("DROP INDEX IF EXISTS idx_brin_sensor_brin")

    finally:
        cur.close()
        conn.close()


def scenario_3_size_and_pages_per_range():
    """
    시나리오 3: 크기 비교

    pages_per_range 별 BRIN 크기와 B-tree 크기를 비교하고 그래프로 저장합니다.
    """
    print_section("시나리오 3: BRIN vs B-tree 크기 (Graph)")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        cur.execute("""
            CREATE INDEX IF NOT EXISTS idx_brin_recorded_btree
            ON idx_brin (recorded_at)
        """)
        for pages in PAGES_PER_RANGE:
            cur.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_brin_recorded_ppr{pages}
                ON idx_brin USING brin (recorded_at) WITH (pages_per_range = {pages})
            """)

        execute_and_show(cur, """
            SELECT index_name, method, size
            FROM index_overview
            WHERE table_name = 'idx_brin'
            ORDER BY size_bytes DESC
        """, "idx_brin 인덱스 크기")

        sizes = [(name, method, size) for name, method, size in index_sizes(cur, ['idx_brin'])
                 if name != 'idx_brin_pkey']
        if sizes:
            fig, ax = plt.subplots(figsize=(10, 6))

            names = [r[0] for r in sizes]
            kb = [r[2] / 1024 for r in sizes]
            colors = ['#3498db' if r[1] == 'btree' else '#2ecc71' for r in sizes]

            y = np.arange(len(names))
            bars = ax.barh(y, kb, color=colors, edgecolor='black')
            ax.set_yticks(y)
            ax.set_yticklabels(names)
            ax.set_xscale('log')
            ax.set_xlabel('Index Size (KB, log scale)', fontsize=12)
            ax.set_title('BRIN vs B-tree on idx_brin.recorded_at\n(Blue=B-tree, Green=BRIN)',
                         fontsize=14, fontweight='bold')

            for bar, size in zip(bars, kb):
                ax.text(bar.get_width() * 1.05, bar.get_y() + bar.get_height()/2,
                        f'{size:.0f} KB', va='center', fontsize=9)

            plt.tight_layout()
            save_graph(fig, 'brin_vs_btree_size.png')

        # 비교용 인덱스 정리 (기본 BRIN 인덱스는 남김)
        for pages in PAGES_PER_RANGE:
            cur.execute(f"DROP INDEX IF EXISTS idx_brin_recorded_ppr{pages}")

        print("""
★ 핵심 정리:
  1. BRIN 은 B-tree 대비 수백 배 작음
  2. pages_per_range 가 작을수록 정밀도↑ 크기↑
  3. append-only 시계열/로그 테이블에 적합
  4. UPDATE 가 잦거나 랜덤하게 적재되는 테이블에는 부적합
        """)

    finally:
        cur.close()
        conn.close()


SCENARIOS = {
    '1': scenario_1_correlation,
    '2': scenario_2_brin_query,
    '3': scenario_3_size_and_pages_per_range,
}


def main(choice=None):
    return run_menu("""
╔══════════════════════════════════════════════════════════════════╗
║          Lab 03: BRIN 인덱스                                      ║
╚══════════════════════════════════════════════════════════════════╝

시나리오 목록:
  1. correlation 확인
  2. BRIN 범위 조회
  3. BRIN vs B-tree 크기 (matplotlib)

실행할 시나리오 번호를 입력하세요 (1-3, 또는 'all'):
    """, SCENARIOS, choice)


if __name__ == '__main__':
    main()
