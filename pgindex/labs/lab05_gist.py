#!/usr/bin/env python3
"""
Lab 05: GiST 인덱스와 배타 제약
=============================

학습 목표:
- 기하 타입(point, box)의 포함/겹침 검색과 KNN(<->) 정렬
- 범위 타입(tstzrange) 겹침(&&) 검색
- EXCLUDE USING gist 로 "겹치는 예약 금지" 제약

사용 테이블:
- idx_geom: 5만 건 (location point, area box)
- idx_gist: 2만 건 기간 (period tstzrange)
- times: 회의실 예약 (room, during) + 배타 제약
"""

from psycopg2 import errors

from pgindex.db import get_connection
from pgindex.labs.common import (
    execute_and_show,
    get_explain_analyze,
    print_section,
    print_subsection,
    run_menu,
)


def scenario_1_geometry():
    """
    시나리오 1: 기하 타입과 GiST

    GiST 는 "경계 상자(bounding box) 트리"로 공간 검색을 지원합니다.
    """
    print_section("시나리오 1: GiST - point / box")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        print("""
┌─────────────────────────────────────────────────────────────────┐
│ GiST (Generalized Search Tree)                                   │
├─────────────────────────────────────────────────────────────────┤
│              [ 전체 영역 ]                                       │
│             /            \\                                       │
│      [좌측 상자]        [우측 상자]                               │
│       /     \\            /     \\                                 │
│    점/상자들 ...      점/상자들 ...                               │
│                                                                  │
│   <@  : 포함됨   location <@ box '((0,0),(100,100))'              │
│   &&  : 겹침     area && box '((500,500),(510,510))'              │
│   <-> : 거리     ORDER BY location <-> point '(500,500)'          │
└─────────────────────────────────────────────────────────────────┘
        """)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_geom_location ON idx_geom USING gist (location)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_geom_area ON idx_geom USING gist (area)")

        print_subsection("1-1: 상자 안의 점")
        print(get_explain_analyze(cur, """
            SELECT COUNT(*) FROM idx_geom
            WHERE location <@ box '((0,0),(100,100))'
        """))

        print_subsection("1-2: 겹치는 영역")
        print(get_explain_analyze(cur, """
            SELECT id, area FROM idx_geom
            WHERE area && box '((500,500),(510,510))'
        """))

        print_subsection("1-3: KNN - 가장 가까운 5개 점")
        query_knn = """
            SELECT id, location, location <-> point '(500,500)' AS distance
            FROM idx_geom
            ORDER BY location <-> point '(500,500)'
            LIMIT 5
        """
        print(get_explain_analyze(cur, query_knn))
        execute_and_show(cur, query_knn)
        print("→ Sort 없이 Index Scan 이 거리 순으로 반환 (B-tree 로는 불가)")

    finally:
        cur.close()
        conn.close()


def scenario_2_ranges():
    """
    시나리오 2: 범위 타입 겹침 검색
    """
    print_section("시나리오 2: GiST - tstzrange 겹침")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_gist_period ON idx_gist USING gist (period)")

        print_subsection("2-1: 특정 시각을 포함하는 기간 (@>)")
        print(get_explain_analyze(cur, """
            SELECT COUNT(*) FROM idx_gist
            WHERE period @> timestamptz '2024-06-01 12:00+00'
        """))

        print_subsection("2-2: 하루와 겹치는 기간 (&&)")
        query_overlap = """
            SELECT id, period FROM idx_gist
            WHERE period && tstzrange('2024-06-01', '2024-06-02')
            ORDER BY lower(period)
            LIMIT 5
        """
        print(get_explain_analyze(cur, query_overlap))
        execute_and_show(cur, query_overlap)

    finally:
        cur.close()
        conn.close()


def scenario_3_exclusion_constraint():
    """
    시나리오 3: 배타 제약 (EXCLUDE USING gist)

    같은 room 에서 during 이 겹치는 행은 INSERT 할 수 없습니다.
    room 의 등호 비교를 GiST 로 하려면 btree_gist 확장이 필요합니다 (V1 마이그레이션).
    """
    print_section("시나리오 3: 배타 제약 - 겹치는 예약 금지")

    conn = get_connection(autocommit=True)
    cur = conn.cursor()

    try:
        execute_and_show(cur, """
            SELECT conname, pg_get_constraintdef(oid) AS definition
            FROM pg_constraint
            WHERE conrelid = 'times'::regclass AND contype = 'x'
        """, "times 테이블의 배타 제약")

        execute_and_show(cur, "SELECT id, room, during FROM times ORDER BY room, during",
                         "현재 예약")

        print_subsection("3-1: 다른 방 / 맞닿은 시간은 허용")
        cur.execute("""
            INSERT INTO times (room, during)
            VALUES (101, '[2024-03-01 11:30+00, 2024-03-01 12:00+00)')
            RETURNING id
        """)
        inserted_id = cur.fetchone()[0]
        print(f"✓ 101호 11:30-12:00 예약 성공 (id={inserted_id}) - [) 경계라 11:30 에서 맞닿아도 OK")
        cur.execute("DELETE FROM times WHERE id = %s", (inserted_id,))

        print_subsection("3-2: 같은 방 겹치는 시간은 거부")
        try:
            cur.execute("""
                INSERT INTO times (room, during)
                VALUES (101, '[2024-03-01 09:30+00, 2024-03-01 10:30+00)')
            """)
            print("예상과 달리 INSERT 가 성공했습니다")
        except errors.ExclusionViolation as e:
            print(f"✗ 거부됨 (ExclusionViolation): {e.diag.message_primary}")
            print(f"  상세: {e.diag.message_detail}")

        print("""
★ 핵심 정리:
  1. UNIQUE 는 "같은 값 금지", EXCLUDE 는 "연산자 조건이 참인 쌍 금지"
  2. 겹침(&&) 판정은 GiST 인덱스로 빠르게 검사
  3. 스칼라 컬럼(room)을 함께 쓰려면 btree_gist 확장 필요
        """)

    finally:
        cur.close()
        conn.close()


SCENARIOS = {
    '1': scenario_1_geometry,
    '2': scenario_2_ranges,
    '3': scenario_3_exclusion_constraint,
}


def main(choice=None):
    return run_menu("""
╔══════════════════════════════════════════════════════════════════╗
║          Lab 05: GiST 인덱스와 배타 제약                           ║
╚══════════════════════════════════════════════════════════════════╝

시나리오 목록:
  1. point / box 검색과 KNN
  2. tstzrange 겹침 검색
  3. EXCLUDE USING gist (겹치는 예약 금지)

실행할 시나리오 번호를 입력하세요 (1-3, 또는 'all'):
    """, SCENARIOS, choice)


if __name__ == '__main__':
    main()
