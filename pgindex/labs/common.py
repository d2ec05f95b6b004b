"""
실습 공통 도우미
==============

각 lab 모듈이 같은 방식으로 SQL/실행 계획/결과표를 출력하도록 모아둔 함수들.
"""

import json
import os
import time

import matplotlib
matplotlib.use('Agg')  # GUI 없이 파일로 저장
import matplotlib.pyplot as plt
import psycopg2
from psycopg2 import errors
from tabulate import tabulate


plt.rcParams['font.family'] = 'DejaVu Sans'
plt.rcParams['axes.unicode_minus'] = False

# 그래프 저장 디렉토리
GRAPH_DIR = os.getenv("PGINDEX_GRAPH_DIR", "graphs")


def print_section(title):
    print(f"\n{'='*70}")
    print(f" {title}")
    print('='*70)


def print_subsection(title):
    print(f"\n--- {title} ---")


def execute_and_show(cur, query, description=""):
    """쿼리 실행 후 결과 출력"""
    if description:
        print(f"\n>> {description}")
    print(f"SQL: {query[:100]}..." if len(query) > 100 else f"SQL: {query}")

    start_time = time.time()
    cur.execute(query)
    elapsed = (time.time() - start_time) * 1000

    if cur.description:
        rows = cur.fetchall()
        headers = [desc[0] for desc in cur.description]
        print(tabulate(rows, headers=headers, tablefmt='psql'))
        print(f"({len(rows)}개 행, {elapsed:.2f}ms)")
        return rows
    else:
        print(f"완료 ({elapsed:.2f}ms)")
        return None


def get_explain(cur, query):
    """EXPLAIN 결과 반환 (실행하지 않고 계획만)"""
    cur.execute(f"EXPLAIN {query}")
    return '\n'.join([row[0] for row in cur.fetchall()])


def get_explain_analyze(cur, query, buffers=True):
    """EXPLAIN ANALYZE 결과 반환"""
    options = "ANALYZE, COSTS, BUFFERS" if buffers else "ANALYZE, COSTS"
    cur.execute(f"EXPLAIN ({options}, FORMAT TEXT) {query}")
    return '\n'.join([row[0] for row in cur.fetchall()])


def explain_json(cur, query, analyze=False):
    """EXPLAIN (FORMAT JSON) 의 최상위 Plan 노드 반환"""
    options = "ANALYZE, FORMAT JSON" if analyze else "FORMAT JSON"
    cur.execute(f"EXPLAIN ({options}) {query}")
    document = cur.fetchone()[0]
    # psycopg2 는 json 컬럼을 보통 파싱해서 주지만, 문자열로 오는 경우도 처리
    if isinstance(document, str):
        document = json.loads(document)
    return document[0]["Plan"]


def summarize_plan(plan, depth=0):
    """Plan 트리를 깊이 우선으로 펼쳐 노드별 요약 행 목록으로 변환

    Returns:
        [{'depth', 'node', 'relation', 'index', 'rows', 'cost', 'actual_rows'}, ...]
    """
    rows = [{
        'depth': depth,
        'node': plan.get("Node Type"),
        'relation': plan.get("Relation Name"),
        'index': plan.get("Index Name"),
        'rows': plan.get("Plan Rows"),
        'cost': plan.get("Total Cost"),
        'actual_rows': plan.get("Actual Rows"),
    }]
    for child in plan.get("Plans", []):
        rows.extend(summarize_plan(child, depth + 1))
    return rows


def used_indexes(plan):
    """계획에서 사용된 인덱스 이름 집합"""
    return {row['index'] for row in summarize_plan(plan) if row['index']}


def show_plan_summary(cur, query, description="", analyze=False):
    if description:
        print(f"\n>> {description}")
    summary = summarize_plan(explain_json(cur, query, analyze=analyze))
    table = [
        ("  " * r['depth'] + (r['node'] or ""), r['relation'] or "", r['index'] or "",
         r['rows'], r['cost'], r['actual_rows'] if analyze else "")
        for r in summary
    ]
    print(tabulate(table, headers=["node", "relation", "index", "est_rows", "cost", "actual_rows"],
                   tablefmt='psql'))
    return summary


def index_sizes(cur, tables):
    """테이블별 인덱스 (이름, 접근 방식, 바이트 크기) 목록"""
    cur.execute("""
        SELECT i.relname, am.amname, pg_relation_size(i.oid)
        FROM pg_index x
        JOIN pg_class i ON i.oid = x.indexrelid
        JOIN pg_class t ON t.oid = x.indrelid
        JOIN pg_am am ON am.oid = i.relam
        WHERE t.relname = ANY(%s)
        ORDER BY pg_relation_size(i.oid) DESC
    """, (list(tables),))
    return cur.fetchall()


def save_graph(fig, filename, directory=None):
    """그래프를 파일로 저장"""
    directory = directory or GRAPH_DIR
    os.makedirs(directory, exist_ok=True)
    filepath = os.path.join(directory, filename)
    fig.savefig(filepath, dpi=150, bbox_inches='tight', facecolor='white')
    plt.close(fig)
    print(f"\n[Graph Saved] {filepath}")
    return filepath


def run_menu(banner, scenarios, choice=None):
    """시나리오 메뉴 실행

    Args:
        banner: 시작 시 출력할 안내 문구
        scenarios: {'1': 함수, ...}
        choice: 시나리오 번호 또는 'all'. None 이면 입력을 받음
    Returns:
        정상 실행 0, 잘못된 선택 2, 연결 실패 또는 테이블 없음 1
    """
    interactive = choice is None
    print(banner)
    if interactive:
        choice = input("선택: ")
    choice = choice.strip().lower()

    try:
        if choice == 'all':
            for num in sorted(scenarios.keys()):
                scenarios[num]()
                print("\n" + "─" * 70)
                if interactive:
                    input("다음 시나리오로 계속하려면 Enter를 누르세요...")
        elif choice in scenarios:
            scenarios[choice]()
        else:
            print(f"잘못된 선택입니다. {', '.join(sorted(scenarios))} 또는 'all'을 입력하세요.")
            return 2
    except psycopg2.OperationalError as e:
        print(f"\n오류: 데이터베이스에 연결할 수 없습니다.")
        print(f"Docker가 실행 중인지 확인하세요: docker compose up -d")
        print(f"상세 오류: {e}")
        return 1
    except errors.UndefinedTable as e:
        print(f"\n오류: 실습 테이블이 없습니다. 먼저 pgindex migrate 를 실행하세요.")
        print(f"상세 오류: {str(e).strip()}")
        return 1

    return 0
