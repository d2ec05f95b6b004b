"""
인덱스 실습 모음

    pgindex lab btree        # 메뉴에서 시나리오 선택
    pgindex lab gin 1        # 시나리오 1만 실행
    pgindex lab gist all     # 전체 실행
"""

import importlib

LABS = {
    'btree': 'pgindex.labs.lab01_btree',
    'hash': 'pgindex.labs.lab02_hash',
    'brin': 'pgindex.labs.lab03_brin',
    'gin': 'pgindex.labs.lab04_gin',
    'gist': 'pgindex.labs.lab05_gist',
    'explain': 'pgindex.labs.lab06_explain',
}


def load_lab(name):
    """lab 이름 → 모듈 (SCENARIOS, main 을 가짐)"""
    try:
        module_name = LABS[name]
    except KeyError:
        raise KeyError(f"알 수 없는 lab 입니다: {name} (사용 가능: {', '.join(LABS)})") from None
    return importlib.import_module(module_name)
