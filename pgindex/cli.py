"""
pgindex 명령줄 진입점

    pgindex migrate          대기 중인 마이그레이션 적용 (컨테이너 ENTRYPOINT)
    pgindex info             마이그레이션 상태표
    pgindex validate         이력/로컬 파일 검증
    pgindex baseline         기존 스키마를 baseline 으로 기록
    pgindex repair           실패 기록 삭제 + 체크섬 재정렬
    pgindex wait             DB 연결 가능해질 때까지 대기
    pgindex lab <이름> [번호|all]
"""

import argparse
import sys

from pgindex import __version__
from pgindex.config import MigrateConfig
from pgindex.db import wait_for_database
from pgindex.errors import ConfigError, MigrationError, ValidationError
from pgindex.labs import LABS, load_lab
from pgindex.log import console, error, setup_logging, success
from pgindex.migrate import Migrator, render_info


def cmd_migrate(args):
    with Migrator(MigrateConfig.from_env()) as migrator:
        applied = migrator.migrate()
    success(f"마이그레이션 완료 (적용 {applied}개)")
    return 0


def cmd_info(args):
    with Migrator(MigrateConfig.from_env()) as migrator:
        rows = migrator.info()
    console.print(render_info(rows), markup=False, highlight=False)
    return 0


def cmd_validate(args):
    with Migrator(MigrateConfig.from_env()) as migrator:
        migrator.validate()
    success("검증 통과")
    return 0


def cmd_baseline(args):
    with Migrator(MigrateConfig.from_env()) as migrator:
        migrator.baseline()
    success("baseline 기록 완료")
    return 0


def cmd_repair(args):
    with Migrator(MigrateConfig.from_env()) as migrator:
        result = migrator.repair()
    success(
        f"repair 완료 (실패 기록 {result.removed_failed}개 삭제, "
        f"체크섬 {result.realigned_checksums}개 재정렬)"
    )
    return 0


def cmd_wait(args):
    if wait_for_database(timeout=args.timeout, interval=args.interval):
        return 0
    error(f"{args.timeout}초 안에 데이터베이스에 연결하지 못했습니다")
    return 1


def cmd_lab(args):
    module = load_lab(args.name)
    return module.main(args.scenario)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="pgindex",
        description="PostgreSQL 인덱스 실습과 SQL 마이그레이션 러너",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="DEBUG 로그 출력")

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, func, help_text in [
        ("migrate", cmd_migrate, "대기 중인 마이그레이션 적용"),
        ("info", cmd_info, "마이그레이션 상태표 출력"),
        ("validate", cmd_validate, "적용 이력과 로컬 파일 검증"),
        ("baseline", cmd_baseline, "기존 스키마를 baseline 버전으로 기록"),
        ("repair", cmd_repair, "실패 기록 삭제와 체크섬 재정렬"),
    ]:
        sub = subparsers.add_parser(name, help=help_text)
        sub.set_defaults(func=func)

    wait_parser = subparsers.add_parser("wait", help="DB 연결이 가능해질 때까지 대기")
    wait_parser.add_argument("--timeout", type=float, default=60.0, help="최대 대기 시간(초)")
    wait_parser.add_argument("--interval", type=float, default=1.0, help="재시도 간격(초)")
    wait_parser.set_defaults(func=cmd_wait)

    lab_parser = subparsers.add_parser("lab", help="인덱스 실습 실행")
    lab_parser.add_argument("name", choices=sorted(LABS), help="실습 이름")
    lab_parser.add_argument("scenario", nargs="?", default=None,
                            help="시나리오 번호 또는 all (생략하면 메뉴)")
    lab_parser.set_defaults(func=cmd_lab)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else "INFO")

    try:
        return args.func(args)
    except ValidationError as e:
        for problem in e.problems:
            error(problem)
        return 1
    except (ConfigError, MigrationError) as e:
        error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
