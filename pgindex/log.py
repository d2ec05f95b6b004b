"""
rich 기반 로깅 설정

    from pgindex.log import get_logger

    logger = get_logger(__name__)
    logger.info("마이그레이션 적용 중...")
"""

import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

console = Console()
err_console = Console(stderr=True)


def _rich_handler(show_time=False):
    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=False,
        rich_tracebacks=True,
        markup=True,
    )
    handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%X]"))
    return handler


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """모듈별 로거 반환

    Args:
        name: 로거 이름 (보통 __name__)
        level: DEBUG/INFO/... 생략 시 LOG_LEVEL 환경 변수, 없으면 INFO
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    logger.setLevel(level.upper())

    # setup_logging() 이후라면 루트 핸들러만 사용
    if not logging.getLogger().handlers:
        logger.addHandler(_rich_handler())

    logger.propagate = True

    return logger


def setup_logging(level: str = "INFO", show_time: bool = False) -> None:
    """CLI 진입점에서 한 번 호출. LOG_LEVEL 환경 변수가 인자보다 우선"""
    level = os.getenv("LOG_LEVEL", level).upper()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(_rich_handler(show_time=show_time))

    # 모듈 로거는 루트 핸들러로만 출력 (중복 출력 방지)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("pgindex"):
            module_logger = logging.getLogger(name)
            module_logger.handlers.clear()
            module_logger.setLevel(level)


def success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}")


def error(message: str) -> None:
    err_console.print(f"[red]✗[/red] {escape(message)}")
    sys.stderr.flush()
