"""pgindex 예외 계층"""


class PgIndexError(Exception):
    """모든 pgindex 예외의 기반 클래스"""


class ConfigError(PgIndexError):
    """환경 변수/설정 값이 잘못된 경우"""


class MigrationError(PgIndexError):
    """마이그레이션 탐색/적용 실패"""


class ValidationError(MigrationError):
    """적용 이력과 로컬 마이그레이션 파일이 일치하지 않음

    Attributes:
        problems: 발견된 문제 메시지 목록
    """

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("검증 실패:\n  - " + "\n  - ".join(self.problems))
