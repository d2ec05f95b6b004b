"""
pgindex: PostgreSQL 인덱스 실습 + SQL 마이그레이션 러너
"""

__version__ = "0.1.0"
