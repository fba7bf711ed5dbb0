"""
Configuration for the rewriter and its command-line interface

Values come from keyword arguments or SQL_REWRITER_* environment variables.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from constants import HLL_TYPE_NAME, LINE_SEPARATOR


@dataclass(frozen=True)
class RewriterConfig:
    """
    Attributes:
        dialect: sqlglot dialect used to check rewritten queries
        validate_output: Reject rewritten queries that sqlglot cannot parse (off by default)
        line_separator: Separator between the lines of a generated query
        hll_type_name: Catalog type name of hyperloglog columns
    """
    dialect: str = 'postgres'
    validate_output: bool = False
    line_separator: str = LINE_SEPARATOR
    hll_type_name: str = HLL_TYPE_NAME


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = 'localhost'
    port: int = 5432
    database: str = 'postgres'
    user: str = 'postgres'
    password: str = 'postgres'

    def connect_kwargs(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.user,
            'password': self.password,
        }


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def load_config(
    dialect: Optional[str] = None,
    validate_output: Optional[bool] = None,
    line_separator: Optional[str] = None
) -> RewriterConfig:
    """
    Build a RewriterConfig; explicit arguments win over the environment

    Environment variables:
        SQL_REWRITER_DIALECT, SQL_REWRITER_VALIDATE_OUTPUT, SQL_REWRITER_HLL_TYPE
    """
    return RewriterConfig(
        dialect=dialect or os.getenv('SQL_REWRITER_DIALECT', 'postgres'),
        validate_output=(validate_output if validate_output is not None
                         else _env_flag('SQL_REWRITER_VALIDATE_OUTPUT', False)),
        line_separator=line_separator or LINE_SEPARATOR,
        hll_type_name=os.getenv('SQL_REWRITER_HLL_TYPE', HLL_TYPE_NAME),
    )


def load_database_config() -> DatabaseConfig:
    """
    Environment variables:
        SQL_REWRITER_DB_HOST, SQL_REWRITER_DB_PORT, SQL_REWRITER_DB_NAME,
        SQL_REWRITER_DB_USER, SQL_REWRITER_DB_PASSWORD
    """
    return DatabaseConfig(
        host=os.getenv('SQL_REWRITER_DB_HOST', 'localhost'),
        port=int(os.getenv('SQL_REWRITER_DB_PORT', '5432')),
        database=os.getenv('SQL_REWRITER_DB_NAME', 'postgres'),
        user=os.getenv('SQL_REWRITER_DB_USER', 'postgres'),
        password=os.getenv('SQL_REWRITER_DB_PASSWORD', 'postgres'),
    )
