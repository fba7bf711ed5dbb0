"""
SQL Rewriter

Knows the shapes of the queries written by the OLAP-to-SQL translator and
patches known problems before they reach the database:

- sum() or count(distinct) on a column of type hll is replaced by
  hll_cardinality(hll_union_agg(...))

A rewrite never breaks a query: if anything goes wrong the original text is
returned unchanged.
"""

import logging
from typing import Any, Iterable, List, Optional

import sqlglot
from sqlglot.errors import ParseError, TokenError

from config import RewriterConfig
from constants import QueryFragment, SQL_LOGGER_NAME
from metadata_cache import MetadataCache, default_cache
from parser import parse_query
from rules import RewriteRule, DEFAULT_RULES, apply_rules


LOG = logging.getLogger(__name__)
SQL_LOG = logging.getLogger(SQL_LOGGER_NAME)


class RewriteValidationError(ValueError):
    """Rewritten query could not be parsed"""


class SqlRewriter:
    """
    Rewrites generated queries using the schema facts of a MetadataCache

    The rewriter keeps no per-query state, so one instance can serve
    concurrent callers.
    """

    def __init__(
        self,
        cache: Optional[MetadataCache] = None,
        config: Optional[RewriterConfig] = None,
        rules: Iterable[RewriteRule] = DEFAULT_RULES
    ):
        self.cache = cache if cache is not None else default_cache
        self.config = config if config is not None else RewriterConfig()
        self.rules = tuple(rules)

    def rewrite(self, sql: str, connection: Any) -> str:
        """
        Rewrite a query

        Args:
            sql: Query text as generated upstream
            connection: DB-API connection, used only to discover hll columns

        Returns:
            The rewritten query, or sql itself if nothing was rewritten or
            an error occurred
        """
        try:
            parsed = parse_query(sql, self.config.line_separator)

            hll_columns = self.cache.get_hyperloglog_columns(connection)
            if not apply_rules(parsed, hll_columns, self.rules):
                return sql

            result = reassemble(parsed.fragments, self.config.line_separator)
            if self.config.validate_output:
                self.validate(result)

            SQL_LOG.debug("rewritten to:\n%s", result)
            return result

        except Exception:
            LOG.exception("Error in SqlRewriter.rewrite()")
            return sql

    def validate(self, sql: str) -> None:
        """
        Raises:
            RewriteValidationError: If sqlglot cannot parse the query
        """
        try:
            sqlglot.parse_one(sql, dialect=self.config.dialect)
        except (ParseError, TokenError) as e:
            raise RewriteValidationError(f"Rewritten query does not parse: {e}") from e


def reassemble(fragments: List[QueryFragment], line_separator: str) -> str:
    """Join the fragments in order, using replacement text where present"""
    return line_separator.join(fragment.rendered_text for fragment in fragments)


default_rewriter = SqlRewriter()


def rewrite(sql: str, connection: Any) -> str:
    """Rewrite a query with the process-wide rewriter and cache"""
    return default_rewriter.rewrite(sql, connection)
