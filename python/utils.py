"""
Utility functions for the rewriter

Includes query extraction, fragment formatting, logging setup and file I/O
"""

import logging
import re
from typing import List, Tuple

from constants import FragmentType, QueryFragment


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def read_queries_from_file(filepath: str) -> List[Tuple[int, str]]:
    """
    Read SQL queries from file

    Args:
        filepath: Path to input file with semicolon-separated queries

    Returns:
        List of (line_number, query_text) tuples
    """
    with open(filepath, 'r') as f:
        content = f.read()

    return extract_queries_semicolon_separated(content)


def extract_queries_semicolon_separated(content: str) -> List[Tuple[int, str]]:
    """
    Extract queries from file (semicolon-separated, can be multi-line)

    Only extracts text from SELECT up to the semicolon (or end of file).
    Semicolons inside single-quoted literals ('a;b', doubled quotes included)
    do not end the query; an unterminated quote is treated as plain text. The
    query is kept verbatim, line breaks included, since the rewriter works on
    its lines; the semicolon itself is dropped.

    Args:
        content: File content

    Returns:
        List of (line_number, query_text) tuples
    """
    queries = []

    pattern = r"(?im)(^select\b(?:'(?:[^']|'')*'|[^;']|')*)(?:;|\Z)"
    for match in re.finditer(pattern, content):
        query = match.group(1).rstrip()
        if not query:
            continue

        # Calculate line number (count newlines before match)
        line_num = content[:match.start()].count('\n') + 1

        queries.append((line_num, query))

    return queries


def format_fragment(fragment: QueryFragment) -> str:
    """
    Format one fragment for --explain output

    Example:
        select_aggregation   sum( t1.visitors_hll -> m0  |  sum("t1"."visitors_hll") as "m0",
    """
    details = ''
    if fragment.type == FragmentType.TABLE:
        details = f"{fragment.schema_name}.{fragment.table_name} -> {fragment.table_alias}"
    elif fragment.type == FragmentType.SELECT_AGGREGATION:
        details = (f"{fragment.agg_function} {fragment.table_alias}.{fragment.column_name}"
                   f" -> {fragment.result_alias}")
    elif fragment.type == FragmentType.JOIN_CONDITION:
        details = (f"{fragment.table_alias}.{fragment.column_name} = "
                   f"{fragment.joined_table_alias}.{fragment.joined_column_name}")
    elif fragment.type == FragmentType.CONDITION:
        details = f"{fragment.table_alias}.{fragment.column_name}"

    return f"{fragment.type.value:<20} {details:<40} | {fragment.text}"


def configure_logging(verbose: bool = False) -> None:
    """
    Set up root logging for the command-line interface

    With verbose, the SQL trace logger (rewritten queries) is shown as well.
    """
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
