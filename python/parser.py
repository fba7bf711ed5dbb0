"""
Line-based parser for generated OLAP queries

The upstream generator writes one keyword, select item, table or predicate
per line. This module classifies each line with regular expressions chosen by
the last keyword line seen, and records table aliases and join conditions
while doing so. It is not a general SQL parser: lines that match nothing are
kept as plain text.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional

from constants import (
    FragmentType,
    ParseState,
    QueryFragment,
    ParsedQuery,
    KEYWORDS,
    KEYWORD_STATES,
    LINE_SEPARATOR,
)


LOG = logging.getLogger(__name__)

TABLE_PATTERN = re.compile(r'"(\w+)"."(\w+)" as "(\w+)",?', re.ASCII)
SELECT_AGGREGATION_PATTERN = re.compile(r'([\w (]+)"(\w+)"."(\w+)"\) as "(\w+)"(,)?', re.ASCII)

JOIN_CONDITION_PATTERN = re.compile(r'"(\w+)"."(\w+)" = "(\w+)"."(\w+)"', re.ASCII)
EQUALS_CONDITION_PATTERN = re.compile(r"\"(\w+)\".\"(\w+)\" = [\w' ]+", re.ASCII)
IN_CONDITION_PATTERN = re.compile(r"\"(\w+)\".\"(\w+)\" in \([\w', ]+\)", re.ASCII)


@dataclass(frozen=True)
class LineMatcher:
    """
    One line shape recognized by the parser

    Attributes:
        name: Short name logged when the matcher classifies a line
        states: Parser states in which the matcher is tried
        match: Callable(fragment, trimmed_text, parsed) -> True if it classified the line
    """
    name: str
    states: FrozenSet[ParseState]
    match: Callable[[QueryFragment, str, ParsedQuery], bool]


def parse_query(sql: str, line_separator: str = LINE_SEPARATOR) -> ParsedQuery:
    """
    Parse a generated query line by line

    Args:
        sql: Query text
        line_separator: Separator between physical lines

    Returns:
        ParsedQuery with one fragment per line plus the alias and join registries
    """
    parsed = ParsedQuery()
    state = ParseState.NONE

    for text in sql.split(line_separator):
        fragment = QueryFragment(text)
        parsed.fragments.append(fragment)

        # Keywords are expected to appear alone on the line
        keyword = KEYWORDS.get(text)
        if keyword is not None:
            fragment.classify(keyword)
            state = KEYWORD_STATES[keyword]
            continue

        classify_line(fragment, text.strip(), state, parsed)

    return parsed


def classify_line(
    fragment: QueryFragment,
    text: str,
    state: ParseState,
    parsed: ParsedQuery,
    matchers: Optional[List[LineMatcher]] = None
) -> None:
    """
    Run every matcher registered for the current state

    All applicable matchers run in table order; a later match overwrites the
    classification of an earlier one.
    """
    for matcher in (LINE_MATCHERS if matchers is None else matchers):
        if state in matcher.states:
            if matcher.match(fragment, text, parsed):
                LOG.debug("%s: %s", matcher.name, text)


def _match_select_aggregation(fragment: QueryFragment, text: str, parsed: ParsedQuery) -> bool:
    """
    sum("t1"."col") as "m0",  =>  agg_function='sum(', table_alias='t1', ...
    """
    match = SELECT_AGGREGATION_PATTERN.fullmatch(text)
    if not match:
        return False

    fragment.classify(
        FragmentType.SELECT_AGGREGATION,
        agg_function=match.group(1).strip(),
        table_alias=match.group(2),
        column_name=match.group(3),
        result_alias=match.group(4),
        has_next=match.group(5) is not None
    )
    # Keyed by the source table alias, not the result alias
    parsed.aliases[fragment.table_alias] = fragment
    return True


def _match_table(fragment: QueryFragment, text: str, parsed: ParsedQuery) -> bool:
    """
    "public"."sales" as "t1",  =>  schema_name='public', table_name='sales', table_alias='t1'
    """
    match = TABLE_PATTERN.fullmatch(text)
    if not match:
        return False

    fragment.classify(
        FragmentType.TABLE,
        schema_name=match.group(1),
        table_name=match.group(2),
        table_alias=match.group(3)
    )
    parsed.aliases[fragment.table_alias] = fragment
    return True


def _match_join_condition(fragment: QueryFragment, text: str, parsed: ParsedQuery) -> bool:
    """
    "t1"."x" = "t2"."y"  =>  registered under the joined alias 't2'
    """
    match = JOIN_CONDITION_PATTERN.fullmatch(text)
    if not match:
        return False

    fragment.classify(
        FragmentType.JOIN_CONDITION,
        table_alias=match.group(1),
        column_name=match.group(2),
        joined_table_alias=match.group(3),
        joined_column_name=match.group(4)
    )
    parsed.joins[fragment.joined_table_alias] = fragment
    return True


def _match_condition(fragment: QueryFragment, text: str, parsed: ParsedQuery) -> bool:
    """
    "t1"."x" = 5  or  ("t1"."x" in ('a', 'b'))  =>  table_alias='t1', column_name='x'
    """
    # Conditions are sometimes in brackets
    if text.startswith('(') and text.endswith(')'):
        text = text[1:-1]

    match = EQUALS_CONDITION_PATTERN.fullmatch(text)
    if not match:
        match = IN_CONDITION_PATTERN.fullmatch(text)
    if not match:
        return False

    fragment.classify(
        FragmentType.CONDITION,
        table_alias=match.group(1),
        column_name=match.group(2)
    )
    return True


LINE_MATCHERS: List[LineMatcher] = [
    LineMatcher('select_aggregation', frozenset([ParseState.AFTER_SELECT]), _match_select_aggregation),
    LineMatcher('table', frozenset([ParseState.AFTER_FROM]), _match_table),
    LineMatcher('join_condition', frozenset([ParseState.AFTER_WHERE_OR_AND]), _match_join_condition),
    LineMatcher('condition', frozenset([ParseState.AFTER_WHERE_OR_AND]), _match_condition),
]
