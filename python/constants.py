"""
Data structures for the OLAP SQL rewriter

This module defines the fragment model, the parse result and the constants
shared by the parser, the metadata cache and the rewrite rules.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class FragmentType(Enum):
    """
    Role of a single line in a generated query

    TEXT is the default for lines that are never classified (plain column
    selections, closing brackets, ...).
    """
    TEXT = 'text'
    SELECT_KEYWORD = 'select'
    FROM_KEYWORD = 'from'
    WHERE_KEYWORD = 'where'
    AND_KEYWORD = 'and'
    GROUP_BY_KEYWORD = 'group by'
    ORDER_BY_KEYWORD = 'order by'
    TABLE = 'table'
    SELECT_AGGREGATION = 'select_aggregation'
    JOIN_CONDITION = 'join_condition'
    CONDITION = 'condition'


class ParseState(Enum):
    """
    Parser state: which keyword line was seen last
    """
    NONE = 0
    AFTER_SELECT = 1
    AFTER_FROM = 2
    AFTER_WHERE_OR_AND = 3
    AFTER_GROUP_BY = 4
    AFTER_ORDER_BY = 5


@dataclass
class QueryFragment:
    """
    One physical line of a generated query

    Attributes:
        text: Original line, never modified
        new_text: Replacement line, set at most once by a rewrite rule
        type: Role of the line
        schema_name, table_name: TABLE only
        table_alias: TABLE, SELECT_AGGREGATION, JOIN_CONDITION, CONDITION
        column_name: SELECT_AGGREGATION, JOIN_CONDITION, CONDITION
        agg_function: SELECT_AGGREGATION only, e.g. "sum(" or "count(distinct"
        result_alias: SELECT_AGGREGATION only
        has_next: SELECT_AGGREGATION only, True if the line ends with a comma
        joined_table_alias, joined_column_name: JOIN_CONDITION only
    """
    text: str
    new_text: Optional[str] = None
    type: FragmentType = FragmentType.TEXT
    schema_name: Optional[str] = None
    table_name: Optional[str] = None
    table_alias: Optional[str] = None
    column_name: Optional[str] = None
    agg_function: Optional[str] = None
    result_alias: Optional[str] = None
    has_next: bool = False
    joined_table_alias: Optional[str] = None
    joined_column_name: Optional[str] = None

    def classify(self, fragment_type: FragmentType, **attributes) -> None:
        """
        Set the fragment type and its parsed attributes

        Attributes of a previous classification are cleared first, so only
        the fields of the current type are ever populated.
        """
        self.type = fragment_type
        for name in _PARSED_ATTRIBUTES:
            setattr(self, name, None)
        self.has_next = False
        for name, value in attributes.items():
            if name not in _PARSED_ATTRIBUTES and name != 'has_next':
                raise AttributeError(f"Unknown fragment attribute: {name}")
            setattr(self, name, value)

    def replace(self, new_text: str) -> None:
        """Set the replacement text (allowed once)"""
        if self.new_text is not None:
            raise ValueError(f"Fragment already rewritten: {self.text!r}")
        self.new_text = new_text

    @property
    def rendered_text(self) -> str:
        return self.new_text if self.new_text is not None else self.text


_PARSED_ATTRIBUTES = (
    'schema_name',
    'table_name',
    'table_alias',
    'column_name',
    'agg_function',
    'result_alias',
    'joined_table_alias',
    'joined_column_name',
)


@dataclass
class ParsedQuery:
    """
    Result of parsing one query

    Attributes:
        fragments: All lines of the query, in original order
        aliases: Table alias -> TABLE or SELECT_AGGREGATION fragment declaring it
        joins: Joined (right-hand) alias -> JOIN_CONDITION fragment
    """
    fragments: List[QueryFragment] = field(default_factory=list)
    aliases: Dict[str, QueryFragment] = field(default_factory=dict)
    joins: Dict[str, QueryFragment] = field(default_factory=dict)

    def fragments_of_type(self, fragment_type: FragmentType) -> List[QueryFragment]:
        return [f for f in self.fragments if f.type == fragment_type]


# Keyword lines (exact, untrimmed match)
KEYWORDS: Dict[str, FragmentType] = {
    'select': FragmentType.SELECT_KEYWORD,
    'from': FragmentType.FROM_KEYWORD,
    'where': FragmentType.WHERE_KEYWORD,
    'and': FragmentType.AND_KEYWORD,
    'group by': FragmentType.GROUP_BY_KEYWORD,
    'order by': FragmentType.ORDER_BY_KEYWORD,
}

# Parser state reached after each keyword line
KEYWORD_STATES: Dict[FragmentType, ParseState] = {
    FragmentType.SELECT_KEYWORD: ParseState.AFTER_SELECT,
    FragmentType.FROM_KEYWORD: ParseState.AFTER_FROM,
    FragmentType.WHERE_KEYWORD: ParseState.AFTER_WHERE_OR_AND,
    FragmentType.AND_KEYWORD: ParseState.AFTER_WHERE_OR_AND,
    FragmentType.GROUP_BY_KEYWORD: ParseState.AFTER_GROUP_BY,
    FragmentType.ORDER_BY_KEYWORD: ParseState.AFTER_ORDER_BY,
}

LINE_SEPARATOR = os.linesep

# Aggregations that are invalid on hyperloglog columns
HLL_AGGREGATIONS = frozenset(['count(distinct', 'sum('])
HLL_TYPE_NAME = 'hll'

# Dimension table caches
MAX_DIM_TABLE_SIZE = 10000
DIMENSION_RANGES_CACHE_TTL = 10.0  # seconds

# Logger carrying the rewritten query text and the catalog query
SQL_LOGGER_NAME = 'sql_rewriter.sql'

# Type aliases for clarity
QualifiedColumn = str  # Lower-case "schema.table.column"
