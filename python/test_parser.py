"""
Test the line classifier

Tests keyword handling, the context-dependent line shapes and the alias and
join registries
"""

import logging

from constants import FragmentType, ParseState, ParsedQuery, QueryFragment
from parser import parse_query, classify_line, LINE_MATCHERS, LineMatcher


QUERY = "\n".join([
    'select',
    '    "d"."year" as "c0",',
    '    sum("f"."visitors_hll") as "m0",',
    '    count(distinct "f"."user_id") as "m1",',
    '    count(*) as "m2"',
    'from',
    '    "public"."dim_date" as "d",',
    '    "public"."events" as "f"',
    'where',
    '    "f"."date_id" = "d"."date_id"',
    'and',
    '    "d"."year" = 2024',
    'and',
    '    ("f"."country" in (\'DE\', \'AT\'))',
    'group by',
    '    "d"."year"',
])


def test_one_fragment_per_line():
    """Test that every line becomes a fragment, in order"""
    parsed = parse_query(QUERY, "\n")
    lines = QUERY.split("\n")
    assert len(parsed.fragments) == len(lines)
    assert [f.text for f in parsed.fragments] == lines
    print("✓ one fragment per line")


def test_keywords():
    """Test that exact keyword lines are classified"""
    parsed = parse_query(QUERY, "\n")
    types = [f.type for f in parsed.fragments]
    assert types[0] == FragmentType.SELECT_KEYWORD
    assert types[5] == FragmentType.FROM_KEYWORD
    assert types[8] == FragmentType.WHERE_KEYWORD
    assert types[10] == FragmentType.AND_KEYWORD
    assert types[14] == FragmentType.GROUP_BY_KEYWORD
    print("✓ keywords work")


def test_keyword_must_match_exactly():
    """Test that indented or upper-case keywords are not keywords"""
    parsed = parse_query("  select\nSELECT\nselect \nsum(\"t\".\"x\") as \"m\"", "\n")
    assert all(f.type == FragmentType.TEXT for f in parsed.fragments)
    print("✓ inexact keywords ignored")


def test_select_aggregation():
    """Test parsing aggregations after select"""
    parsed = parse_query(QUERY, "\n")

    agg = parsed.fragments[2]
    assert agg.type == FragmentType.SELECT_AGGREGATION
    assert agg.agg_function == 'sum('
    assert agg.table_alias == 'f'
    assert agg.column_name == 'visitors_hll'
    assert agg.result_alias == 'm0'
    assert agg.has_next is True

    distinct = parsed.fragments[3]
    assert distinct.type == FragmentType.SELECT_AGGREGATION
    assert distinct.agg_function == 'count(distinct'
    assert distinct.column_name == 'user_id'

    # count(*) has no column, plain selections have no aggregation
    assert parsed.fragments[4].type == FragmentType.TEXT
    assert parsed.fragments[1].type == FragmentType.TEXT
    print("✓ select aggregations work")


def test_has_next_without_comma():
    """Test the trailing separator flag"""
    parsed = parse_query('select\n    sum("t1"."m") as "m0"\nfrom', "\n")
    assert parsed.fragments[1].type == FragmentType.SELECT_AGGREGATION
    assert parsed.fragments[1].has_next is False
    print("✓ has_next without comma works")


def test_tables_and_aliases():
    """Test parsing tables after from"""
    parsed = parse_query(QUERY, "\n")

    dim = parsed.fragments[6]
    assert dim.type == FragmentType.TABLE
    assert (dim.schema_name, dim.table_name, dim.table_alias) == ('public', 'dim_date', 'd')

    fact = parsed.fragments[7]
    assert fact.type == FragmentType.TABLE
    assert fact.table_name == 'events'

    # The FROM declaration is registered last and wins over the aggregation
    assert parsed.aliases['f'] is fact
    assert parsed.aliases['d'] is dim
    print("✓ tables and aliases work")


def test_alias_last_writer_wins():
    """Test that a later declaration replaces an earlier one"""
    sql = "\n".join([
        'from',
        '    "public"."a" as "t1",',
        '    "public"."b" as "t1"',
    ])
    parsed = parse_query(sql, "\n")
    assert parsed.aliases['t1'].table_name == 'b'
    print("✓ last alias wins")


def test_join_condition():
    """Test join conditions, registered under the right-hand alias"""
    parsed = parse_query(QUERY, "\n")

    join = parsed.fragments[9]
    assert join.type == FragmentType.JOIN_CONDITION
    assert join.table_alias == 'f'
    assert join.column_name == 'date_id'
    assert join.joined_table_alias == 'd'
    assert join.joined_column_name == 'date_id'
    assert parsed.joins == {'d': join}
    print("✓ join conditions work")


def test_conditions():
    """Test equality and IN conditions, with and without brackets"""
    parsed = parse_query(QUERY, "\n")

    eq = parsed.fragments[11]
    assert eq.type == FragmentType.CONDITION
    assert (eq.table_alias, eq.column_name) == ('d', 'year')

    in_cond = parsed.fragments[13]
    assert in_cond.type == FragmentType.CONDITION
    assert (in_cond.table_alias, in_cond.column_name) == ('f', 'country')

    string_eq = parse_query("where\n    \"t\".\"name\" = 'Berlin'", "\n").fragments[1]
    assert string_eq.type == FragmentType.CONDITION
    print("✓ conditions work")


def test_shapes_depend_on_last_keyword():
    """Test that a line is only matched in the context of its clause"""
    # A table line in the select clause, an aggregation in the where clause
    sql = "\n".join([
        'select',
        '    "public"."events" as "t1"',
        'where',
        '    sum("t1"."m") as "m0"',
        'group by',
        '    "t1"."x" = "t2"."y"',
    ])
    parsed = parse_query(sql, "\n")
    assert [f.type for f in parsed.fragments[1::2]] == [FragmentType.TEXT] * 3
    assert parsed.aliases == {}
    assert parsed.joins == {}
    print("✓ context-dependent matching works")


def test_lines_before_first_keyword():
    """Test that lines before any keyword stay plain text"""
    parsed = parse_query('    sum("t1"."m") as "m0"\nselect', "\n")
    assert parsed.fragments[0].type == FragmentType.TEXT
    print("✓ lines before keywords ignored")


def test_trailing_separator_gives_empty_fragment():
    """Test that a trailing line separator produces a final empty line"""
    parsed = parse_query("select\n    1\n", "\n")
    assert [f.text for f in parsed.fragments] == ['select', '    1', '']
    print("✓ trailing separator kept")


def test_windows_line_separator():
    """Test splitting on a custom separator"""
    parsed = parse_query('select\r\n    sum("t1"."m") as "m0"', "\r\n")
    assert parsed.fragments[0].type == FragmentType.SELECT_KEYWORD
    assert parsed.fragments[1].type == FragmentType.SELECT_AGGREGATION
    print("✓ custom separator works")


def test_all_matchers_run_later_overwrites():
    """Test that matchers do not short-circuit"""
    calls = []

    def first(fragment, text, parsed):
        calls.append('first')
        fragment.classify(FragmentType.JOIN_CONDITION, table_alias='a')
        return True

    def second(fragment, text, parsed):
        calls.append('second')
        fragment.classify(FragmentType.CONDITION, table_alias='b')
        return True

    states = frozenset([ParseState.AFTER_WHERE_OR_AND])
    matchers = [LineMatcher('first', states, first), LineMatcher('second', states, second)]

    fragment = QueryFragment('anything')
    classify_line(fragment, 'anything', ParseState.AFTER_WHERE_OR_AND, ParsedQuery(), matchers)
    assert calls == ['first', 'second']
    assert fragment.type == FragmentType.CONDITION
    assert fragment.table_alias == 'b'
    print("✓ all matchers run")


def test_matcher_table_covers_clauses():
    """Test which clauses have line shapes"""
    states = set()
    for matcher in LINE_MATCHERS:
        states |= matcher.states
    assert states == {ParseState.AFTER_SELECT, ParseState.AFTER_FROM, ParseState.AFTER_WHERE_OR_AND}
    print("✓ matcher table works")


def test_matched_lines_logged_at_debug():
    """Test that each classified line is logged with the matcher name"""

    class Capture(logging.Handler):
        def __init__(self):
            super().__init__(level=logging.DEBUG)
            self.messages = []

        def emit(self, record):
            self.messages.append(record.getMessage())

    logger = logging.getLogger('parser')
    handler = Capture()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    try:
        parse_query(QUERY, "\n")
    finally:
        logger.removeHandler(handler)

    assert 'select_aggregation: sum("f"."visitors_hll") as "m0",' in handler.messages
    assert 'table: "public"."events" as "f"' in handler.messages
    assert 'join_condition: "f"."date_id" = "d"."date_id"' in handler.messages
    # Lines no matcher accepts are not logged
    assert not any('"d"."year" as "c0"' in m for m in handler.messages)
    print("✓ matched lines logged")



if __name__ == '__main__':
    print("\nTesting parser...\n")

    test_one_fragment_per_line()
    test_keywords()
    test_keyword_must_match_exactly()
    test_select_aggregation()
    test_has_next_without_comma()
    test_tables_and_aliases()
    test_alias_last_writer_wins()
    test_join_condition()
    test_conditions()
    test_shapes_depend_on_last_keyword()
    test_lines_before_first_keyword()
    test_trailing_separator_gives_empty_fragment()
    test_windows_line_separator()
    test_all_matchers_run_later_overwrites()
    test_matcher_table_covers_clauses()
    test_matched_lines_logged_at_debug()

    print("\n✅ All parser tests passed!\n")
