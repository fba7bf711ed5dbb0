"""
Rewrite rules applied to a parsed query

A rule inspects the fragments of a ParsedQuery and sets replacement text on
the ones it wants to change. Rules never add or remove lines.
"""

from typing import AbstractSet, Iterable

from constants import (
    FragmentType,
    ParsedQuery,
    QueryFragment,
    HLL_AGGREGATIONS,
    QualifiedColumn,
)


class RewriteRule:
    """
    Base class for rewrite rules
    """
    name = 'rule'

    def apply(self, parsed: ParsedQuery, hll_columns: AbstractSet[QualifiedColumn]) -> bool:
        """
        Rewrite matching fragments in place

        Returns:
            True if at least one fragment was given replacement text
        """
        raise NotImplementedError


class HyperLogLogAggregationRule(RewriteRule):
    """
    Replaces sum() and count(distinct) on hyperloglog columns

    Example:
        sum("t1"."visitors_hll") as "m0",
    becomes
        hll_cardinality(hll_union_agg("t1"."visitors_hll")) as "m0",
    """
    name = 'hll_aggregation'

    def apply(self, parsed: ParsedQuery, hll_columns: AbstractSet[QualifiedColumn]) -> bool:
        modified = False

        for fragment in parsed.fragments_of_type(FragmentType.SELECT_AGGREGATION):
            if fragment.agg_function not in HLL_AGGREGATIONS:
                continue

            table = parsed.aliases.get(fragment.table_alias)
            if table is None or table.type != FragmentType.TABLE:
                continue

            full_column_name = qualified_column_name(table, fragment.column_name)
            if full_column_name in hll_columns:
                fragment.replace(render_hll_aggregation(fragment))
                modified = True

        return modified


def qualified_column_name(table: QueryFragment, column_name: str) -> QualifiedColumn:
    """Lower-case "schema.table.column" for a column of a TABLE fragment"""
    return f"{table.schema_name}.{table.table_name}.{column_name}".lower()


def render_hll_aggregation(fragment: QueryFragment) -> str:
    """Render the hll replacement for a SELECT_AGGREGATION fragment"""
    return (
        f'    hll_cardinality(hll_union_agg("{fragment.table_alias}"."{fragment.column_name}"))'
        f' as "{fragment.result_alias}"'
        + (',' if fragment.has_next else '')
    )


DEFAULT_RULES = (HyperLogLogAggregationRule(),)


def apply_rules(
    parsed: ParsedQuery,
    hll_columns: AbstractSet[QualifiedColumn],
    rules: Iterable[RewriteRule] = DEFAULT_RULES
) -> bool:
    """
    Apply every rule to the parsed query

    Returns:
        True if any rule modified the query
    """
    modified = False
    for rule in rules:
        # Every rule runs, even after an earlier one modified the query
        if rule.apply(parsed, hll_columns):
            modified = True
    return modified
