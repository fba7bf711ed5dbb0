"""
Main entry point for the OLAP SQL rewriter

Command-line interface that rewrites a file of generated queries, mainly for
checking what the rewriter would do to queries captured from the SQL log.
"""

import argparse
import sys
from typing import List, Optional

import psycopg2
from tqdm import tqdm

from config import load_config, load_database_config
from metadata_cache import MetadataCache
from parser import parse_query
from rewriter import SqlRewriter
from utils import read_queries_from_file, format_fragment, configure_logging


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for CLI

    Usage:
        sql-rewriter queries.sql --output rewritten.sql
    """
    parser = argparse.ArgumentParser(
        description='OLAP SQL Rewriter',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Discover hll columns from the database (SQL_REWRITER_DB_* variables)
  sql-rewriter queries.sql -o rewritten.sql

  # Offline, with known hll columns
  sql-rewriter queries.sql --hll-column public.events.visitors_hll

  # Show how each line is classified
  sql-rewriter queries.sql --explain
        """
    )

    parser.add_argument('input_file', help='Input SQL file (semicolon-separated queries)')
    parser.add_argument('--output', '-o', default='-',
                        help='Output SQL file (default: stdout)')
    parser.add_argument('--dialect', default=None,
                        help='SQL dialect used to check rewritten queries (default: postgres)')
    parser.add_argument('--validate', action='store_true',
                        help='Keep the original query when the rewritten one does not parse')
    parser.add_argument('--hll-column', action='append', default=[], metavar='SCHEMA.TABLE.COLUMN',
                        help='Known hll column; skips the database lookup (repeatable)')
    parser.add_argument('--explain', action='store_true',
                        help='Print the classification of every line instead of rewriting')
    parser.add_argument('--require-db', action='store_true',
                        help='Exit if the database cannot be reached (default: rewrite without schema facts)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output (includes rewritten SQL trace)')

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    # Read queries
    try:
        queries = read_queries_from_file(args.input_file)
    except FileNotFoundError:
        print(f"ERROR: File not found: {args.input_file}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"ERROR: Failed to read input file: {e}", file=sys.stderr)
        sys.exit(1)

    if not queries:
        print(f"WARNING: No queries found in {args.input_file}", file=sys.stderr)
        sys.exit(0)

    # Queries are read in text mode, so lines are always separated by "\n"
    config = load_config(
        dialect=args.dialect,
        validate_output=True if args.validate else None,
        line_separator="\n"
    )

    if args.explain:
        for line_num, query_text in queries:
            print(f"-- query at line {line_num}")
            for fragment in parse_query(query_text, config.line_separator).fragments:
                print(format_fragment(fragment))
            print()
        return

    cache = MetadataCache(hll_type_name=config.hll_type_name)
    connection = None
    if args.hll_column:
        cache.seed(args.hll_column)
    else:
        connection = connect(args)
        if connection is None:
            cache.seed([])

    rewriter = SqlRewriter(cache=cache, config=config)

    try:
        outputs = []
        rewritten = 0
        progress_bar = tqdm(queries, desc="Rewriting queries", disable=not args.verbose)

        for line_num, query_text in progress_bar:
            result = rewriter.rewrite(query_text, connection)
            if result != query_text:
                rewritten += 1
                if args.verbose:
                    progress_bar.write(f"Query at line {line_num}: rewritten")
            outputs.append(result + ';\n')

        write_output(args.output, outputs)
    finally:
        if connection is not None:
            connection.close()

    # Print summary
    print(f"\nRewritten: {rewritten}/{len(queries)} queries", file=sys.stderr)
    if args.output != '-':
        print(f"Output written to: {args.output}", file=sys.stderr)


def connect(args):
    """Open a PostgreSQL connection from the SQL_REWRITER_DB_* settings"""
    db_config = load_database_config()
    try:
        return psycopg2.connect(**db_config.connect_kwargs())
    except psycopg2.Error as e:
        print(f"ERROR: Cannot connect to {db_config.host}:{db_config.port}/{db_config.database}: {e}",
              file=sys.stderr)
        if args.require_db:
            sys.exit(1)
        # The rewriter degrades to pass-through without schema facts
        return None


def write_output(path: str, outputs: List[str]) -> None:
    if path == '-':
        sys.stdout.write('\n'.join(outputs))
        return

    try:
        with open(path, 'w') as f:
            f.write('\n'.join(outputs))
    except OSError as e:
        print(f"\nERROR: Failed to write output file: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
