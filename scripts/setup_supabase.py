#!/usr/bin/env python3
"""Supabase database setup script for AnswerDesk.

This script outputs the SQL needed to create the knowledge table in Supabase.
Copy the SQL output and run it in the Supabase SQL Editor.

Usage:
    # Print all SQL to console
    python scripts/setup_supabase.py

    # Print SQL and save to file
    python scripts/setup_supabase.py --output setup.sql

    # Verify the table exists
    python scripts/setup_supabase.py --verify

Tables Created:
    - qa_pairs: Canonical question/answer records with vector sync status
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone

# =============================================================================
# SQL Schema Definitions
# =============================================================================

SCHEMA_SQL = """
-- =============================================================================
-- AnswerDesk Database Schema for Supabase
-- =============================================================================
-- Generated: {generated_at}
--
-- Instructions:
-- 1. Open your Supabase project dashboard
-- 2. Go to SQL Editor
-- 3. Paste this entire script
-- 4. Click "Run" to execute
-- =============================================================================

-- =============================================================================
-- Table: {table}
-- =============================================================================
-- Canonical question/answer records. question_key holds the trimmed,
-- case-folded question; creating a record whose key exists replaces it.
-- =============================================================================

CREATE TABLE IF NOT EXISTS {table} (
    id TEXT PRIMARY KEY,

    question TEXT NOT NULL,
    question_key TEXT NOT NULL,
    answer TEXT NOT NULL,
    language VARCHAR(8) NOT NULL DEFAULT 'ru',

    -- Vector sync state (written only by the sync engine)
    sync_status TEXT NOT NULL DEFAULT 'pending',
    vector_ref TEXT,

    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

    CONSTRAINT {table}_question_not_empty CHECK (question <> ''),
    CONSTRAINT {table}_answer_not_empty CHECK (answer <> ''),
    CONSTRAINT {table}_language_length CHECK (char_length(language) BETWEEN 2 AND 8),
    CONSTRAINT {table}_sync_status_valid
        CHECK (sync_status IN ('pending', 'ready', 'failed', 'skipped'))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_{table}_question_key ON {table}(question_key);
CREATE INDEX IF NOT EXISTS idx_{table}_updated_at ON {table}(updated_at DESC);
CREATE INDEX IF NOT EXISTS idx_{table}_sync_status ON {table}(sync_status);

COMMENT ON TABLE {table} IS 'AnswerDesk canonical question/answer records';
COMMENT ON COLUMN {table}.question_key IS 'Trimmed, case-folded question (uniqueness key)';
COMMENT ON COLUMN {table}.vector_ref IS 'Vector id in the index once synced';
"""

DROP_TABLES_SQL = """
-- =============================================================================
-- DROP TABLE (USE WITH EXTREME CAUTION!)
-- =============================================================================
-- This will delete ALL records. Clear the vector namespace as well
-- (DELETE /api/v1/admin/qa does both).
-- =============================================================================

DROP TABLE IF EXISTS {table} CASCADE;
"""


# =============================================================================
# Verification Functions
# =============================================================================

def verify_table(table: str) -> dict:
    """Verify that the knowledge table exists in Supabase.

    Returns:
        Dictionary with verification results.
    """
    try:
        from supabase import create_client
        from answerdesk.config.settings import get_settings

        settings = get_settings()
        if not settings.supabase_configured:
            return {
                'success': False,
                'error': 'SUPABASE_URL and SUPABASE_KEY must be set',
            }

        supabase = create_client(
            settings.supabase_url,
            settings.supabase_key.get_secret_value(),
        )
        response = supabase.table(table).select('id', count='exact').limit(1).execute()
        return {
            'success': True,
            'table': table,
            'row_count': response.count or 0,
        }

    except Exception as e:
        error_str = str(e)
        missing = 'does not exist' in error_str.lower() or 'relation' in error_str.lower()
        return {
            'success': False,
            'table': table,
            'missing': missing,
            'error': error_str[:200],
        }


def print_verification_results(results: dict) -> None:
    """Print verification results in a formatted way."""
    print("\n" + "=" * 70)
    print("Supabase Table Verification Results")
    print("=" * 70)

    print(f"\nOverall Status: {'PASS' if results['success'] else 'FAIL'}")
    if results['success']:
        print(f"  [OK] {results['table']}: {results['row_count']} rows")
    else:
        print(f"\nError: {results['error']}")
        if results.get('missing'):
            print("\nRun this script without --verify to get the SQL to create the table.")

    print("\n" + "=" * 70)


# =============================================================================
# Main
# =============================================================================

def get_sql(sql_type: str, table: str) -> str:
    if sql_type == 'drop':
        return DROP_TABLES_SQL.format(table=table)
    return SCHEMA_SQL.format(
        table=table,
        generated_at=datetime.now(timezone.utc).isoformat(timespec='seconds'),
    )


def main():
    """Main entry point for the setup script."""
    parser = argparse.ArgumentParser(
        description='Generate Supabase setup SQL for AnswerDesk',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Print setup SQL to console
    python scripts/setup_supabase.py

    # Save setup SQL to file
    python scripts/setup_supabase.py --output setup.sql

    # Verify the table exists in Supabase
    python scripts/setup_supabase.py --verify

    # Print drop SQL (use with caution!)
    python scripts/setup_supabase.py --type drop
        """
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        help='Save SQL to file instead of printing'
    )

    parser.add_argument(
        '--type', '-t',
        type=str,
        choices=['setup', 'drop'],
        default='setup',
        help='Type of SQL to generate (default: setup)'
    )

    parser.add_argument(
        '--table',
        type=str,
        default='qa_pairs',
        help='Table name (default: qa_pairs, must match SUPABASE_TABLE)'
    )

    parser.add_argument(
        '--verify', '-v',
        action='store_true',
        help='Verify that the table exists in Supabase'
    )

    args = parser.parse_args()

    if args.verify:
        results = verify_table(args.table)
        print_verification_results(results)
        sys.exit(0 if results.get('success') else 1)

    sql = get_sql(args.type, args.table)
    if args.output:
        with open(args.output, 'w') as f:
            f.write(sql)
        print(f"SQL saved to: {args.output}")
    else:
        if args.type == 'drop':
            print("\n" + "!" * 70)
            print("WARNING: This will DELETE ALL DATA!")
            print("!" * 70 + "\n")
        print(sql)


if __name__ == '__main__':
    main()
