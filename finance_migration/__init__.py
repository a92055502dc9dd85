"""
finance_migration -- data-migration engine for accounting-software exports.

Ingests CSV/TSV/pipe/semicolon, fixed-width, JSON and IIF content produced by
QuickBooks, Sage, Foundation and generic tools, maps it onto caller-declared
target fields, previews the effect against existing records, and commits or
reverts it under a merge strategy.

Public entry point: ``finance_migration.services.build_engine``.
"""

__version__ = "0.1.0"
