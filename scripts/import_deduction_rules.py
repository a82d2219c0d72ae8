#!/usr/bin/env python
"""Import deduction rules and wage brackets from CSV files.

Usage:
    python scripts/import_deduction_rules.py rules.csv
    python scripts/import_deduction_rules.py rules.csv --brackets brackets.csv
    python scripts/import_deduction_rules.py --brackets-only brackets.csv

Rules CSV columns:
    code, name, calculation_kind, applies_to_nationality, employee_contribution,
    employer_contribution, effective_from, effective_until, rounding_precision,
    rounding_method, description

Brackets CSV columns:
    code, effective_from, min_wage, max_wage, employee_amount, employer_amount,
    calculation_method, employee_percentage, employer_percentage

Rows that fail validation are reported and skipped. Nothing is committed
when --dry-run is given.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from agri_payroll.config import configure_logging
from agri_payroll.database import dispose_db, get_session_factory
from agri_payroll.services import ImportReport, RuleImporter, ServiceContext


def print_report(label: str, report: ImportReport) -> None:
    print(f"{label}: {report.imported} imported, {len(report.errors)} failed")
    for error in report.errors:
        where = f"row {error.row}" if error.row else "table"
        print(f"  ERROR {where}: {error.message}")


async def run(args: argparse.Namespace) -> int:
    context = ServiceContext(actor_name=args.actor)
    factory = get_session_factory()
    async with factory() as session:
        importer = RuleImporter(session, context)

        if args.brackets_only:
            with Path(args.brackets_only).open(newline="", encoding="utf-8") as fh:
                report = await importer.import_brackets_csv(fh)
            print_report("Brackets", report)
        else:
            with Path(args.rules).open(newline="", encoding="utf-8") as rules_fh:
                if args.brackets:
                    with Path(args.brackets).open(newline="", encoding="utf-8") as brackets_fh:
                        report = await importer.import_rules_csv(rules_fh, brackets_fh)
                else:
                    report = await importer.import_rules_csv(rules_fh)
            print_report("Rules", report)

        if args.dry_run:
            await session.rollback()
            print("Dry run, nothing committed")
        else:
            await session.commit()

    await dispose_db()
    return 0 if report.ok else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Import deduction rules from CSV")
    parser.add_argument("rules", nargs="?", help="Rules CSV file")
    parser.add_argument("--brackets", help="Wage brackets CSV for rules in the same import")
    parser.add_argument("--brackets-only", help="Replace brackets of existing rule versions")
    parser.add_argument("--actor", default="import", help="Actor name recorded in logs")
    parser.add_argument("--dry-run", action="store_true", help="Validate without committing")
    args = parser.parse_args()

    if not args.rules and not args.brackets_only:
        parser.error("a rules CSV or --brackets-only is required")

    configure_logging()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
