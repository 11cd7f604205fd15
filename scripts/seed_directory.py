from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Allow running as `python scripts/seed_directory.py` from the repo root.
sys.path.append(str(Path(__file__).resolve().parent.parent))

from appraisal.infrastructure.config import DatabaseConfig  # noqa: E402
from appraisal.infrastructure.db import make_engine_and_session  # noqa: E402
from appraisal.utils.seed import initialise_database, seed_from_excel  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Seed the employee directory and question catalog from a workbook"
    )

    backend_default = os.environ.get("DB_BACKEND", "sqlite")
    sqlite_default = os.environ.get("DB_SQLITE_PATH", "./appraisal.db")

    parser.add_argument("excel_path", help="Workbook with Employees and Questions sheets")
    parser.add_argument("--backend", choices=["sqlite", "mysql"], default=backend_default)
    parser.add_argument("--sqlite-path", default=sqlite_default)
    parser.add_argument("--mysql-host", default=os.environ.get("DB_MYSQL_HOST", "localhost"))
    parser.add_argument(
        "--mysql-port", type=int, default=int(os.environ.get("DB_MYSQL_PORT") or 3306)
    )
    parser.add_argument("--mysql-user", default=os.environ.get("DB_MYSQL_USER", "root"))
    parser.add_argument("--mysql-password", default=os.environ.get("DB_MYSQL_PASSWORD", ""))
    parser.add_argument(
        "--mysql-database", default=os.environ.get("DB_MYSQL_DATABASE", "appraisal")
    )
    args = parser.parse_args()

    excel_path = Path(args.excel_path)
    if not excel_path.exists():
        print(f"ERROR: Excel file not found at {excel_path}", file=sys.stderr)
        sys.exit(1)

    cfg = DatabaseConfig(
        backend=args.backend,
        sqlite_path=args.sqlite_path,
        mysql_host=args.mysql_host,
        mysql_port=args.mysql_port,
        mysql_user=args.mysql_user,
        mysql_password=args.mysql_password,
        mysql_database=args.mysql_database,
    )
    engine, SessionLocal = make_engine_and_session(cfg.get_connection_url())
    initialise_database(engine)

    summary = seed_from_excel(SessionLocal, excel_path)
    print(f"Seeded {summary.employees} employee(s) and {summary.questions} question(s).")
    for error in summary.errors:
        print(f"  skipped: {error}", file=sys.stderr)
    if summary.errors:
        sys.exit(2)


if __name__ == "__main__":
    main()
