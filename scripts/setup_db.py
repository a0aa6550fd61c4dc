import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from alembic import command

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "backend"))

from database.migration_runner import alembic_config, sanitize_database_url  # noqa: E402


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply the release readiness schema migrations.")
    parser.add_argument("--revision", default="head", help="Alembic revision to upgrade to (default: head)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    # backend/.env wins over the repo-level file
    for env_file in (REPO_ROOT / "backend" / ".env", REPO_ROOT / ".env"):
        if env_file.exists():
            load_dotenv(env_file)

    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        print("DATABASE_URL is not set. Configure it before running setup.", file=sys.stderr)
        return 1

    print(f"Migrating {sanitize_database_url(db_url)} to {args.revision}")
    command.upgrade(alembic_config(db_url), args.revision)
    print("Release readiness schema is up to date.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
