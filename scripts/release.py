"""
Release phase: migrate, then seed.

- DATABASE_URL is required (no silent SQLite fallback here).
- ENV=production refuses a sqlite DATABASE_URL.
- Seeding only syncs roles/permissions and creates the bootstrap admin
  if missing; existing passwords are never touched.

Usage:
  python scripts/release.py [--skip-seed] [--revision REV]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def _alembic_config(db_url: str):
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


def run_release(*, seed: bool = True, revision: str = "head") -> None:
    db_url = _require_env("DATABASE_URL")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")

    print(f"=== Academia release (ENV={env or '(unset)'}) ===", flush=True)

    from alembic import command

    print(f"Upgrading schema to {revision}...", flush=True)
    command.upgrade(_alembic_config(db_url), revision)
    print("Migrations complete.", flush=True)

    if not seed:
        print("Seed skipped.", flush=True)
        return

    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("=== Academia release done ===", flush=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run migrations and the idempotent seed.")
    parser.add_argument("--skip-seed", action="store_true", help="Only run migrations")
    parser.add_argument("--revision", default="head", help="Alembic target revision (default: head)")
    args = parser.parse_args()
    run_release(seed=not args.skip_seed, revision=args.revision)


if __name__ == "__main__":
    main()
