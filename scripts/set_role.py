#!/usr/bin/env python3
"""Set a user's role from the command line (recorded in the audit trail).

Usage:
  python scripts/set_role.py --email fulano@academia.local --role instrutor
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.academia.constants import ROLE_PRECEDENCE
from app.academia.models import User
from app.academia.rbac import assign_role, primary_role
from scripts._db_utils import resolve_database_url, script_session


def set_role(email: str, role_key: str, *, database_url: str | None = None) -> bool:
    with script_session(resolve_database_url(database_url)) as s:
        user = s.query(User).filter(User.email.ilike(email.strip())).one_or_none()
        if not user:
            print(f"User not found: {email}")
            return False
        if primary_role(user) == role_key:
            print(f"{user.email} already has role {role_key}")
            return True
        try:
            assign_role(s, user, role_key, actor=None)
        except ValueError as e:
            print(str(e))
            return False
        print(f"{user.email}: role set to {role_key}")
        return True


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email")
    parser.add_argument("--role", required=True, choices=ROLE_PRECEDENCE, help="New role")
    args = parser.parse_args()
    if not set_role(args.email, args.role):
        sys.exit(1)


if __name__ == "__main__":
    main()
