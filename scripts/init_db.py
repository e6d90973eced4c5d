import sys
from datetime import datetime
from pathlib import Path
import os

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.academia.constants import ROLE_ADMIN
from app.academia.models import User
from app.academia.modules.perfil.models import Profile
from app.academia.rbac import sync_role_permissions
from scripts._db_utils import resolve_database_url, script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/bootstrap admin in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("BOOTSTRAP_ADMIN_EMAIL") or "admin@academia.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = resolve_database_url(database_url)

    with script_session(db_url) as s:
        roles = sync_role_permissions(s)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                nome="Administrador",
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            )
            s.add(user)
        if user.profile is None:
            # The bootstrap admin skips onboarding.
            user.profile = Profile(perfil_completo=True, perfil_completo_em=datetime.utcnow())
        if roles[ROLE_ADMIN] not in user.roles:
            user.roles.clear()
            user.roles.append(roles[ROLE_ADMIN])

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
