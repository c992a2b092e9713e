"""Create or update an account from the command line.

Public registration only ever creates ``user`` accounts, so this is how the
first administrator is provisioned.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``lashup`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lashup import create_app
from lashup.extensions import db
from lashup.models import USER_ROLES, AuthAccount, User


def set_password(email: str, password: str, role: str = "user", name: str | None = None) -> int:
    if role not in USER_ROLES:
        print(f"Error: invalid role {role!r}; expected one of {', '.join(USER_ROLES)}")
        return 1
    if len(password) < 6:
        print("Error: password must be at least 6 characters long")
        return 1

    app = create_app()
    with app.app_context():
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(name=name or ("Administrator" if role == "admin" else "Customer"), email=email, role=role)
            db.session.add(user)
            db.session.flush()
            action = "Created"
        else:
            user.role = role
            if name:
                user.name = name
            action = "Updated"

        account = db.session.get(AuthAccount, user.user_id)
        if account is None:
            db.session.add(AuthAccount(user_id=user.user_id, password_hash=generate_password_hash(password)))
        else:
            account.password_hash = generate_password_hash(password)

        db.session.commit()
        print(f"{action} {role} account {email} (id {user.user_id})")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--role", default="user", choices=USER_ROLES)
    parser.add_argument("--name")
    args = parser.parse_args()
    return set_password(args.email, args.password, role=args.role, name=args.name)


if __name__ == "__main__":
    raise SystemExit(main())
