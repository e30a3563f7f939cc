"""CLI script to provision a login in the backend DB.
Usage: python scripts/create_user.py USERNAME PASSWORD [--role ADMIN] [--role USER]
"""
import sys
import argparse
import pathlib
from typing import List
# Ensure `backend/` is on sys.path so `studentadmin` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from studentadmin.database import create_db_and_tables, engine
from studentadmin import services
from studentadmin.exceptions import StudentAdminError


def main(username: str, password: str, roles: List[str]) -> int:
    """Create `username` with the given roles and print the result.

    Returns a process exit code: 0 on success, 1 when the user could not
    be created (duplicate username, unknown role).
    """
    create_db_and_tables()
    with Session(engine) as session:
        try:
            user = services.AuthService(session).create_user(username, password, roles)
        except StudentAdminError as e:
            print(f'Could not create user {username!r}: {e.message}')
            return 1
        print(f'Created user {user.username!r} (id {user.id}) with roles {", ".join(user.role_names)}')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('username')
    parser.add_argument('password')
    parser.add_argument('--role', dest='roles', action='append', help='Role to grant (repeatable); defaults to USER')
    args = parser.parse_args()
    sys.exit(main(args.username, args.password, args.roles or ['USER']))
