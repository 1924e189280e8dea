import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from usersvc.config import resolve_database_path
from usersvc.models import NewUser
from usersvc.store import UserStore
from usersvc.users import UserManager, UserServiceError


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user record")
    parser.add_argument("username", help="Unique username for the account")
    parser.add_argument("email", help="Unique email address for the account")
    parser.add_argument("--first-name", default=None, help="Given name")
    parser.add_argument("--last-name", default=None, help="Family name")
    parser.add_argument(
        "--inactive",
        action="store_true",
        help="Create the account with the active flag cleared",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to USERSVC_DB_PATH or data/users.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if not password:
            print("Password must not be empty.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    db_path = resolve_database_path(args.db_path or os.getenv("USERSVC_DB_PATH"))
    store = UserStore(db_path)
    store.initialize()
    manager = UserManager(store)

    try:
        user = manager.create(
            NewUser(
                username=args.username,
                email=args.email,
                password=password,
                first_name=args.first_name,
                last_name=args.last_name,
                active=not args.inactive,
            )
        )
    except UserServiceError as exc:  # duplicates
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.username} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
