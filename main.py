"""Command-line interface for the user records service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

import httpx

from usersvc.config import ServiceConfig, load_service_config
from usersvc.middleware import configure_logging
from usersvc.models import NewUser
from usersvc.store import UserStore
from usersvc.users import UserManager, UserServiceError

logger = logging.getLogger("usersvc.main")

_DEFAULT_SERVICE_URL = "http://localhost:8080"

# Sample accounts inserted by `init-db --seed`.
_SEED_USERS = (
    NewUser(
        username="admin",
        email="admin@company.com",
        password="password123",
        first_name="System",
        last_name="Administrator",
    ),
    NewUser(
        username="testuser",
        email="test@company.com",
        password="password123",
        first_name="Test",
        last_name="User",
    ),
)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User records service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (default: USERSVC_CONFIG or config/service.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    init_parser = subparsers.add_parser("init-db", help="Create the user collection and indexes")
    init_parser.add_argument(
        "--seed",
        action="store_true",
        help="Insert the sample admin and test accounts when they are missing",
    )

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: 8080)",
    )

    admin_parser = subparsers.add_parser(
        "admin", help="Launch the interactive administration console"
    )
    admin_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of a running service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    leading: list[str] = []
    if args_list[:1] == ["--config"] and len(args_list) >= 2:
        leading, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*leading, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*leading, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*leading, *args_list])


def _open_store(config: ServiceConfig) -> UserStore:
    store = UserStore(config.database_path)
    store.initialize()
    logger.info("User store initialised at %s", config.database_path)
    return store


def _seed_users(manager: UserManager) -> int:
    created = 0
    for sample in _SEED_USERS:
        if manager.find_by_username(sample.username) is not None:
            continue
        try:
            manager.create(sample)
        except UserServiceError as exc:
            logger.warning("Skipping sample user %s: %s", sample.username, exc)
            continue
        created += 1
    return created


def _serve(*, store: UserStore, config: ServiceConfig, host: str | None, port: int | None) -> None:
    from usersvc.service import create_app
    import uvicorn

    bind_host = host or config.host
    bind_port = port or config.port
    logger.info("Starting user records API on http://%s:%s", bind_host, bind_port)

    app = create_app(store=store, config=config)
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        log_level=config.log_level.lower(),
    )


def _run_admin_cli(manager: UserManager, *, service_url: str | None = None) -> None:
    """Provide an interactive console for administrators."""

    base_url = service_url or _DEFAULT_SERVICE_URL

    print("User Records Administration Console")
    print("Press Ctrl+C at any time to exit.\n")

    try:
        while True:
            print("Select an option:")
            print("  1) List all users")
            print("  2) Add a new user")
            print("  3) Show live statistics")
            print("  4) Exit")

            choice = input("Enter choice [1-4]: ").strip()

            if choice == "1":
                _list_users(manager)
            elif choice == "2":
                _add_user(manager)
            elif choice == "3":
                _show_stats(base_url)
            elif choice == "4":
                print("Goodbye!")
                return
            else:
                print("Invalid selection. Please choose a number from the menu.\n")

            print()
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def _list_users(manager: UserManager) -> None:
    users = manager.list_all()
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<24}  {'Username':<20}  {'Email':<32}  Active  Created")
    print("-" * 100)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z") if user.created_at else "-"
        active = "yes" if user.active else "no"
        print(f"{user.id:<24}  {user.username:<20}  {user.email:<32}  {active:<6}  {created}")


def _add_user(manager: UserManager) -> None:
    print("\nCreate a new user (leave the username blank to cancel).")
    username = input("Username: ").strip()
    if not username:
        print("User creation cancelled.")
        return

    email = input("Email address: ").strip()
    if not email:
        print("An email address is required.")
        return

    first_name = input("First name (optional): ").strip() or None
    last_name = input("Last name (optional): ").strip() or None

    password = _prompt_for_password()
    if password is None:
        print("Aborted creating user.")
        return

    try:
        user = manager.create(
            NewUser(
                username=username,
                email=email,
                password=password,
                first_name=first_name,
                last_name=last_name,
            )
        )
    except UserServiceError as exc:
        print(f"Failed to create user: {exc}")
        return

    print(f"Created user {user.id}: {user.username} <{user.email}>")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _show_stats(base_url: str) -> None:
    endpoint = base_url.rstrip("/") + "/api/users/stats"

    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact user records service: {exc}")
        return

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return

    print(f"Active users: {payload.get('activeUsers', '?')} (as of {payload.get('timestamp', '?')})")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    config = load_service_config(Path(args.config) if args.config else None)
    configure_logging(config.log_level)

    store = _open_store(config)

    if args.command == "serve":
        _serve(store=store, config=config, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(UserManager(store), service_url=args.service_url)
    elif args.command == "init-db":
        if args.seed:
            created = _seed_users(UserManager(store))
            print(f"Inserted {created} sample user(s).")
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
