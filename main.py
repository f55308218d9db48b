#!/usr/bin/env python3
"""
KeyControl -- operator commands for the room key desk backend.

Usage:
  python main.py migrate
  python main.py migrate --no-seed
  python main.py create-user maria s3nh4forte
  python main.py create-user chefe s3nh4forte --access-level administrator
  python main.py check-db
  python main.py serve

Every command reads the same settings as the API (environment variables or
.env): DATABASE_URL, or DB_HOST / DB_PORT / DB_USER / DB_PASSWORD / DB_NAME.
"""

import argparse
import sys

from api.models import UserCreate
from api.validation import validate_payload
from auth.models import AccessLevel, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings
from core.errors import ValidationError
from db.gateway import Database, StoreError, StoreErrorKind
from db.schema import create_schema, list_tables
from db.seed import seed_defaults


def _open_database() -> Database:
    settings = get_settings()
    return Database(settings.sqlalchemy_url, pool_size=1, pool_timeout=settings.db_pool_timeout)


def cmd_migrate(args: argparse.Namespace) -> int:
    db = _open_database()
    try:
        create_schema(db)
        print("Tabelas criadas: " + ", ".join(list_tables(db)))
        if not args.no_seed:
            summary = seed_defaults(db)
            print(
                f"Dados iniciais: {summary['users']} usuário(s), "
                f"{summary['rooms']} sala(s), {summary['people']} pessoa(s) inseridos."
            )
    finally:
        db.shutdown()
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    try:
        payload = validate_payload(
            UserCreate,
            {"username": args.username, "password": args.password, "access_level": args.access_level},
        )
    except ValidationError as e:
        for detail in e.details or []:
            print(f"  [!] {detail['field']}: {detail['message']}")
        return 2

    db = _open_database()
    try:
        user_id = UserStore(db).create_user(
            User(
                username=payload.username,
                password_hash=hash_password(payload.password),
                access_level=payload.access_level,
            )
        )
    except StoreError as e:
        if e.kind is StoreErrorKind.unique_violation:
            print(f"  [!] Usuário '{payload.username}' já existe.")
            return 1
        raise
    finally:
        db.shutdown()
    print(f"Usuário '{payload.username}' criado (id={user_id}, {payload.access_level.value}).")
    return 0


def cmd_check_db(args: argparse.Namespace) -> int:
    settings = get_settings()
    db = _open_database()
    try:
        if not db.health_check():
            print(f"  [!] Falha ao conectar com banco de dados ({settings.db_host}:{settings.db_port}/{settings.db_name}).")
            return 1
        tables = list_tables(db)
    finally:
        db.shutdown()
    print("Conexão com banco de dados OK.")
    print("Tabelas: " + (", ".join(tables) if tables else "(nenhuma -- rode 'python main.py migrate')"))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    port = args.port or get_settings().port
    uvicorn.run("api.main:app", host=args.host, port=port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keycontrol",
        description="Operator commands for the KeyControl backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py migrate
  python main.py create-user maria s3nh4forte --access-level employee
  DATABASE_URL=sqlite:///keycontrol.db python main.py check-db
  PORT=8080 python main.py serve
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_migrate = sub.add_parser("migrate", help="Create missing tables and insert default data")
    p_migrate.add_argument(
        "--no-seed",
        action="store_true",
        help="Only create tables; skip the default administrator and sample data",
    )
    p_migrate.set_defaults(func=cmd_migrate)

    p_user = sub.add_parser("create-user", help="Create a login account")
    p_user.add_argument("username", help="3-30 letters and digits")
    p_user.add_argument("password", help="At least 6 characters")
    p_user.add_argument(
        "--access-level",
        choices=[level.value for level in AccessLevel],
        default=AccessLevel.employee.value,
        help="Role of the new account (default: employee)",
    )
    p_user.set_defaults(func=cmd_create_user)

    p_check = sub.add_parser("check-db", help="Probe the database connection and list tables")
    p_check.set_defaults(func=cmd_check_db)

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    p_serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    p_serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT setting)")
    p_serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    p_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
