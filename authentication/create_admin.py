# Provision an admin account, or reset the password of an existing one
#
#   python -m authentication.create_admin admin --email admin@school.com
#   python -m authentication.create_admin admin --reset-password

import argparse
import getpass
import sys

import config
from database.db_connection import Database
from stores.auth_store import AuthStore


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create an admin user for the school website.")
    parser.add_argument("username")
    parser.add_argument("--email", default=None)
    parser.add_argument("--reset-password", action="store_true", help="update the password of an existing admin")
    args = parser.parse_args(argv)

    password = getpass.getpass("Password: ")
    if not password or password != getpass.getpass("Repeat password: "):
        print("❌ Passwords are empty or do not match.", file=sys.stderr)
        return 1

    db = Database(config.DATABASE_URL).open()
    try:
        auth = AuthStore(db)
        if args.reset_password:
            result = auth.set_password(args.username, password)
        else:
            result = auth.create_user(args.username, password, args.email)
    finally:
        db.close()

    if not result["success"]:
        print(f"❌ Failed: {result['error']}", file=sys.stderr)
        return 1

    if args.reset_password:
        print(f"✅ Password updated for '{args.username}'.")
    else:
        print(f"✅ Admin user created with ID: {result['user_id']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
