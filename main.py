#!/usr/bin/env python3
"""
Identity service - email/password and Google sign-in for the web client.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep identity imports lazy (inside main) so `--migrate` does not pull in the web stack.
#


def main() -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Account authentication service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create/upgrade the users and logins tables
  python main.py --migrate

  # Run the HTTP API
  python main.py --serve --port 3001
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API server")
    parser.add_argument("--migrate", action="store_true", help="Apply pending database migrations and exit")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=3001, help="Server listen port (default: 3001)")

    args = parser.parse_args()

    if args.migrate:
        from identity.storage.config import build_postgres_dsn, load_store_config
        from identity.storage.migrate import apply_migrations

        dsn = build_postgres_dsn(load_store_config())
        if not dsn:
            print("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).", file=sys.stderr)
            return 2
        versions = apply_migrations(dsn=dsn)
        if versions:
            print(f"Applied {len(versions)} migration(s): {', '.join(versions)}")
        else:
            print("No pending migrations.")
        return 0

    if args.serve:
        from identity.api.server import run

        run(host=args.host, port=args.port)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
