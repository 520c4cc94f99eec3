#!/usr/bin/env python3
"""
Sign-on service entrypoint.

Runs the HTTP server, applies schema migrations, or purges expired sessions.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep signon imports lazy (inside functions) so `--migrate` does not need the
# web stack and `--serve` does not open the pool before uvicorn starts.
#


def purge_sessions() -> int:
    """Delete sessions past the expiry horizon once and report how many were removed."""
    from signon.auth.config import load_auth_config
    from signon.store.config import load_store_config
    from signon.store.db import Database
    from signon.store.sessions import SessionStore

    cfg = load_auth_config()
    db = Database.from_config(load_store_config())
    db.open()
    try:
        n = SessionStore(db, ttl_seconds=cfg.session_ttl_seconds).purge_expired()
    finally:
        db.close()
    print(f"Purged {n} expired session(s).")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Google sign-in with server-side sessions")
    parser.add_argument("--serve", action="store_true", help="Run the sign-on HTTP server")
    parser.add_argument("--migrate", action="store_true", help="Apply pending Postgres schema migrations")
    parser.add_argument(
        "--purge-sessions", action="store_true", help="Delete sessions older than AUTH_SESSION_TTL_SECONDS"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=3000, help="Server listen port (default: 3000)")

    args = parser.parse_args()

    if args.migrate:
        from signon.store.migrate import main as migrate_main

        raise SystemExit(migrate_main())

    if args.purge_sessions:
        raise SystemExit(purge_sessions())

    if args.serve:
        from signon.api.server import run

        run(host=args.host, port=args.port)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
