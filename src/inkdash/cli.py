"""CLI for inkdash - Google Calendar authorization and events.

Usage:
    inkdash init                        # Create config directory, show setup instructions
    inkdash status                      # Show credential status
    inkdash google import <path>        # Import OAuth client credentials
    inkdash google login                # Interactive OAuth login
    inkdash google status               # Show OAuth token status
    inkdash google refresh              # Refresh OAuth token
    inkdash calendar list               # List calendars on the account
    inkdash calendar sources            # Show dashboard calendar sources
    inkdash calendar events [--days N]  # Show upcoming events from all sources
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path


def cmd_init() -> int:
    """Initialize the inkdash config directory."""
    from inkdash.config import CONFIG_DIR, ENV_FILE, GOOGLE_TOKEN, ensure_config_dir

    print("=" * 60)
    print("INKDASH SETUP")
    print("=" * 60)
    print()

    ensure_config_dir()
    print(f"Created: {CONFIG_DIR}/")
    print()

    print("Credential locations:")
    print()
    print(f"  {ENV_FILE}")
    print("    Optional: GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, INKDASH_CALLBACK_PORT")
    print()
    print(f"  {GOOGLE_TOKEN}")
    print("    Client credentials, tokens and calendar sources")
    print()
    print("-" * 60)
    print()
    print("For Google OAuth, create a Desktop client and download credentials from:")
    print("  https://console.cloud.google.com/apis/credentials")
    print("Then run: inkdash google import ~/Downloads/credentials.json")
    return 0


def cmd_status() -> int:
    """Show credential status."""
    from inkdash.config import get_credential_status

    status = get_credential_status()

    print("=" * 60)
    print("INKDASH CREDENTIAL STATUS")
    print("=" * 60)
    print()
    print(f"Config dir: {status['config_dir']}")
    print()
    print(f"  .env:                   {'[x]' if status['env_file'] else '[ ]'}")
    print(f"  GOOGLE_CLIENT_ID:       {'[x]' if status['env']['client_id'] else '[ ]'}")
    print(f"  GOOGLE_CLIENT_SECRET:   {'[x]' if status['env']['client_secret'] else '[ ]'}")
    print(f"  google_calendar.json:   {'[x]' if status['google']['token_file'] else '[ ]'}")
    print(f"  Callback port:          {status['callback_port']}")
    return 0


def google_import(source_path: str) -> int:
    """Import OAuth client credentials from a Google credentials.json."""
    from inkdash.google import FileTokenStore

    source = Path(source_path).expanduser()

    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    try:
        with open(source) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}")
        return 1

    if "installed" in data:
        app_creds = data["installed"]
    elif "web" in data:
        app_creds = data["web"]
    else:
        print("Error: Invalid OAuth credentials format")
        print("Expected 'installed' or 'web' key in JSON")
        return 1

    client_id = app_creds.get("client_id", "")
    client_secret = app_creds.get("client_secret", "")
    if not client_id or not client_secret:
        print("Error: credentials file has no client_id/client_secret")
        return 1

    store = FileTokenStore()
    store.save(replace(store.load(), client_id=client_id, client_secret=client_secret))

    print("Imported OAuth credentials")
    print(f"  From: {source}")
    print(f"  To:   {store.path}")
    print(f"  Client ID: {client_id[:40]}...")
    print()
    print("Next: Run 'inkdash google login' to authorize")
    return 0


def google_login(no_browser: bool = False, timeout: float = 300) -> int:
    """Interactive Google OAuth login."""
    from inkdash.google import BrowserLaunchError, GoogleAuthError, OAuthCoordinator

    print("=" * 60)
    print("INKDASH GOOGLE LOGIN")
    print("=" * 60)

    auth = OAuthCoordinator()

    info = auth.get_token_info()
    if info["status"] == "valid":
        print("\nAlready authorized with valid token")
        return google_status()

    try:
        if no_browser:
            url = auth.get_authorization_url()
            print(f"\nOpen this URL in your browser:\n{url}\n")
        else:
            try:
                auth.start_flow()
            except BrowserLaunchError as e:
                print(f"\n{e}\n")
        print(f"Waiting up to {timeout:g}s for Google to redirect back...")
        asyncio.run(auth.complete_flow(timeout=timeout))
    except GoogleAuthError as e:
        print(f"\nError: {e}")
        return 1
    finally:
        auth.close()

    print("\nToken saved successfully!")
    return google_status()


def google_status() -> int:
    """Show Google OAuth token status."""
    from inkdash.google import OAuthCoordinator

    info = OAuthCoordinator().get_token_info()

    if info["status"] == "no_token":
        print("No token found - run 'inkdash google login'")
        return 1

    print(f"Status        : {info['status']}")
    print(f"Scopes        : {', '.join(info.get('scopes', []))}")
    print(f"Expires in    : {info.get('expires_in', 'unknown')}")
    print(f"Refresh token : {'yes' if info['has_refresh_token'] else 'no'}")
    print(f"Calendars     : {info['calendars']}")
    print(f"Poll interval : {info['refresh_interval_minutes']} min")
    return 0


def google_refresh() -> int:
    """Refresh Google OAuth token."""
    from inkdash.google import GoogleAuthError, OAuthCoordinator

    print("=" * 60)
    print("REFRESHING OAUTH TOKEN")
    print("=" * 60)

    auth = OAuthCoordinator()
    if not auth.is_configured():
        print("No token - run 'inkdash google login'")
        return 1

    try:
        asyncio.run(auth.refresh())
    except GoogleAuthError as e:
        print(f"\nRefresh failed: {e}")
        print("You may need to re-authenticate: inkdash google login")
        return 1

    print("\nToken refreshed successfully!")
    return google_status()


def calendar_list() -> int:
    """List calendars on the account."""
    from inkdash.calendar import CalendarAggregator, CalendarError
    from inkdash.google import GoogleAuthError

    aggregator = CalendarAggregator()

    async def run():
        token = await aggregator.auth.get_valid_access_token()
        return await aggregator.list_calendars(token)

    try:
        calendars = asyncio.run(run())
    except (GoogleAuthError, CalendarError) as e:
        print(f"Error: {e}")
        return 1

    for cal in calendars:
        mark = "*" if cal.primary else " "
        print(f"{mark} {cal.summary:<30} {cal.id}")
    return 0


def calendar_sources() -> int:
    """Show the calendars used by the dashboard."""
    from inkdash.calendar import CalendarAggregator, CalendarError
    from inkdash.google import GoogleAuthError

    try:
        sources = asyncio.run(CalendarAggregator().resolve_sources())
    except (GoogleAuthError, CalendarError) as e:
        print(f"Error: {e}")
        return 1

    for source in sources:
        print(f"  [{source.color:<6}] {source.display_name:<30} {source.id}")
    return 0


def calendar_events(days: int = 14) -> int:
    """Show upcoming events from every calendar source."""
    from inkdash.calendar import CalendarAggregator, CalendarError
    from inkdash.google import GoogleAuthError

    try:
        events = asyncio.run(CalendarAggregator().fetch_calendar_events(days=days))
    except (GoogleAuthError, CalendarError) as e:
        print(f"Error: {e}")
        return 1

    if not events:
        print(f"No events in the next {days} days")
        return 0

    for event in events:
        when = event.effective_start if not event.is_all_day else f"{event.start.date} (all day)"
        print(f"{when:<28} {event.summary}  [{event.calendar_name}]")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="inkdash",
        description="Google Calendar authorization and events for the dashboard",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    # init command
    subparsers.add_parser("init", help="Initialize config directory")

    # status command
    subparsers.add_parser("status", help="Show credential status")

    # Google subcommand
    google_parser = subparsers.add_parser("google", help="Google OAuth management")
    google_subparsers = google_parser.add_subparsers(dest="google_command", help="Command")

    # google import
    import_parser = google_subparsers.add_parser("import", help="Import OAuth credentials")
    import_parser.add_argument("path", help="Path to credentials.json file")

    # google login
    login_parser = google_subparsers.add_parser("login", help="Interactive OAuth login")
    login_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't open browser automatically",
    )
    login_parser.add_argument(
        "--timeout",
        type=float,
        default=300,
        help="Seconds to wait for the OAuth callback (default: 300)",
    )

    # google status / refresh
    google_subparsers.add_parser("status", help="Show token status")
    google_subparsers.add_parser("refresh", help="Refresh token")

    # Calendar subcommand
    calendar_parser = subparsers.add_parser("calendar", help="Google Calendar")
    calendar_subparsers = calendar_parser.add_subparsers(dest="calendar_command", help="Command")
    calendar_subparsers.add_parser("list", help="List calendars on the account")
    calendar_subparsers.add_parser("sources", help="Show dashboard calendar sources")
    events_parser = calendar_subparsers.add_parser("events", help="Show upcoming events")
    events_parser.add_argument(
        "--days",
        type=int,
        default=14,
        help="Days ahead to fetch (default: 14)",
    )

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "init":
        return cmd_init()

    if args.command == "status":
        return cmd_status()

    if args.command == "google":
        if args.google_command == "import":
            return google_import(args.path)
        elif args.google_command == "login":
            return google_login(args.no_browser, args.timeout)
        elif args.google_command == "status":
            return google_status()
        elif args.google_command == "refresh":
            return google_refresh()
        else:
            google_parser.print_help()
            return 0

    if args.command == "calendar":
        if args.calendar_command == "list":
            return calendar_list()
        elif args.calendar_command == "sources":
            return calendar_sources()
        elif args.calendar_command == "events":
            return calendar_events(args.days)
        else:
            calendar_parser.print_help()
            return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
