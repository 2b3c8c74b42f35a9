#!/usr/bin/env python3
"""CLI entry point for the Dropbox mirror job."""

import argparse
import logging
import sys
import time
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .core.auth import DropboxAuth, DropboxAuthError
from .core.bootstrap import DEFAULT_PORT, obtain_refresh_token, redirect_uri, update_env_file
from .core.client import DropboxAPIError, DropboxClient
from .core.operations import SyncOperations
from .core.reconcile import Reconciler, TickReport
from .core.token_store import FileTokenStore
from .models.config import MirrorConfig

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Route log records through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config(config_path: Path) -> MirrorConfig | None:
    """Load config.yaml, printing an error if it is missing."""
    if not config_path.exists():
        console.print(f"[red]Config not found: {config_path}")
        return None
    return MirrorConfig.load(config_path)


def build_auth(config: MirrorConfig, require_refresh_token: bool = True) -> DropboxAuth:
    """Create DropboxAuth backed by the on-disk token cache."""
    settings = config.settings
    return DropboxAuth(
        store=FileTokenStore(Path(settings.token_cache)),
        expiry_buffer=settings.expiry_buffer_seconds,
        require_refresh_token=require_refresh_token,
    )


def build_reconciler(config: MirrorConfig, dry_run: bool = False) -> Reconciler:
    """Wire auth, client and operations for one configuration."""
    client = DropboxClient(build_auth(config), chunk_size=config.settings.chunk_size)
    return Reconciler(config, SyncOperations(client), dry_run=dry_run)


def _render_report(report: TickReport) -> None:
    """Render tick results using Rich."""
    if not report.results:
        console.print("[yellow]Nothing to reconcile.")
        return

    table = Table(title="Reconciliation")
    table.add_column("Path")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Details")

    for result in report.results:
        if not result.success:
            status = "[red]failed"
        elif result.deleted:
            status = "[green]done"
        else:
            status = "[yellow]skipped"
        table.add_row(result.path, result.operation, status, result.message)

    console.print(table)
    console.print(
        f"Copied {report.transferred}, deleted {report.deleted}, failed {len(report.failed)}"
    )


def _run_once(config: MirrorConfig, dry_run: bool) -> int:
    """Run a single tick and report. Returns an exit code."""
    try:
        reconciler = build_reconciler(config, dry_run=dry_run)
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1

    try:
        report = reconciler.run_tick()
    except DropboxAuthError as e:
        console.print(f"[red]Authentication failed: {e}")
        return 1

    _render_report(report)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Run one reconciliation tick."""
    config = load_config(Path(args.config))
    if config is None:
        return 1
    if config.settings.verbose:
        setup_logging(verbose=True)

    if args.dry_run:
        console.print("[yellow]Dry run: nothing will be copied or deleted")
    return _run_once(config, args.dry_run)


def cmd_watch(args: argparse.Namespace) -> int:
    """Run reconciliation ticks on a fixed interval until interrupted."""
    config = load_config(Path(args.config))
    if config is None:
        return 1
    if config.settings.verbose:
        setup_logging(verbose=True)

    console.print(f"Running every {args.interval} seconds, Ctrl+C to stop", style="blue")
    try:
        while True:
            started = time.monotonic()
            try:
                exit_code = _run_once(config, args.dry_run)
            except Exception:
                logger.exception("Tick raised an unexpected error")
                exit_code = 1
            if exit_code != 0:
                console.print("[yellow]Tick failed, retrying on the next interval")
            elapsed = time.monotonic() - started
            time.sleep(max(0.0, args.interval - elapsed))
    except KeyboardInterrupt:
        console.print("\nStopped.")
    return 0


def cmd_verify_auth(args: argparse.Namespace) -> int:
    """Verify API authentication."""
    console.print("Verifying Dropbox API credentials...", style="blue")

    config_path = Path(args.config)
    config = MirrorConfig.load(config_path) if config_path.exists() else MirrorConfig()

    try:
        auth = build_auth(config, require_refresh_token=False)
        if not auth.verify_credentials():
            console.print("[red]No DROPBOX_REFRESH_TOKEN set. Run `dbxsync authorize` first.")
            return 1

        client = DropboxClient(auth)
        if client.verify_connection():
            console.print("[green]Authentication successful!")
            return 0
        console.print("[red]API returned unexpected response")
    except DropboxAuthError as e:
        console.print(f"[red]Authentication failed: {e}")
    except DropboxAPIError as e:
        console.print(f"[red]API error: {e}")
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")

    return 1


def cmd_authorize(args: argparse.Namespace) -> int:
    """Obtain a refresh token through the browser and store it in .env."""
    try:
        auth = DropboxAuth(require_refresh_token=False)
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}")
        return 1

    console.print(
        "First set the following redirect URI in the Dropbox App Console for this "
        f"application: [bold]{redirect_uri(args.port)}[/bold]"
    )

    def show_url(url: str) -> None:
        console.print(f"Then visit this URL to authorize the application:\n{url}")

    try:
        refresh_token = obtain_refresh_token(
            auth,
            port=args.port,
            open_browser=not args.no_browser,
            show_url=show_url,
        )
    except DropboxAuthError as e:
        console.print(f"[red]Authorization failed: {e}")
        return 1
    except OSError as e:
        console.print(f"[red]Could not serve {redirect_uri(args.port)}: {e}")
        return 1

    console.print(f"Obtained new refresh token, {len(refresh_token)} characters.")
    update_env_file(Path(args.env_file), refresh_token)
    console.print(f"[green]Updated {args.env_file} with DROPBOX_REFRESH_TOKEN")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Mirror fixed files and dated folders between Dropbox locations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Options accepted by every command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command
    run_parser = subparsers.add_parser("run", parents=[common], help="Run one reconciliation tick")
    run_parser.add_argument("--dry-run", action="store_true", help="Show what would happen")

    # watch command
    watch_parser = subparsers.add_parser("watch", parents=[common], help="Run ticks on a fixed interval")
    watch_parser.add_argument("--interval", type=float, default=300.0, help="Seconds between ticks")
    watch_parser.add_argument("--dry-run", action="store_true", help="Show what would happen")

    # verify-auth command
    subparsers.add_parser("verify-auth", parents=[common], help="Verify Dropbox API credentials")

    # authorize command
    authorize_parser = subparsers.add_parser(
        "authorize", parents=[common], help="Obtain a refresh token via the browser"
    )
    authorize_parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Local redirect port")
    authorize_parser.add_argument("--env-file", default=".env", help="File to store the refresh token in")
    authorize_parser.add_argument("--no-browser", action="store_true", help="Only print the URL")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(getattr(args, "verbose", False))

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "watch":
        return cmd_watch(args)
    elif args.command == "verify-auth":
        return cmd_verify_auth(args)
    elif args.command == "authorize":
        return cmd_authorize(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
