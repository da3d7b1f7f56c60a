"""CLI interface for PyDriveSync."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Union

import click

from .api import DriveClient
from .auth import OAuthTokenProvider, StaticTokenProvider, build_auth_url, exchange_code
from .cli_progress import SyncProgressDisplay
from .config import SyncSettings, config
from .exceptions import (
    DriveAPIError,
    DriveAuthExpiredError,
    DriveAuthRequiredError,
    DriveConfigError,
    DriveSyncError,
)
from .local_store import FileSystemLocalStore
from .output import OutputFormatter
from .sync import (
    ConflictPolicy,
    FolderResolver,
    SyncAction,
    SyncDirection,
    SyncEngine,
    SyncOptions,
    SyncOutcome,
    SyncStateManager,
    SyncScope,
    SyncStatus,
)
from .utils import format_iso_timestamp

logger = logging.getLogger(__name__)


def build_token_provider(
    settings: SyncSettings,
) -> Union[OAuthTokenProvider, StaticTokenProvider]:
    """Pick a token provider for the configured credentials.

    A refresh token together with client credentials allows automatic
    refreshing; a bare access token is used as is.

    Raises:
        DriveConfigError: If no credentials are configured
    """
    client_id = config.get_client_id(settings)
    client_secret = config.get_client_secret(settings)
    refresh_token = config.get_refresh_token(settings)
    access_token = config.get_access_token(settings)

    if client_id and client_secret and refresh_token:
        return OAuthTokenProvider(
            client_id,
            client_secret,
            access_token=access_token,
            refresh_token=refresh_token,
            expiry=settings.token_expiry,
            on_refresh=lambda token, expiry: config.save_tokens(token, None, expiry),
        )
    if access_token:
        return StaticTokenProvider(access_token)
    raise DriveConfigError("No credentials configured")


def _load_settings(ctx: Any, out: OutputFormatter) -> SyncSettings:
    try:
        settings = config.load()
        settings.validate()
    except DriveConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    return settings


def _require_credentials(
    ctx: Any, out: OutputFormatter, settings: SyncSettings
) -> None:
    if not config.is_configured(settings):
        out.error("Google Drive credentials not configured.")
        out.info("Run 'pydrivesync init' to authenticate")
        ctx.exit(1)


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """PyDriveSync - Two-way sync between a local vault and Google Drive."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pydrivesync").setLevel(logging.DEBUG)
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--client-id",
    prompt="OAuth client ID",
    envvar="PYDRIVESYNC_CLIENT_ID",
    help="OAuth client ID of your Google Cloud project",
)
@click.option(
    "--client-secret",
    prompt="OAuth client secret",
    hide_input=True,
    envvar="PYDRIVESYNC_CLIENT_SECRET",
    help="OAuth client secret of your Google Cloud project",
)
@click.option("--code", help="Authorization code (prompted for if omitted)")
@click.pass_context
def init(ctx: Any, client_id: str, client_secret: str, code: Optional[str]) -> None:
    """Authorize PyDriveSync to access your Google Drive.

    Prints the consent URL, exchanges the authorization code for tokens and
    stores them in ~/.config/pydrivesync/settings.json.
    """
    out: OutputFormatter = ctx.obj["out"]

    out.info("Open this URL in your browser and grant access:")
    out.print(build_auth_url(client_id))
    if code is None:
        code = click.prompt("Authorization code")

    try:
        tokens = asyncio.run(exchange_code(client_id, client_secret, code))
    except DriveAPIError as e:
        out.error(f"Authorization failed: {e}")
        ctx.exit(1)
        return

    settings = _load_settings(ctx, out)
    settings.client_id = client_id
    settings.client_secret = client_secret
    settings.access_token = tokens["access_token"]
    settings.refresh_token = tokens["refresh_token"] or settings.refresh_token
    settings.token_expiry = tokens["expiry"]
    config.save(settings)

    if not settings.refresh_token:
        out.warning(
            "No refresh token was returned; you will need to run init again "
            "when the access token expires."
        )

    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "✓ Tokens saved successfully"),
            ("Config file", str(config.get_config_path())),
            ("Drive folder", settings.drive_folder),
        ],
    )


@main.command()
@click.pass_context
def logout(ctx: Any) -> None:
    """Remove the stored Google Drive tokens.

    Client credentials and sync settings are kept, so 'pydrivesync init'
    can authorize again.
    """
    out: OutputFormatter = ctx.obj["out"]
    try:
        had_tokens = config.clear_tokens()
    except (DriveConfigError, OSError) as e:
        out.error(f"Failed to remove tokens: {e}")
        ctx.exit(1)
        return

    if not had_tokens:
        out.info("No stored tokens to remove")
        return
    out.success("✓ Stored tokens removed")


async def _check_connection(settings: SyncSettings) -> dict[str, Any]:
    async with DriveClient(build_token_provider(settings)) as client:
        return await client.about()


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Check the connection to Google Drive and show the sync state."""
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    _require_credentials(ctx, out, settings)

    try:
        about = asyncio.run(_check_connection(settings))
    except DriveAPIError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    user = about.get("user") or {}
    _, last_sync = SyncStateManager(config.get_config_path()).load_state()
    info = {
        "user": user.get("displayName"),
        "email": user.get("emailAddress"),
        "driveFolder": settings.drive_folder,
        "scope": "whole vault" if settings.sync_whole_vault else settings.scope_paths,
        "direction": settings.sync_direction,
        "conflictPolicy": settings.conflict_policy,
        "trackedFiles": len(settings.file_state_cache),
        "lastSyncTime": format_iso_timestamp(last_sync) if last_sync else None,
    }

    if out.json_output:
        out.output_json(info)
        return

    out.success("✓ Connected to Google Drive")
    scope = info["scope"]
    out.print_summary(
        "Sync Status",
        [
            ("User", f"{info['user']} <{info['email']}>"),
            ("Drive folder", settings.drive_folder),
            ("Scope", scope if isinstance(scope, str) else ", ".join(scope) or "-"),
            ("Direction", settings.sync_direction),
            ("Conflict policy", settings.conflict_policy),
            ("Tracked files", str(info["trackedFiles"])),
            ("Last sync", info["lastSyncTime"] or "never"),
        ],
    )


def _print_outcome(out: OutputFormatter, outcome: SyncOutcome) -> None:
    if out.json_output:
        out.output_json(outcome.to_dict())
        return
    if outcome.status is SyncStatus.FAILED:
        out.error(f"Sync failed: {outcome.error}")
        return

    cancelled = outcome.status is SyncStatus.CANCELLED
    title = "Sync Cancelled" if cancelled else "Sync Complete"
    items = [
        ("Uploaded", str(outcome.uploaded)),
        ("Downloaded", str(outcome.downloaded)),
        ("Skipped", str(outcome.skipped)),
        ("Conflicts resolved", str(outcome.conflicts_resolved)),
        ("Errors", str(outcome.errors)),
    ]
    if outcome.created_folder_paths:
        items.append(("Created folders", ", ".join(outcome.created_folder_paths)))
    out.print_summary(title, items)
    if outcome.errors:
        out.warning(f"⚠  {outcome.errors} file(s) failed, see the log for details")


async def _run_sync(
    out: OutputFormatter,
    vault: Path,
    settings: SyncSettings,
    direction: SyncDirection,
    options: SyncOptions,
    whole_vault: bool,
    dry_run: bool,
    watch: bool,
    show_progress: bool,
) -> SyncOutcome:
    if not whole_vault and not settings.scope_paths:
        raise DriveConfigError(
            "No folders selected. Use 'pydrivesync folders add' or --whole-vault"
        )
    manager = SyncStateManager(config.get_config_path())
    state, last_sync = manager.load_state()

    async with DriveClient(build_token_provider(settings)) as client:
        folders = FolderResolver(client)
        engine = SyncEngine(
            FileSystemLocalStore(vault), client, state, folders, manager
        )
        engine.last_sync_time = last_sync
        scope = SyncScope(settings.drive_folder, settings.scope_paths, whole_vault)

        if dry_run:
            decisions = await engine.preview(scope, direction, options)
            planned = [d for d in decisions if d.action is not SyncAction.SKIP]
            if out.json_output:
                out.output_json(
                    [
                        {
                            "path": d.relative_path,
                            "action": d.action.value,
                            "reason": d.reason,
                        }
                        for d in planned
                    ]
                )
            else:
                for decision in planned:
                    out.print(
                        f"{decision.action.value:<9} {decision.relative_path}"
                        f"  ({decision.reason})"
                    )
                out.info(
                    f"{len(planned)} transfer(s) planned, "
                    f"{len(decisions) - len(planned)} file(s) unchanged"
                )
            return SyncOutcome(status=SyncStatus.IDLE)

        interval = settings.sync_interval / 1000
        while True:
            if show_progress:
                with SyncProgressDisplay() as display:
                    outcome = await engine.run_sync(
                        scope, direction, display.attach(options)
                    )
            else:
                outcome = await engine.run_sync(scope, direction, options)
            _print_outcome(out, outcome)

            if not watch:
                return outcome
            if outcome.status is SyncStatus.FAILED or outcome.errors:
                # Cached folder IDs may point at folders removed remotely
                folders.clear()
            out.info(f"Next sync in {interval:.0f}s (Ctrl+C to stop)")
            await asyncio.sleep(interval)


@main.command()
@click.argument(
    "vault", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without syncing"
)
@click.option(
    "--direction",
    "-d",
    type=click.Choice(["upload", "download", "bidirectional", "up", "down", "both"]),
    default=None,
    help="Sync direction (default: from settings, bidirectional)",
)
@click.option(
    "--policy",
    "-p",
    type=click.Choice([p.value for p in ConflictPolicy]),
    default=None,
    help="Conflict policy when both sides changed (default: newer)",
)
@click.option(
    "--whole-vault/--selected-folders",
    default=None,
    help="Sync the whole vault or only the selected folders",
)
@click.option(
    "--no-subfolders", is_flag=True, help="Only sync files directly in each folder"
)
@click.option(
    "--watch", "-w", is_flag=True, help="Keep running and sync every sync interval"
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(
    ctx: Any,
    vault: Path,
    dry_run: bool,
    direction: Optional[str],
    policy: Optional[str],
    whole_vault: Optional[bool],
    no_subfolders: bool,
    watch: bool,
    no_progress: bool,
) -> None:
    """Sync a local vault folder with Google Drive.

    VAULT is the local folder to sync. Files are mirrored below the Drive
    folder configured in the settings (default: Obsidian-Sync).

    Examples:
        pydrivesync sync ~/Notes                   # Two-way sync
        pydrivesync sync ~/Notes --dry-run         # Preview only
        pydrivesync sync ~/Notes -d up             # Upload only
        pydrivesync sync ~/Notes --watch           # Sync periodically
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    _require_credentials(ctx, out, settings)

    sync_direction = SyncDirection.from_string(direction or settings.sync_direction)
    options = SyncOptions(
        conflict_policy=ConflictPolicy(policy or settings.conflict_policy),
        include_subfolders=settings.include_subfolders and not no_subfolders,
        auto_create_folders=settings.auto_create_folders,
    )
    use_whole_vault = settings.sync_whole_vault if whole_vault is None else whole_vault

    if not out.quiet and not out.json_output:
        out.info(f"Vault: {vault}")
        out.info(f"Drive folder: {settings.drive_folder}")
        out.info(f"Direction: {sync_direction.value}")
        out.info("")

    try:
        outcome = asyncio.run(
            _run_sync(
                out,
                vault,
                settings,
                sync_direction,
                options,
                use_whole_vault,
                dry_run,
                watch,
                show_progress=not (no_progress or out.quiet or out.json_output),
            )
        )
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    except (DriveAuthRequiredError, DriveAuthExpiredError) as e:
        out.error(f"Authentication failed: {e}")
        out.info("Run 'pydrivesync init' to authenticate again")
        ctx.exit(1)
        return
    except DriveAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)
        return
    except DriveSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if outcome.status is SyncStatus.FAILED:
        ctx.exit(1)


@main.command("clear-cache")
@click.pass_context
def clear_cache(ctx: Any) -> None:
    """Forget the recorded sync state of every file.

    The next sync compares every file from scratch. Files present on both
    sides are reconciled by the conflict policy.
    """
    out: OutputFormatter = ctx.obj["out"]
    try:
        SyncStateManager(config.get_config_path()).clear_state()
    except OSError as e:
        out.error(f"Failed to clear cache: {e}")
        ctx.exit(1)
        return
    out.success("✓ File state cache cleared")


@main.group()
@click.pass_context
def folders(ctx: Any) -> None:
    """Manage the vault folders that are synced."""


@folders.command("list")
@click.pass_context
def folders_list(ctx: Any) -> None:
    """Show the selected folders."""
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)

    if out.json_output:
        out.output_json(
            {
                "syncWholeVault": settings.sync_whole_vault,
                "includeSubfolders": settings.include_subfolders,
                "selectedScopes": settings.selected_scopes,
            }
        )
        return

    if settings.sync_whole_vault:
        out.info("Syncing the whole vault")
    if not settings.selected_scopes:
        out.info("No folders selected")
        return
    out.output_table(
        settings.selected_scopes,
        ["path", "name"],
        {"path": "Path", "name": "Name"},
    )


@folders.command("add")
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def folders_add(ctx: Any, paths: tuple[str, ...]) -> None:
    """Select vault folders to sync (disables whole-vault sync)."""
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    for path in paths:
        if settings.add_scope(path):
            out.success(f"Added folder: {path.strip('/')}")
        else:
            out.warning(f"Folder already selected: {path}")
    settings.sync_whole_vault = False
    config.save(settings)


@folders.command("remove")
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def folders_remove(ctx: Any, paths: tuple[str, ...]) -> None:
    """Stop syncing vault folders."""
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    for path in paths:
        if settings.remove_scope(path):
            out.success(f"Removed folder: {path.strip('/')}")
        else:
            out.warning(f"Folder not selected: {path}")
    config.save(settings)


if __name__ == "__main__":
    main()
