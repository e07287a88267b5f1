"""CLI interface for pyobjsync."""

import asyncio
import logging
import signal
from typing import Any, Optional, Union

import click

from .api import ObjectStoreClient
from .cli_progress import SyncProgressDisplay
from .config import config
from .exceptions import (
    CancellationError,
    ConfigurationError,
    StorageAPIError,
    SyncError,
)
from .models import GATEWAY_SCHEME, Collection, ObjectDescriptor
from .output import OutputFormatter
from .s3 import S3ObjectStore
from .sync import (
    FilterRule,
    MetadataOptions,
    Relocation,
    RemoteEnumerator,
    SyncEngine,
    SyncOperation,
    SyncOptions,
    SyncScenario,
    TransferMonitor,
    guess_content_type,
)
from .utils import format_size

logger = logging.getLogger(__name__)

Store = Union[S3ObjectStore, ObjectStoreClient]


def _parse_filters(ctx: Any, param: Any, values: tuple[str, ...]) -> list[FilterRule]:
    """Click callback turning --filter values into rules, order preserved."""
    try:
        return [FilterRule.parse(value) for value in values]
    except ConfigurationError as e:
        raise click.BadParameter(str(e)) from e


def _parse_relocations(
    ctx: Any, param: Any, values: tuple[str, ...]
) -> list[Relocation]:
    """Click callback turning SRC:DST values into relocations."""
    relocations = []
    for value in values:
        source_prefix, sep, target_prefix = value.partition(":")
        if not sep:
            raise click.BadParameter(f"Expected SRC:DST, got {value!r}")
        try:
            relocations.append(Relocation(source_prefix, target_prefix))
        except ConfigurationError as e:
            raise click.BadParameter(str(e)) from e
    return relocations


def _require_api_key(ctx: Any) -> Optional[str]:
    """Return the API key from the command line, exit if none is configured."""
    api_key = ctx.obj.get("api_key")
    out: OutputFormatter = ctx.obj["out"]
    if not api_key and not config.is_configured():
        out.error("API key not configured.")
        out.info("Run 'pyobjsync init' to configure your API key")
        ctx.exit(1)
    return api_key


def _create_store(ctx: Any, *collections: Collection) -> Store:
    """Create the object store serving the remote collections.

    gw:// collections go through the HTTP gateway and need an API key,
    s3:// collections use boto3 and its credential chain.
    """
    schemes = {c.scheme for c in collections if not c.is_local}
    if GATEWAY_SCHEME in schemes:
        return ObjectStoreClient(api_key=_require_api_key(ctx))
    return S3ObjectStore(
        endpoint_url=config.s3_endpoint_url, region_name=config.s3_region
    )


@click.group()
@click.option(
    "--api-key",
    "-k",
    envvar="PYOBJSYNC_API_KEY",
    help="HTTP gateway API key (gw:// collections)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pyobjsync")
@click.pass_context
def main(
    ctx: Any,
    api_key: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pyobjsync - Mirror local directories and object storage prefixes."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pyobjsync").setLevel(logging.DEBUG)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--api-key",
    "-k",
    prompt="Enter your gateway API key",
    help="HTTP gateway API key",
)
@click.pass_context
def init(ctx: Any, api_key: str) -> None:
    """Initialize pyobjsync configuration.

    Stores your gateway API key in ~/.config/pyobjsync/config for future
    use. s3:// collections use the standard AWS credential chain instead.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        config.save_api_key(api_key)
    except OSError as e:
        out.error(f"Initialization failed: {e}")
        ctx.exit(1)

    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "✓ Configuration saved successfully"),
            ("Config file", str(config.get_config_path())),
            ("API URL", config.api_url),
            ("Note", "You can now use pyobjsync without specifying --api-key"),
        ],
    )


async def _list_collection(
    client: Store, collection: Collection
) -> list[ObjectDescriptor]:
    async with client:
        return [entry async for entry in RemoteEnumerator(collection, client)]


@main.command()
@click.argument("address", type=str)
@click.pass_context
def ls(ctx: Any, address: str) -> None:
    """List the objects below a remote prefix.

    ADDRESS: Remote collection in format s3://bucket[/prefix] or
    gw://bucket[/prefix]

    Examples:
        pyobjsync ls s3://photos                # List a whole bucket
        pyobjsync ls s3://photos/2024/summer    # List a prefix
        pyobjsync ls gw://photos                # List through the gateway
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        collection = Collection.parse(address)
        if collection.is_local:
            raise ConfigurationError(
                f"Not a remote address: {address} (expected s3://bucket/prefix)"
            )
        client = _create_store(ctx, collection)
        entries = asyncio.run(_list_collection(client, collection))
    except (SyncError, StorageAPIError) as e:
        out.error(f"Error: {e}")
        ctx.exit(1)

    if out.json_output:
        out.output_json(
            [
                {
                    "key": entry.key,
                    "size": entry.size,
                    "last_modified": entry.last_modified.isoformat(),
                }
                for entry in entries
            ]
        )
        return

    if not entries:
        out.info("No objects found.")
        return

    for entry in entries:
        modified = entry.last_modified.strftime("%Y-%m-%d %H:%M:%S")
        out.print(f"{modified}  {format_size(entry.size):>10}  {entry.key}")

    total = sum(entry.size for entry in entries)
    out.info("")
    out.info(f"{len(entries)} object(s), {format_size(total)}")


async def _run_sync(
    client: Store,
    engine: SyncEngine,
    source: Collection,
    target: Collection,
    options: SyncOptions,
    monitor: TransferMonitor,
    show_progress: bool,
) -> list[SyncOperation]:
    """Run one sync call with Ctrl+C wired to the monitor."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, monitor.abort)
        handles_sigint = True
    except (NotImplementedError, RuntimeError):
        # No signal handlers outside the main thread or on Windows
        handles_sigint = False

    try:
        async with client:
            if show_progress:
                with SyncProgressDisplay(monitor):
                    return await engine.sync(source, target, options)
            return await engine.sync(source, target, options)
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)


@main.command()
@click.argument("source", type=str)
@click.argument("target", type=str)
@click.option(
    "--delete",
    is_flag=True,
    help="Delete target objects that do not exist in the source",
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without syncing"
)
@click.option(
    "--size-only",
    is_flag=True,
    help="Compare objects by size only, ignoring modification times",
)
@click.option(
    "--filter",
    "filters",
    multiple=True,
    callback=_parse_filters,
    help="include:PATTERN, exclude:PATTERN, +PATTERN or -PATTERN "
    "(repeatable, the last matching rule wins)",
)
@click.option(
    "--relocate",
    "relocations",
    multiple=True,
    callback=_parse_relocations,
    help="Rewrite source prefix SRC to target prefix DST, as SRC:DST "
    "(repeatable, the first matching rule wins)",
)
@click.option(
    "--max-concurrent",
    "-j",
    type=int,
    default=None,
    help="Number of concurrent transfers (default: 4)",
)
@click.option(
    "--part-size",
    "-c",
    type=int,
    default=None,
    help="Part size in MB for multipart uploads (default: 25MB)",
)
@click.option(
    "--content-type-from-key",
    is_flag=True,
    help="Set Content-Type of uploaded objects from the key's extension",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable progress bars",
)
@click.pass_context
def sync(
    ctx: Any,
    source: str,
    target: str,
    delete: bool,
    dry_run: bool,
    size_only: bool,
    filters: list[FilterRule],
    relocations: list[Relocation],
    max_concurrent: Optional[int],
    part_size: Optional[int],
    content_type_from_key: bool,
    no_progress: bool,
) -> None:
    """Mirror SOURCE onto TARGET.

    SOURCE and TARGET are local directories or remote collections in
    format s3://bucket[/prefix] (S3 through boto3) or gw://bucket[/prefix]
    (HTTP gateway). At least one must be remote, and two remote collections
    must use the same scheme.

    Examples:
        pyobjsync sync ./site s3://www/site             # Upload
        pyobjsync sync s3://www/site ./backup           # Download
        pyobjsync sync s3://www/site s3://archive/site  # Server side copy
        pyobjsync sync ./site s3://www/site --delete --dry-run
        pyobjsync sync ./site s3://www/site --filter "-*" --filter "+*.html"
        pyobjsync sync ./data s3://bkt --relocate "raw/2024:2024"
        pyobjsync sync ./site gw://www/site             # Upload through a gateway
    """
    out: OutputFormatter = ctx.obj["out"]
    monitor = TransferMonitor()

    try:
        source_collection = Collection.parse(source)
        target_collection = Collection.parse(target)
        SyncScenario.resolve(source_collection, target_collection)
        options = SyncOptions(
            delete=delete,
            dry_run=dry_run,
            size_only=size_only,
            filters=filters,
            relocations=relocations,
            max_concurrent_transfers=(
                max_concurrent
                if max_concurrent is not None
                else config.max_concurrent_transfers
            ),
            part_size=(
                part_size * 1024 * 1024 if part_size is not None else config.part_size
            ),
            metadata=MetadataOptions(
                content_type=guess_content_type if content_type_from_key else None
            ),
            monitor=monitor,
        )
        options.validate()
        client = _create_store(ctx, source_collection, target_collection)
    except (ConfigurationError, StorageAPIError) as e:
        out.error(f"Configuration error: {e}")
        ctx.exit(1)

    show_progress = not (dry_run or no_progress or out.quiet or out.json_output)
    engine = SyncEngine(client, output=out)

    try:
        plan = asyncio.run(
            _run_sync(
                client,
                engine,
                source_collection,
                target_collection,
                options,
                monitor,
                show_progress,
            )
        )
    except CancellationError:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
    except (SyncError, StorageAPIError) as e:
        out.error(f"Error: {e}")
        ctx.exit(1)

    if out.json_output:
        progress = monitor.progress
        out.output_json(
            {
                "source": source,
                "target": target,
                "dry_run": dry_run,
                "operations": [operation.to_dict() for operation in plan],
                "bytes_transferred": progress.bytes_current,
            }
        )


if __name__ == "__main__":
    main()
