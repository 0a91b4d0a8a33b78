"""CLI entry point for zapview.

Opens one view on the given relays, waits for the initial backfill, loads
up to ``--pages`` more pages, optionally follows live receipts, then logs
every cached receipt and the aggregate statistics.

Exit codes: ``0`` success, ``1`` failure, ``2`` undecodable identifier,
``130`` interrupted.

Examples:
    ```bash
    python -m zapview npub1... --relay wss://relay.damus.io --relay wss://nos.lol
    python -m zapview note1... --relay wss://relay.damus.io --pages 2 --follow 60
    zapview nprofile1... --config config/zapview.yaml --log-level DEBUG
    ```
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from zapview.core.exceptions import ConfigurationError
from zapview.core.logger import Logger, setup_logging
from zapview.models import Event
from zapview.services import ViewConfig, ZapView, ZapViewConfig, load_config
from zapview.utils.nip19 import decode, encode_note, encode_npub, shorten_identifier


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNDECODABLE = 2
EXIT_INTERRUPTED = 130

BACKFILL_MARGIN_S = 5.0

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="zapview",
        description="Fetch and follow the zaps of a Nostr profile or event",
    )

    parser.add_argument(
        "identifier",
        help="npub, nprofile, note or nevent to show zaps for",
    )

    parser.add_argument(
        "--relay",
        dest="relays",
        action="append",
        default=[],
        metavar="URL",
        help="Relay to subscribe to (repeatable; nprofile/nevent hints are added)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="ZapView YAML config path",
    )

    parser.add_argument(
        "--pages",
        type=int,
        default=0,
        help="Additional pages to load after the backfill (default: 0)",
    )

    parser.add_argument(
        "--follow",
        type=float,
        default=0.0,
        metavar="SECONDS",
        help="Follow live zaps for this many seconds (default: 0)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    return parser.parse_args(argv)


def format_zap(zap_view: ZapView, event: Event) -> str:
    """One display line for a receipt, cached in the ``fragments`` cache."""
    fragments = zap_view.context.fragments
    cached = fragments.get(event.id)
    if cached is not None:
        return cached

    zap = event.zap
    amount = zap.amount_sats if zap is not None else None
    sender = zap.sender_pubkey if zap is not None else None
    name = "anonymous"
    if sender is not None:
        profile = zap_view.profiles.get_cached(sender)
        name = profile.name if profile is not None else shorten_identifier(encode_npub(sender) or "")
        nip05 = zap_view.context.nip05.peek(sender)
        if nip05:
            name = f"{name} ({nip05})"

    line = f"{amount if amount is not None else '?'} sats from {name}"
    if zap is not None and zap.comment:
        line += f": {zap.comment}"
    if event.reference is not None:
        target = encode_note(event.reference.id) or event.reference.id[:16]
        line += f" [re {shorten_identifier(target)}]"
    fragments.set(event.id, line)
    return line


def build_view_config(args: argparse.Namespace, config: ZapViewConfig) -> ViewConfig:
    """Build the CLI view.

    Settings come from a configured view with the same identifier when
    there is one; ``--relay`` URLs and the identifier's own relay hints are
    added to its relays.

    Raises:
        pydantic.ValidationError: If the resulting view is invalid (for
            example, no relay at all).
    """
    base: dict[str, Any] = next(
        (v.model_dump() for v in config.views if v.identifier == args.identifier),
        {},
    )
    relays = [*base.get("relay_urls", []), *args.relays]
    decoded = decode(args.identifier)
    if decoded is not None:
        relays.extend(r for r in decoded.relays if r.startswith(("ws://", "wss://")))
    return ViewConfig(**{**base, "identifier": args.identifier, "relay_urls": relays})


async def run_view(
    zap_view: ZapView,
    view: ViewConfig,
    *,
    pages: int,
    follow: float,
    stop: asyncio.Event,
) -> int:
    """Run one view to completion and log its receipts and statistics.

    Returns:
        Exit code.
    """
    view_id = view.resolved_view_id
    state = await zap_view.initialize_view(view_id, view)
    if state is None:
        logger.error("identifier_undecodable", identifier=view.identifier[:24])
        return EXIT_UNDECODABLE

    transport = zap_view.config.transport
    backfill_timeout = transport.connect_timeout_s + transport.stream_timeout_s + BACKFILL_MARGIN_S
    if not await zap_view.wait_for_backfill(view_id, timeout=backfill_timeout):
        logger.warning("backfill_timeout", view_id=view_id, timeout_s=backfill_timeout)

    for page in range(pages):
        added = await zap_view.load_more(view_id)
        logger.info("page_loaded", view_id=view_id, page=page + 1, added=added)
        if added == 0:
            break

    if follow > 0:

        def on_event(event_view_id: str, event: Event) -> None:
            if event_view_id == view_id and event.is_realtime:
                zap_view.context.fragments.delete(event.id)
                logger.info("zap_live", line=format_zap(zap_view, event))

        remove = zap_view.add_listener(on_event)
        try:
            async with asyncio.timeout(follow):
                await stop.wait()
        except TimeoutError:
            pass
        finally:
            remove()
        if stop.is_set():
            return EXIT_INTERRUPTED

    await zap_view.settle(view_id)
    for event in zap_view.get_cached_events(view_id):
        logger.info("zap", line=format_zap(zap_view, event))

    snapshot = zap_view.get_aggregate_stats(view_id)
    if snapshot.is_available and snapshot.stats is not None:
        logger.info(
            "stats",
            view_id=view_id,
            count=snapshot.stats.count,
            sats=snapshot.stats.total_msats // 1000,
            max_sats=snapshot.stats.max_msats // 1000,
        )
    else:
        logger.info("stats", view_id=view_id, status=snapshot.status)
    logger.info("view_done", view_id=view_id, events=len(state), no_results=state.no_results)
    return EXIT_OK


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, build the ZapView and run one view."""
    args = parse_args(argv)
    setup_logging(args.log_level, json_output=args.json_logs)

    if decode(args.identifier) is None:
        logger.error("identifier_undecodable", identifier=args.identifier[:24])
        return EXIT_UNDECODABLE

    try:
        config = load_config(args.config) if args.config else ZapViewConfig()
        view = build_view_config(args, config)
    except (ConfigurationError, ValidationError) as e:
        logger.error("configuration_invalid", error=str(e))
        return EXIT_FAILURE

    if config.json_logs and not args.json_logs:
        setup_logging(args.log_level, json_output=True)
    # The CLI runs exactly one view; configured views only contribute settings.
    config = config.model_copy(update={"views": []})

    stop = asyncio.Event()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        async with ZapView(config) as zap_view:
            return await run_view(
                zap_view, view, pages=max(args.pages, 0), follow=args.follow, stop=stop
            )
    except KeyboardInterrupt:
        logger.info("interrupted")
        return EXIT_INTERRUPTED
    except Exception as e:  # Intentionally broad: CLI error boundary
        logger.error("zapview_failed", error=str(e), error_type=type(e).__name__)
        return EXIT_FAILURE


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
