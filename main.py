"""CLI entrypoint: run the list synchronization engine once or continuously."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional

from config import Settings
from core import RunSummary
from orchestrator import Orchestrator, PageRef
from utils.logger import configure_from_settings, get_logger
from webapp.runtime import get_orchestrator


def _load_settings(args: argparse.Namespace) -> Settings:
    if args.config:
        settings = Settings.load_from_json(Path(args.config))
    else:
        settings = Settings.load_from_env_file()
    if args.dry_run:
        settings.wiki.dry_run = True
    if getattr(args, "workers", None):
        settings.orchestrator.max_workers = int(args.workers)
    return settings


def _print_summary(summary: RunSummary) -> None:
    payload = summary.model_dump(mode="json")
    payload["brief"] = summary.brief()
    print(json.dumps(payload, ensure_ascii=False))


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers
            pass


async def _run_once(orchestrator: Orchestrator, pages: Optional[list] = None) -> RunSummary:
    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)
    try:
        return await orchestrator.run_once(pages, stop_event=stop_event)
    finally:
        await orchestrator.close()


async def _run_daemon(orchestrator: Orchestrator, status_port: Optional[int], host: str) -> RunSummary:
    stop_event = asyncio.Event()
    _install_stop_handlers(stop_event)
    try:
        if not status_port:
            return await orchestrator.run_continuous(stop_event)

        import uvicorn

        server = uvicorn.Server(uvicorn.Config("webapp.status_app:app", host=host, port=status_port, log_level="warning"))
        server.install_signal_handlers = lambda: None
        serve_task = asyncio.create_task(server.serve())
        try:
            return await orchestrator.run_continuous(stop_event)
        finally:
            server.should_exit = True
            await serve_task
    finally:
        await orchestrator.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Wikidata list synchronization CLI")
    parser.add_argument("--config", default="", help="JSON settings file (default: environment / config/.env)")
    parser.add_argument("--dry-run", action="store_true", help="Compute edits without saving them")
    parser.add_argument("--workers", type=int, default=0, help="Override the max jobs in flight")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("once", help="Process every page once and exit")

    daemon = sub.add_parser("daemon", help="Repeat cycles until interrupted")
    daemon.add_argument("--status-port", type=int, default=0, help="Serve the status API on this port")
    daemon.add_argument("--host", default="127.0.0.1")

    page = sub.add_parser("page", help="Process a single page")
    page.add_argument("title")
    page.add_argument("--namespace", type=int, default=0)

    args = parser.parse_args()
    settings = _load_settings(args)
    configure_from_settings(settings)
    logger = get_logger(__name__)
    orchestrator = get_orchestrator(settings)

    if args.command == "once":
        summary = asyncio.run(_run_once(orchestrator))
    elif args.command == "page":
        summary = asyncio.run(_run_once(orchestrator, [PageRef(title=args.title, namespace=args.namespace)]))
    else:
        logger.info(f"Starting continuous mode (interval {settings.orchestrator.cycle_interval_sec}s)")
        summary = asyncio.run(_run_daemon(orchestrator, args.status_port, args.host))

    _print_summary(summary)
    if not summary.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
