"""
Command line entry point.

    python -m gp_backend.cli crawl [--db PATH]
    python -m gp_backend.cli status [--db PATH]
    python -m gp_backend.cli serve [--db PATH] [--host HOST] [--port PORT]

The access token is read from GEOPIC_ACCESS_TOKEN.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys

from aiohttp import web

from .deps import build_services
from .features.crawl.progress import ProgressUpdate
from .features.geo.models import GeoItem
from .routes import create_app
from .shared import get_logger

logger = get_logger(__name__)


def _print_progress(update: ProgressUpdate) -> None:
    if update and isinstance(update[0], GeoItem):
        return
    print("\n".join(str(line) for line in update), file=sys.stderr, flush=True)


async def _run(command: str, db_path: str | None) -> int:
    built = await build_services(db_path)
    if not built.ok or built.data is None:
        print(f"error: {built.error}", file=sys.stderr)
        return 2
    services = built.data
    index = services["index"]
    try:
        if command == "status":
            res = await index.status()
        else:
            res = await index.refresh(progress=_print_progress)
            if res.ok and res.data is not None:
                print(f"indexed {len(res.data.geo_items)} photos in {len(res.data.folders)} folders", file=sys.stderr)
                res = await index.status()
        if not res.ok:
            print(f"error: [{res.code}] {res.error}", file=sys.stderr)
            return 1
        print(json.dumps(res.data, indent=2, default=str))
        return 0
    finally:
        await services["db"].aclose()
        if services.get("session") is not None:
            await services["session"].close()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="gp_backend.cli", description="Index geotagged photos from OneDrive.")
    p.add_argument("command", choices=["crawl", "status", "serve"])
    p.add_argument("--db", type=str, default=None, help="Local index database path (default: GEOPIC_INDEX_DB)")
    p.add_argument("--host", type=str, default="127.0.0.1")
    p.add_argument("--port", type=int, default=8188)
    args = p.parse_args(argv)

    if args.command == "serve":
        web.run_app(create_app(args.db), host=args.host, port=args.port)
        return 0
    return asyncio.run(_run(args.command, args.db))


if __name__ == "__main__":
    raise SystemExit(main())
