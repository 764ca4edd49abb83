#!/usr/bin/env python3
"""
resourcegraph CLI - Main entry point.

Usage:
    resourcegraph serve shop.api:graph          # Run the API with uvicorn
    resourcegraph describe shop.api:graph       # Print registered resources
    resourcegraph flush-cache                   # Invalidate the whole cache
    resourcegraph flush-cache products 5        # Invalidate one item
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from .. import __version__
from ..cache.client import RedisClient
from ..cache.response_cache import ResponseCache
from ..config import Settings, load_settings
from ..engine import ResourceGraph


def setup_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_target(target: str) -> Any:
    """
    Import "module.path:attribute".

    The working directory is importable, as with uvicorn.
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got '{target}'")

    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'")


def cmd_serve(args: argparse.Namespace) -> int:
    """Run an application with uvicorn."""
    import uvicorn

    settings = load_settings(args.config)
    setup_logging(settings)

    try:
        target = load_target(args.app)
    except (ImportError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    app = target.app if isinstance(target, ResourceGraph) else target
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


def cmd_describe(args: argparse.Namespace) -> int:
    """Print capability descriptors of a ResourceGraph."""
    try:
        target = load_target(args.app)
    except (ImportError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    if not isinstance(target, ResourceGraph):
        print(f"Error: {args.app} is not a ResourceGraph")
        return 1

    print(json.dumps(target.describe(), indent=2))
    return 0


async def _flush(settings: Settings, resource: Optional[str], identifier: Optional[str]) -> bool:
    client = RedisClient(settings.redis_url)
    await client.connect()
    try:
        cache = ResponseCache(client, prefix=settings.cache_prefix, ttl=settings.cache_ttl, enabled=True)
        return await cache.flush(resource, identifier)
    finally:
        await client.disconnect()


def cmd_flush_cache(args: argparse.Namespace) -> int:
    """Invalidate cached responses."""
    settings = load_settings(args.config)
    setup_logging(settings)

    if args.identifier is not None and args.resource is None:
        print("Error: an identifier requires a resource")
        return 1

    if not asyncio.run(_flush(settings, args.resource, args.identifier)):
        print("Error: cache flush failed (see log)")
        return 1

    scope = "/".join(p for p in (args.resource, args.identifier) if p) or "all resources"
    print(f"Cache flushed: {scope}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="resourcegraph",
        description="resourcegraph - capability-bounded REST resources",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("app", help="module:attribute of a ResourceGraph or ASGI app")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    serve_parser.add_argument("--port", "-p", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--config", "-c", help="YAML settings file")

    # describe
    describe_parser = subparsers.add_parser("describe", help="Print registered resources as JSON")
    describe_parser.add_argument("app", help="module:attribute of a ResourceGraph")

    # flush-cache
    flush_parser = subparsers.add_parser("flush-cache", help="Invalidate cached responses")
    flush_parser.add_argument("resource", nargs="?", help="Resource name (default: all)")
    flush_parser.add_argument("identifier", nargs="?", help="Item identifier")
    flush_parser.add_argument("--config", "-c", help="YAML settings file")

    return parser


def app(args: Optional[List[str]] = None) -> int:
    """Main CLI application."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 0

    commands = {
        "serve": cmd_serve,
        "describe": cmd_describe,
        "flush-cache": cmd_flush_cache,
    }

    handler = commands.get(parsed.command)
    if handler:
        return handler(parsed)

    parser.print_help()
    return 1


def main() -> None:
    """Entry point for CLI."""
    sys.exit(app())


if __name__ == "__main__":
    main()
