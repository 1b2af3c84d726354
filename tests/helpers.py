# File: tests/helpers.py
"""Shared helpers for building site trees and serving test apps."""
from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Dict

from aiohttp import web


def write_site(root: Path, files: Dict[str, str]) -> Path:
    """Create *files* (relative path → content) under *root* and return *root*."""
    for rel, content in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


def page(body: str = "", head: str = "", doctype: bool = True) -> str:
    """Minimal HTML document."""
    prefix = "<!DOCTYPE html>\n" if doctype else ""
    return f"{prefix}<html><head>{head}</head><body>{body}</body></html>"


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()
