"""Directory listing served at the site root."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List

import humanize
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse
from jinja2 import TemplateError

from mdserve.models import ListingEntry
from mdserve.render.compiler import environment
from mdserve.utils.files import format_name, iter_documents

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def scan_documents(root: Path, suffix: str) -> List[ListingEntry]:
    """Collect every document under ``root`` with display metadata."""
    entries: List[ListingEntry] = []
    for document in iter_documents(root, suffix):
        entries.append(
            ListingEntry(
                name=format_name(document.path, suffix),
                modified=humanize.naturaltime(datetime.fromtimestamp(document.mtime)),
                size=humanize.naturalsize(document.size),
                path="/" + document.path,
                doc_id=document.path,
            )
        )
    return entries


def render_listing(entries: List[ListingEntry], theme: str) -> str:
    template = environment.get_template("index.html")
    return template.render(title="Index", theme=theme, entries=entries)


@router.api_route("/", methods=["GET", "HEAD"], response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    config = request.app.state.config
    try:
        entries = await asyncio.to_thread(scan_documents, config.root_dir, config.suffix)
        html = render_listing(entries, config.theme)
    except (OSError, TemplateError) as exc:
        LOGGER.error("Could not build index page for %s: %s", config.root_dir, exc)
        raise HTTPException(status_code=502, detail="could not serve index") from exc
    return HTMLResponse(content=html)
