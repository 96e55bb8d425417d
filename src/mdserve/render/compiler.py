"""Markdown to HTML page compilation.

Rendering goes through three stages: Python-Markdown turns the source into
HTML, nh3 sanitizes that HTML against a user-generated-content allow-list and
Jinja2 wraps the result in the themed page template.

Fenced and indented code blocks are highlighted server side by Pygments
through the ``codehilite`` extension. The matching stylesheet for each theme
comes from :func:`highlight_css`.
"""

from __future__ import annotations

import functools
import logging
from typing import Dict, Set

import markdown
import nh3
from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape
from pygments.formatters import HtmlFormatter

from mdserve.errors import CompilationError

LOGGER = logging.getLogger(__name__)

# Common extension profile; heading ids come from ``toc``. No math extension.
MARKDOWN_EXTENSIONS = [
    "extra",
    "sane_lists",
    "toc",
    "codehilite",
    "pymdownx.tilde",
    "pymdownx.magiclink",
]

HIGHLIGHT_CLASS = "codehilite"

HIGHLIGHT_STYLES = {"dark": "monokai", "light": "default"}

LINK_REL = "nofollow noopener noreferrer"


class CodeFormatter(HtmlFormatter):
    """Pygments HTML formatter that tags ``<code>`` with its language class."""

    def __init__(self, lang_str: str = "", **options) -> None:
        super().__init__(**options)
        self.lang_str = lang_str

    def _wrap_code(self, inner):
        if self.lang_str:
            yield 0, f'<code class="{self.lang_str}">'
        else:
            yield 0, "<code>"
        yield from inner
        yield 0, "</code>"


MARKDOWN_CONFIG = {
    "codehilite": {
        "css_class": HIGHLIGHT_CLASS,
        "guess_lang": False,
        "pygments_formatter": CodeFormatter,
    },
}


def _build_attributes() -> Dict[str, Set[str]]:
    attributes = {tag: set(attrs) for tag, attrs in nh3.ALLOWED_ATTRIBUTES.items()}
    # footnote and heading anchors
    attributes.setdefault("*", set()).add("id")
    # highlighting: wrapper div, language class on <code>, token spans
    for tag in ("div", "code", "span"):
        attributes.setdefault(tag, set()).add("class")
    return attributes


ALLOWED_TAGS: Set[str] = set(nh3.ALLOWED_TAGS)
ALLOWED_ATTRIBUTES: Dict[str, Set[str]] = _build_attributes()

environment = Environment(
    loader=PackageLoader("mdserve", "templates"),
    autoescape=select_autoescape(["html"]),
    keep_trailing_newline=True,
)


def render_markdown(source: str) -> str:
    """Render markdown source to (unsanitized) HTML."""
    return markdown.markdown(
        source,
        extensions=MARKDOWN_EXTENSIONS,
        extension_configs=MARKDOWN_CONFIG,
        output_format="html",
    )


def sanitize_html(html: str) -> str:
    """Strip everything outside the allow-list, dropping script and style content."""
    return nh3.clean(
        html,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        link_rel=LINK_REL,
    )


@functools.lru_cache(maxsize=None)
def highlight_css(theme: str) -> str:
    """Stylesheet for highlighted code blocks under ``theme``.

    Raises :class:`KeyError` for an unknown theme.
    """
    formatter = HtmlFormatter(style=HIGHLIGHT_STYLES[theme])
    return formatter.get_style_defs(f".{HIGHLIGHT_CLASS}")


def compile_document(title: str, theme: str, content: bytes) -> bytes:
    """Compile raw markdown into a complete, standalone HTML page.

    The output only depends on the arguments, so identical inputs always give
    byte-identical pages. Markdown never fails to parse; only template
    problems raise :class:`CompilationError`.
    """
    source = content.decode("utf-8", errors="replace")
    body = sanitize_html(render_markdown(source))
    try:
        page = environment.get_template("page.html").render(title=title, theme=theme, body=body)
    except TemplateError as exc:
        LOGGER.error("Failed to render page %s: %s", title, exc)
        raise CompilationError(f"could not render {title}") from exc
    return page.encode("utf-8")
