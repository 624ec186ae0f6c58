"""Sanitizing markdown renderer.

Untrusted message text becomes HTML in four steps: GFM-flavored markdown with
hard line breaks, pygments highlighting for fenced code, an nh3 allow-list pass,
and a collapsible ``<details>`` wrapper around each code block. Output is
deterministic and rendering never raises.
"""

from __future__ import annotations

import html
import re
from collections.abc import Iterable
from functools import lru_cache

import nh3
from loguru import logger
from markdown_it import MarkdownIt
from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, get_lexer_by_name
from pygments.util import ClassNotFound

from chatline.conversation.models import Role, Turn

LANGUAGE_CLASS_PREFIX = "language-"
PLAIN_LANGUAGE = "plaintext"

ALLOWED_TAGS = {
    "a", "b", "blockquote", "br", "code", "del", "details", "div", "em", "h1", "h2", "h3",
    "h4", "h5", "h6", "hr", "i", "img", "li", "ol", "p", "pre", "s", "span", "strong",
    "summary", "table", "tbody", "td", "th", "thead", "tr", "ul",
}  # fmt: skip
ALLOWED_ATTRIBUTES = {
    "*": {"class"},
    "a": {"href", "title"},
    "img": {"src", "alt", "title"},
    "td": {"style"},
    "th": {"style"},
}
ALLOWED_STYLE_PROPERTIES = {"text-align"}
ALLOWED_URL_SCHEMES = {"http", "https", "mailto"}

# Inline tags outside this set are prose such as ``List<int>`` and are shown as text.
HTML_ELEMENTS = frozenset({
    "a", "abbr", "acronym", "address", "applet", "area", "article", "aside", "audio", "b",
    "base", "basefont", "bdi", "bdo", "big", "blink", "blockquote", "body", "br", "button",
    "canvas", "caption", "center", "cite", "code", "col", "colgroup", "data", "datalist",
    "dd", "del", "details", "dfn", "dialog", "dir", "div", "dl", "dt", "em", "embed",
    "fieldset", "figcaption", "figure", "font", "footer", "form", "frame", "frameset",
    "h1", "h2", "h3", "h4", "h5", "h6", "head", "header", "hgroup", "hr", "html", "i",
    "iframe", "img", "input", "ins", "kbd", "label", "legend", "li", "link", "main", "map",
    "mark", "marquee", "math", "menu", "meta", "meter", "nav", "noembed", "noframes",
    "noscript", "object", "ol", "optgroup", "option", "output", "p", "param", "picture",
    "plaintext", "pre", "progress", "q", "rp", "rt", "ruby", "s", "samp", "script",
    "search", "section", "select", "slot", "small", "source", "span", "strike", "strong",
    "style", "sub", "summary", "sup", "svg", "table", "tbody", "td", "template", "textarea",
    "tfoot", "th", "thead", "time", "title", "tr", "track", "tt", "u", "ul", "var", "video",
    "wbr", "xmp",
})  # fmt: skip

_PRE_BLOCK_RE = re.compile(r"<pre>(?P<body>.*?)</pre>", re.DOTALL)
_LANGUAGE_CLASS_RE = re.compile(r'<code class="[^"]*\blanguage-(?P<lang>[\w+#.-]+)')
_INLINE_TAG_RE = re.compile(r"^</?(?P<name>[A-Za-z][A-Za-z0-9-]*)")

_FORMATTER = HtmlFormatter(nowrap=True)


@lru_cache(maxsize=64)
def _lexer_for(language: str) -> Lexer:
    if not language:
        return TextLexer()
    try:
        return get_lexer_by_name(language)
    except ClassNotFound:
        return TextLexer()


def highlight_code(code: str, language: str, _attrs: str = "") -> str:
    """Render one fenced block as ``<pre><code>`` with pygments spans."""
    lexer = _lexer_for(language.strip().lower())
    label = language.strip().lower() if not isinstance(lexer, TextLexer) else PLAIN_LANGUAGE
    try:
        body = pygments_highlight(code, lexer, _FORMATTER)
    except Exception:
        logger.exception("render.highlight.error language={}", language)
        body = html.escape(code)
        label = PLAIN_LANGUAGE
    return f'<pre><code class="highlight {LANGUAGE_CLASS_PREFIX}{html.escape(label)}">{body}</code></pre>\n'


# Raw HTML passes the parser on purpose: nh3 is the single gate for markup.
_PARSER = MarkdownIt("gfm-like", {"breaks": True, "html": True, "highlight": highlight_code})


def _render_html_inline(self, tokens, idx, options, env) -> str:
    content = tokens[idx].content
    match = _INLINE_TAG_RE.match(content)
    if match is not None and match.group("name").lower() not in HTML_ELEMENTS:
        return html.escape(content, quote=False)
    return content


_PARSER.add_render_rule("html_inline", _render_html_inline)


def sanitize(markup: str) -> str:
    return nh3.clean(
        markup,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        url_schemes=ALLOWED_URL_SCHEMES,
        filter_style_properties=ALLOWED_STYLE_PROPERTIES,
        link_rel="noopener noreferrer",
    )


def wrap_code_blocks(markup: str) -> str:
    """Wrap every ``<pre>`` block in a details element that starts expanded."""

    def _wrap(match: re.Match[str]) -> str:
        lang_match = _LANGUAGE_CLASS_RE.search(match.group("body"))
        label = lang_match.group("lang") if lang_match else "code"
        if label == PLAIN_LANGUAGE:
            label = "code"
        return (
            '<details class="code-block" open>'
            f"<summary>{html.escape(label)}</summary>"
            f"{match.group(0)}"
            "</details>"
        )

    return _PRE_BLOCK_RE.sub(_wrap, markup)


def render(raw_text: str) -> str:
    """Turn untrusted markdown into sanitized, highlighted HTML."""
    try:
        markup = _PARSER.render(raw_text)
    except Exception:
        logger.exception("render.parse.error")
        markup = f"<p>{html.escape(raw_text)}</p>"
    try:
        safe = sanitize(markup)
    except Exception:
        logger.exception("render.sanitize.error")
        return f"<p>{html.escape(raw_text)}</p>"
    return wrap_code_blocks(safe)


def render_transcript(turns: Iterable[Turn], draft: str | None = None) -> str:
    """Render a conversation as a sequence of message blocks."""
    blocks: list[str] = []
    for turn in turns:
        role_class = "user" if turn.role is Role.USER else "assistant"
        blocks.append(f'<div class="message {role_class}"><div class="content">{render(turn.content)}</div></div>')
    if draft is not None:
        blocks.append(f'<div class="message assistant pending"><div class="content">{render(draft)}</div></div>')
    return '<div class="chat-container">\n' + "\n".join(blocks) + "\n</div>\n"


def render_document(turns: Iterable[Turn], *, title: str = "chatline conversation") -> str:
    """Render a standalone HTML page for a conversation, with highlight styles."""
    styles = _FORMATTER.get_style_defs(".highlight")
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n<meta charset="utf-8">\n'
        f"<title>{html.escape(title)}</title>\n"
        f"<style>\n{styles}\n</style>\n"
        "</head>\n<body>\n"
        f"{render_transcript(turns)}"
        "</body>\n</html>\n"
    )
