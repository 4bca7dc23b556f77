"""Markdown rendering of question prompts for students."""
from __future__ import annotations

import bleach
from bleach.callbacks import nofollow, target_blank
import markdown

_MARKDOWN_EXTENSIONS = [
    "markdown.extensions.extra",
    "markdown.extensions.sane_lists",
]

# Prompts are authored by teachers but shown to every eligible student.
PROMPT_TAGS = frozenset(
    {
        "a", "b", "blockquote", "br", "code", "em", "i", "img", "li", "ol", "p",
        "pre", "strong", "sub", "sup", "table", "tbody", "td", "th", "thead", "tr", "ul",
    }
)
PROMPT_ATTRIBUTES = {
    "a": ["href", "title"],
    "img": ["src", "alt", "title"],
    "td": ["colspan", "rowspan"],
    "th": ["colspan", "rowspan"],
}
PROMPT_PROTOCOLS = frozenset({"http", "https", "mailto"})


def sanitize_prompt_html(html: str) -> str:
    cleaned = bleach.clean(
        html,
        tags=PROMPT_TAGS,
        attributes=PROMPT_ATTRIBUTES,
        protocols=PROMPT_PROTOCOLS,
        strip=True,
    )
    return bleach.linkify(cleaned, callbacks=[nofollow, target_blank])


def render_prompt(prompt: str | None) -> str:
    """Render a markdown question prompt to sanitized HTML."""
    if not prompt:
        return ""
    html = markdown.markdown(
        prompt,
        extensions=_MARKDOWN_EXTENSIONS,
        output_format="html5",
    )
    return sanitize_prompt_html(html)
