"""Rich text helpers for question, option and explanation text.

Architecture note:
    Backend content is mostly plain text, but past questions frequently carry
    LaTeX (``\\frac``, ``\\(..\\)``, ``$$..$$``) and small inline HTML such as
    ``<sup>`` or ``<br>``. Plain strings are passed to the UI untouched; only
    rich content is rendered to HTML, and math is typeset on the client by
    KaTeX auto-render. Math spans are lifted out before markdown rendering and
    restored afterwards, since markdown would otherwise eat the backslashes in
    ``\\(`` and ``\\[``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import html
import re

from markdown_it import MarkdownIt

_KATEX_VERSION = "0.16.9"
_KATEX_BASE = f"https://cdn.jsdelivr.net/npm/katex@{_KATEX_VERSION}/dist"

_LATEX_MARKERS = ("\\[", "\\(", "$$", "\\text{", "\\frac", "\\sqrt")
_HTML_MARKERS = ("<br", "<p", "<b", "<i", "<span", "<sub", "<sup", "<strong", "<em")

_MATH_SPAN = re.compile(r"\$\$.+?\$\$|\\\[.+?\\\]|\\\(.+?\\\)|\$[^$\n]+?\$", re.DOTALL)
_PLACEHOLDER = "\ue000{}\ue001"
_PLACEHOLDER_PATTERN = re.compile("\ue000(\\d+)\ue001")


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts question text with markdown, HTML and LaTeX into HTML."""

    enable_html: bool = True
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html, "breaks": True})
            .enable("table")
            .enable("strikethrough")
        )

    @staticmethod
    def has_rich_markup(text: str | None) -> bool:
        """Return True if the text needs HTML rendering rather than plain display."""
        if not isinstance(text, str) or not text:
            return False
        if any(marker in text for marker in _LATEX_MARKERS):
            return True
        lowered = text.lower()
        return any(marker in lowered for marker in _HTML_MARKERS)

    def render_fragment(self, text: str) -> str:
        """Render text into an HTML fragment, leaving math for KaTeX."""
        sanitized = (text or "").strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"

        math_spans: list[str] = []

        def _stash(match: re.Match[str]) -> str:
            math_spans.append(match.group(0))
            return _PLACEHOLDER.format(len(math_spans) - 1)

        protected = _MATH_SPAN.sub(_stash, sanitized)
        rendered = self._markdown.render(protected)
        return _PLACEHOLDER_PATTERN.sub(lambda m: html.escape(math_spans[int(m.group(1))]), rendered)

    def render_display(self, text: str | None) -> dict[str, object]:
        """Payload for the UI: plain text as-is, rich text as an HTML fragment."""
        if not self.has_rich_markup(text):
            return {"text": text or "", "html": None}
        return {"text": text, "html": self.render_fragment(text or "")}

    def wrap_with_katex(self, body_html: str, title: str = "ScholarQuiz") -> str:
        """Wrap a fragment inside a minimal HTML document that runs KaTeX auto-render."""

        return f"""<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <title>{html.escape(title)}</title>
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0, maximum-scale=1.0, user-scalable=no\" />
    <link rel=\"stylesheet\" href=\"{_KATEX_BASE}/katex.min.css\" />
    <script defer src=\"{_KATEX_BASE}/katex.min.js\"></script>
    <script defer src=\"{_KATEX_BASE}/contrib/auto-render.min.js\"
      onload=\"renderMathInElement(document.body, {{delimiters: [
        {{left: '$$', right: '$$', display: true}},
        {{left: '\\\\[', right: '\\\\]', display: true}},
        {{left: '\\\\(', right: '\\\\)', display: false}},
        {{left: '$', right: '$', display: false}}
      ]}});\"></script>
    <style>
      body {{ font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; margin: 0; padding: 4px; background: transparent; }}
      #content {{ width: 100%; word-wrap: break-word; white-space: pre-line; }}
      .katex {{ font-size: 1.1em; }}
    </style>
  </head>
  <body>
    <div id=\"content\">{body_html}</div>
  </body>
</html>"""

    def render_full_document(self, text: str, title: str = "ScholarQuiz") -> str:
        fragment = self.render_fragment(text)
        return self.wrap_with_katex(fragment, title=title)


# Shared by the bridge handlers.
renderer = MarkdownMathRenderer()
