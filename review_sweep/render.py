"""Comment body rendering utilities."""

from functools import lru_cache

from jinja2 import Environment, PackageLoader, StrictUndefined, select_autoescape

from review_sweep.types import Severity

# Types that Jinja2 can render natively in our templates.
TemplateRow = dict[str, str | int | None]
TemplateContextValue = str | int | bool | list[str] | list[TemplateRow] | None

SEVERITY_EMOJI: dict[Severity, str] = {
    Severity.ERROR: "🔴",
    Severity.WARNING: "🟡",
    Severity.INFO: "🔵",
}

# Agent id -> icon shown next to each finding
AGENT_ICONS: dict[str, str] = {
    "local_llm": "🧠",
    "opencode": "🧑‍💻",
    "pr_agent": "🐺",
    "reviewdog": "🦊",
    "semgrep": "🛡",
    "ai_semantic_review": "🔬",
    "control_flow": "🔀",
}
DEFAULT_AGENT_ICON = "🤖"


def get_agent_icon(agent_id: str) -> str:
    """Return the display icon for an agent, or the default icon if unknown."""
    return AGENT_ICONS.get(agent_id, DEFAULT_AGENT_ICON)


def oneline(text: str | None) -> str:
    """Collapse a multi-line text onto one line.

    Grouped bodies rely on one line per finding (plus one suggestion line), so
    embedded newlines are folded into spaces.
    """
    if not text:
        return ""
    return " ".join(part.strip() for part in text.splitlines() if part.strip())


@lru_cache(maxsize=1)
def _template_environment() -> Environment:
    """Build and cache the Jinja environment for comment templates.

    Autoescaping is only enabled for HTML templates. Our .j2 templates are
    Markdown, and finding text is already escaped by the sanitizer.
    """
    environment = Environment(
        loader=PackageLoader("review_sweep", "templates"),
        autoescape=select_autoescape(enabled_extensions=("html", "htm")),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    environment.filters["oneline"] = oneline
    return environment


def render_template(template_name: str, **context: TemplateContextValue) -> str:
    """Render a comment template.

    Args:
        template_name: Template filename (e.g., "grouped_comment.j2")
        **context: Template variables

    Returns:
        Rendered text without surrounding whitespace

    """
    template = _template_environment().get_template(template_name)
    return template.render(**context).strip()
