"""reqtag templating - {{NAME}} placeholder substitution."""

import re

PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}", re.ASCII)


def resolve_template(text: str | None, variables: dict[str, str]) -> str:
    """Resolve {{NAME}} placeholders in text.

    Unknown names are left verbatim (braces included) so unresolved
    references stay visible. There is no escaping syntax.
    """
    if not text:
        return ""

    def _replace(m: re.Match) -> str:
        name = m.group(1)
        if name in variables:
            return variables[name]
        return m.group(0)

    return PLACEHOLDER_RE.sub(_replace, text)


def resolve_template_object(
    mapping: dict[str, str] | None,
    variables: dict[str, str],
) -> dict[str, str]:
    """Resolve placeholders in every value of mapping. Keys are never templated."""
    if not mapping:
        return {}
    return {k: resolve_template(v, variables) for k, v in mapping.items()}


def find_placeholders(text: str | None) -> list[str]:
    """Return the distinct placeholder names in text, in order of appearance."""
    if not text:
        return []
    seen: list[str] = []
    for name in PLACEHOLDER_RE.findall(text):
        if name not in seen:
            seen.append(name)
    return seen


def unresolved_placeholders(text: str | None, variables: dict[str, str]) -> list[str]:
    """Placeholder names in text that variables cannot satisfy."""
    return [name for name in find_placeholders(text) if name not in variables]
