import re
from typing import Any

_WHITESPACE = re.compile(r"[ \t\n\r\f\v]+")

# Cells carry table structure even when they are empty.
_KEEP_EMPTY = frozenset({"table_header_cell", "table_cell"})
# Embeds and images keep their content in attributes, not in children.
_ATTRIBUTE_LEAVES = frozenset({"embed", "image"})


def cleanup_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text).replace("&nbsp;", "\u00a0").replace("-", "\u2011")


def _is_text(node: Any) -> bool:
    return isinstance(node, dict) and isinstance(node.get("text"), str)


def _is_element(node: Any) -> bool:
    return isinstance(node, dict) and isinstance(node.get("children"), list)


def clean_element(element: dict[str, Any]) -> dict[str, Any] | None:
    rest = {k: v for k, v in element.items() if k != "children"}
    children: list[dict[str, Any]] = []
    for child in element.get("children", []):
        if _is_text(child):
            cleaned = cleanup_text(child["text"])
            if cleaned.strip():
                children.append({**child, "text": cleaned})
        elif _is_element(child):
            cleaned_child = clean_element(child)
            if cleaned_child is not None:
                children.append(cleaned_child)
            elif child.get("type") in _KEEP_EMPTY:
                children.append({"type": child["type"], "children": []})

    if children or element.get("type") in _ATTRIBUTE_LEAVES:
        return {**rest, "children": children}
    return None


def clean_rich_text(content: Any) -> list[dict[str, Any]] | None:
    """Return a whitespace-normalized copy of a rich-text AST, or ``None`` if nothing is left."""
    if isinstance(content, dict):
        elements = content.get("children", [])
    elif isinstance(content, list):
        elements = content
    else:
        return None

    cleaned = [c for c in (clean_element(e) for e in elements if _is_element(e)) if c is not None]
    return cleaned or None
