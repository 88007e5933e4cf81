"""One traversal over special field entries, shared by node creation and keep-alive.

``walk_special_fields`` descends through object and union entries and hands
every leaf value to a visitor. ``CreateVisitor`` builds derived nodes for a
freshly fetched payload; ``KeepAliveVisitor`` touches the derived nodes an
unchanged stored payload already links to. Both register asset usage.
"""

import html
import logging
from collections.abc import Iterator, Sequence
from typing import Any, Protocol

from graphcms_mirror.config import SourcingOptions
from graphcms_mirror.core.identity import compute_content_digest, markdown_node_id
from graphcms_mirror.core.ports.store import NodeStore
from graphcms_mirror.core.rich_text import clean_rich_text
from graphcms_mirror.core.special_fields import (
    FieldEntry,
    ObjectEntry,
    SpecialFieldEntry,
    SpecialFieldKind,
    UnionEntry,
)
from graphcms_mirror.core.usage import AssetUsageTracker
from graphcms_mirror.models import LocalNode

logger = logging.getLogger(__name__)

MARKDOWN_MEDIA_TYPE = "text/markdown"
RICH_TEXT_MARKDOWN_LINK = "markdownNode"


def markdown_link_field(field_name: str) -> str:
    return f"{field_name}MarkdownNode"


class SpecialFieldVisitor(Protocol):
    async def asset(self, container: dict[str, Any], field_name: str, owner_key: str) -> None: ...

    async def markdown(self, container: dict[str, Any], field_name: str, owner_key: str) -> None: ...

    async def rich_text(self, value: dict[str, Any], field_name: str, owner_key: str) -> None: ...


def _values(value: Any, key: str) -> Iterator[tuple[str, dict[str, Any]]]:
    if isinstance(value, list):
        for index, item in enumerate(value):
            if isinstance(item, dict):
                yield f"{key}[{index}]", item
    elif isinstance(value, dict):
        yield key, value


async def walk_special_fields(
    entries: Sequence[SpecialFieldEntry],
    container: dict[str, Any],
    owner_key: str,
    visitor: SpecialFieldVisitor,
) -> None:
    for entry in entries:
        match entry:
            case FieldEntry(kind=SpecialFieldKind.ASSET, name=name):
                await visitor.asset(container, name, owner_key)
            case FieldEntry(kind=SpecialFieldKind.MARKDOWN, name=name):
                await visitor.markdown(container, name, owner_key)
            case FieldEntry(kind=SpecialFieldKind.RICH_TEXT, name=name):
                for key, value in _values(container.get(name), owner_key):
                    await visitor.rich_text(value, name, key)
            case ObjectEntry(name=name, children=children):
                for key, value in _values(container.get(name), f"{owner_key}.{name}"):
                    await walk_special_fields(children, value, key, visitor)
            case UnionEntry(name=name, children=members):
                for key, value in _values(container.get(name), f"{owner_key}.{name}"):
                    member_entries = members.get(value.get("remoteTypeName", ""))
                    if member_entries:
                        await walk_special_fields(member_entries, value, key, visitor)


def create_markdown_node(node_type: str, node_id: str, parent_id: str, content: str) -> LocalNode:
    return LocalNode(
        id=node_id,
        type=node_type,
        content_digest=compute_content_digest(content),
        parent=parent_id,
        data={"content": content, "mediaType": MARKDOWN_MEDIA_TYPE},
    )


class CreateVisitor:
    """Create derived nodes for a new or changed payload and link them into it."""

    def __init__(
        self, store: NodeStore, usage: AssetUsageTracker, options: SourcingOptions, parent_id: str
    ) -> None:
        self._store = store
        self._usage = usage
        self._options = options
        self._parent_id = parent_id
        self._markdown_type = f"{options.type_prefix}MarkdownNode"

    async def asset(self, container: dict[str, Any], field_name: str, owner_key: str) -> None:
        self._usage.register_reference(container.get(field_name))

    async def markdown(self, container: dict[str, Any], field_name: str, owner_key: str) -> None:
        link = markdown_link_field(field_name)
        content = container.get(field_name)
        if not content or not isinstance(content, str):
            container.pop(link, None)
            return
        node = create_markdown_node(
            self._markdown_type, markdown_node_id(field_name, owner_key), self._parent_id, content
        )
        await self._store.create_node(node)
        container[link] = node.id

    async def rich_text(self, value: dict[str, Any], field_name: str, owner_key: str) -> None:
        self._usage.register_rich_text(value)
        if self._options.cleanup_rtf:
            cleaned = clean_rich_text(value.get("raw", value.get("json")))
            if cleaned is not None:
                value["cleaned"] = cleaned
        markdown = value.get("markdown")
        if self._options.build_markdown_nodes and isinstance(markdown, str) and markdown:
            node = create_markdown_node(
                self._markdown_type,
                markdown_node_id(field_name, owner_key),
                self._parent_id,
                html.unescape(markdown),
            )
            await self._store.create_node(node)
            value[RICH_TEXT_MARKDOWN_LINK] = node.id


class KeepAliveVisitor:
    """Touch the derived nodes an unchanged payload links to and re-register its assets."""

    def __init__(self, store: NodeStore, usage: AssetUsageTracker) -> None:
        self._store = store
        self._usage = usage
        self.touched: list[str] = []

    async def _touch(self, node_id: Any) -> None:
        if not isinstance(node_id, str):
            return
        node = await self._store.get_node(node_id)
        if node is None:
            logger.warning("Derived node %s is linked but missing from the store", node_id)
            return
        await self._store.touch_node(node)
        self.touched.append(node_id)

    async def asset(self, container: dict[str, Any], field_name: str, owner_key: str) -> None:
        self._usage.register_reference(container.get(field_name))

    async def markdown(self, container: dict[str, Any], field_name: str, owner_key: str) -> None:
        await self._touch(container.get(markdown_link_field(field_name)))

    async def rich_text(self, value: dict[str, Any], field_name: str, owner_key: str) -> None:
        self._usage.register_rich_text(value)
        await self._touch(value.get(RICH_TEXT_MARKDOWN_LINK))
