"""Classify the fields of every node type that need more than a plain copy.

The classification is derived from the live schema once per process. The
result is a closed set of entry shapes (``FieldEntry``, ``ObjectEntry`` and
``UnionEntry``) that every consumer dispatches on with ``match``:

- ``FieldEntry`` marks a leaf field holding an asset reference, a rich-text
  value or a markdown string.
- ``ObjectEntry`` marks a nested, non-node object whose own fields contain
  special fields.
- ``UnionEntry`` marks a polymorphic field; its children are keyed by the
  concrete member type name found in ``remoteTypeName``.

Fields pointing at other node types are references and are never walked.
"""

import logging
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from graphql import (
    GraphQLNamedType,
    GraphQLObjectType,
    GraphQLSchema,
    get_named_type,
    is_enum_type,
    is_interface_type,
    is_object_type,
    is_scalar_type,
    is_union_type,
)

from graphcms_mirror.config import ASSET_TYPE_NAME, RICH_TEXT_SUFFIX, SourcingOptions

logger = logging.getLogger(__name__)

SKIPPED_FIELDS = frozenset({"stage", "locale", "localizations"})


class SpecialFieldKind(StrEnum):
    ASSET = "Asset"
    RICH_TEXT = "RichText"
    MARKDOWN = "Markdown"


@dataclass(frozen=True)
class FieldEntry:
    kind: SpecialFieldKind
    name: str


@dataclass(frozen=True)
class ObjectEntry:
    name: str
    children: tuple["SpecialFieldEntry", ...]


@dataclass(frozen=True)
class UnionEntry:
    name: str
    children: Mapping[str, tuple["SpecialFieldEntry", ...]] = field(hash=False)


SpecialFieldEntry = FieldEntry | ObjectEntry | UnionEntry
SpecialFieldMap = Mapping[str, tuple[SpecialFieldEntry, ...]]


class _Classifier:
    def __init__(self, node_type_names: Collection[str], options: SourcingOptions) -> None:
        self._node_type_names = frozenset(node_type_names)
        self._options = options

    def classify_fields(self, type_: GraphQLObjectType, path: tuple[str, ...]) -> tuple[SpecialFieldEntry, ...]:
        markdown_fields = self._options.markdown_fields_for(type_.name)
        entries: list[SpecialFieldEntry] = []
        for field_name, gql_field in type_.fields.items():
            if field_name in SKIPPED_FIELDS:
                continue
            named = get_named_type(gql_field.type)
            entry = self._classify(type_.name, field_name, named, markdown_fields, path)
            if entry is not None:
                entries.append(entry)
        return tuple(entries)

    def _classify(
        self,
        owner: str,
        field_name: str,
        named: GraphQLNamedType,
        markdown_fields: frozenset[str],
        path: tuple[str, ...],
    ) -> SpecialFieldEntry | None:
        if named.name.endswith(RICH_TEXT_SUFFIX):
            return FieldEntry(SpecialFieldKind.RICH_TEXT, field_name)
        if named.name == ASSET_TYPE_NAME:
            return FieldEntry(SpecialFieldKind.ASSET, field_name)
        if field_name in markdown_fields:
            return FieldEntry(SpecialFieldKind.MARKDOWN, field_name)

        if is_union_type(named):
            children: dict[str, tuple[SpecialFieldEntry, ...]] = {}
            for member in named.types:  # type: ignore[attr-defined]
                if member.name in self._node_type_names or member.name in path:
                    continue
                member_entries = self.classify_fields(member, (*path, member.name))
                if member_entries:
                    children[member.name] = member_entries
            return UnionEntry(field_name, children) if children else None

        if is_object_type(named):
            if named.name in self._node_type_names or named.name in path:
                return None
            nested = self.classify_fields(named, (*path, named.name))  # type: ignore[arg-type]
            return ObjectEntry(field_name, nested) if nested else None

        if is_scalar_type(named) or is_enum_type(named) or is_interface_type(named):
            return None

        logger.warning("Cannot classify field %s.%s of type %s", owner, field_name, named.name)
        return None


def build_special_field_map(
    schema: GraphQLSchema, node_type_names: Collection[str], options: SourcingOptions
) -> dict[str, tuple[SpecialFieldEntry, ...]]:
    """Return the special field entries of every node type that has any."""
    classifier = _Classifier(node_type_names, options)
    special_fields: dict[str, tuple[SpecialFieldEntry, ...]] = {}
    for type_name in node_type_names:
        type_ = schema.get_type(type_name)
        if not is_object_type(type_):
            continue
        entries = classifier.classify_fields(type_, (type_name,))  # type: ignore[arg-type]
        if entries:
            special_fields[type_name] = entries
    return special_fields
