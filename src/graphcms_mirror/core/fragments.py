"""Default selection sets for node types.

Leaf fields are selected as-is, references to other node types are reduced to
``{ __typename id }``, nested non-node objects and union members are expanded
up to a fixed depth. Fields with required arguments are skipped.
"""

from collections.abc import Collection

from graphql import (
    GraphQLField,
    GraphQLObjectType,
    GraphQLSchema,
    Undefined,
    get_named_type,
    is_interface_type,
    is_leaf_type,
    is_non_null_type,
    is_object_type,
    is_union_type,
)

_SYSTEM_DATE_FIELDS = frozenset({"createdAt", "publishedAt", "updatedAt"})
_EXCLUDED_FIELDS = frozenset({"localizations"})
_MAX_DEPTH = 4

REFERENCE_SELECTION = "{ __typename id }"


def _has_required_arguments(gql_field: GraphQLField) -> bool:
    return any(is_non_null_type(arg.type) and arg.default_value is Undefined for arg in gql_field.args.values())


def _field_arguments(field_name: str, gql_field: GraphQLField) -> str:
    if field_name in _SYSTEM_DATE_FIELDS and "variation" in gql_field.args:
        return "(variation: COMBINED)"
    return ""


class SelectionBuilder:
    def __init__(self, schema: GraphQLSchema, node_type_names: Collection[str], max_depth: int = _MAX_DEPTH) -> None:
        self._schema = schema
        self._node_type_names = frozenset(node_type_names)
        self._max_depth = max_depth

    def selections(self, type_: GraphQLObjectType, depth: int = 0, path: tuple[str, ...] = ()) -> list[str]:
        path = (*path, type_.name)
        lines: list[str] = []
        for field_name, gql_field in type_.fields.items():
            if field_name in _EXCLUDED_FIELDS or _has_required_arguments(gql_field):
                continue
            named = get_named_type(gql_field.type)
            head = f"{field_name}{_field_arguments(field_name, gql_field)}"

            if is_leaf_type(named):
                lines.append(head)
            elif is_interface_type(named):
                lines.append(f"{head} {REFERENCE_SELECTION}" if "id" in named.fields else f"{head} {{ __typename }}")
            elif is_object_type(named):
                if named.name in self._node_type_names:
                    lines.append(f"{head} {REFERENCE_SELECTION}")
                elif named.name not in path and depth < self._max_depth:
                    nested = self.selections(named, depth + 1, path)  # type: ignore[arg-type]
                    if nested:
                        lines.append(f"{head} {{ __typename {' '.join(nested)} }}")
            elif is_union_type(named):
                members = self._union_members(named.types, depth, path)  # type: ignore[attr-defined]
                lines.append(f"{head} {{ __typename {' '.join(members)} }}")
        return lines

    def _union_members(
        self, members: Collection[GraphQLObjectType], depth: int, path: tuple[str, ...]
    ) -> list[str]:
        parts: list[str] = []
        for member in members:
            if member.name in self._node_type_names:
                parts.append(f"... on {member.name} {{ id }}")
            elif member.name not in path and depth < self._max_depth:
                nested = self.selections(member, depth + 1, path)
                if nested:
                    parts.append(f"... on {member.name} {{ {' '.join(nested)} }}")
        return parts

    def fragment(self, type_name: str) -> str:
        type_ = self._schema.get_type(type_name)
        if not is_object_type(type_):
            raise ValueError(f"{type_name} is not an object type")
        body = "\n  ".join(self.selections(type_))  # type: ignore[arg-type]
        return f"fragment {type_name} on {type_name} {{\n  {body}\n}}"
