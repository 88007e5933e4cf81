import logging
from dataclasses import dataclass

from graphql import (
    GraphQLError,
    GraphQLField,
    GraphQLObjectType,
    GraphQLSchema,
    build_client_schema,
    get_introspection_query,
    is_interface_type,
)

from graphcms_mirror.config import SourcingOptions
from graphcms_mirror.core.fragments import SelectionBuilder
from graphcms_mirror.core.ports.executor import QueryExecutor
from graphcms_mirror.errors import RemoteExecutionError, SchemaLoadError
from graphcms_mirror.models import ListQuery, NodeQuery, NodeTypeConfig

logger = logging.getLogger(__name__)

INTROSPECTION_OPERATION = "IntrospectionQuery"


@dataclass(frozen=True)
class SchemaInformation:
    schema: GraphQLSchema
    node_types: tuple[NodeTypeConfig, ...]

    @property
    def node_type_names(self) -> tuple[str, ...]:
        return tuple(t.remote_type_name for t in self.node_types)

    def get_node_type(self, remote_type_name: str) -> NodeTypeConfig | None:
        for node_type in self.node_types:
            if node_type.remote_type_name == remote_type_name:
                return node_type
        return None


async def load_schema(executor: QueryExecutor) -> GraphQLSchema:
    query = get_introspection_query(descriptions=False)
    try:
        result = await executor.execute(INTROSPECTION_OPERATION, query)
    except RemoteExecutionError as exc:
        raise SchemaLoadError(f"Failed to introspect remote schema: {exc}") from exc

    data = result.get("data")
    if not isinstance(data, dict) or "__schema" not in data:
        raise SchemaLoadError("Introspection response does not contain a schema")
    try:
        return build_client_schema(data)  # type: ignore[arg-type]
    except (TypeError, GraphQLError) as exc:
        raise SchemaLoadError(f"Remote schema could not be built: {exc}") from exc


def node_implementations(schema: GraphQLSchema) -> list[GraphQLObjectType]:
    node_interface = schema.get_type("Node")
    if not is_interface_type(node_interface):
        raise SchemaLoadError("Remote schema has no Node interface")
    return list(schema.get_possible_types(node_interface))  # type: ignore[arg-type]


def plural_root_field(query_fields: dict[str, GraphQLField], type_: GraphQLObjectType) -> str | None:
    expected = f"[{type_.name}!]!"
    return next((name for name, f in query_fields.items() if str(f.type) == expected), None)


def singular_root_field(query_fields: dict[str, GraphQLField], type_: GraphQLObjectType) -> str | None:
    return next((name for name, f in query_fields.items() if f.type is type_), None)


def _variable_type(root_field: GraphQLField, argument: str, fallback: str) -> str:
    arg = root_field.args.get(argument)
    return str(arg.type) if arg is not None else fallback


def id_fragment(type_name: str, localized: bool) -> str:
    locale = "\n  locale" if localized else ""
    return f"fragment _{type_name}Id_ on {type_name} {{\n  __typename\n  id{locale}\n  stage\n}}"


def build_list_query(
    type_name: str,
    plural: str,
    root_field: GraphQLField,
    locale: str,
    stage: str,
    options: SourcingOptions,
    localized: bool,
    fragments: str,
) -> ListQuery:
    locale_label = locale.replace("_", "")
    operation_name = f"LIST_{plural}_{locale_label}_{stage}"
    limit_type = _variable_type(root_field, "first", "Int")
    offset_type = _variable_type(root_field, "skip", "Int")
    arguments = ["first: $limit", "skip: $offset", f"stage: {stage}"]
    if localized:
        fallback_locales = list(dict.fromkeys([locale, options.locales[0]]))
        arguments.append(f"locales: [{', '.join(fallback_locales)}]")
    document = (
        f"query {operation_name}($limit: {limit_type}, $offset: {offset_type}) {{\n"
        f"  {plural}({', '.join(arguments)}) {{\n"
        f"    ..._{type_name}Id_\n"
        f"    ...{type_name}\n"
        f"  }}\n"
        f"}}\n{fragments}"
    )
    return ListQuery(operation_name=operation_name, locale=locale, stage=stage, document=document)


def build_node_query(
    type_name: str, singular: str, root_field: GraphQLField, localized: bool, fragments: str
) -> NodeQuery:
    operation_name = f"NODE_{singular}"
    variables = [f"$where: {_variable_type(root_field, 'where', 'JSON')}"]
    arguments = ["where: $where"]
    if "stage" in root_field.args:
        variables.append(f"$stage: {_variable_type(root_field, 'stage', 'Stage')}")
        arguments.append("stage: $stage")
    if localized:
        variables.append(f"$locales: {_variable_type(root_field, 'locales', '[Locale!]')}")
        arguments.append("locales: $locales")
    document = (
        f"query {operation_name}({', '.join(variables)}) {{\n"
        f"  {singular}({', '.join(arguments)}) {{\n"
        f"    ..._{type_name}Id_\n"
        f"    ...{type_name}\n"
        f"  }}\n"
        f"}}\n{fragments}"
    )
    return NodeQuery(operation_name=operation_name, document=document)


def build_node_type_configs(schema: GraphQLSchema, options: SourcingOptions) -> tuple[NodeTypeConfig, ...]:
    query_type = schema.query_type
    if query_type is None:
        raise SchemaLoadError("Remote schema has no query root")
    query_fields = query_type.fields
    possible_types = node_implementations(schema)
    selection_builder = SelectionBuilder(schema, [t.name for t in possible_types])

    configs: list[NodeTypeConfig] = []
    for type_ in possible_types:
        plural = plural_root_field(query_fields, type_)
        if plural is None:
            logger.warning("No list root field for node type %s, skipping it", type_.name)
            continue
        singular = singular_root_field(query_fields, type_)
        localized = "locale" in type_.fields
        fragments = f"{id_fragment(type_.name, localized)}\n{selection_builder.fragment(type_.name)}"

        list_queries = [
            build_list_query(type_.name, plural, query_fields[plural], locale, stage, options, localized, fragments)
            for locale in options.locales
            for stage in options.stages
        ]
        node_query = (
            build_node_query(type_.name, singular, query_fields[singular], localized, fragments)
            if singular is not None
            else None
        )
        configs.append(
            NodeTypeConfig(
                remote_type_name=type_.name,
                plural_field=plural,
                singular_field=singular,
                localized=localized,
                list_queries=list_queries,
                node_query=node_query,
            )
        )
    return tuple(configs)


async def retrieve_schema(executor: QueryExecutor, options: SourcingOptions) -> SchemaInformation:
    schema = await load_schema(executor)
    node_types = build_node_type_configs(schema, options)
    logger.info("Discovered %d node types", len(node_types))
    return SchemaInformation(schema=schema, node_types=node_types)

