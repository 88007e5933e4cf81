"""Shared fixtures and helpers for tests."""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest
from graphql import GraphQLSchema, build_schema, introspection_from_schema

from graphcms_mirror.config import SourcingOptions
from graphcms_mirror.core.reconcile import SourcingContext
from graphcms_mirror.core.schema import INTROSPECTION_OPERATION, SchemaInformation, build_node_type_configs
from graphcms_mirror.core.special_fields import build_special_field_map
from graphcms_mirror.db import InMemoryNodeStore

_REPO_ROOT = Path(__file__).parent.parent

ENDPOINT = "https://api.example.test/v2/project/master"


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# A small content schema shaped like the CMS content API
# ---------------------------------------------------------------------------

CONTENT_SDL = """
scalar RichTextAST
scalar DateTime

enum Stage { DRAFT PUBLISHED }
enum Locale { en de }
enum DocumentFieldVariation { COMBINED BASE LOCALIZATION }

interface Node {
  id: ID!
  stage: Stage!
}

type Asset implements Node {
  id: ID!
  stage: Stage!
  url: String!
  fileName: String!
  mimeType: String
  size: Float
  width: Float
  height: Float
}

type Author implements Node {
  id: ID!
  stage: Stage!
  name: String!
  createdAt(variation: DocumentFieldVariation = COMBINED): DateTime!
}

union PostContentRichTextEmbeddedTypes = Asset

type PostContentRichText {
  raw: RichTextAST!
  html: String!
  markdown: String!
  references: [PostContentRichTextEmbeddedTypes!]!
}

type Hero {
  headline: String
  image: Asset
}

type Slide {
  caption: String
  picture: Asset
}

type Gallery {
  items: [Slide!]!
}

union Section = Hero | Gallery | Author

type Post implements Node {
  id: ID!
  stage: Stage!
  locale: Locale!
  localizations(locales: [Locale!]! = [en]): [Post!]!
  title: String!
  body: String
  content: PostContentRichText
  cover: Asset
  author: Author
  sections: [Section!]!
}

input WhereUniqueInput { id: ID }

type Query {
  assets(first: Int, skip: Int, stage: Stage = PUBLISHED): [Asset!]!
  asset(where: WhereUniqueInput!, stage: Stage = PUBLISHED): Asset
  authors(first: Int, skip: Int, stage: Stage = PUBLISHED): [Author!]!
  author(where: WhereUniqueInput!, stage: Stage = PUBLISHED): Author
  posts(first: Int, skip: Int, stage: Stage = PUBLISHED, locales: [Locale!]! = [en]): [Post!]!
  post(where: WhereUniqueInput!, stage: Stage = PUBLISHED, locales: [Locale!]! = [en]): Post
  node(id: ID!): Node
}
"""


def content_schema() -> GraphQLSchema:
    return build_schema(CONTENT_SDL)


def make_options(**overrides: Any) -> SourcingOptions:
    values: dict[str, Any] = {"endpoint": ENDPOINT, "retry_min_timeout": 0}
    values.update(overrides)
    return SourcingOptions(**values)


def make_context(options: SourcingOptions) -> SourcingContext:
    schema = content_schema()
    node_types = build_node_type_configs(schema, options)
    information = SchemaInformation(schema=schema, node_types=node_types)
    special_fields = build_special_field_map(schema, information.node_type_names, options)
    return SourcingContext.create(options, information, special_fields)


# ---------------------------------------------------------------------------
# Remote payload builders (raw API shape, before normalization)
# ---------------------------------------------------------------------------


def asset_ref(asset_id: str) -> dict[str, Any]:
    return {"__typename": "Asset", "id": asset_id}


def raw_asset(asset_id: str, file_name: str = "cover.png", **extra: Any) -> dict[str, Any]:
    payload = {
        "__typename": "Asset",
        "id": asset_id,
        "stage": "PUBLISHED",
        "url": f"https://media.graphcms.com/{asset_id}",
        "fileName": file_name,
        "mimeType": "image/png",
        "size": 128.0,
        "width": 40.0,
        "height": 30.0,
    }
    payload.update(extra)
    return payload


def raw_post(post_id: str, title: str = "Hello", **extra: Any) -> dict[str, Any]:
    payload = {
        "__typename": "Post",
        "id": post_id,
        "stage": "PUBLISHED",
        "locale": "en",
        "title": title,
        "body": "# Heading\n\nSome *markdown*.",
        "content": {
            "__typename": "PostContentRichText",
            "raw": {"children": [{"type": "paragraph", "children": [{"text": "Hello   world"}]}]},
            "html": "<p>Hello world</p>",
            "markdown": "Hello &amp; world",
            "references": [asset_ref("asset-inline")],
        },
        "cover": asset_ref("asset-cover"),
        "author": {"__typename": "Author", "id": "author-1"},
        "sections": [
            {"__typename": "Hero", "headline": "Hi", "image": None},
            {
                "__typename": "Gallery",
                "items": [{"__typename": "Slide", "caption": "one", "picture": asset_ref("asset-gallery")}],
            },
        ],
    }
    payload.update(extra)
    return payload


def raw_author(author_id: str = "author-1", name: str = "Ada") -> dict[str, Any]:
    return {"__typename": "Author", "id": author_id, "stage": "PUBLISHED", "name": name, "createdAt": "2024-01-01"}


# ---------------------------------------------------------------------------
# Fake GraphQL executor
# ---------------------------------------------------------------------------


class FakeExecutor:
    """Answer list queries from canned node lists, paginated by ``$limit``/``$offset``."""

    def __init__(self, nodes: Mapping[str, list[dict[str, Any]]] | None = None) -> None:
        self.nodes: dict[str, list[dict[str, Any]]] = dict(nodes or {})
        self.calls: list[tuple[str, dict[str, Any] | None]] = []

    async def execute(
        self, operation_name: str, query: str, variables: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self.calls.append((operation_name, variables))
        if operation_name == INTROSPECTION_OPERATION:
            return {"data": introspection_from_schema(content_schema())}
        # LIST_<plural>_<locale>_<stage>
        _, plural, _, _ = operation_name.split("_", 3)
        items = self.nodes.get(plural, [])
        offset = (variables or {}).get("offset", 0)
        limit = (variables or {}).get("limit", len(items))
        return {"data": {plural: items[offset : offset + limit]}}

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def options(tmp_path: Path) -> SourcingOptions:
    return make_options(
        markdown_fields={"Post": ["body"]},
        files_dir=tmp_path / "files",
        local_cache_dir=tmp_path / "cache",
    )


@pytest.fixture
def store() -> InMemoryNodeStore:
    return InMemoryNodeStore()
