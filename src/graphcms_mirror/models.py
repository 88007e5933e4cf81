from typing import Any

from pydantic import BaseModel, Field


class LocalNode(BaseModel):
    id: str
    type: str
    content_digest: str
    remote_type_name: str | None = None
    remote_id: str | None = None
    stage: str | None = None
    locale: str | None = None
    parent: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class ListQuery(BaseModel):
    operation_name: str
    locale: str
    stage: str
    document: str


class NodeQuery(BaseModel):
    operation_name: str
    document: str


class NodeTypeConfig(BaseModel):
    remote_type_name: str
    plural_field: str
    singular_field: str | None = None
    localized: bool = False
    list_queries: list[ListQuery]
    node_query: NodeQuery | None = None

    def node_query_variables(self, remote_id: str, locale: str | None, stage: str) -> dict[str, Any]:
        variables: dict[str, Any] = {"where": {"id": remote_id}, "stage": stage}
        if self.localized and locale:
            variables["locales"] = [locale]
        return variables


class ReconcileStats(BaseModel):
    remote_type_name: str
    created: int = 0
    updated: int = 0
    touched: int = 0
    deleted: int = 0
    downloaded: int = 0
    failed_downloads: int = 0
