import hashlib
import json
import uuid
from typing import Any

_NODE_NAMESPACE = uuid.UUID("5b0e6a8c-3f0e-4a63-9a0e-6c8f3b8f1d21")


def create_node_id(remote_type_name: str, remote_id: str, stage: str | None, locale: str | None) -> str:
    """Deterministic local id for a remote node; type-scoped so types never collide."""
    key = f"{remote_type_name}:{remote_id}:{stage or ''}:{locale or ''}"
    return str(uuid.uuid5(_NODE_NAMESPACE, key))


def create_file_node_id(url: str) -> str:
    return str(uuid.uuid5(_NODE_NAMESPACE, f"File:{url}"))


def markdown_node_id(field_name: str, owner_key: str) -> str:
    return f"{field_name}MarkdownNode:{owner_key}"


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_content_digest(value: Any) -> str:
    if isinstance(value, str | bytes):
        raw = value.encode("utf-8") if isinstance(value, str) else value
    else:
        raw = canonical_json(value).encode("utf-8")
    return hashlib.md5(raw).hexdigest()  # noqa: S324
