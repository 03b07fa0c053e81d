"""Collection+JSON envelope models and helpers.

Decoded collections are immutable snapshots: every model is frozen and every
sequence is a tuple, so a resource holding a collection can hand it out
without copying.

Reference: http://amundsen.com/media-types/collection/format/
"""

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from .exceptions import ProtocolError

COLLECTION_JSON = "application/vnd.collection+json"


class _Model(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")


class Link(_Model):
    """A link relation: ``rel`` names it, ``href`` is the target URL."""

    rel: str
    href: str
    name: Optional[str] = None
    prompt: Optional[str] = None
    render: Optional[str] = None


class Descriptor(_Model):
    """A single ``{name, value}`` pair of an item, query or template."""

    name: str
    value: Any = None
    prompt: Optional[str] = None


class Item(_Model):
    href: Optional[str] = None
    data: Tuple[Descriptor, ...] = ()
    links: Tuple[Link, ...] = ()


class Query(_Model):
    """An embedded query, e.g. the ``search`` query of a list resource."""

    rel: str
    href: str
    name: Optional[str] = None
    prompt: Optional[str] = None
    data: Tuple[Descriptor, ...] = ()


class Template(_Model):
    """Write template sent in POST and PUT requests."""

    data: Tuple[Descriptor, ...] = ()


class Error(_Model):
    title: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


class Collection(_Model):
    """The decoded ``collection`` member of a Collection+JSON document."""

    version: str
    href: Optional[str] = None
    links: Tuple[Link, ...] = ()
    items: Tuple[Item, ...] = ()
    queries: Tuple[Query, ...] = ()
    template: Optional[Template] = None
    error: Optional[Error] = None


def decode(raw: Union[Mapping[str, Any], str, bytes]) -> Collection:
    """
    Decode a Collection+JSON document.

    Args:
        raw: The document as a mapping or as JSON text

    Returns:
        The decoded collection

    Raises:
        ProtocolError: If the document is not JSON, lacks the ``collection``
            wrapper or its ``version``, or has malformed members
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ProtocolError("Response body is not valid JSON", original_exception=e)

    if not isinstance(raw, Mapping) or "collection" not in raw:
        raise ProtocolError("Response body lacks the 'collection' wrapper")

    body = raw["collection"]
    if not isinstance(body, Mapping) or "version" not in body:
        raise ProtocolError("Collection lacks the required 'version' field")

    try:
        return Collection.model_validate(body)
    except ValidationError as e:
        raise ProtocolError(
            f"Malformed collection ({e.error_count()} invalid field(s))",
            original_exception=e,
        )


def encode(collection: Collection) -> Dict[str, Any]:
    """Encode a collection back into a Collection+JSON document."""
    return {"collection": collection.model_dump(mode="json", exclude_none=True)}


def get_link_relation_urls(container: Union[Collection, Item], relation_name: str) -> List[str]:
    """
    Get the URLs of all links of a collection or item with the given relation.

    Source order is preserved and repeated relations are all returned. An
    absent relation yields an empty list.
    """
    return [link.href for link in container.links if link.rel == relation_name]


def get_item_descriptors(item: Item) -> Dict[str, Any]:
    """Flatten an item's descriptors into a dict. Later duplicates win."""
    descriptors = {}
    for descriptor in item.data:
        descriptors[descriptor.name] = descriptor.value
    return descriptors


def make_template(data: Mapping[str, Any]) -> Template:
    """Build a write template from a plain mapping, skipping ``None`` values."""
    return Template(
        data=tuple(
            Descriptor(name=name, value=value)
            for name, value in data.items()
            if value is not None
        )
    )


def template_payload(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Request body for a Collection+JSON write of ``data``."""
    return {"template": make_template(data).model_dump(mode="json", exclude_none=True)}


def get_query(collection: Collection, relation_name: str) -> Optional[Query]:
    for query in collection.queries:
        if query.rel == relation_name:
            return query
    return None


def get_query_parameters(collection: Collection, relation_name: str = "search") -> List[str]:
    """Names of the parameters accepted by an embedded query."""
    query = get_query(collection, relation_name)
    if query is None:
        return []
    return [descriptor.name for descriptor in query.data]


def get_template_fields(collection: Collection) -> List[str]:
    """Names of the fields accepted by the collection's write template."""
    if collection.template is None:
        return []
    return [descriptor.name for descriptor in collection.template.data]
