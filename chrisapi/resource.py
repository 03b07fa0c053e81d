"""Generic list and item resources on top of Collection+JSON.

A resource wraps a URL, the request settings used to reach it and the last
collection fetched from it. Network methods never mutate the resource they
are called on: each returns a new resource holding the new snapshot, so a
failed or timed-out call leaves the caller's object exactly as it was.
"""

import copy
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from .catalog import ResourceType, get_resource_type
from .collection import (
    COLLECTION_JSON,
    Collection,
    Item,
    decode,
    get_item_descriptors,
    get_link_relation_urls,
    get_query_parameters,
    get_template_fields,
    template_payload,
)
from .config import TransportConfig
from .exceptions import ConfigError, NotFoundError, ProtocolError
from .request import Request

logger = logging.getLogger(__name__)


class ResourceState(Enum):
    """Whether a resource holds a fetched collection."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class Resource:
    """Base class of list and item resources."""

    kind: Optional[str] = None

    def __init__(
        self,
        url: str,
        auth: Optional[httpx.Auth] = None,
        resource_type: Union[ResourceType, str, None] = None,
        *,
        collection: Optional[Collection] = None,
        timeout: Optional[float] = None,
        config: Optional[TransportConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        request: Optional[Request] = None,
    ):
        """
        Initialize the resource.

        Args:
            url: URL of the remote resource
            auth: Credentials, ignored when ``request`` is given
            resource_type: Catalog declaration or its name
            collection: Already decoded collection, makes the resource READY
            timeout: Default request timeout in seconds
            config: Transport configuration
            http_client: Optional shared async client
            request: Existing request wrapper to reuse

        Raises:
            ConfigError: If no credentials are given or the resource type
                does not match this resource's kind
        """
        if isinstance(resource_type, str):
            resource_type = get_resource_type(resource_type)
        if resource_type is not None and self.kind is not None and resource_type.kind != self.kind:
            raise ConfigError(
                f"{resource_type.name} is a {resource_type.kind} resource, "
                f"not usable as {self.__class__.__name__}"
            )
        if request is None:
            request = Request(auth, COLLECTION_JSON, timeout, config, http_client)

        self._url = url
        self._request = request
        self._resource_type = resource_type
        self._collection = collection

    @property
    def url(self) -> str:
        return self._url

    @property
    def auth(self) -> httpx.Auth:
        return self._request.auth

    @property
    def request(self) -> Request:
        return self._request

    @property
    def resource_type(self) -> Optional[ResourceType]:
        return self._resource_type

    @property
    def collection(self) -> Optional[Collection]:
        return self._collection

    @property
    def state(self) -> ResourceState:
        if self._collection is None:
            return ResourceState.UNINITIALIZED
        return ResourceState.READY

    def clone(self) -> "Resource":
        return copy.copy(self)

    def _evolve(self, **changes) -> "Resource":
        # Copy with replaced attributes, the receiver keeps its snapshot
        new = copy.copy(self)
        for name, value in changes.items():
            setattr(new, f"_{name}", value)
        return new

    def _decode(self, data: Any) -> Collection:
        return decode(data)

    def _write_payload(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        if self._request.content_type == COLLECTION_JSON:
            return template_payload(data)
        return {k: v for k, v in data.items() if v is not None}

    def get_links(self, relation_name: str) -> List[str]:
        """URLs of this resource's links with the given relation."""
        raise NotImplementedError

    def related(self, relation_name: str, resource_type: Optional[str] = None) -> "Resource":
        """
        Build the related resource reachable through a link relation.

        No request is made; the returned resource is UNINITIALIZED. When the
        relation has several URLs the first one is used.

        Args:
            relation_name: Link relation to follow
            resource_type: Type of the related resource, defaults to the one
                declared in the catalog for this relation

        Raises:
            ConfigError: If no resource type is known for the relation
            ProtocolError: If the relation is absent
        """
        type_name = resource_type
        if type_name is None and self._resource_type is not None:
            type_name = self._resource_type.related.get(relation_name)
        if type_name is None:
            raise ConfigError(f"No resource type declared for relation '{relation_name}'")

        urls = self.get_links(relation_name)
        if not urls:
            raise ProtocolError(f"Relation '{relation_name}' not found for {self.url}")
        if len(urls) > 1:
            logger.debug(
                "Relation '%s' of %s has %d URLs, following the first",
                relation_name, self.url, len(urls),
            )
        return make_resource(type_name, urls[0], request=self._request)

    async def get_related(
        self,
        relation_name: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        resource_type: Optional[str] = None,
    ) -> "Resource":
        """Fetch the resource reachable through a link relation."""
        res = self.related(relation_name, resource_type)
        if isinstance(res, ListResource):
            return await res.get(params, timeout)
        return await res.get(timeout)

    def __repr__(self) -> str:
        name = self._resource_type.name if self._resource_type else self.__class__.__name__
        return f"<{name} url={self._url!r} state={self.state.value}>"


class ItemResource(Resource):
    """A single entity. Supports ``get``, ``put`` and ``delete``."""

    kind = "item"

    @property
    def is_empty(self) -> bool:
        """True until the resource has been fetched."""
        return self.state is ResourceState.UNINITIALIZED

    @property
    def item(self) -> Optional[Item]:
        if self._collection is None or not self._collection.items:
            return None
        return self._collection.items[0]

    @property
    def href(self) -> str:
        item = self.item
        if item is not None and item.href:
            return item.href
        return self._url

    @property
    def data(self) -> Dict[str, Any]:
        item = self.item
        return get_item_descriptors(item) if item is not None else {}

    def get_links(self, relation_name: str) -> List[str]:
        item = self.item
        return get_link_relation_urls(item, relation_name) if item is not None else []

    def get_put_parameters(self) -> List[str]:
        """Fields accepted by a PUT, as advertised by the server."""
        if self._collection is None:
            return []
        return get_template_fields(self._collection)

    async def get(self, timeout: Optional[float] = None) -> "ItemResource":
        """Fetch this item from the REST API."""
        response = await self._request.get(self._url, timeout=timeout)
        return self._evolve(collection=self._decode(response.data))

    async def put(self, data: Mapping[str, Any], timeout: Optional[float] = None) -> "ItemResource":
        """Modify this item through the REST API and return the updated item."""
        response = await self._request.put(self.href, self._write_payload(data), timeout=timeout)
        return self._evolve(collection=self._decode(response.data))

    async def delete(self, timeout: Optional[float] = None) -> None:
        """Delete this item. The local object is left as it was."""
        await self._request.delete(self.href, timeout=timeout)

    async def get_file_blob(self, timeout: Optional[float] = None) -> bytes:
        """Download the contents behind the item's ``file_resource`` link."""
        urls = self.get_links("file_resource")
        if not urls:
            raise ProtocolError(f"Relation 'file_resource' not found for {self.url}")
        response = await self._request.get(urls[0], timeout=timeout, raw=True)
        return response.data


class ListResource(Resource):
    """A paginated list of items. Supports ``get`` and ``post``."""

    kind = "list"

    def __init__(self, *args, search_params: Optional[Mapping[str, Any]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._search_params = dict(search_params) if search_params else None

    @property
    def search_params(self) -> Optional[Dict[str, Any]]:
        """Search parameters of the last ``get``."""
        return dict(self._search_params) if self._search_params else None

    @property
    def has_next_page(self) -> bool:
        return bool(self.get_links("next"))

    @property
    def has_previous_page(self) -> bool:
        return bool(self.get_links("previous"))

    @property
    def data(self) -> List[Dict[str, Any]]:
        if self._collection is None:
            return []
        return [get_item_descriptors(item) for item in self._collection.items]

    @property
    def total_count(self) -> Optional[int]:
        """Total number of matches when the server reports it."""
        if self._collection is None or not self._collection.model_extra:
            return None
        return self._collection.model_extra.get("total")

    def get_links(self, relation_name: str) -> List[str]:
        if self._collection is None:
            return []
        return get_link_relation_urls(self._collection, relation_name)

    def get_search_parameters(self) -> List[str]:
        """Search parameters advertised by the collection's ``search`` query."""
        if self._collection is None:
            return []
        return get_query_parameters(self._collection, "search")

    def get_post_parameters(self) -> List[str]:
        """Fields accepted by a POST, as advertised by the server."""
        if self._collection is None:
            return []
        return get_template_fields(self._collection)

    def get_items(self) -> List[ItemResource]:
        """Item resources of the current page. No request is made."""
        if self._collection is None:
            return []

        item_type = None
        if self._resource_type is not None:
            item_type = get_resource_type(self._resource_type.item_type)

        items = []
        for item in self._collection.items:
            href = item.href or self._url
            coll = Collection(version=self._collection.version, href=href, items=(item,))
            items.append(ItemResource(href, resource_type=item_type, collection=coll, request=self._request))
        return items

    def get_item(self, id: Any) -> ItemResource:
        """
        Get the item of the current page whose ``id`` field equals ``id``.

        Raises:
            NotFoundError: If no item matches
        """
        for item in self.get_items():
            if str(item.data.get("id")) == str(id):
                return item
        raise NotFoundError(f"Could not find resource with id: {id}", url=self._url)

    async def get(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> "ListResource":
        """Fetch a page of this list, filtered by ``search_params``."""
        response = await self._request.get(self._url, params=search_params, timeout=timeout)
        return self._evolve(
            collection=self._decode(response.data),
            search_params=dict(search_params) if search_params else None,
        )

    async def get_next_page(self, timeout: Optional[float] = None) -> Optional["ListResource"]:
        """Fetch the next page, or return None on the last page."""
        return await self._follow_page("next", timeout)

    async def get_previous_page(self, timeout: Optional[float] = None) -> Optional["ListResource"]:
        """Fetch the previous page, or return None on the first page."""
        return await self._follow_page("previous", timeout)

    async def _follow_page(self, relation_name: str, timeout: Optional[float]) -> Optional["ListResource"]:
        urls = self.get_links(relation_name)
        if not urls:
            return None
        params = dict(self._search_params or {})
        params.update(httpx.URL(urls[0]).params.items())
        return await self.get(params, timeout)

    async def post(
        self,
        data: Mapping[str, Any],
        files: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> "ListResource":
        """
        Create a new item in this list through the REST API.

        The returned list holds the server's response collection, so the
        created item is ``result.get_items()[0]``.

        Args:
            data: Field values of the new item
            files: Optional single file part, sent as multipart together
                with ``data``; a bare bytes or file object is sent under the
                catalog's upload field name
            timeout: Request timeout in seconds
        """
        if files is not None:
            if not isinstance(files, Mapping):
                field_name = self._resource_type.upload_field if self._resource_type else None
                files = {field_name or "fname": files}
            response = await self._request.post(self._url, data, files=files, timeout=timeout)
        else:
            response = await self._request.post(self._url, self._write_payload(data), timeout=timeout)
        return self._evolve(collection=self._decode(response.data), search_params=None)


def make_resource(type_name: str, url: str, auth: Optional[httpx.Auth] = None, **kwargs) -> Resource:
    """Build the list or item resource declared as ``type_name``."""
    resource_type = get_resource_type(type_name)
    cls = ListResource if resource_type.is_list else ItemResource
    return cls(url, auth, resource_type, **kwargs)
