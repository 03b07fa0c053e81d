"""High level client for the ChRIS REST API."""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from .auth import Anonymous, BasicAuth
from .collection import COLLECTION_JSON, Collection, decode, get_link_relation_urls, template_payload
from .config import Settings, TransportConfig, get_settings
from .exceptions import ProtocolError
from .request import Request
from .resource import ItemResource, ListResource, Resource, make_resource

logger = logging.getLogger(__name__)

# Link relations of the entry point collection that lead to top level resources
TOP_LEVEL_RELATIONS = (
    "files",
    "plugins",
    "plugin_instances",
    "pipelines",
    "pipeline_instances",
    "tags",
    "uploadedfiles",
    "user",
)


class Client:
    """
    The main entry point for the ChRIS API Python client.

    The URLs of the top level resources are discovered from the entry point
    (the authenticated user's feed list) the first time one is needed and
    cached for the lifetime of the client. Call ``set_urls`` to discover
    them again.
    """

    def __init__(
        self,
        url: str,
        auth: httpx.Auth,
        timeout: Optional[float] = None,
        config: Optional[TransportConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            url: URL of the API entry point, e.g. ``http://localhost:8000/api/v1/``
            auth: ``BasicAuth`` or ``TokenAuth`` credentials
            timeout: Default request timeout in seconds
            config: Transport configuration. If None, uses default config.
            http_client: Optional shared async client

        Raises:
            ConfigError: If no credentials are given
        """
        self.url = url
        self._request = Request(auth, COLLECTION_JSON, timeout, config, http_client)
        self._owned_client: Optional[httpx.AsyncClient] = None
        self.urls: Dict[str, Optional[str]] = dict.fromkeys(TOP_LEVEL_RELATIONS)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "Client":
        """Create a client from ``CHRIS_*`` environment settings."""
        settings = settings or get_settings()
        return cls(
            settings.url,
            settings.credentials(),
            config=settings.transport_config(),
            http_client=http_client,
        )

    @property
    def auth(self) -> httpx.Auth:
        return self._request.auth

    async def __aenter__(self) -> "Client":
        if self._request.http_client is None:
            self._owned_client = httpx.AsyncClient(limits=self._request.config.limits)
            self._request = Request(
                self._request.auth,
                COLLECTION_JSON,
                self._request.timeout,
                self._request.config,
                self._owned_client,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owned_client is not None:
            await self._owned_client.aclose()
            self._request = Request(
                self._request.auth,
                COLLECTION_JSON,
                self._request.timeout,
                self._request.config,
            )
            self._owned_client = None

    # URL discovery

    async def set_urls(self, timeout: Optional[float] = None) -> ListResource:
        """Discover the URLs of the top level resources again."""
        feed_list = await self._feed_list().get(timeout=timeout)
        self._remember_urls(feed_list.collection, overwrite=True)
        return feed_list

    def _remember_urls(self, collection: Collection, overwrite: bool) -> None:
        for relation_name in TOP_LEVEL_RELATIONS:
            urls = get_link_relation_urls(collection, relation_name)
            if urls and (overwrite or not self.urls[relation_name]):
                logger.debug("Using %s for '%s'", urls[0], relation_name)
                self.urls[relation_name] = urls[0]

    async def _resolve_url(self, relation_name: str, timeout: Optional[float]) -> str:
        if not self.urls[relation_name]:
            await self.set_urls(timeout)
        url = self.urls[relation_name]
        if not url:
            raise ProtocolError(f"Entry point {self.url} does not advertise '{relation_name}'")
        return url

    def _feed_list(self) -> ListResource:
        return make_resource("FeedList", self.url, request=self._request)

    async def _fetch_res(
        self,
        relation_name: str,
        type_name: str,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Resource:
        url = await self._resolve_url(relation_name, timeout)
        res = make_resource(type_name, url, request=self._request)
        if isinstance(res, ListResource):
            return await res.get(search_params, timeout)
        return await res.get(timeout)

    async def _create_res(
        self,
        relation_name: str,
        type_name: str,
        data: Mapping[str, Any],
        files: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> ItemResource:
        url = await self._resolve_url(relation_name, timeout)
        res = make_resource(type_name, url, request=self._request)
        created = await res.post(data, files=files, timeout=timeout)
        return _first_item(created)

    # Feeds

    async def get_feeds(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """
        Get a paginated list of the authenticated user's feeds.

        Args:
            search_params: ``limit``, ``offset``, ``id``, ``min_id``,
                ``max_id``, ``name``, ``min_creation_date``,
                ``max_creation_date``. If None, get the first page.
            timeout: Request timeout in seconds
        """
        feed_list = await self._feed_list().get(search_params, timeout)
        self._remember_urls(feed_list.collection, overwrite=False)
        return feed_list

    async def get_feed(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        """Get a feed given its id. Raises NotFoundError if there is none."""
        feed_list = await self.get_feeds({"id": id}, timeout)
        return feed_list.get_item(id)

    async def tag_feed(self, feed_id: int, tag_id: int, timeout: Optional[float] = None) -> ItemResource:
        """Tag a feed, returning the new tagging."""
        feed = await self.get_feed(feed_id, timeout)
        taggings = feed.related("taggings")
        created = await taggings.post({"tag_id": tag_id}, timeout=timeout)
        return _first_item(created)

    # Files

    async def get_files(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of files written to any of the user's feeds."""
        return await self._fetch_res("files", "AllFeedFileList", search_params, timeout)

    async def get_file(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        file_list = await self.get_files({"id": id}, timeout)
        return file_list.get_item(id)

    # Plugins

    async def get_plugins(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of plugins."""
        return await self._fetch_res("plugins", "PluginList", search_params, timeout)

    async def get_plugin(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        plugin_list = await self.get_plugins({"id": id}, timeout)
        return plugin_list.get_item(id)

    async def get_plugin_parameters(
        self,
        plugin_id: int,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of a plugin's parameters."""
        plugin = await self.get_plugin(plugin_id, timeout)
        return await plugin.get_related("parameters", params, timeout)

    # Plugin instances

    async def get_plugin_instances(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of plugin instances."""
        return await self._fetch_res("plugin_instances", "AllPluginInstanceList", search_params, timeout)

    async def get_plugin_instance(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        instance_list = await self.get_plugin_instances({"id": id}, timeout)
        return instance_list.get_item(id)

    async def create_plugin_instance(
        self,
        plugin_id: int,
        data: Mapping[str, Any],
        timeout: Optional[float] = None,
    ) -> ItemResource:
        """
        Run a plugin, creating a new plugin instance.

        Args:
            plugin_id: Id of the plugin to run
            data: Plugin-specific parameters plus ``previous_id``, ``title``,
                ``cpu_limit``, ``memory_limit``, ``number_of_workers``,
                ``gpu_limit``
            timeout: Request timeout in seconds
        """
        plugin = await self.get_plugin(plugin_id, timeout)
        created = await plugin.related("instances").post(data, timeout=timeout)
        return _first_item(created)

    # Pipelines

    async def get_pipelines(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of pipelines."""
        return await self._fetch_res("pipelines", "PipelineList", search_params, timeout)

    async def get_pipeline(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        pipeline_list = await self.get_pipelines({"id": id}, timeout)
        return pipeline_list.get_item(id)

    async def create_pipeline(self, data: Mapping[str, Any], timeout: Optional[float] = None) -> ItemResource:
        """Create a pipeline from ``name``, ``authors``, ``category``,
        ``description``, ``locked`` and ``plugin_tree`` or ``plugin_inst_id``."""
        return await self._create_res("pipelines", "PipelineList", data, timeout=timeout)

    async def modify_pipeline(
        self,
        id: int,
        data: Mapping[str, Any],
        timeout: Optional[float] = None,
    ) -> ItemResource:
        """Modify a pipeline's ``name``, ``authors``, ``category``,
        ``description`` or ``locked`` and return the updated pipeline."""
        pipeline = await self.get_pipeline(id, timeout)
        return await pipeline.put(data, timeout)

    async def remove_pipeline(self, id: int, timeout: Optional[float] = None) -> None:
        pipeline = await self.get_pipeline(id, timeout)
        await pipeline.delete(timeout)

    async def get_pipeline_plugins(
        self,
        pipeline_id: int,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of the plugins a pipeline runs."""
        return await self._get_pipeline_related(pipeline_id, "plugins", params, timeout)

    async def get_pipeline_pipings(
        self,
        pipeline_id: int,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of a pipeline's plugin pipings."""
        return await self._get_pipeline_related(pipeline_id, "plugin_pipings", params, timeout)

    async def get_pipeline_default_parameters(
        self,
        pipeline_id: int,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of the default parameters of a pipeline's pipings."""
        return await self._get_pipeline_related(pipeline_id, "default_parameters", params, timeout)

    async def _get_pipeline_related(
        self,
        pipeline_id: int,
        relation_name: str,
        params: Optional[Mapping[str, Any]],
        timeout: Optional[float],
    ) -> ListResource:
        pipeline = await self.get_pipeline(pipeline_id, timeout)
        return await pipeline.get_related(relation_name, params, timeout)

    # Pipeline instances

    async def get_pipeline_instances(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of pipeline instances."""
        return await self._fetch_res("pipeline_instances", "AllPipelineInstanceList", search_params, timeout)

    async def get_pipeline_instance(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        instance_list = await self.get_pipeline_instances({"id": id}, timeout)
        return instance_list.get_item(id)

    async def create_pipeline_instance(
        self,
        pipeline_id: int,
        data: Mapping[str, Any],
        timeout: Optional[float] = None,
    ) -> ItemResource:
        """Run a pipeline, creating a new pipeline instance."""
        pipeline = await self.get_pipeline(pipeline_id, timeout)
        created = await pipeline.related("instances").post(data, timeout=timeout)
        return _first_item(created)

    # Tags

    async def get_tags(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of tags."""
        return await self._fetch_res("tags", "TagList", search_params, timeout)

    async def get_tag(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        tag_list = await self.get_tags({"id": id}, timeout)
        return tag_list.get_item(id)

    async def create_tag(self, data: Mapping[str, Any], timeout: Optional[float] = None) -> ItemResource:
        """Create a tag from ``color`` and an optional ``name``."""
        return await self._create_res("tags", "TagList", data, timeout=timeout)

    # Uploaded files

    async def get_uploaded_files(
        self,
        search_params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ListResource:
        """Get a paginated list of uploaded files."""
        return await self._fetch_res("uploadedfiles", "UploadedFileList", search_params, timeout)

    async def get_uploaded_file(self, id: int, timeout: Optional[float] = None) -> ItemResource:
        file_list = await self.get_uploaded_files({"id": id}, timeout)
        return file_list.get_item(id)

    async def upload_file(
        self,
        data: Mapping[str, Any],
        upload_file_obj: Any,
        timeout: Optional[float] = None,
    ) -> ItemResource:
        """
        Upload a file, creating a new uploaded file resource.

        Args:
            data: Must contain ``upload_path``, the storage path of the file
            upload_file_obj: File contents (bytes or file object) or a
                single-entry mapping of part name to contents
            timeout: Request timeout in seconds
        """
        return await self._create_res(
            "uploadedfiles", "UploadedFileList", data, files=upload_file_obj, timeout=timeout
        )

    # Users

    async def get_user(self, timeout: Optional[float] = None) -> ItemResource:
        """Get the currently authenticated user."""
        return await self._fetch_res("user", "User", timeout=timeout)

    async def update_user(self, data: Mapping[str, Any], timeout: Optional[float] = None) -> ItemResource:
        """
        Update the authenticated user's account.

        Args:
            data: ``email`` and/or ``password``
            timeout: Request timeout in seconds

        Returns:
            The updated user. A changed password only applies to clients
            built with the new credentials.
        """
        user = await self.get_user(timeout)
        return await user.put(data, timeout)

    @staticmethod
    async def create_user(
        users_url: str,
        username: str,
        password: str,
        email: str,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> ItemResource:
        """
        Create a new user account.

        Returns:
            The new user, authenticated with the given username and password

        Raises:
            RequestException: If the server rejects the account, e.g. with a
                field-keyed error for an invalid ``email``
        """
        req = Request(Anonymous(), COLLECTION_JSON, timeout, http_client=http_client)
        user_data = {"username": username, "password": password, "email": email}
        resp = await req.post(users_url, template_payload(user_data))

        coll = decode(resp.data)
        if not coll.items or not coll.items[0].href:
            raise ProtocolError(f"Account creation response from {users_url} holds no user item")

        auth = BasicAuth(username, password)
        return make_resource(
            "User",
            coll.items[0].href,
            auth,
            collection=coll,
            timeout=timeout,
            http_client=http_client,
        )

    @staticmethod
    async def get_auth_token(
        auth_url: str,
        username: str,
        password: str,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> str:
        """Fetch a user's login authorization token."""
        req = Request(Anonymous(), "application/json", timeout, http_client=http_client)
        resp = await req.post(auth_url, {"username": username, "password": password})

        token = resp.data.get("token") if isinstance(resp.data, dict) else None
        if not token:
            raise ProtocolError(f"Token response from {auth_url} holds no token")
        return token


def _first_item(list_res: ListResource) -> ItemResource:
    items = list_res.get_items()
    if not items:
        raise ProtocolError(f"Creation response from {list_res.url} holds no item")
    return items[0]
