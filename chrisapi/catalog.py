"""Declarations of the resource families exposed by the REST API.

Every resource is described by a ``ResourceType``: whether it is a list or an
item, the type of a list's items, the link relations it can follow and the
fields it accepts. The generic resource classes read these declarations;
there is no per-resource subclass.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .exceptions import ConfigError

LIST = "list"
ITEM = "item"

PAGE_PARAMS = ("limit", "offset")


@dataclass(frozen=True)
class ResourceType:
    """Static description of a resource family.

    Attributes:
        name (str): Registry key, e.g. ``"FeedList"``
        kind (str): ``LIST`` or ``ITEM``
        item_type (Optional[str]): Type of the items of a list resource
        related (Dict[str, str]): Link relation name -> related resource type
        search_params (Tuple[str, ...]): Accepted search parameters
        writable_fields (Tuple[str, ...]): Fields accepted by POST or PUT
        upload_field (Optional[str]): Name of the multipart file part
    """
    name: str
    kind: str
    item_type: Optional[str] = None
    related: Dict[str, str] = field(default_factory=dict)
    search_params: Tuple[str, ...] = ()
    writable_fields: Tuple[str, ...] = ()
    upload_field: Optional[str] = None

    @property
    def is_list(self) -> bool:
        return self.kind == LIST


CATALOG: Dict[str, ResourceType] = {}


def register(resource_type: ResourceType) -> ResourceType:
    if resource_type.kind not in (LIST, ITEM):
        raise ConfigError(f"Unknown resource kind '{resource_type.kind}' for {resource_type.name}")
    if resource_type.kind == LIST and resource_type.item_type is None:
        raise ConfigError(f"List resource {resource_type.name} must declare its item type")
    CATALOG[resource_type.name] = resource_type
    return resource_type


def get_resource_type(name: str) -> ResourceType:
    """Look up a declared resource type by name."""
    try:
        return CATALOG[name]
    except KeyError:
        raise ConfigError(f"Unknown resource type: {name}") from None


def _list(name, item_type, related=None, search=(), writable=(), upload_field=None):
    return register(ResourceType(
        name=name,
        kind=LIST,
        item_type=item_type,
        related=related or {},
        search_params=PAGE_PARAMS + tuple(search),
        writable_fields=tuple(writable),
        upload_field=upload_field,
    ))


def _item(name, related=None, writable=()):
    return register(ResourceType(
        name=name,
        kind=ITEM,
        related=related or {},
        writable_fields=tuple(writable),
    ))


# Feeds

_list(
    "FeedList", "Feed",
    related={
        "files": "AllFeedFileList",
        "plugins": "PluginList",
        "plugin_instances": "AllPluginInstanceList",
        "pipelines": "PipelineList",
        "pipeline_instances": "AllPipelineInstanceList",
        "tags": "TagList",
        "uploadedfiles": "UploadedFileList",
        "user": "User",
    },
    search=("id", "min_id", "max_id", "name", "min_creation_date", "max_creation_date"),
)
_item(
    "Feed",
    related={
        "note": "Note",
        "tags": "FeedTagList",
        "taggings": "FeedTaggingList",
        "comments": "FeedCommentList",
        "files": "FeedFileList",
        "plugin_instances": "FeedPluginInstanceList",
    },
    writable=("name", "owner"),
)
_item("Note", related={"feed": "Feed"}, writable=("title", "content"))
_list("FeedCommentList", "Comment", related={"feed": "Feed"}, writable=("title", "content"))
_item("Comment", related={"feed": "Feed"}, writable=("title", "content"))

# Files

_list(
    "AllFeedFileList", "FeedFile",
    search=("id", "plugin_inst_id", "feed_id", "min_creation_date", "max_creation_date"),
)
_list("FeedFileList", "FeedFile", related={"feed": "Feed"})
_item("FeedFile", related={"feed": "Feed", "plugin_inst": "PluginInstance"})
_list(
    "UploadedFileList", "UploadedFile",
    search=("id", "upload_path", "owner_username"),
    writable=("upload_path",),
    upload_field="fname",
)
_item("UploadedFile", writable=("upload_path",))

# Plugins

_list(
    "PluginList", "Plugin",
    search=(
        "id", "name", "name_exact", "version", "dock_image", "type", "category",
        "description", "title", "authors", "min_creation_date", "max_creation_date",
    ),
)
_item(
    "Plugin",
    related={
        "parameters": "PluginParameterList",
        "instances": "PluginInstanceList",
    },
)
_list("PluginParameterList", "PluginParameter", related={"plugin": "Plugin"})
_item("PluginParameter", related={"plugin": "Plugin"})

# Plugin instances

_list(
    "PluginInstanceList", "PluginInstance",
    related={"plugin": "Plugin"},
    writable=("previous_id", "title", "cpu_limit", "memory_limit", "number_of_workers", "gpu_limit"),
)
_list(
    "AllPluginInstanceList", "PluginInstance",
    search=(
        "id", "title", "status", "owner_username", "feed_id", "root_id", "plugin_id",
        "plugin_name", "plugin_name_exact", "plugin_version",
    ),
)
_list("FeedPluginInstanceList", "PluginInstance", related={"feed": "Feed"})
_list("PluginInstanceDescendantList", "PluginInstance")
_item(
    "PluginInstance",
    related={
        "feed": "Feed",
        "plugin": "Plugin",
        "previous": "PluginInstance",
        "descendants": "PluginInstanceDescendantList",
        "parameters": "PluginInstanceParameterList",
        "files": "PluginInstanceFileList",
    },
    writable=("title", "status"),
)
_list("PluginInstanceParameterList", "PluginInstanceParameter")
_item(
    "PluginInstanceParameter",
    related={"plugin_inst": "PluginInstance", "plugin_param": "PluginParameter"},
)
_list(
    "PluginInstanceFileList", "FeedFile",
    related={"plugin_inst": "PluginInstance", "feed": "Feed"},
)

# Pipelines

_list(
    "PipelineList", "Pipeline",
    search=(
        "id", "name", "owner_username", "category", "description", "authors",
        "min_creation_date", "max_creation_date",
    ),
    writable=(
        "name", "authors", "category", "description", "locked", "plugin_tree", "plugin_inst_id",
    ),
)
_item(
    "Pipeline",
    related={
        "plugins": "PipelinePluginList",
        "plugin_pipings": "PipelinePipingList",
        "default_parameters": "PipelineDefaultParameterList",
        "instances": "PipelineInstanceList",
    },
    writable=("name", "authors", "category", "description", "locked"),
)
_list("PipelinePluginList", "Plugin")
_list("PipelinePipingList", "PluginPiping")
_item(
    "PluginPiping",
    related={"pipeline": "Pipeline", "plugin": "Plugin", "previous": "PluginPiping"},
)
_list("PipelineDefaultParameterList", "PipingDefaultParameter")
_item("PipingDefaultParameter", related={"plugin_piping": "PluginPiping"}, writable=("default",))

# Pipeline instances

_list(
    "PipelineInstanceList", "PipelineInstance",
    related={"pipeline": "Pipeline"},
    writable=("previous_plugin_inst_id", "title", "description"),
)
_list(
    "AllPipelineInstanceList", "PipelineInstance",
    search=("id", "title", "description", "pipeline_name"),
)
_item(
    "PipelineInstance",
    related={
        "pipeline": "Pipeline",
        "plugin_instances": "PipelineInstancePluginInstanceList",
    },
    writable=("title", "description"),
)
_list("PipelineInstancePluginInstanceList", "PluginInstance")

# Tags

_list(
    "TagList", "Tag",
    search=("id", "name", "owner_username", "color"),
    writable=("name", "color"),
)
_item(
    "Tag",
    related={"feeds": "TagFeedList", "taggings": "TagTaggingList"},
    writable=("name", "color"),
)
_item("Tagging", related={"tag": "Tag", "feed": "Feed"})
_list("TagTaggingList", "Tagging", related={"tag": "Tag"}, writable=("feed_id",))
_list("FeedTaggingList", "Tagging", related={"feed": "Feed"}, writable=("tag_id",))
_list("TagFeedList", "Feed", related={"tag": "Tag"})
_list("FeedTagList", "Tag", related={"feed": "Feed"})

# Users

_item("User", writable=("email", "password"))
