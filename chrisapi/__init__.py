"""Python client for the ChRIS REST API (Collection+JSON)."""

import logging

from .auth import Anonymous, BasicAuth, TokenAuth
from .catalog import CATALOG, ResourceType, get_resource_type
from .client import Client
from .collection import (
    COLLECTION_JSON,
    Collection,
    Descriptor,
    Item,
    Link,
    Query,
    Template,
    decode,
    encode,
    get_item_descriptors,
    get_link_relation_urls,
    get_query_parameters,
    get_template_fields,
    make_template,
)
from .config import Settings, TransportConfig, get_settings
from .exceptions import (
    ChrisAPIError,
    ConfigError,
    NotFoundError,
    ProtocolError,
    RequestException,
    RequestInfo,
    ResponseInfo,
)
from .logging_config import setup_logging
from .request import Request, Response
from .resource import ItemResource, ListResource, Resource, ResourceState, make_resource
from .retry import CONSERVATIVE_RETRY, NO_RETRY, RetryConfig, RetryManager, with_retry

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Client
    "Client",

    # Credentials
    "Anonymous",
    "BasicAuth",
    "TokenAuth",

    # Collection+JSON
    "COLLECTION_JSON",
    "Collection",
    "Descriptor",
    "Item",
    "Link",
    "Query",
    "Template",
    "decode",
    "encode",
    "get_item_descriptors",
    "get_link_relation_urls",
    "get_query_parameters",
    "get_template_fields",
    "make_template",

    # Transport
    "Request",
    "Response",
    "TransportConfig",

    # Resources
    "Resource",
    "ItemResource",
    "ListResource",
    "ResourceState",
    "ResourceType",
    "CATALOG",
    "get_resource_type",
    "make_resource",

    # Configuration
    "Settings",
    "get_settings",

    # Logging
    "setup_logging",

    # Retry
    "RetryConfig",
    "RetryManager",
    "with_retry",
    "CONSERVATIVE_RETRY",
    "NO_RETRY",

    # Exceptions
    "ChrisAPIError",
    "ConfigError",
    "ProtocolError",
    "RequestException",
    "NotFoundError",
    "RequestInfo",
    "ResponseInfo",
]
