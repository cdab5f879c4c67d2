"""
Query engine connections.

Connections are opened against a fixed catalog; the schema is either
passed per connection or qualified in each statement.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import trino.dbapi

logger = logging.getLogger(__name__)


def connect_trino(
    endpoint: str,
    user: str,
    catalog: str,
    schema: Optional[str] = None,
) -> Any:
    """
    Open a DB-API connection to a Trino endpoint.

    Args:
        endpoint: Base URL, e.g. http://localhost:49153
        user: User name reported to the query engine
        catalog: Catalog for unqualified names
        schema: Optional default schema

    Returns:
        trino.dbapi.Connection
    """
    parsed = urlparse(endpoint)
    if not parsed.hostname or not parsed.port:
        raise ValueError(f"Invalid query engine endpoint: {endpoint}")

    kwargs = {
        "host": parsed.hostname,
        "port": parsed.port,
        "user": user,
        "catalog": catalog,
        "http_scheme": parsed.scheme or "http",
    }
    if schema:
        kwargs["schema"] = schema

    logger.debug(f"Connecting to {endpoint} (catalog={catalog}, schema={schema})")
    return trino.dbapi.connect(**kwargs)
