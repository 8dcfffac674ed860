"""Database access layer: descriptors, versions, and instances."""

from pgprobe.db.descriptor import (
    KeyValueDescriptor,
    UriDescriptor,
    asyncpg_connect_kwargs,
    parse_descriptor,
    redact_password,
    rewrite_database,
)
from pgprobe.db.instance import (
    Instance,
    InstanceFactory,
    instance_factory_from_template,
)
from pgprobe.db.version import PG16, PG17, ServerVersion

__all__ = [
    "PG16",
    "PG17",
    "Instance",
    "InstanceFactory",
    "KeyValueDescriptor",
    "ServerVersion",
    "UriDescriptor",
    "asyncpg_connect_kwargs",
    "instance_factory_from_template",
    "parse_descriptor",
    "redact_password",
    "rewrite_database",
]
