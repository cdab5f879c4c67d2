"""
Query engine configuration files

Renders the Trino server and catalog properties injected into the query
engine container as resource mappings. Services are addressed by their
in-network aliases, never by host ports, so the files are independent of
per-run port assignment.
"""

import logging
from typing import Dict, Tuple

from jinja2 import DictLoader, Environment, StrictUndefined

from .config import LakestackConfig
from .models import ResourceMapping

logger = logging.getLogger(__name__)

TRINO_PORT = 8080
NESSIE_PORT = 19120
MINIO_S3_PORT = 9000

TRINO_ALIAS = "trino"
NESSIE_ALIAS = "nessie"
MINIO_ALIAS = "minio"

TRINO_CONFIG_DIR = "/etc/trino"

TEMPLATES: Dict[str, str] = {
    "config.properties": """\
coordinator=true
node-scheduler.include-coordinator=true
http-server.http.port={{ trino_port }}
query.max-memory=512MB
discovery.uri=http://{{ trino_alias }}:{{ trino_port }}

# Faster query expiry for tests
query.min-expire-age=0s
query.client.timeout=5m
""",
    "node.properties": """\
node.environment=test
node.id=lakestack-trino
node.data-dir=/data/trino
""",
    "log.properties": """\
io.trino=INFO
""",
    "jvm.config": """\
-server
-Xms256M
-Xmx256M
-XX:+UseSerialGC
-XX:+ExitOnOutOfMemoryError
-XX:TieredStopAtLevel=1
-Djdk.attach.allowAttachSelf=true
""",
    "catalog.properties": """\
connector.name=iceberg

iceberg.catalog.type=nessie
iceberg.nessie-catalog.uri=http://{{ nessie_alias }}:{{ nessie_port }}/api/v2
iceberg.nessie-catalog.default-warehouse-dir=s3://{{ warehouse_bucket }}/

fs.native-s3.enabled=true
s3.endpoint=http://{{ minio_alias }}:{{ minio_port }}
s3.path-style-access=true
s3.region=us-east-1
s3.aws-access-key={{ access_key }}
s3.aws-secret-key={{ secret_key }}

iceberg.file-format=PARQUET
iceberg.metadata-cache.enabled=true
iceberg.expire-snapshots.min-retention=0s
iceberg.remove-orphan-files.min-retention=0s
s3.streaming.part-size=8MB
""",
}

# Undefined variables are a bug in this module, not a runtime condition
_jinja_env = Environment(
    loader=DictLoader(TEMPLATES),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render(template_name: str, **variables) -> bytes:
    """Render one configuration template to UTF-8 bytes."""
    template = _jinja_env.get_template(template_name)
    return template.render(**variables).encode("utf-8")


def config_properties() -> bytes:
    return render("config.properties", trino_port=TRINO_PORT, trino_alias=TRINO_ALIAS)


def node_properties() -> bytes:
    return render("node.properties")


def log_properties() -> bytes:
    return render("log.properties")


def jvm_config() -> bytes:
    return render("jvm.config")


def catalog_properties(config: LakestackConfig) -> bytes:
    """Iceberg catalog backed by Nessie with table data in object storage."""
    return render(
        "catalog.properties",
        nessie_alias=NESSIE_ALIAS,
        nessie_port=NESSIE_PORT,
        minio_alias=MINIO_ALIAS,
        minio_port=MINIO_S3_PORT,
        warehouse_bucket=config.warehouse_bucket,
        access_key=config.minio_root_user,
        secret_key=config.minio_root_password,
    )


def trino_resource_mappings(config: LakestackConfig) -> Tuple[ResourceMapping, ...]:
    """All files written into the query engine container before it starts."""
    mappings = (
        ResourceMapping(config_properties(), f"{TRINO_CONFIG_DIR}/config.properties"),
        ResourceMapping(node_properties(), f"{TRINO_CONFIG_DIR}/node.properties"),
        ResourceMapping(log_properties(), f"{TRINO_CONFIG_DIR}/log.properties"),
        ResourceMapping(jvm_config(), f"{TRINO_CONFIG_DIR}/jvm.config"),
        ResourceMapping(
            catalog_properties(config),
            f"{TRINO_CONFIG_DIR}/catalog/{config.catalog_name}.properties",
        ),
    )
    logger.debug(f"Rendered {len(mappings)} query engine configuration files")
    return mappings
