"""Index metadata: models and loaders."""

from queryplane.schema.loader import introspect_database, load_index_metadata, load_metadata_file
from queryplane.schema.models import BOOLEAN_TYPES, IndexInfo, IndexMetadata, IndexType

__all__ = [
    "BOOLEAN_TYPES",
    "IndexInfo",
    "IndexMetadata",
    "IndexType",
    "introspect_database",
    "load_index_metadata",
    "load_metadata_file",
]
