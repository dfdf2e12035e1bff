"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local queryplane package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of queryplane modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("queryplane"):
        del sys.modules[module_name]

from queryplane.java.registry import SourceRegistry  # noqa: E402
from queryplane.schema.models import IndexInfo, IndexMetadata, IndexType  # noqa: E402


@pytest.fixture
def users_metadata() -> IndexMetadata:
    """``users`` keyed by user_id, unique email, plain index on name."""
    return IndexMetadata.build(
        {
            "users": [
                IndexInfo("pk_users", IndexType.PRIMARY_KEY, ("user_id",)),
                IndexInfo("uq_users_email", IndexType.UNIQUE_CONSTRAINT, ("email",)),
                IndexInfo("idx_users_name", IndexType.INDEX, ("name",)),
            ],
        },
        {"users": {"status": "enum"}},
    )


@pytest.fixture
def make_registry(tmp_path: Path) -> Callable[[dict[str, str]], SourceRegistry]:
    """Factory: ``{"com/acme/Foo.java": source}`` -> registry of in-memory sources."""

    def factory(files: dict[str, str]) -> SourceRegistry:
        registry = SourceRegistry()
        for rel, text in files.items():
            registry.add_text(tmp_path / rel, text)
        return registry

    return factory
