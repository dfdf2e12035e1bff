"""Cross-file dependency graph."""

from queryplane.graph.dependencies import CallerInfo, DependencyGraph

__all__ = ["CallerInfo", "DependencyGraph"]
