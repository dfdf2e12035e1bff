"""Registry of loaded Java sources keyed by fully-qualified type name."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

from queryplane.core.errors import RefactorError
from queryplane.core.logging import get_logger
from queryplane.java.models import JavaType, TypeRef
from queryplane.java.parser import JavaSource

log = get_logger(__name__)

_SKIP_DIRS = frozenset({".git", "target", "build", "out", "node_modules", ".gradle", ".idea"})


class SourceRegistry:
    """Global lookup of parsed sources.

    Sources are mutated in memory by the refactoring code; nothing reaches the
    disk until :meth:`write_modified` is called.
    """

    def __init__(self) -> None:
        self._sources: dict[Path, JavaSource] = {}
        self._types: dict[str, Path] = {}

    # Loading

    def load_directory(self, root: Path, source_roots: Iterable[str] | None = None) -> int:
        """Parse every ``.java`` file below the given source roots.

        Falls back to the whole of ``root`` when none of the roots exist.
        Returns the number of files loaded.
        """
        dirs = [root / r for r in source_roots or ()]
        dirs = [d for d in dirs if d.is_dir()] or [root]
        count = 0
        for base in dirs:
            for path in sorted(base.rglob("*.java")):
                if _SKIP_DIRS.intersection(path.relative_to(base).parts):
                    continue
                self.add(JavaSource.from_path(path))
                count += 1
        log.info("sources_loaded", files=count, types=len(self._types))
        return count

    def add(self, source: JavaSource) -> JavaSource:
        previous = self._sources.get(source.path)
        if previous is not None:
            self._unindex(previous)
        self._sources[source.path] = source
        self._index(source)
        if source.has_errors:
            log.warning("source_has_syntax_errors", path=str(source.path))
        return source

    def add_text(self, path: Path | str, text: str) -> JavaSource:
        return self.add(JavaSource.from_text(Path(path), text))

    def _index(self, source: JavaSource) -> None:
        for t in source.types:
            self._types[t.fqn] = source.path

    def _unindex(self, source: JavaSource) -> None:
        for t in source.types:
            if self._types.get(t.fqn) == source.path:
                del self._types[t.fqn]

    # Lookup

    def __len__(self) -> int:
        return len(self._sources)

    def sources(self) -> list[JavaSource]:
        return list(self._sources.values())

    def source(self, path: Path) -> JavaSource | None:
        return self._sources.get(path)

    def source_for(self, fqn: str) -> JavaSource | None:
        path = self._types.get(fqn)
        return self._sources.get(path) if path else None

    def get_type(self, fqn: str) -> JavaType | None:
        source = self.source_for(fqn)
        return source.type_by_fqn(fqn) if source else None

    def require_source(self, fqn: str) -> JavaSource:
        source = self.source_for(fqn)
        if source is None:
            raise RefactorError.source_not_loaded(fqn)
        return source

    def iter_types(self) -> Iterator[tuple[JavaSource, JavaType]]:
        for source in self._sources.values():
            for t in source.types:
                yield source, t

    def resolve(self, name: str, context: JavaSource, scope: JavaType | None = None) -> str | None:
        """Resolve a type name as written in ``context`` to a registered FQN.

        Checks, in order: nested types of ``scope`` and its enclosing types,
        an already-qualified name, single-type imports, the same package and
        wildcard imports. Returns ``None`` for types outside the registry.
        """
        name = name.split("<", 1)[0].strip()
        if not name:
            return None

        if scope is not None:
            prefix = scope.fqn
            while prefix in self._types:
                candidate = f"{prefix}.{name}"
                if candidate in self._types:
                    return candidate
                prefix = prefix.rpartition(".")[0]

        if "." in name and name in self._types:
            return name

        head, _, rest = name.partition(".")
        for imp in context.imports:
            if imp.endswith(f".{head}") or imp == head:
                candidate = f"{imp}.{rest}" if rest else imp
                if candidate in self._types:
                    return candidate

        same_package = f"{context.package}.{name}" if context.package else name
        if same_package in self._types:
            return same_package

        for imp in context.imports:
            if imp.endswith(".*"):
                candidate = f"{imp[:-2]}.{name}"
                if candidate in self._types:
                    return candidate
        return None

    def resolve_ref(self, ref: TypeRef, context: JavaSource, scope: JavaType | None = None) -> str | None:
        return self.resolve(ref.name, context, scope)

    def direct_subclasses(self) -> dict[str, set[str]]:
        """parent FQN -> FQNs of registered types that directly extend or implement it."""
        direct: dict[str, set[str]] = {}
        for source, t in self.iter_types():
            for ref in t.supertypes:
                parent = self.resolve_ref(ref, source, t)
                if parent is not None:
                    direct.setdefault(parent, set()).add(t.fqn)
        return direct

    def find_subclasses(self, fqn: str, direct: dict[str, set[str]] | None = None) -> set[str]:
        """All registered types that extend or implement ``fqn``, transitively."""
        if direct is None:
            direct = self.direct_subclasses()
        found: set[str] = set()
        pending = [fqn]
        while pending:
            for child in direct.get(pending.pop(), ()):
                if child not in found:
                    found.add(child)
                    pending.append(child)
        found.discard(fqn)
        return found

    # Mutation

    def update(self, path: Path, data: bytes) -> None:
        """Replace a source's bytes and re-index its types."""
        source = self._sources[path]
        self._unindex(source)
        source.update(data)
        self._index(source)

    def snapshot(self, paths: Iterable[Path]) -> dict[Path, bytes]:
        return {p: self._sources[p].data for p in paths if p in self._sources}

    def restore(self, snapshot: dict[Path, bytes]) -> None:
        for path, data in snapshot.items():
            if self._sources[path].data != data:
                self.update(path, data)

    def modified(self) -> list[JavaSource]:
        return [s for s in self._sources.values() if s.is_modified]

    def write_modified(self) -> list[Path]:
        """Write every modified source to disk and return the written paths."""
        written = []
        for source in self.modified():
            source.path.write_bytes(source.data)
            source.mark_saved()
            written.append(source.path)
        if written:
            log.info("sources_written", files=len(written))
        return written
