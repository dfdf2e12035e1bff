"""Field and call-site dependency graph across loaded Java sources.

For every type that some class holds as a field, the graph records which
classes hold it (and under which field names) and which methods of it are
invoked through those fields. The graph is built once per run against one
:class:`SourceRegistry`; call :meth:`DependencyGraph.clear` before building
again for an unrelated run.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from queryplane.core.logging import get_logger
from queryplane.java.models import JavaType, MethodCall
from queryplane.java.registry import SourceRegistry

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CallerInfo:
    """One class invoking a method through one of its fields."""

    caller_class: str
    field_name: str


class DependencyGraph:
    def __init__(self, registry: SourceRegistry) -> None:
        self._registry = registry
        self._built = False
        # target FQN -> holder FQN -> field names
        self._fields: dict[str, dict[str, set[str]]] = {}
        # target FQN -> method name -> callers
        self._calls: dict[str, dict[str, set[CallerInfo]]] = {}

    @property
    def is_built(self) -> bool:
        return self._built

    def clear(self) -> None:
        self._fields.clear()
        self._calls.clear()
        self._built = False

    def build_dependencies(self) -> None:
        """Index field holders and call sites. A no-op when already built."""
        if self._built:
            return
        self._index_fields()
        self._propagate_to_subclasses()
        self._index_calls()
        self._built = True
        log.info(
            "dependency_graph_built",
            targets=len(self._fields),
            methods=sum(len(m) for m in self._calls.values()),
            call_sites=sum(len(c) for m in self._calls.values() for c in m.values()),
        )

    def _index_fields(self) -> None:
        fields: dict[str, dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
        for source, jtype in self._registry.iter_types():
            for fld in jtype.fields:
                target = self._registry.resolve_ref(fld.type, source, jtype)
                if target is not None:
                    fields[target][jtype.fqn].add(fld.name)
        self._fields = {t: dict(holders) for t, holders in fields.items()}

    def _propagate_to_subclasses(self) -> None:
        direct = self._registry.direct_subclasses()
        for holders in self._fields.values():
            for parent, names in list(holders.items()):
                for sub in self._registry.find_subclasses(parent, direct):
                    # A field declared again in the subclass hides the inherited one
                    visible = names - _declared_fields(self._registry.get_type(sub))
                    if visible:
                        holders.setdefault(sub, set()).update(visible)

    def _index_calls(self) -> None:
        for target, holders in self._fields.items():
            index = self._calls.setdefault(target, {})
            for holder, names in holders.items():
                for name in names:
                    for call in self.calls_in(holder, name):
                        index.setdefault(call.name, set()).add(CallerInfo(holder, name))

    def calls_in(self, holder: str, field_name: str | None = None) -> list[MethodCall]:
        """Calls written in ``holder`` or any type nested inside it.

        With ``field_name``, only calls through that field of ``holder``;
        nested types that declare a field of the same name are skipped.
        """
        source = self._registry.source_for(holder)
        if source is None:
            return []
        nested = [t for t in source.types if _within(t, holder)]
        hiding = [
            t.fqn
            for t in nested
            if field_name is not None and t.fqn != holder and field_name in _declared_fields(t)
        ]
        calls: list[MethodCall] = []
        for jtype in nested:
            if field_name is None:
                calls.extend(jtype.calls)
            elif not any(_within(jtype, h) for h in hiding):
                calls.extend(c for c in jtype.calls if c.receiver == field_name)
        return calls

    # Queries

    def get_field_dependencies(self, owner_fqn: str) -> dict[str, set[str]]:
        """holder FQN -> field names, for every class holding ``owner_fqn``."""
        return {h: set(n) for h, n in self._fields.get(owner_fqn, {}).items()}

    def get_method_callers(self, owner_fqn: str, method_name: str) -> set[CallerInfo]:
        return set(self._calls.get(owner_fqn, {}).get(method_name, ()))

    def get_indexed_method_names(self, owner_fqn: str) -> set[str]:
        return {m for m, callers in self._calls.get(owner_fqn, {}).items() if callers}

    def rename_method(self, owner_fqn: str, old_name: str, new_name: str) -> None:
        """Move the callers of a renamed method to its new name."""
        index = self._calls.get(owner_fqn)
        if not index or old_name not in index:
            return
        index.setdefault(new_name, set()).update(index.pop(old_name))


def _within(jtype: JavaType, holder: str) -> bool:
    return jtype.fqn == holder or jtype.fqn.startswith(holder + ".")


def _declared_fields(jtype: JavaType | None) -> set[str]:
    return {f.name for f in jtype.fields} if jtype is not None else set()
