"""Refactoring operations: query literal rewrites and method renames.

Renames are planned across every affected file, validated, and only then
applied. Each rename is its own unit of work: if anything fails after the
first file was touched, every touched source is restored byte for byte.
Nothing is written to disk here; see ``SourceRegistry.write_modified``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from queryplane.analysis.models import (
    MethodRename,
    QueryOptimizationResult,
    RenameOutcome,
)
from queryplane.analysis.rewrite import format_query_for_text_block
from queryplane.core.errors import QueryPlaneError, RefactorError
from queryplane.core.logging import get_logger
from queryplane.graph.dependencies import DependencyGraph
from queryplane.java.edits import TextEdit, apply_text_edits, apply_within, check_overlaps
from queryplane.java.models import JavaMethod, MethodCall, MethodShape, Span
from queryplane.java.registry import SourceRegistry

log = get_logger(__name__)

DEFAULT_TEXT_BLOCK_WIDTH = 80
DEFAULT_TEXT_BLOCK_INDENT = " " * 8


@dataclass
class RefactorStats:
    """Counters accumulated over the lifetime of one engine."""

    annotations_changed: int = 0
    signatures_changed: int = 0
    calls_updated: int = 0
    dependent_files: set[Path] = field(default_factory=set)


@dataclass
class RenamePlan:
    """Validated edits for one rename, grouped by file."""

    rename: MethodRename
    owner_fqn: str
    edits: dict[Path, list[TextEdit]]
    call_sites: int
    owner_path: Path


class RefactoringEngine:
    """Applies analysis results to the in-memory Java sources."""

    def __init__(
        self,
        registry: SourceRegistry,
        graph: DependencyGraph,
        *,
        text_block_width: int = DEFAULT_TEXT_BLOCK_WIDTH,
        text_block_indent: str = DEFAULT_TEXT_BLOCK_INDENT,
    ) -> None:
        self._registry = registry
        self._graph = graph
        self._width = text_block_width
        self._indent = text_block_indent
        self._outcomes: dict[tuple[str, str, MethodShape], RenameOutcome] = {}
        self.stats = RefactorStats()

    # Query annotations

    def act_on_analysis_result(
        self, result: QueryOptimizationResult, renames: Sequence[MethodRename] = ()
    ) -> bool:
        """Rewrite the ``@Query`` literal of ``result`` and apply its declaration rename.

        Returns True when any source changed.
        """
        query = result.query
        if query is None or not result.issues:
            return False
        issue = result.issues[0]
        changed = False

        if issue.optimized_query and query.method is not None and not query.is_derived:
            changed = self._rewrite_query_literal(
                query.repository_class, query.method, issue.optimized_query
            )

        for rename in renames:
            if rename.old_name != query.method_name:
                continue
            if rename.analysis_result is not None and rename.analysis_result is not result:
                continue
            outcome = self.apply_rename(rename, query.repository_class)
            changed = changed or outcome.applied
        return changed

    def _rewrite_query_literal(self, owner_fqn: str, method: JavaMethod, text: str) -> bool:
        current = self._find_declaration(owner_fqn, method.name, method.shape)
        if current is None:
            log.warning("query_method_not_found", owner=owner_fqn, method=method.name)
            return False
        annotation = current.annotation("Query")
        member = annotation.member("value") if annotation else None
        if member is None:
            log.warning("query_annotation_not_found", owner=owner_fqn, method=method.name)
            return False
        if member.string_value is None:
            log.warning("query_value_not_literal", owner=owner_fqn, method=method.name)
            return False
        if member.string_value.strip() == text.strip():
            return False

        literal = self.render_literal(text, text_block=member.raw.startswith('"""'))
        source = self._registry.require_source(owner_fqn)
        data = apply_text_edits(source.data, [TextEdit(member.value_span, literal)], str(source.path))
        self._registry.update(source.path, data)
        self.stats.annotations_changed += 1
        log.info("query_annotation_rewritten", owner=owner_fqn, method=method.name)
        return True

    def render_literal(self, text: str, *, text_block: bool = False) -> str:
        """Java source for a string literal holding ``text``.

        Long or multi-line queries are emitted as text blocks.
        """
        if text_block or "\n" in text or len(text) > self._width:
            body = format_query_for_text_block(text, self._width, self._indent)
            body = body.replace("\\", "\\\\").replace('"""', '\\"""')
            return f'"""\n{self._indent}{body}\n{self._indent}"""'
        escaped = (
            text.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\t", "\\t")
            .replace("\r", "\\r")
        )
        return f'"{escaped}"'

    # Method renames

    def batch_update_method_signatures(
        self, renames: Iterable[MethodRename], owner_fqn: str
    ) -> list[RenameOutcome]:
        """Apply every rename declared on ``owner_fqn``.

        Renames already applied through :meth:`act_on_analysis_result`
        report their earlier outcome.
        """
        self._graph.build_dependencies()
        return [self.apply_rename(rename, owner_fqn) for rename in renames]

    def apply_rename(self, rename: MethodRename, owner_fqn: str) -> RenameOutcome:
        key = (owner_fqn, rename.old_name, rename.old_shape)
        if key in self._outcomes:
            return self._outcomes[key]

        self._graph.build_dependencies()
        try:
            plan = self.plan_rename(rename, owner_fqn)
        except RefactorError as e:
            log.warning("rename_rejected", owner=owner_fqn, old=rename.old_name, error=str(e))
            outcome = RenameOutcome(rename, applied=False, error=e.message)
        else:
            outcome = self._apply_plan(plan)
        self._outcomes[key] = outcome
        return outcome

    def plan_rename(self, rename: MethodRename, owner_fqn: str) -> RenamePlan:
        """Collect and validate every edit of ``rename`` without touching a source.

        Raises:
            RefactorError: If the declaration is missing, no valid position map
                exists, a call site cannot be rewritten safely, or two edits
                overlap.
        """
        source = self._registry.require_source(owner_fqn)
        owner = source.type_by_fqn(owner_fqn)
        declaration = self._find_declaration(owner_fqn, rename.old_name, rename.old_shape)
        if owner is None or declaration is None:
            raise RefactorError.declaration_not_found(owner_fqn, rename.old_name)

        mapping = validated_position_map(rename)
        order = [0] * len(mapping)
        for old, new in mapping.items():
            order[new] = old
        reorders = any(k != v for k, v in mapping.items())

        overloads = [m for m in owner.methods_named(rename.old_name) if m is not declaration]
        overload_arities = {m.arity for m in overloads}
        if declaration.arity in overload_arities:
            raise RefactorError.ambiguous_overload(owner_fqn, rename.old_name, declaration.arity)
        if rename.new_name != rename.old_name:
            existing = {m.arity for m in owner.methods_named(rename.new_name)}
            if declaration.arity in existing:
                raise RefactorError.ambiguous_overload(owner_fqn, rename.new_name, declaration.arity)

        edits: dict[Path, list[TextEdit]] = {source.path: []}
        edits[source.path].append(TextEdit(declaration.name_span, rename.new_name))
        if reorders:
            params = declaration.parameters
            edits[source.path].append(
                _permute(
                    source.data,
                    [p.span for p in params],
                    order,
                    [],
                )
            )

        sites = 0
        for path, calls in self._call_sites(owner_fqn, rename.old_name).items():
            data = self._registry.source(path).data
            file_edits = edits.setdefault(path, [])
            # Innermost first so enclosing argument lists see rewritten inner calls
            for call in sorted(calls, key=lambda c: c.span.end - c.span.start):
                where = f"{path}:{call.span.start}"
                if call.kind == "reference":
                    if overloads:
                        continue
                    if reorders:
                        raise RefactorError.unsafe_reference(where, rename.old_name)
                    file_edits.append(TextEdit(call.name_span, rename.new_name))
                    sites += 1
                    continue
                if call.arity != declaration.arity:
                    if call.arity in overload_arities:
                        continue
                    raise RefactorError.arity_mismatch(where, declaration.arity, call.arity)
                file_edits.append(TextEdit(call.name_span, rename.new_name))
                if reorders and call.arguments:
                    outer = _permute(data, list(call.arguments), order, file_edits)
                    file_edits[:] = [
                        e for e in file_edits if not _contains(outer.span, e.span)
                    ]
                    file_edits.append(outer)
                sites += 1

        for path, file_edits in edits.items():
            edits[path] = check_overlaps(file_edits, str(path))
        return RenamePlan(rename, owner_fqn, edits, sites, source.path)

    def _apply_plan(self, plan: RenamePlan) -> RenameOutcome:
        rename = plan.rename
        touched = [p for p, e in plan.edits.items() if e]
        snapshot = self._registry.snapshot(touched)
        broken_before = {p for p in touched if self._registry.source(p).has_errors}
        try:
            for path in touched:
                source = self._registry.source(path)
                self._registry.update(path, apply_text_edits(source.data, plan.edits[path], str(path)))
                if source.has_errors and path not in broken_before:
                    raise RefactorError.syntax_broken(str(path))
            if self._find_declaration(plan.owner_fqn, rename.new_name, rename.new_shape) is None:
                raise RefactorError.declaration_not_found(plan.owner_fqn, rename.new_name)
        except QueryPlaneError as e:
            self._registry.restore(snapshot)
            log.warning("rename_rolled_back", owner=plan.owner_fqn, old=rename.old_name, error=str(e))
            return RenameOutcome(rename, applied=False, error=e.message)

        self._graph.rename_method(plan.owner_fqn, rename.old_name, rename.new_name)
        dependents = [p for p in touched if p != plan.owner_path]
        self.stats.signatures_changed += 1
        self.stats.calls_updated += plan.call_sites
        self.stats.dependent_files.update(dependents)
        log.info(
            "rename_applied",
            owner=plan.owner_fqn,
            old=rename.old_name,
            new=rename.new_name,
            sites=plan.call_sites,
            files=len(touched),
        )
        return RenameOutcome(
            rename,
            applied=True,
            call_sites_updated=plan.call_sites,
            files_modified=[str(p) for p in touched],
        )

    def _call_sites(self, owner_fqn: str, method_name: str) -> dict[Path, list[MethodCall]]:
        sites: dict[Path, dict[Span, MethodCall]] = {}
        for caller in self._graph.get_method_callers(owner_fqn, method_name):
            source = self._registry.source_for(caller.caller_class)
            if source is None:
                continue
            for call in self._graph.calls_in(caller.caller_class, caller.field_name):
                if call.name == method_name:
                    sites.setdefault(source.path, {})[call.span] = call
        return {path: list(calls.values()) for path, calls in sites.items()}

    def _find_declaration(self, owner_fqn: str, name: str, shape: MethodShape) -> JavaMethod | None:
        owner = self._registry.get_type(owner_fqn)
        if owner is None:
            return None
        candidates = owner.methods_named(name)
        for m in candidates:
            if m.shape.parameters == shape.parameters:
                return m
        by_names = [m for m in candidates if m.shape.parameter_names == shape.parameter_names]
        if len(by_names) == 1:
            return by_names[0]
        by_arity = [m for m in candidates if m.arity == shape.arity]
        return by_arity[0] if len(by_arity) == 1 else None


def validated_position_map(rename: MethodRename) -> dict[int, int]:
    """The rename's old->new parameter map, or one rebuilt from parameter names.

    Raises:
        RefactorError: If neither the given map nor the names give a complete
            bijection consistent with both shapes.
    """
    old = rename.old_shape.parameters
    new = rename.new_shape.parameters
    if len(old) != len(new):
        raise RefactorError.invalid_mapping(
            "shapes differ in arity", old=len(old), new=len(new)
        )
    given = rename.position_map
    if given is not None and _is_bijection(given, len(old)):
        if all(old[i] == new[j] for i, j in given.items()):
            return dict(given)

    log.debug("position_map_rebuilt", method=rename.old_name)
    names = [n for _, n in new]
    if len(set(names)) != len(names):
        raise RefactorError.invalid_mapping("parameter names are not unique", names=names)
    mapping: dict[int, int] = {}
    for i, (type_name, name) in enumerate(old):
        if name not in names:
            raise RefactorError.invalid_mapping("parameter missing from new shape", name=name)
        j = names.index(name)
        if new[j][0] != type_name:
            raise RefactorError.invalid_mapping("parameter type changed", name=name)
        mapping[i] = j
    if not _is_bijection(mapping, len(old)):
        raise RefactorError.invalid_mapping("parameter names do not form a bijection")
    return mapping


def _is_bijection(mapping: dict[int, int], arity: int) -> bool:
    expected = set(range(arity))
    return set(mapping) == expected and set(mapping.values()) == expected


def _contains(outer: Span, inner: Span) -> bool:
    return outer.start <= inner.start and inner.end <= outer.end


def _permute(data: bytes, spans: list[Span], order: list[int], inner: list[TextEdit]) -> TextEdit:
    """Edit replacing ``spans[0]..spans[-1]`` with the pieces permuted by ``order``.

    Separators between the pieces stay where they were; edits already planned
    inside a piece travel with it.
    """
    pieces = [apply_within(data, s, inner) for s in spans]
    out = [pieces[order[0]]]
    for slot in range(1, len(spans)):
        out.append(data[spans[slot - 1].end : spans[slot].start].decode("utf-8"))
        out.append(pieces[order[slot]])
    return TextEdit(Span(spans[0].start, spans[-1].end), "".join(out))
