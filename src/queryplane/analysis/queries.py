"""Collect repository queries from Spring Data repository interfaces."""

from __future__ import annotations

from dataclasses import dataclass

from sqlglot import exp

from queryplane.analysis.derived import SPECIAL_PARAMETER_TYPES, parse_derived_name, snake_case
from queryplane.analysis.extraction import parse_statement
from queryplane.analysis.models import QueryParameter, RepositoryQuery
from queryplane.core.logging import get_logger
from queryplane.java.models import JavaMethod, JavaType
from queryplane.java.parser import JavaSource
from queryplane.java.registry import SourceRegistry

log = get_logger(__name__)

REPOSITORY_BASES = frozenset(
    {
        "Repository",
        "CrudRepository",
        "ListCrudRepository",
        "PagingAndSortingRepository",
        "ListPagingAndSortingRepository",
        "JpaRepository",
        "JpaRepositoryImplementation",
    }
)


@dataclass(frozen=True, slots=True)
class EntityInfo:
    """Entity managed by a repository and the table it maps to."""

    fqn: str | None
    entity_name: str
    table: str


class RepositoryScanner:
    """Finds repository interfaces and turns their methods into queries."""

    def __init__(self, registry: SourceRegistry) -> None:
        self._registry = registry

    def repositories(self) -> list[str]:
        """FQNs of every repository interface in the registry, sorted."""
        found = [
            t.fqn
            for source, t in self._registry.iter_types()
            if t.kind == "interface" and self.is_repository(t, source)
        ]
        return sorted(found)

    def is_repository(self, jtype: JavaType, source: JavaSource, _seen: frozenset[str] = frozenset()) -> bool:
        for ref in jtype.supertypes:
            if ref.simple_name in REPOSITORY_BASES:
                return True
            parent_fqn = self._registry.resolve_ref(ref, source, jtype)
            if parent_fqn is None or parent_fqn in _seen:
                continue
            parent = self._registry.get_type(parent_fqn)
            parent_source = self._registry.source_for(parent_fqn)
            if parent is not None and parent_source is not None:
                if self.is_repository(parent, parent_source, _seen | {jtype.fqn}):
                    return True
        return False

    def entity_for(self, jtype: JavaType, source: JavaSource) -> EntityInfo | None:
        """Entity from the first generic argument of the repository's supertypes."""
        for ref in jtype.supertypes:
            if not ref.arguments:
                continue
            written = ref.arguments[0]
            fqn = self._registry.resolve(written, source, jtype)
            entity = self._registry.get_type(fqn) if fqn else None
            simple = written.rsplit(".", 1)[-1]
            if entity is None:
                return EntityInfo(fqn, simple, snake_case(simple))

            entity_name = simple
            entity_ann = entity.annotation("Entity")
            if entity_ann is not None:
                member = entity_ann.member("name")
                if member is not None and member.string_value:
                    entity_name = member.string_value

            table = snake_case(entity_name)
            table_ann = entity.annotation("Table")
            if table_ann is not None:
                member = table_ann.member("name") or table_ann.member("value")
                if member is not None and member.string_value:
                    table = member.string_value
            return EntityInfo(fqn, entity_name, table)
        return None

    def collect(self, fqn: str) -> list[RepositoryQuery]:
        """Queries declared on one repository interface, in declaration order."""
        source = self._registry.source_for(fqn)
        jtype = self._registry.get_type(fqn)
        if source is None or jtype is None:
            return []

        entity = self.entity_for(jtype, source)
        queries = []
        for method in jtype.methods:
            if method.has_body:
                continue
            query = self._query_for(fqn, method, entity)
            if query is not None:
                queries.append(query)
        log.debug("queries_collected", repository=fqn, count=len(queries))
        return queries

    def _query_for(
        self, fqn: str, method: JavaMethod, entity: EntityInfo | None
    ) -> RepositoryQuery | None:
        aliases: dict[str, str] = {}
        table = entity.table if entity else None
        if entity is not None:
            aliases[entity.entity_name] = entity.table
            aliases[entity.entity_name.lower()] = entity.table

        annotation = method.annotation("Query")
        if annotation is not None:
            value = annotation.member("value")
            if value is None or value.string_value is None:
                return None
            native_member = annotation.member("nativeQuery")
            is_native = native_member is not None and native_member.raw.strip() == "true"
            statement = parse_statement(value.string_value)
            if is_native and statement is not None:
                table = _first_table(statement) or table
            return RepositoryQuery(
                repository_class=fqn,
                method_name=method.name,
                text=value.string_value,
                statement=statement,
                primary_table=table,
                parameters=tuple(_query_parameters(method)),
                is_native=is_native,
                method=method,
                aliases=aliases,
            )

        derived = parse_derived_name(method.name)
        if derived is None:
            return None
        params = _query_parameters(method)
        criteria = [p for p in params if p.type_name not in SPECIAL_PARAMETER_TYPES]
        cursor = 0
        for part in derived.parts:
            for p in criteria[cursor : cursor + part.parameter_count]:
                params[p.index] = QueryParameter(p.name, p.type_name, p.index, part.column, None)
            cursor += part.parameter_count
        return RepositoryQuery(
            repository_class=fqn,
            method_name=method.name,
            primary_table=table,
            parameters=tuple(params),
            is_derived=True,
            method=method,
            aliases=aliases,
        )


def _query_parameters(method: JavaMethod) -> list[QueryParameter]:
    params = []
    for index, p in enumerate(method.parameters):
        bound = p.annotation("Param")
        member = bound.member("value") if bound is not None else None
        name = member.string_value if member is not None and member.string_value else p.name
        params.append(
            QueryParameter(
                name=name,
                type_name=p.type_name,
                index=index,
                placeholder=f":{name}" if bound is not None else f"?{index + 1}",
            )
        )
    return params


def _first_table(statement: exp.Expression) -> str | None:
    # sqlglot stores FROM under "from" or "from_" depending on version
    from_ = statement.args.get("from") or statement.args.get("from_")
    if not isinstance(from_, exp.Expression):
        from_ = statement
    table = from_ if isinstance(from_, exp.Table) else from_.find(exp.Table)
    if table is not None and table.name:
        return table.name
    return None
