"""Tests for RefactoringEngine: query literal rewrites and method renames."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import patch

import pytest

from queryplane.analysis.cardinality import CardinalityClassifier
from queryplane.analysis.engine import QueryAnalysisEngine
from queryplane.analysis.models import MethodRename, QueryOptimizationResult
from queryplane.analysis.queries import RepositoryScanner
from queryplane.core.errors import ErrorCode, RefactorError
from queryplane.graph.dependencies import DependencyGraph
from queryplane.java.models import MethodShape
from queryplane.java.registry import SourceRegistry
from queryplane.refactor.ops import RefactoringEngine, validated_position_map
from queryplane.schema.models import IndexMetadata

REPO = "com.acme.repo.CustomerRepository"

REPOSITORY = """\
package com.acme.repo;

import com.acme.model.Customer;

public interface CustomerRepository extends JpaRepository<Customer, Long> {

    @Query("SELECT c FROM Customer c WHERE c.isActive = :active AND c.email = :email")
    List<Customer> search(@Param("active") boolean active, @Param("email") String email);

    List<Customer> findByIsActiveAndEmail(boolean active, String email);

    List<Customer> findByStatus(String status);

    Page<Customer> findByStatus(String status, Pageable page);

    Customer findByCode(String code);

    Customer findByCode(Long code);
}
"""

SERVICE = """\
package com.acme.svc;

import com.acme.repo.CustomerRepository;

public class CustomerService {
    private CustomerRepository repository;

    List<Customer> active() {
        return repository.findByIsActiveAndEmail(true, "x@y");
    }

    List<Customer> byEmail(String e) {
        return repository.findByIsActiveAndEmail(isOn(e), e.trim());
    }

    List<Customer> status(Pageable page) {
        repository.findByStatus("A", page);
        return repository.findByStatus("B");
    }
}
"""

SERVICE_TEST = """\
package com.acme.svc;

import com.acme.repo.CustomerRepository;

class CustomerServiceTest {
    private CustomerRepository repository;

    void check() {
        when(repository.findByIsActiveAndEmail(anyBoolean(), anyString())).thenReturn(null);
        verify(repository).findByIsActiveAndEmail(true, "x@y");
    }
}
"""

FILES = {
    "com/acme/repo/CustomerRepository.java": REPOSITORY,
    "com/acme/model/Customer.java": (
        "package com.acme.model;\n@Entity\n@Table(name = \"users\")\npublic class Customer {}\n"
    ),
    "com/acme/svc/CustomerService.java": SERVICE,
    "com/acme/svc/CustomerServiceTest.java": SERVICE_TEST,
}

OLD_SHAPE = MethodShape("findByIsActiveAndEmail", (("boolean", "active"), ("String", "email")))
NEW_SHAPE = MethodShape("findByEmailAndIsActive", (("String", "email"), ("boolean", "active")))


def swap_rename(position_map: dict[int, int] | None = None) -> MethodRename:
    return MethodRename(
        old_name=OLD_SHAPE.name,
        new_name=NEW_SHAPE.name,
        analysis_result=None,
        issue=None,
        position_map={0: 1, 1: 0} if position_map is None else position_map,
        old_shape=OLD_SHAPE,
        new_shape=NEW_SHAPE,
    )


def text_of(registry: SourceRegistry, fqn: str) -> str:
    return registry.source_for(fqn).text


@pytest.fixture
def registry(make_registry: Callable[[dict[str, str]], SourceRegistry]) -> SourceRegistry:
    return make_registry(FILES)


@pytest.fixture
def engine(registry: SourceRegistry) -> RefactoringEngine:
    return RefactoringEngine(registry, DependencyGraph(registry))


class TestRename:
    """Declaration plus call-site rewrites."""

    def test_declaration_and_every_call_site(
        self, registry: SourceRegistry, engine: RefactoringEngine
    ) -> None:
        """Name and argument order change together everywhere, Mockito included."""
        outcomes = engine.batch_update_method_signatures([swap_rename()], REPO)

        assert [o.applied for o in outcomes] == [True]
        assert outcomes[0].call_sites_updated == 4
        assert "List<Customer> findByEmailAndIsActive(String email, boolean active);" in text_of(
            registry, REPO
        )
        service = text_of(registry, "com.acme.svc.CustomerService")
        assert 'repository.findByEmailAndIsActive("x@y", true)' in service
        assert "repository.findByEmailAndIsActive(e.trim(), isOn(e))" in service
        test = text_of(registry, "com.acme.svc.CustomerServiceTest")
        assert "when(repository.findByEmailAndIsActive(anyString(), anyBoolean()))" in test
        assert 'verify(repository).findByEmailAndIsActive("x@y", true);' in test

    def test_stats_and_graph_follow_rename(
        self, registry: SourceRegistry, engine: RefactoringEngine
    ) -> None:
        engine.batch_update_method_signatures([swap_rename()], REPO)

        assert engine.stats.signatures_changed == 1
        assert engine.stats.calls_updated == 4
        assert {p.name for p in engine.stats.dependent_files} == {
            "CustomerService.java",
            "CustomerServiceTest.java",
        }
        graph = engine._graph
        assert graph.get_method_callers(REPO, OLD_SHAPE.name) == set()
        assert graph.get_method_callers(REPO, NEW_SHAPE.name)

    def test_outcome_is_cached(self, registry: SourceRegistry, engine: RefactoringEngine) -> None:
        """A rename requested twice is applied once."""
        rename = swap_rename()
        first = engine.apply_rename(rename, REPO)
        second = engine.apply_rename(rename, REPO)
        assert first is second
        assert engine.stats.signatures_changed == 1

    def test_nothing_written_to_disk(self, registry: SourceRegistry, engine: RefactoringEngine) -> None:
        engine.batch_update_method_signatures([swap_rename()], REPO)
        assert not registry.source_for(REPO).path.exists()
        assert len(registry.modified()) == 3


class TestNestedCalls:
    def test_inner_call_rewritten_inside_outer_arguments(
        self, make_registry: Callable[[dict[str, str]], SourceRegistry]
    ) -> None:
        """An argument containing another renamed call keeps the inner rewrite."""
        registry = make_registry(
            {
                "com/acme/repo/CustomerRepository.java": REPOSITORY,
                "com/acme/svc/Nested.java": (
                    "package com.acme.svc;\n"
                    "import com.acme.repo.CustomerRepository;\n"
                    "class Nested {\n"
                    "    CustomerRepository repository;\n"
                    "    Object go(boolean a, String b, String c) {\n"
                    "        return repository.findByIsActiveAndEmail(\n"
                    "            repository.findByIsActiveAndEmail(a, b).isEmpty(), c);\n"
                    "    }\n"
                    "}\n"
                ),
            }
        )
        engine = RefactoringEngine(registry, DependencyGraph(registry))

        outcome = engine.apply_rename(swap_rename(), REPO)

        assert outcome.applied
        assert outcome.call_sites_updated == 2
        assert (
            "return repository.findByEmailAndIsActive(\n"
            "            c, repository.findByEmailAndIsActive(b, a).isEmpty());"
        ) in text_of(registry, "com.acme.svc.Nested")


class TestMethodReferences:
    """``repository::method`` forms."""

    def make(self, make_registry: Callable[[dict[str, str]], SourceRegistry]) -> SourceRegistry:
        return make_registry(
            {
                "com/acme/repo/CustomerRepository.java": REPOSITORY,
                "com/acme/svc/Refs.java": (
                    "package com.acme.svc;\n"
                    "import com.acme.repo.CustomerRepository;\n"
                    "class Refs {\n"
                    "    CustomerRepository repository;\n"
                    "    void go(Map<Boolean, String> m) {\n"
                    "        m.forEach(repository::findByIsActiveAndEmail);\n"
                    "    }\n"
                    "}\n"
                ),
            }
        )

    def test_reference_renamed_without_reorder(
        self, make_registry: Callable[[dict[str, str]], SourceRegistry]
    ) -> None:
        registry = self.make(make_registry)
        rename = MethodRename(
            OLD_SHAPE.name, "findActiveByEmail", None, None, {0: 0, 1: 1}, OLD_SHAPE,
            MethodShape("findActiveByEmail", OLD_SHAPE.parameters),
        )
        outcome = RefactoringEngine(registry, DependencyGraph(registry)).apply_rename(rename, REPO)

        assert outcome.applied
        assert "m.forEach(repository::findActiveByEmail);" in text_of(registry, "com.acme.svc.Refs")

    def test_reference_blocks_reorder(
        self, make_registry: Callable[[dict[str, str]], SourceRegistry]
    ) -> None:
        """A reference cannot follow swapped parameters, so nothing changes."""
        registry = self.make(make_registry)
        before = {s.path: s.data for s in registry.sources()}

        outcome = RefactoringEngine(registry, DependencyGraph(registry)).apply_rename(
            swap_rename(), REPO
        )

        assert not outcome.applied
        assert "Method reference" in outcome.error
        assert {s.path: s.data for s in registry.sources()} == before


class TestShadowedCallSites:
    """Only calls through the repository field are rewritten."""

    def test_parameter_and_nested_field_calls_untouched(
        self, make_registry: Callable[[dict[str, str]], SourceRegistry]
    ) -> None:
        registry = make_registry(
            {
                "com/acme/repo/CustomerRepository.java": REPOSITORY,
                "com/acme/repo/LegacyRepository.java": (
                    "package com.acme.repo;\n"
                    "public interface LegacyRepository {\n"
                    "    List<Object> findByIsActiveAndEmail(boolean active, String email);\n"
                    "}\n"
                ),
                "com/acme/svc/Mixed.java": (
                    "package com.acme.svc;\n"
                    "import com.acme.repo.CustomerRepository;\n"
                    "import com.acme.repo.LegacyRepository;\n"
                    "class Mixed {\n"
                    "    CustomerRepository repository;\n"
                    "    Object go() { return repository.findByIsActiveAndEmail(true, \"a\"); }\n"
                    "    Object legacy(LegacyRepository repository) {\n"
                    "        return repository.findByIsActiveAndEmail(true, \"b\");\n"
                    "    }\n"
                    "    static class Old {\n"
                    "        LegacyRepository repository;\n"
                    "        Object run() { return repository.findByIsActiveAndEmail(false, \"c\"); }\n"
                    "    }\n"
                    "}\n"
                ),
            }
        )
        engine = RefactoringEngine(registry, DependencyGraph(registry))

        outcome = engine.apply_rename(swap_rename(), REPO)

        assert outcome.applied
        assert outcome.call_sites_updated == 1
        mixed = text_of(registry, "com.acme.svc.Mixed")
        assert 'return repository.findByEmailAndIsActive("a", true);' in mixed
        assert 'return repository.findByIsActiveAndEmail(true, "b");' in mixed
        assert 'return repository.findByIsActiveAndEmail(false, "c");' in mixed


class TestOverloads:
    """Renames of overloaded methods."""

    def test_other_overload_calls_are_skipped(
        self, registry: SourceRegistry, engine: RefactoringEngine
    ) -> None:
        """Calls matching another overload's arity keep the old name."""
        shape = MethodShape("findByStatus", (("String", "status"),))
        rename = MethodRename(
            "findByStatus", "findByState", None, None, {0: 0}, shape,
            MethodShape("findByState", shape.parameters),
        )
        outcome = engine.apply_rename(rename, REPO)

        assert outcome.applied
        assert outcome.call_sites_updated == 1
        service = text_of(registry, "com.acme.svc.CustomerService")
        assert 'repository.findByStatus("A", page);' in service
        assert 'return repository.findByState("B");' in service
        repository = text_of(registry, REPO)
        assert "List<Customer> findByState(String status);" in repository
        assert "Page<Customer> findByStatus(String status, Pageable page);" in repository

    def test_same_arity_overload_is_ambiguous(
        self, registry: SourceRegistry, engine: RefactoringEngine
    ) -> None:
        shape = MethodShape("findByCode", (("String", "code"),))
        rename = MethodRename(
            "findByCode", "findByKey", None, None, {0: 0}, shape,
            MethodShape("findByKey", shape.parameters),
        )
        with pytest.raises(RefactorError) as exc_info:
            engine.plan_rename(rename, REPO)
        assert exc_info.value.code == ErrorCode.REFACTOR_AMBIGUOUS_OVERLOAD

        assert not engine.apply_rename(rename, REPO).applied
        assert "findByCode(String code)" in text_of(registry, REPO)

    def test_new_name_already_declared(
        self, make_registry: Callable[[dict[str, str]], SourceRegistry]
    ) -> None:
        """Renaming onto an existing method of the same arity is refused."""
        repository = REPOSITORY.replace(
            "    List<Customer> findByStatus(String status);\n",
            "    List<Customer> findByEmailAndIsActive(String email, boolean active);\n\n"
            "    List<Customer> findByStatus(String status);\n",
        )
        registry = make_registry({**FILES, "com/acme/repo/CustomerRepository.java": repository})
        before = {s.path: s.data for s in registry.sources()}
        engine = RefactoringEngine(registry, DependencyGraph(registry))

        with pytest.raises(RefactorError) as exc_info:
            engine.plan_rename(swap_rename(), REPO)
        assert exc_info.value.code == ErrorCode.REFACTOR_AMBIGUOUS_OVERLOAD

        outcome = engine.apply_rename(swap_rename(), REPO)
        assert not outcome.applied
        assert {s.path: s.data for s in registry.sources()} == before


class TestFailures:
    """Failed renames leave every source untouched."""

    def test_missing_declaration(self, engine: RefactoringEngine) -> None:
        shape = MethodShape("findNothing", ())
        rename = MethodRename("findNothing", "findSomething", None, None, {}, shape, shape)
        outcome = engine.apply_rename(rename, REPO)
        assert not outcome.applied
        assert outcome.error == f"No declaration of findNothing in {REPO}"

    def test_arity_mismatch(self, make_registry: Callable[[dict[str, str]], SourceRegistry]) -> None:
        registry = make_registry(
            {
                "com/acme/repo/CustomerRepository.java": REPOSITORY,
                "com/acme/svc/Bad.java": (
                    "package com.acme.svc;\n"
                    "import com.acme.repo.CustomerRepository;\n"
                    "class Bad {\n"
                    "    CustomerRepository repository;\n"
                    "    void go() { repository.findByIsActiveAndEmail(true); }\n"
                    "}\n"
                ),
            }
        )
        engine = RefactoringEngine(registry, DependencyGraph(registry))
        with pytest.raises(RefactorError) as exc_info:
            engine.plan_rename(swap_rename(), REPO)
        assert exc_info.value.code == ErrorCode.REFACTOR_ARITY_MISMATCH
        assert registry.modified() == []

    def test_post_check_failure_restores_every_file(
        self, registry: SourceRegistry, engine: RefactoringEngine
    ) -> None:
        """If the renamed declaration cannot be found afterwards, all files roll back."""
        before = {s.path: s.data for s in registry.sources()}
        real = engine._find_declaration

        def hide_new(owner: str, name: str, shape: MethodShape):
            return None if name == NEW_SHAPE.name else real(owner, name, shape)

        with patch.object(engine, "_find_declaration", side_effect=hide_new):
            outcome = engine.apply_rename(swap_rename(), REPO)

        assert not outcome.applied
        assert {s.path: s.data for s in registry.sources()} == before
        assert registry.modified() == []
        assert engine.stats.signatures_changed == 0


class TestValidatedPositionMap:
    """Checking or rebuilding the old->new parameter map."""

    def test_valid_map_is_kept(self) -> None:
        assert validated_position_map(swap_rename()) == {0: 1, 1: 0}

    @pytest.mark.parametrize("bad", [None, {0: 0, 1: 0}, {0: 0, 1: 1}, {0: 1}])
    def test_invalid_map_is_rebuilt_from_names(self, bad: dict[int, int] | None) -> None:
        """Non-bijective or inconsistent maps fall back to parameter names."""
        rename = swap_rename()
        rename.position_map = bad
        assert validated_position_map(rename) == {0: 1, 1: 0}

    def test_type_change_is_rejected(self) -> None:
        rename = MethodRename(
            "m", "n", None, None, {0: 0},
            MethodShape("m", (("String", "a"),)),
            MethodShape("n", (("Long", "a"),)),
        )
        with pytest.raises(RefactorError):
            validated_position_map(rename)

    def test_duplicate_names_are_rejected(self) -> None:
        rename = MethodRename(
            "m", "n", None, None, None,
            MethodShape("m", (("String", "a"), ("String", "b"))),
            MethodShape("n", (("String", "a"), ("String", "a"))),
        )
        with pytest.raises(RefactorError) as exc_info:
            validated_position_map(rename)
        assert exc_info.value.code == ErrorCode.REFACTOR_INVALID_MAPPING


class TestQueryLiteral:
    """Rewriting ``@Query`` annotation values."""

    def analyze(self, registry: SourceRegistry, metadata: IndexMetadata) -> list[QueryOptimizationResult]:
        queries = RepositoryScanner(registry).collect(REPO)
        return QueryAnalysisEngine(CardinalityClassifier(metadata)).analyze_all(queries)

    def test_literal_replaced(
        self, registry: SourceRegistry, engine: RefactoringEngine, users_metadata: IndexMetadata
    ) -> None:
        search = self.analyze(registry, users_metadata)[0]
        assert search.method_name == "search"

        assert engine.act_on_analysis_result(search)
        assert (
            '@Query("SELECT c FROM Customer c WHERE c.email = :email AND c.isActive = :active")'
            in text_of(registry, REPO)
        )
        assert engine.stats.annotations_changed == 1

        # Already rewritten: nothing left to do
        assert not engine.act_on_analysis_result(search)

    def test_bare_markers_bind_the_same_parameters(
        self, make_registry: Callable[[dict[str, str]], SourceRegistry], users_metadata: IndexMetadata
    ) -> None:
        """Reordering ``?`` markers numbers them so each column keeps its argument."""
        registry = make_registry(
            {
                "com/acme/model/Customer.java": FILES["com/acme/model/Customer.java"],
                "com/acme/repo/CustomerRepository.java": (
                    "package com.acme.repo;\n"
                    "import com.acme.model.Customer;\n"
                    "public interface CustomerRepository extends JpaRepository<Customer, Long> {\n"
                    '    @Query(value = "SELECT * FROM users WHERE is_active = ? AND user_id = ?", '
                    "nativeQuery = true)\n"
                    "    List<Customer> byFlag(boolean active, Long id);\n"
                    "}\n"
                ),
            }
        )
        engine = RefactoringEngine(registry, DependencyGraph(registry))
        [result] = self.analyze(registry, users_metadata)
        before = {c.column: c.parameter for c in result.where_conditions}

        assert engine.act_on_analysis_result(result)

        repository = text_of(registry, REPO)
        assert (
            '@Query(value = "SELECT * FROM users WHERE user_id = ?2 AND is_active = ?1", '
            "nativeQuery = true)"
        ) in repository
        assert "List<Customer> byFlag(boolean active, Long id);" in repository
        [after] = self.analyze(registry, users_metadata)
        assert [c.column for c in after.where_conditions] == ["user_id", "is_active"]
        assert {c.column: c.parameter for c in after.where_conditions} == before

    def test_long_query_becomes_text_block(
        self, registry: SourceRegistry, users_metadata: IndexMetadata
    ) -> None:
        engine = RefactoringEngine(registry, DependencyGraph(registry), text_block_width=40)
        search = self.analyze(registry, users_metadata)[0]

        assert engine.act_on_analysis_result(search)
        method = registry.get_type(REPO).methods_named("search")[0]
        member = method.annotation("Query").member("value")
        assert member.raw.startswith('"""')
        assert member.string_value.index("c.email") < member.string_value.index("c.isActive")

    def test_derived_rename_through_result(
        self, registry: SourceRegistry, engine: RefactoringEngine, users_metadata: IndexMetadata
    ) -> None:
        """A derived query's rename is applied once even when batched again."""
        derived = self.analyze(registry, users_metadata)[1]
        issue = derived.issues[0]
        rename = MethodRename(
            derived.method_name,
            issue.optimized_shape.name,
            derived,
            issue,
            issue.parameter_map,
            derived.query.method.shape,
            issue.optimized_shape,
        )

        assert engine.act_on_analysis_result(derived, [rename])
        outcomes = engine.batch_update_method_signatures([rename], REPO)

        assert outcomes[0].applied
        assert engine.stats.signatures_changed == 1
        assert "findByEmailAndIsActive(String email, boolean active)" in text_of(registry, REPO)


class TestRenderLiteral:
    def test_plain_literal_escapes(self, engine: RefactoringEngine) -> None:
        assert engine.render_literal('a "b" \\ c\td') == '"a \\"b\\" \\\\ c\\td"'

    def test_forced_text_block(self, registry: SourceRegistry) -> None:
        engine = RefactoringEngine(registry, DependencyGraph(registry), text_block_indent="    ")
        assert engine.render_literal("SELECT 1", text_block=True) == '"""\n    SELECT 1\n    """'

    def test_multi_line_becomes_text_block(self, registry: SourceRegistry) -> None:
        engine = RefactoringEngine(registry, DependencyGraph(registry), text_block_indent="  ")
        assert engine.render_literal("SELECT 1\nFROM t") == '"""\n  SELECT 1\n  FROM t\n  """'


