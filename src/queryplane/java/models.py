"""Structural view of a parsed Java compilation unit.

All offsets are UTF-8 byte offsets into the source the view was extracted
from. A view is discarded and rebuilt whenever its source is edited.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open byte range."""

    start: int
    end: int

    def slice(self, data: bytes) -> str:
        return data[self.start : self.end].decode("utf-8")

    def overlaps(self, other: Span) -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True, slots=True)
class MethodShape:
    """Declaration shape: name plus ordered (type, name) parameter pairs."""

    name: str
    parameters: tuple[tuple[str, str], ...] = ()

    @property
    def arity(self) -> int:
        return len(self.parameters)

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(name for _, name in self.parameters)

    def signature(self) -> str:
        params = ", ".join(f"{t} {n}" for t, n in self.parameters)
        return f"{self.name}({params})"


@dataclass(frozen=True, slots=True)
class TypeRef:
    """Reference to a type as written, generics split out."""

    name: str
    arguments: tuple[str, ...] = ()

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


@dataclass(frozen=True, slots=True)
class AnnotationMember:
    """One ``key = value`` pair; single-value annotations use key ``value``."""

    key: str
    value_span: Span
    value_node_type: str
    raw: str
    string_value: str | None = None  # constant string expressions only


@dataclass(frozen=True, slots=True)
class JavaAnnotation:
    name: str
    span: Span
    shape: Literal["marker", "single", "key_value"]
    members: tuple[AnnotationMember, ...] = ()

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    def member(self, key: str) -> AnnotationMember | None:
        for m in self.members:
            if m.key == key:
                return m
        return None


@dataclass(frozen=True, slots=True)
class JavaParameter:
    name: str
    type_name: str
    span: Span
    annotations: tuple[JavaAnnotation, ...] = ()
    varargs: bool = False

    def annotation(self, simple_name: str) -> JavaAnnotation | None:
        for a in self.annotations:
            if a.simple_name == simple_name:
                return a
        return None


@dataclass(frozen=True, slots=True)
class JavaMethod:
    """A method declaration (class or interface member)."""

    name: str
    owner_fqn: str
    return_type: str
    parameters: tuple[JavaParameter, ...]
    annotations: tuple[JavaAnnotation, ...]
    span: Span
    name_span: Span
    parameters_span: Span  # includes the parentheses
    has_body: bool = False

    @property
    def arity(self) -> int:
        return len(self.parameters)

    @property
    def shape(self) -> MethodShape:
        return MethodShape(self.name, tuple((p.type_name, p.name) for p in self.parameters))

    def annotation(self, simple_name: str) -> JavaAnnotation | None:
        for a in self.annotations:
            if a.simple_name == simple_name:
                return a
        return None


@dataclass(frozen=True, slots=True)
class JavaField:
    """One declarator of a field declaration; ``int a, b;`` yields two."""

    name: str
    type: TypeRef
    span: Span


CallKind = Literal["call", "reference"]


@dataclass(frozen=True, slots=True)
class MethodCall:
    """A call or method reference whose receiver is a plain variable.

    ``receiver`` is the variable name for ``repo.m()``, ``this.repo.m()``,
    ``verify(repo).m()`` and ``repo::m`` when ``repo`` names a field; calls on
    parameters, local variables and other expressions are recorded with
    ``receiver=None``.
    """

    name: str
    receiver: str | None
    kind: CallKind
    span: Span
    name_span: Span
    arguments: tuple[Span, ...] = ()
    arguments_span: Span | None = None  # includes the parentheses
    mockito: bool = False

    @property
    def arity(self) -> int:
        return len(self.arguments)


TypeKind = Literal["class", "interface", "enum", "record"]


@dataclass(slots=True)
class JavaType:
    """A top-level or nested type declaration."""

    name: str
    fqn: str
    kind: TypeKind
    span: Span
    superclass: TypeRef | None = None
    interfaces: tuple[TypeRef, ...] = ()
    annotations: tuple[JavaAnnotation, ...] = ()
    fields: list[JavaField] = field(default_factory=list)
    methods: list[JavaMethod] = field(default_factory=list)
    calls: list[MethodCall] = field(default_factory=list)

    @property
    def supertypes(self) -> tuple[TypeRef, ...]:
        if self.superclass is None:
            return self.interfaces
        return (self.superclass, *self.interfaces)

    def annotation(self, simple_name: str) -> JavaAnnotation | None:
        for a in self.annotations:
            if a.simple_name == simple_name:
                return a
        return None

    def methods_named(self, name: str) -> list[JavaMethod]:
        return [m for m in self.methods if m.name == name]

    def field_named(self, name: str) -> JavaField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None
