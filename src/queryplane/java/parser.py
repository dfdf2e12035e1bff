"""Tree-sitter parsing of Java sources.

A :class:`JavaSource` holds the current bytes of one ``.java`` file, its
syntax tree and the structural view extracted from that tree (types, fields,
methods, annotations, calls). Editing a source replaces its bytes and
re-extracts everything, so spans are only valid against the current bytes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tree_sitter_java
from tree_sitter import Language, Parser

from queryplane.java.models import (
    AnnotationMember,
    JavaAnnotation,
    JavaField,
    JavaMethod,
    JavaParameter,
    JavaType,
    MethodCall,
    Span,
    TypeRef,
)

JAVA_LANGUAGE = Language(tree_sitter_java.language())

_TYPE_KINDS = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "enum_declaration": "enum",
    "record_declaration": "record",
}

_COMMENTS = frozenset({"line_comment", "block_comment"})

# Wrappers whose single argument is the real receiver: verify(repo).m(), when(repo).m()
MOCKITO_WRAPPERS = frozenset({"verify", "when", "then"})

_parser = Parser(JAVA_LANGUAGE)


def parse_java(data: bytes) -> Any:
    """Parse Java source bytes into a tree-sitter Tree."""
    return _parser.parse(data)


# String constants


_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "b": "\b",
    "r": "\r",
    "f": "\f",
    "s": " ",
    '"': '"',
    "'": "'",
    "\\": "\\",
    "\n": "",
}

_ESCAPE_RE = re.compile(r"\\(u+[0-9a-fA-F]{4}|[0-3]?[0-7]{1,2}|.)", re.DOTALL)


def _unescape(body: str) -> str:
    def repl(m: re.Match[str]) -> str:
        s = m.group(1)
        if s[0] == "u":
            return chr(int(s.lstrip("u"), 16))
        if s[0] in "01234567":
            return chr(int(s, 8))
        return _ESCAPES.get(s, s)

    return _ESCAPE_RE.sub(repl, body)


def _decode_text_block(raw: str) -> str:
    body = raw[3:-3]
    newline = body.find("\n")
    body = body[newline + 1 :] if newline != -1 else body
    lines = body.replace("\r\n", "\n").split("\n")

    closing_alone = not lines[-1].strip()
    significant = [line for line in lines if line.strip()]
    if closing_alone:
        significant.append(lines[-1])
    indent = min((len(line) - len(line.lstrip(" \t")) for line in significant), default=0)

    stripped = [line[indent:].rstrip(" \t") if line.strip() else "" for line in lines]
    return _unescape("\n".join(stripped))


def decode_string_literal(raw: str) -> str:
    """Decode the source text of a Java string literal or text block."""
    if raw.startswith('"""'):
        return _decode_text_block(raw)
    return _unescape(raw[1:-1])


def evaluate_string(node: Any) -> str | None:
    """Value of a constant string expression (literals joined with ``+``)."""
    if node.type == "string_literal":
        return decode_string_literal(_text(node))
    if node.type == "parenthesized_expression":
        inner = _named(node)
        return evaluate_string(inner[0]) if inner else None
    if node.type == "binary_expression":
        op = node.child_by_field_name("operator")
        if op is None or op.type != "+":
            return None
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None:
            return None
        lhs = evaluate_string(left)
        rhs = evaluate_string(right)
        if lhs is None or rhs is None:
            return None
        return lhs + rhs
    return None


# Node helpers


def _text(node: Any) -> str:
    return node.text.decode("utf-8") if node.text else ""


def _compact(text: str) -> str:
    text = re.sub(r"\s+", " ", text.strip())
    return re.sub(r"\s*([<>,\[\]])\s*", r"\1", text).replace(",", ", ")


def _span(node: Any) -> Span:
    return Span(node.start_byte, node.end_byte)


def _named(node: Any) -> list[Any]:
    return [c for c in node.named_children if c.type not in _COMMENTS]


def _child_of_type(node: Any, *types: str) -> Any | None:
    for c in node.children:
        if c.type in types:
            return c
    return None


def _type_ref(node: Any) -> TypeRef:
    if node.type == "generic_type":
        base = _named(node)[0]
        args = _child_of_type(node, "type_arguments")
        arguments = tuple(_compact(_text(a)) for a in _named(args)) if args else ()
        return TypeRef(_compact(_text(base)), arguments)
    return TypeRef(_compact(_text(node)))


@dataclass
class _Extractor:
    """Builds the structural view of one compilation unit."""

    package: str = ""
    imports: list[str] = field(default_factory=list)
    types: list[JavaType] = field(default_factory=list)

    def run(self, root: Any) -> None:
        for node in root.children:
            if node.type == "package_declaration":
                name = _child_of_type(node, "scoped_identifier", "identifier")
                self.package = _text(name) if name else ""
            elif node.type == "import_declaration":
                compact = "".join(_text(node).split())
                body = compact.removeprefix("import").rstrip(";")
                if not body.startswith("static"):
                    self.imports.append(body)
            elif node.type in _TYPE_KINDS:
                self._extract_type(node, None)

    def _extract_type(self, node: Any, outer: JavaType | None) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        name = _text(name_node)
        if outer is not None:
            fqn = f"{outer.fqn}.{name}"
        else:
            fqn = f"{self.package}.{name}" if self.package else name

        jtype = JavaType(
            name=name,
            fqn=fqn,
            kind=_TYPE_KINDS[node.type],  # type: ignore[arg-type]
            span=_span(node),
        )
        modifiers = _child_of_type(node, "modifiers")
        if modifiers is not None:
            jtype.annotations = self._annotations(modifiers)

        superclass = node.child_by_field_name("superclass")
        if superclass is not None and _named(superclass):
            jtype.superclass = _type_ref(_named(superclass)[0])

        supers = _child_of_type(node, "super_interfaces", "extends_interfaces")
        if supers is not None:
            type_list = _child_of_type(supers, "type_list")
            if type_list is not None:
                jtype.interfaces = tuple(_type_ref(t) for t in _named(type_list))

        self.types.append(jtype)

        body = node.child_by_field_name("body")
        if body is None:
            return
        members = list(_named(body))
        for decls in [m for m in members if m.type == "enum_body_declarations"]:
            members.extend(_named(decls))

        for member in members:
            if member.type in ("field_declaration", "constant_declaration"):
                self._extract_fields(member, jtype)
            elif member.type == "method_declaration":
                jtype.methods.append(self._method(member, jtype.fqn))
                self._collect_calls(member, jtype)
            elif member.type in _TYPE_KINDS:
                self._extract_type(member, jtype)
            elif member.type in (
                "constructor_declaration",
                "compact_constructor_declaration",
                "static_initializer",
                "block",
                "enum_constant",
            ):
                self._collect_calls(member, jtype)

    def _extract_fields(self, node: Any, jtype: JavaType) -> None:
        type_node = node.child_by_field_name("type")
        if type_node is None:
            return
        ref = _type_ref(type_node)
        for declarator in node.children:
            if declarator.type != "variable_declarator":
                continue
            name = declarator.child_by_field_name("name")
            if name is not None:
                jtype.fields.append(JavaField(_text(name), ref, _span(declarator)))
            value = declarator.child_by_field_name("value")
            if value is not None:
                self._collect_calls(value, jtype)

    def _method(self, node: Any, owner_fqn: str) -> JavaMethod:
        modifiers = _child_of_type(node, "modifiers")
        params_node = node.child_by_field_name("parameters")
        return_type = node.child_by_field_name("type")
        name = node.child_by_field_name("name")
        return JavaMethod(
            name=_text(name),
            owner_fqn=owner_fqn,
            return_type=_compact(_text(return_type)) if return_type else "void",
            parameters=tuple(self._parameters(params_node)) if params_node else (),
            annotations=self._annotations(modifiers) if modifiers else (),
            span=_span(node),
            name_span=_span(name),
            parameters_span=_span(params_node),
            has_body=node.child_by_field_name("body") is not None,
        )

    def _parameters(self, node: Any) -> list[JavaParameter]:
        params: list[JavaParameter] = []
        for p in _named(node):
            modifiers = _child_of_type(p, "modifiers")
            annotations = self._annotations(modifiers) if modifiers else ()
            if p.type == "formal_parameter":
                type_node = p.child_by_field_name("type")
                name = p.child_by_field_name("name")
                params.append(
                    JavaParameter(
                        name=_text(name),
                        type_name=_compact(_text(type_node)),
                        span=_span(p),
                        annotations=annotations,
                    )
                )
            elif p.type == "spread_parameter":
                type_node = next(
                    c for c in _named(p) if c.type not in ("modifiers", "variable_declarator")
                )
                declarator = _child_of_type(p, "variable_declarator")
                name = declarator.child_by_field_name("name") if declarator else None
                params.append(
                    JavaParameter(
                        name=_text(name) if name else "",
                        type_name=_compact(_text(type_node)) + "...",
                        span=_span(p),
                        annotations=annotations,
                        varargs=True,
                    )
                )
        return params

    def _annotations(self, modifiers: Any) -> tuple[JavaAnnotation, ...]:
        result: list[JavaAnnotation] = []
        for node in modifiers.children:
            if node.type == "marker_annotation":
                name = node.child_by_field_name("name")
                result.append(JavaAnnotation(_text(name), _span(node), "marker"))
            elif node.type == "annotation":
                result.append(self._annotation(node))
        return tuple(result)

    def _annotation(self, node: Any) -> JavaAnnotation:
        name = _text(node.child_by_field_name("name"))
        args = node.child_by_field_name("arguments")
        values = _named(args) if args is not None else []
        if not values:
            return JavaAnnotation(name, _span(node), "marker")

        if values[0].type != "element_value_pair":
            value = values[0]
            member = AnnotationMember(
                key="value",
                value_span=_span(value),
                value_node_type=value.type,
                raw=_text(value),
                string_value=evaluate_string(value),
            )
            return JavaAnnotation(name, _span(node), "single", (member,))

        members = []
        for pair in values:
            if pair.type != "element_value_pair":
                continue
            key = pair.child_by_field_name("key")
            value = pair.child_by_field_name("value")
            if key is None or value is None:
                continue
            members.append(
                AnnotationMember(
                    key=_text(key),
                    value_span=_span(value),
                    value_node_type=value.type,
                    raw=_text(value),
                    string_value=evaluate_string(value),
                )
            )
        return JavaAnnotation(name, _span(node), "key_value", tuple(members))

    def _collect_calls(self, node: Any, jtype: JavaType) -> None:
        scopes = _local_scopes(node)
        stack = [node]
        while stack:
            current = stack.pop()
            if current.type in _TYPE_KINDS and current is not node:
                # Local type declarations are outside this type's scope
                self._extract_type(current, jtype)
                continue
            call = None
            if current.type == "method_invocation":
                call = _invocation(current, scopes)
            elif current.type == "method_reference":
                call = _reference(current, scopes)
            if call is not None:
                jtype.calls.append(call)
            stack.extend(reversed(current.children))


def _local_scopes(node: Any) -> list[tuple[str, Span]]:
    """Parameters and local variables declared under ``node``, each with the
    byte range in which it hides a field of the same name.
    """
    scopes: list[tuple[str, Span]] = []
    stack = [node]
    while stack:
        current = stack.pop()
        kind = current.type
        if kind in _TYPE_KINDS and current is not node:
            continue
        if kind in ("formal_parameter", "spread_parameter", "catch_formal_parameter"):
            name = current.child_by_field_name("name")
            if name is None:
                declarator = _child_of_type(current, "variable_declarator")
                name = declarator.child_by_field_name("name") if declarator else None
            # formal_parameters -> method, constructor or lambda; catch_clause
            owner = current.parent if kind == "catch_formal_parameter" else current.parent.parent
            if name is not None and owner is not None:
                scopes.append((_text(name), _span(owner)))
        elif kind == "lambda_expression":
            params = current.child_by_field_name("parameters")
            if params is not None and params.type == "identifier":
                scopes.append((_text(params), _span(current)))
            elif params is not None and params.type == "inferred_parameters":
                scopes.extend((_text(p), _span(current)) for p in _named(params))
        elif kind == "local_variable_declaration" and current.parent is not None:
            end = current.parent.end_byte
            for declarator in current.children:
                name = declarator.child_by_field_name("name")
                if declarator.type == "variable_declarator" and name is not None:
                    scopes.append((_text(name), Span(declarator.start_byte, end)))
        elif kind == "enhanced_for_statement":
            name = current.child_by_field_name("name")
            if name is not None:
                scopes.append((_text(name), _span(current)))
        elif kind == "resource":
            name = current.child_by_field_name("name")
            statement = current.parent.parent if current.parent is not None else None
            if name is not None and statement is not None:
                scopes.append((_text(name), _span(statement)))
        stack.extend(current.children)
    return scopes


def _shadowed(name: str, position: int, scopes: list[tuple[str, Span]]) -> bool:
    return any(n == name and s.start <= position < s.end for n, s in scopes)


def _receiver(node: Any | None) -> tuple[str | None, bool, bool]:
    """Variable name behind a call's object expression.

    Also reports whether it was Mockito-wrapped and whether it was written
    as a bare identifier (``repo``) rather than ``this.repo``.
    """
    if node is None:
        return None, False, False
    if node.type == "identifier":
        return _text(node), False, True
    if node.type == "field_access":
        obj = node.child_by_field_name("object")
        fld = node.child_by_field_name("field")
        if obj is not None and obj.type == "this" and fld is not None:
            return _text(fld), False, False
        return None, False, False
    if node.type == "method_invocation":
        name = node.child_by_field_name("name")
        args = node.child_by_field_name("arguments")
        if name is None or _text(name) not in MOCKITO_WRAPPERS or args is None:
            return None, False, False
        arguments = _named(args)
        if not arguments:
            return None, False, False
        inner, _, bare = _receiver(arguments[0])
        return inner, inner is not None, bare
    return None, False, False


def _field_receiver(node: Any | None, scopes: list[tuple[str, Span]]) -> tuple[str | None, bool]:
    receiver, mockito, bare = _receiver(node)
    if receiver is None or node is None or not bare:
        return receiver, mockito
    if _shadowed(receiver, node.start_byte, scopes):
        return None, False
    return receiver, mockito


def _invocation(node: Any, scopes: list[tuple[str, Span]]) -> MethodCall | None:
    name = node.child_by_field_name("name")
    args = node.child_by_field_name("arguments")
    if name is None or args is None:
        return None
    receiver, mockito = _field_receiver(node.child_by_field_name("object"), scopes)
    return MethodCall(
        name=_text(name),
        receiver=receiver,
        kind="call",
        span=_span(node),
        name_span=_span(name),
        arguments=tuple(_span(a) for a in _named(args)),
        arguments_span=_span(args),
        mockito=mockito,
    )


def _reference(node: Any, scopes: list[tuple[str, Span]]) -> MethodCall | None:
    parts = _named(node)
    if len(parts) < 2 or parts[-1].type != "identifier":
        return None
    receiver, mockito = _field_receiver(parts[0], scopes)
    return MethodCall(
        name=_text(parts[-1]),
        receiver=receiver,
        kind="reference",
        span=_span(node),
        name_span=_span(parts[-1]),
        mockito=mockito,
    )


@dataclass
class JavaSource:
    """One Java file: current bytes, syntax tree and structural view."""

    path: Path
    data: bytes
    original: bytes
    tree: Any = field(default=None, repr=False)
    package: str = ""
    imports: tuple[str, ...] = ()
    types: list[JavaType] = field(default_factory=list)
    has_errors: bool = False

    @classmethod
    def from_text(cls, path: Path, text: str | bytes) -> JavaSource:
        data = text.encode("utf-8") if isinstance(text, str) else text
        source = cls(path=path, data=data, original=data)
        source._reparse()
        return source

    @classmethod
    def from_path(cls, path: Path) -> JavaSource:
        return cls.from_text(path, path.read_bytes())

    @property
    def text(self) -> str:
        return self.data.decode("utf-8")

    @property
    def is_modified(self) -> bool:
        return self.data != self.original

    def update(self, data: bytes) -> None:
        """Replace the source bytes and rebuild the structural view."""
        self.data = data
        self._reparse()

    def mark_saved(self) -> None:
        self.original = self.data

    def type_by_fqn(self, fqn: str) -> JavaType | None:
        for t in self.types:
            if t.fqn == fqn:
                return t
        return None

    def _reparse(self) -> None:
        self.tree = parse_java(self.data)
        extractor = _Extractor()
        extractor.run(self.tree.root_node)
        self.package = extractor.package
        self.imports = tuple(extractor.imports)
        self.types = extractor.types
        self.has_errors = self.tree.root_node.has_error
