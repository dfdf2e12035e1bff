"""Java source collaborator: parsing, structural view, edits, registry."""

from queryplane.java.edits import TextEdit, apply_text_edits, apply_within, check_overlaps
from queryplane.java.models import (
    AnnotationMember,
    JavaAnnotation,
    JavaField,
    JavaMethod,
    JavaParameter,
    JavaType,
    MethodCall,
    MethodShape,
    Span,
    TypeRef,
)
from queryplane.java.parser import JavaSource, decode_string_literal, parse_java
from queryplane.java.registry import SourceRegistry

__all__ = [
    "AnnotationMember",
    "JavaAnnotation",
    "JavaField",
    "JavaMethod",
    "JavaParameter",
    "JavaSource",
    "JavaType",
    "MethodCall",
    "MethodShape",
    "SourceRegistry",
    "Span",
    "TextEdit",
    "TypeRef",
    "apply_text_edits",
    "apply_within",
    "check_overlaps",
    "decode_string_literal",
    "parse_java",
]
