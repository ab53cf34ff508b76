"""Identifier naming for emission targets."""

from declgen.naming.rules import CPP_RULES, JSON_RULES, RUST_RULES, CaseStyle, NameKind, NamingRules
from declgen.naming.sanitizer import NameSanitizer, NameTable

__all__ = [
    "NameKind",
    "CaseStyle",
    "NamingRules",
    "NameSanitizer",
    "NameTable",
    "CPP_RULES",
    "RUST_RULES",
    "JSON_RULES",
]
