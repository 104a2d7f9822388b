"""Declarative-to-renderable spec compilation."""

from chartpipe.compiler.compiler import VEGA_SCHEMA, compile_document

__all__ = ["VEGA_SCHEMA", "compile_document"]
