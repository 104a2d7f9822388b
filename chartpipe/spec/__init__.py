"""Declarative chart documents: model, expressions, builder and decomposition."""
