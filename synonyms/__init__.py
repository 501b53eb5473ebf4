"""Synonym dictionary, expansion and boolean query synthesis for catalog search."""

# Package exports should be side-effect free.

from . import (
    models,
    storage,
    normalizer,
    store,
    expander,
    boolean_query,
)

__all__ = [
    "models",
    "storage",
    "normalizer",
    "store",
    "expander",
    "boolean_query",
]
