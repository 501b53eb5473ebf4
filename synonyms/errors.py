"""Exceptions raised inside the synonym subsystem."""

from __future__ import annotations


class SynonymError(Exception):
    """Base class for synonym related failures."""


class ConfigurationLoadError(SynonymError):
    """The synonym source could not be read or has the wrong shape.

    Loaders raise it; :class:`synonyms.store.SynonymStore` recovers by
    publishing an empty dictionary.
    """
