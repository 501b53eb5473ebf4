"""Boolean full-text query synthesis from synonym-expanded words.

:class:`BooleanQueryBuilder` turns a phrase into one group per word, every
group listing all variants of that word. How a group is spelled depends on
the full-text engine, which is why the grammar sits behind
:class:`BooleanQuerySyntax`.

Example (MySQL boolean mode, ``capacete -> elmo, casco`` and
``azul -> blue`` configured)::

    capacete azul  ->  (+capacete* +elmo* +casco*) (+azul* +blue*)
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Sequence

from .expander import TermExpander
from .normalizer import split_words

logger = logging.getLogger(__name__)


class BooleanQuerySyntax(Protocol):
    """Grammar of one full-text engine."""

    name: str

    def group(self, terms: Sequence[str]) -> str:
        """Spell one group of alternative ``terms`` for a single word."""
        ...

    def literal(self, words: Sequence[str]) -> str:
        """Spell the unexpanded ``words`` of a query."""
        ...


class MySqlBooleanSyntax:
    """``MATCH ... AGAINST (... IN BOOLEAN MODE)`` grammar.

    Groups are emitted verbatim: reserved characters inside the terms are not
    escaped, so upstream input has to be sanitized by the caller.
    """

    name = "mysql"

    # operators of the boolean-mode grammar
    RESERVED = '@+-><()~*"'

    def group(self, terms: Sequence[str]) -> str:
        return "(" + " ".join(f"+{term}*" for term in terms) + ")"

    def literal(self, words: Sequence[str]) -> str:
        table = str.maketrans("", "", self.RESERVED)
        cleaned = [w.translate(table) for w in words]
        return " ".join(f"+{w}*" for w in cleaned if w)


class Fts5Syntax:
    """SQLite FTS5 grammar.

    Every term becomes a quoted prefix phrase, alternatives are joined with
    ``OR`` and groups are implicitly ANDed by the engine. Quoting neutralises
    the FTS5 operators, so user input cannot break the expression.
    """

    name = "fts5"

    @staticmethod
    def _quote(term: str) -> str:
        return '"' + term.replace('"', '""') + '"*'

    def group(self, terms: Sequence[str]) -> str:
        quoted = [self._quote(t) for t in terms if t.strip('" ')]
        if not quoted:
            return ""
        if len(quoted) == 1:
            return quoted[0]
        return "(" + " OR ".join(quoted) + ")"

    def literal(self, words: Sequence[str]) -> str:
        return " ".join(self._quote(w) for w in words if w.strip('" '))


SYNTAXES = {
    MySqlBooleanSyntax.name: MySqlBooleanSyntax,
    Fts5Syntax.name: Fts5Syntax,
}


def get_syntax(name: str) -> BooleanQuerySyntax:
    """Return the syntax registered as ``name`` (``mysql``/``mariadb``/``fts5``/``sqlite``)."""
    key = (name or "").strip().lower()
    if key == "mariadb":
        key = "mysql"
    elif key == "sqlite":
        key = "fts5"
    try:
        return SYNTAXES[key]()
    except KeyError:
        raise ValueError(f"unknown boolean query syntax: {name!r}") from None


class BooleanQueryBuilder:
    """Builds boolean full-text queries, one group per input word."""

    def __init__(
        self,
        expander: TermExpander,
        syntax: BooleanQuerySyntax | None = None,
    ) -> None:
        self.expander = expander
        self.syntax: BooleanQuerySyntax = syntax or MySqlBooleanSyntax()

    def groups(self, phrase: str) -> List[str]:
        """Return the groups for ``phrase`` in word order."""
        result: List[str] = []
        for word in split_words(phrase):
            group = self.syntax.group(self.expander.expand_term(word))
            if group:
                result.append(group)
        return result

    def build_boolean_query(self, phrase: str) -> str:
        """Return the synonym-expanded query; ``""`` for blank input."""
        query = " ".join(self.groups(phrase))
        logger.debug("Boolean query for %r: %s", phrase, query)
        return query

    def build_literal_query(self, phrase: str) -> str:
        """Return the query for ``phrase`` without any synonym expansion."""
        return self.syntax.literal(split_words(phrase))
