"""
License expression engine.

Parses SPDX-style boolean license expressions into a small tree, renders the tree
in canonical form and reasons about expressions through their disjunctive normal
form (an OR of AND-clauses).

Grammar (AND binds tighter than OR, keywords are case-insensitive):

    expression := and_expr ("OR" and_expr)*
    and_expr   := atom ("AND" atom)*
    atom       := "(" expression ")" | license ["WITH" exception]

Unknown license identifiers do not fail the parse; they become NOASSERTION leaves.
"""

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Tuple, Union

from clearcurate.errors import LicenseExpressionError
from clearcurate.license.identifiers import NOASSERTION, normalize_exception, normalize_single

AND = "AND"
OR = "OR"
WITH = "WITH"

_TOKEN = re.compile(r"\s*(?:(?P<open>\()|(?P<close>\))|(?P<word>[A-Za-z0-9][A-Za-z0-9.\-+:]*))")


@dataclass(frozen=True)
class LicenseLeaf:
    """A single license, optionally with an exception."""
    license: str
    exception: Optional[str] = None
    plus: bool = False

    def __str__(self) -> str:
        text = f"{self.license}{'+' if self.plus else ''}"
        return f"{text} WITH {self.exception}" if self.exception else text


@dataclass(frozen=True)
class LicenseNode:
    """Two sub-expressions joined by AND or OR."""
    conjunction: str
    left: "Expression"
    right: "Expression"


Expression = Union[LicenseLeaf, LicenseNode]
Clause = List[str]

_NOASSERTION_LEAF = LicenseLeaf(NOASSERTION)


def _tokenize(text: str) -> List[Tuple[str, str, int]]:
    tokens = []
    position = 0
    stripped_end = len(text.rstrip())
    while position < stripped_end:
        match = _TOKEN.match(text, position)
        if not match or match.end() == position:
            raise LicenseExpressionError(
                f"Unexpected character {text[position:position + 1]!r} at {position}", text, position
            )
        kind = match.lastgroup
        start = match.start(kind)
        value = match.group(kind)
        if kind == "word" and value.upper() in (AND, OR, WITH):
            kind = value.upper()
        tokens.append((kind, value, start))
        position = match.end()
    return tokens


class _Parser:
    """Recursive descent parser over the token list."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def parse(self) -> Expression:
        if not self.tokens:
            raise LicenseExpressionError("Empty license expression", self.text, 0)
        node = self._or()
        if self.pos < len(self.tokens):
            _, value, offset = self.tokens[self.pos]
            raise LicenseExpressionError(f"Unexpected token {value!r} at {offset}", self.text, offset)
        return node

    def _peek(self) -> Optional[str]:
        return self.tokens[self.pos][0] if self.pos < len(self.tokens) else None

    def _next(self) -> Tuple[str, str, int]:
        if self.pos >= len(self.tokens):
            raise LicenseExpressionError("Unexpected end of expression", self.text, len(self.text))
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _or(self) -> Expression:
        left = self._and()
        while self._peek() == OR:
            self._next()
            left = LicenseNode(OR, left, self._and())
        return left

    def _and(self) -> Expression:
        left = self._atom()
        while self._peek() == AND:
            self._next()
            left = LicenseNode(AND, left, self._atom())
        return left

    def _atom(self) -> Expression:
        kind, value, offset = self._next()
        if kind == "open":
            node = self._or()
            kind, value, offset = self._next()
            if kind != "close":
                raise LicenseExpressionError(f"Expected ')' at {offset}", self.text, offset)
            return node
        if kind != "word":
            raise LicenseExpressionError(f"Unexpected token {value!r} at {offset}", self.text, offset)
        exception = None
        if self._peek() == WITH:
            self._next()
            kind, exception, offset = self._next()
            if kind != "word":
                raise LicenseExpressionError(f"Expected exception after WITH at {offset}", self.text, offset)
        return _make_leaf(value, exception)


def _make_leaf(token: str, exception: Optional[str]) -> LicenseLeaf:
    plus = False
    license_id = normalize_single(token)
    if license_id is None and token.endswith("+"):
        license_id = normalize_single(token[:-1])
        plus = license_id is not None
    if license_id is None or license_id == NOASSERTION:
        return _NOASSERTION_LEAF
    if exception:
        exception = normalize_exception(exception) or exception
    return LicenseLeaf(license_id, exception, plus)


def parse(text: Union[str, Expression]) -> Expression:
    """
    Parse a license expression.

    Args:
        text: Expression text, or an already parsed tree (returned unchanged)

    Returns:
        The expression tree

    Raises:
        LicenseExpressionError: If the syntax is malformed
    """
    if isinstance(text, (LicenseLeaf, LicenseNode)):
        return text
    return _Parser(text).parse()


def stringify(tree: Expression) -> str:
    """Render a tree canonically. Only an OR nested under an AND gets parentheses."""
    if isinstance(tree, LicenseLeaf):
        return str(tree)
    left = stringify(tree.left)
    right = stringify(tree.right)
    if tree.conjunction == AND:
        if isinstance(tree.left, LicenseNode) and tree.left.conjunction == OR:
            left = f"({left})"
        if isinstance(tree.right, LicenseNode) and tree.right.conjunction == OR:
            right = f"({right})"
    return f"{left} {tree.conjunction} {right}"


def normalize(raw: Optional[str]) -> Optional[str]:
    """
    Normalize an expression. e.g. ``mit or apache-2.0`` -> ``MIT OR Apache-2.0``

    Blank input yields None; malformed input yields NOASSERTION.
    """
    if raw is None or not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return stringify(parse(raw))
    except LicenseExpressionError:
        return NOASSERTION


def _coerce(expression: Union[str, Expression, None]) -> Expression:
    if expression is None:
        return _NOASSERTION_LEAF
    try:
        return parse(expression)
    except LicenseExpressionError:
        return _NOASSERTION_LEAF


def _expand_inner(tree: Expression) -> List[FrozenSet[str]]:
    if isinstance(tree, LicenseLeaf):
        return [frozenset([str(tree)])]
    left = _expand_inner(tree.left)
    right = _expand_inner(tree.right)
    if tree.conjunction == OR:
        return left + right
    return [l | r for l in left for r in right]


def _dedupe(clauses: Sequence[FrozenSet[str]]) -> List[Clause]:
    unique = {tuple(sorted(clause)) for clause in clauses}
    return [list(clause) for clause in sorted(unique)]


def expand(expression: Union[str, Expression]) -> List[Clause]:
    """Expand to a sorted, de-duplicated list of AND-clauses that are OR'd together."""
    return _dedupe(_expand_inner(_coerce(expression)))


def _is_noassertion(clauses: List[Clause]) -> bool:
    return clauses == [[NOASSERTION]]


def satisfies(candidate: Union[str, Expression], required: Union[str, Expression]) -> bool:
    """
    Check whether ``candidate`` satisfies ``required``.

    True iff every clause of ``required`` is a subset of some clause of ``candidate``.
    A bare NOASSERTION satisfies nothing and is satisfied by nothing but itself.
    Inside a larger expression it is an ordinary term.
    """
    candidate_clauses = expand(candidate)
    required_clauses = expand(required)
    if _is_noassertion(candidate_clauses) or _is_noassertion(required_clauses):
        return _is_noassertion(candidate_clauses) and _is_noassertion(required_clauses)
    return all(
        any(set(needed) <= set(offered) for offered in candidate_clauses)
        for needed in required_clauses
    )


def _absorb(clauses: List[Clause]) -> List[Clause]:
    sets = [frozenset(c) for c in clauses]
    return [c for c, s in zip(clauses, sets) if not any(other < s for other in sets)]


def _render(clauses: List[Clause]) -> str:
    return " OR ".join(" AND ".join(clause) for clause in clauses)


def merge(a: Optional[str], b: Optional[str], conjunction: str = OR) -> Optional[str]:
    """
    Combine two expressions.

    Identical clauses are de-duplicated and ``X OR (X AND Y)`` is simplified to ``X``.
    An absent or bare NOASSERTION side yields the other side.
    """
    conjunction = conjunction.upper()
    if conjunction not in (AND, OR):
        raise ValueError(f"Invalid conjunction: {conjunction}. Expected: AND or OR")
    if not a or not str(a).strip():
        return normalize(b)
    if not b or not str(b).strip():
        return normalize(a)
    left = expand(a)
    right = expand(b)
    if _is_noassertion(left):
        return normalize(b)
    if _is_noassertion(right):
        return normalize(a)
    if conjunction == OR:
        combined = [frozenset(c) for c in left + right]
    else:
        combined = [frozenset(l) | frozenset(r) for l in left for r in right]
    return _render(_absorb(_dedupe(combined)))
