"""Text front end for the table engine.

Definitions::

    movie (title:String, year:Integer) key (title) = {
      "Star_Wars", 1977
    }

Expressions: ``π a, b (E)``, ``σ v1, v2 (E)`` (primary-key value), ``E ⋃ E``,
``E − E``, ``E ⋈ E`` (natural join) and ``E ⋈_{a = b AND c = d} E`` (equi-join).
"""
from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from ra_table import KeyType, RelAlgError, Table, TableFactory

logger = logging.getLogger(__name__)


class ParseError(RelAlgError):
    pass


#############################
# Definitions
#############################

DEFINITION_RE = re.compile(
    r"(?P<name>\w+)\s*\((?P<schema>[^)]*)\)\s*(?:key\s*\((?P<key>[^)]*)\)\s*)?=\s*\{(?P<body>[^}]*)\}"
)

def _names(text: str) -> List[str]:
    return [n.strip() for n in text.split(",") if n.strip()]

def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1]
    return text

def _read_row(table: Table, line: str) -> list:
    values = next(csv.reader([line], skipinitialspace=True))
    if len(values) != table.arity:
        raise ParseError(f"{table.name}: {line!r} has {len(values)} values, expected {table.arity}")
    row = []
    for value, dom in zip(values, table.domains):
        value = value.strip()
        try:
            row.append(dom.parse(value) if dom else value)
        except ValueError as e:
            raise ParseError(f"{table.name}: {e}") from None
    return row

def parse_relations(text: str, factory: Optional[TableFactory] = None) -> Dict[str, Table]:
    """Build one table per definition block, loading each row with ``insert``."""
    factory = factory or TableFactory()
    tables: Dict[str, Table] = {}
    for m in DEFINITION_RE.finditer(text):
        name = m.group("name")
        attrs, doms = [], []
        for column in _names(m.group("schema")):
            attr, _, dom = (part.strip() for part in column.partition(":"))
            if not attr or not dom:
                raise ParseError(f"{name}: column {column!r} must be written attr:Domain")
            attrs.append(attr)
            doms.append(dom)
        key = _names(m.group("key")) if m.group("key") else attrs
        table = factory.create(name, " ".join(attrs), " ".join(doms), " ".join(key))

        for line in m.group("body").splitlines():
            line = line.strip()
            if line and not line.startswith("#") and not table.insert(_read_row(table, line)):
                raise ParseError(f"{name}: row {line!r} rejected by insert")
        logger.debug("loaded %s: %d rows", name, len(table))
        tables[name] = table

    if not tables:
        raise ParseError("no table definitions found")
    return tables


#############################
# Expressions
#############################

@dataclass(frozen=True)
class Ref:
    name: str

@dataclass(frozen=True)
class Project:
    attributes: Tuple[str, ...]
    child: "Expr"

@dataclass(frozen=True)
class Select:
    literals: Tuple[str, ...]
    child: "Expr"

@dataclass(frozen=True)
class SetOp:
    op: str
    left: "Expr"
    right: "Expr"

@dataclass(frozen=True)
class Join:
    left: "Expr"
    right: "Expr"
    on: Tuple[Tuple[str, str], ...] = ()

Expr = Union[Ref, Project, Select, SetOp, Join]


def evaluate(expr: Expr, env: Dict[str, Table]) -> Table:
    if isinstance(expr, Ref):
        # the stored table itself, so select still reaches its index
        if expr.name not in env:
            raise ParseError(f"unknown table {expr.name!r}")
        return env[expr.name]
    if isinstance(expr, Project):
        return evaluate(expr.child, env).project(list(expr.attributes))
    if isinstance(expr, Select):
        table = evaluate(expr.child, env)
        doms = [table.domains[c] for c in table.match(table.key)]
        if len(doms) != len(expr.literals):
            raise ParseError(f"{table.name}: key {table.key} needs {len(doms)} values")
        try:
            values = [d.parse(_unquote(v)) if d else _unquote(v) for v, d in zip(expr.literals, doms)]
        except ValueError as e:
            raise ParseError(str(e)) from None
        return table.select(KeyType(*values))
    if isinstance(expr, SetOp):
        left, right = evaluate(expr.left, env), evaluate(expr.right, env)
        return left.union(right) if expr.op == "⋃" else left.minus(right)
    left, right = evaluate(expr.left, env), evaluate(expr.right, env)
    if not expr.on:
        return left.natural_join(right)
    return left.equi_join([l for l, _ in expr.on], [r for _, r in expr.on], right)


TOKEN_RE = re.compile(r'\s*(?:(_\{[^}]*\})|([σπ⋈⋃−(),])|("[^"]*")|([^\sσπ⋈⋃−(),"]+))')
PAIR_RE = re.compile(r"\s*(\w+)\s*=\s*(\w+)\s*")

def tokenize(text: str) -> List[str]:
    tokens, pos = [], 0
    text = text.rstrip()
    while pos < len(text):
        m = TOKEN_RE.match(text, pos)
        if not m:
            raise ParseError(f"cannot read {text[pos:]!r}")
        tokens.append(next(g for g in m.groups() if g is not None))
        pos = m.end()
    return tokens


class Parser:
    """Recursive descent: set operators bind loosest, then joins."""

    def __init__(self, text: str):
        self.tokens = tokenize(text)
        self.pos = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self, expected: Optional[str] = None) -> str:
        tok = self.peek()
        if tok is None or (expected is not None and tok != expected):
            raise ParseError(f"expected {expected or 'a token'}, found {tok!r}")
        self.pos += 1
        return tok

    def parse(self) -> Expr:
        expr = self.expression()
        if self.peek() is not None:
            raise ParseError(f"unexpected {self.peek()!r}")
        return expr

    def expression(self) -> Expr:
        expr = self.joined()
        while self.peek() in ("⋃", "−"):
            op = self.take()
            expr = SetOp(op, expr, self.joined())
        return expr

    def joined(self) -> Expr:
        expr = self.primary()
        while self.peek() == "⋈":
            self.take()
            on: Tuple[Tuple[str, str], ...] = ()
            if (self.peek() or "").startswith("_{"):
                on = _join_pairs(self.take()[2:-1])
            expr = Join(expr, self.primary(), on)
        return expr

    def primary(self) -> Expr:
        tok = self.take()
        if tok in ("π", "σ"):
            items = self.comma_list()
            self.take("(")
            child = self.expression()
            self.take(")")
            return Project(items, child) if tok == "π" else Select(items, child)
        if tok == "(":
            expr = self.expression()
            self.take(")")
            return expr
        if re.fullmatch(r"\w+", tok):
            return Ref(tok)
        raise ParseError(f"unexpected {tok!r}")

    def comma_list(self) -> Tuple[str, ...]:
        items = [self.take()]
        while self.peek() == ",":
            self.take()
            items.append(self.take())
        if any(i in ("(", ")", ",") for i in items):
            raise ParseError(f"bad list {items}")
        return tuple(items)


def _join_pairs(text: str) -> Tuple[Tuple[str, str], ...]:
    pairs = []
    for part in re.split(r"\bAND\b", text, flags=re.IGNORECASE):
        m = PAIR_RE.fullmatch(part)
        if not m:
            raise ParseError(f"bad join condition {part.strip()!r}")
        pairs.append((m.group(1), m.group(2)))
    return tuple(pairs)


def parse_query(text: str) -> Expr:
    return Parser(text).parse()

def run(definitions: str, query: str, factory: Optional[TableFactory] = None) -> Table:
    return evaluate(parse_query(query), parse_relations(definitions, factory))
