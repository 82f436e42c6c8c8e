from __future__ import annotations

import enum
import itertools
import logging
import warnings
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from BTrees.OOBTree import OOBTree

logger = logging.getLogger(__name__)

Row = Sequence[Any]
Names = Union[str, Sequence[str]]


class RelAlgError(Exception):
    """Base error for the relational algebra engine."""

class SchemaError(RelAlgError):
    pass

class SchemaMismatch(SchemaError):
    """Two tables are not union compatible.

    ``position`` is the first column whose domains disagree, or None when the
    tables differ in arity.
    """
    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position

class AttributeNotFound(SchemaError):
    def __init__(self, attribute: str, table: str):
        super().__init__(f"attribute {attribute!r} not found in table {table!r}")
        self.attribute = attribute
        self.table = table

class DomainResolutionError(SchemaError):
    pass

class TypeMismatch(RelAlgError):
    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position

class DomainResolutionWarning(UserWarning):
    """A domain token did not name a known domain; the slot is left unset."""


def _split(names: Names) -> List[str]:
    # "title year" and ["title", "year"] are both accepted
    if isinstance(names, str):
        return names.split()
    return list(names)

def _assert(cond: bool, msg: str, err=SchemaError):
    if not cond:
        raise err(msg)


########################
# Domains
########################

class Domain(enum.Enum):
    INTEGER = "Integer"
    REAL = "Real"
    TEXT = "Text"
    BOOLEAN = "Boolean"

    @classmethod
    def resolve(cls, token: str) -> Optional["Domain"]:
        return _DOMAIN_TOKENS.get(token)

    @classmethod
    def of(cls, value: Any) -> Optional["Domain"]:
        # bool is a subclass of int, test it first
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, int):
            return cls.INTEGER
        if isinstance(value, float):
            return cls.REAL
        if isinstance(value, str):
            return cls.TEXT
        return None

    def accepts(self, value: Any) -> bool:
        return Domain.of(value) is self

    def parse(self, text: str) -> Any:
        """Read a literal of this domain; raises ValueError."""
        if self is Domain.INTEGER:
            return int(text)
        if self is Domain.REAL:
            return float(text)
        if self is Domain.BOOLEAN:
            if text not in ("true", "false"):
                raise ValueError(f"not a boolean literal: {text!r}")
            return text == "true"
        return text


_DOMAIN_TOKENS: Dict[str, Domain] = {
    "Integer": Domain.INTEGER, "Long": Domain.INTEGER, "Short": Domain.INTEGER,
    "Byte": Domain.INTEGER, "int": Domain.INTEGER,
    "Double": Domain.REAL, "Float": Domain.REAL, "float": Domain.REAL,
    "String": Domain.TEXT, "Character": Domain.TEXT, "str": Domain.TEXT,
    "Boolean": Domain.BOOLEAN, "bool": Domain.BOOLEAN,
    "Real": Domain.REAL, "Text": Domain.TEXT,
}


def resolve_domains(tokens: Iterable[str], strict: bool = False) -> List[Optional[Domain]]:
    """Resolve each token on its own; unknown tokens leave a None slot."""
    out: List[Optional[Domain]] = []
    for i, tok in enumerate(tokens):
        dom = Domain.resolve(tok)
        if dom is None:
            msg = f"unknown domain {tok!r} at position {i}"
            if strict:
                raise DomainResolutionError(msg)
            logger.warning("resolve_domains: %s", msg)
            warnings.warn(msg, DomainResolutionWarning, stacklevel=3)
        out.append(dom)
    return out


########################
# Keys and the index
########################

@total_ordering
class KeyType:
    """Composite primary key value, ordered lexicographically."""

    __slots__ = ("values",)

    def __init__(self, *values: Any):
        self.values: Tuple[Any, ...] = tuple(values)

    @classmethod
    def of(cls, row: Row, positions: Sequence[int]) -> "KeyType":
        return cls(*(row[i] for i in positions))

    def __eq__(self, other):
        if not isinstance(other, KeyType):
            return NotImplemented
        return self.values == other.values

    def __lt__(self, other):
        if not isinstance(other, KeyType):
            return NotImplemented
        return self.values < other.values

    def __hash__(self):
        return hash(self.values)

    def __len__(self):
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def __repr__(self):
        return f"KeyType{self.values!r}"


class PrimaryKeyIndex:
    """Ordered map from KeyType to the stored row object (not a copy)."""

    def __init__(self):
        self._tree = OOBTree()

    def put(self, key: KeyType, row: Row) -> None:
        self._tree[key] = row

    def get(self, key: KeyType) -> Optional[Row]:
        return self._tree.get(key)

    def keys(self) -> List[KeyType]:
        return list(self._tree.keys())

    def items(self) -> List[Tuple[KeyType, Row]]:
        return list(self._tree.items())

    def __contains__(self, key: KeyType) -> bool:
        return key in self._tree

    def __len__(self):
        return len(self._tree)


########################
# Factory / options
########################

class TypeCheck(enum.Enum):
    DECLARED = "declared"    # value tag must match the declared domain
    FIRST_ROW = "first_row"  # value type must match the first stored row


@dataclass
class TableFactory:
    """Owns the derived-table counter and the engine options."""

    type_check: TypeCheck = TypeCheck.DECLARED
    index_derived: bool = False
    strict_domains: bool = False
    _counter: Iterator[int] = field(default_factory=itertools.count, repr=False, compare=False)

    def next_name(self, base: str) -> str:
        return f"{base}{next(self._counter)}"

    def create(self, name: str, attributes: Names, domains: Union[str, Sequence[Any]], key: Names) -> "Table":
        return Table(name, attributes, domains, key, factory=self)

    def derive(self, source: "Table", attributes: Sequence[str], domains: Sequence[Optional[Domain]],
               key: Sequence[str], rows: List[Row]) -> "Table":
        table = Table(self.next_name(source.name), list(attributes), list(domains), list(key),
                      rows, factory=self)
        if self.index_derived:
            table.rebuild_index()
        return table


########################
# Table
########################

class Table:
    """A named relation: schema, an ordered list of rows and a primary-key index.

    Only ``insert`` (or ``rebuild_index``) puts rows in the index. Tables built
    from a row list, which is every operator result, start with an empty index,
    so ``select`` does not see those rows unless the factory indexes derived tables.
    """

    def __init__(self, name: str, attributes: Names, domains: Union[str, Sequence[Any]], key: Names,
                 tuples: Optional[List[Row]] = None, factory: Optional[TableFactory] = None):
        self.factory = factory or TableFactory()
        self.name = name
        self.attributes: List[str] = _split(attributes)
        self.domains: List[Optional[Domain]] = self._domains(domains)
        self.key: List[str] = _split(key)
        _assert(len(self.attributes) == len(self.domains),
                f"{name}: {len(self.attributes)} attributes but {len(self.domains)} domains")
        self._key_cols = self.match(self.key)
        self.index = PrimaryKeyIndex()
        if tuples is None:
            self.tuples: List[Row] = []
        else:
            for r in tuples:
                _assert(len(r) == len(self.attributes),
                        f"{name}: row length {len(r)} does not match arity {len(self.attributes)}")
            self.tuples = tuples
        # rows handed in here are not indexed; insert and rebuild_index fill it
        self._indexed = len(self.tuples) == 0

    def _domains(self, domains) -> List[Optional[Domain]]:
        if isinstance(domains, str):
            return resolve_domains(domains.split(), self.factory.strict_domains)
        out: List[Optional[Domain]] = []
        tokens = list(domains)
        for d in tokens:
            if d is not None and not isinstance(d, Domain):
                # raw tokens mixed in; resolve them all in one pass
                return resolve_domains([t.value if isinstance(t, Domain) else t for t in tokens],
                                       self.factory.strict_domains)
            out.append(d)
        return out

    @property
    def has_index(self) -> bool:
        """True when every stored row can be reached through the index."""
        return self._indexed

    @property
    def arity(self) -> int:
        return len(self.attributes)

    def __len__(self):
        return len(self.tuples)

    def __iter__(self):
        return iter(self.tuples)

    def __repr__(self):
        return f"Table({self.name!r}, {self.attributes}, key={self.key}, rows={len(self.tuples)})"

    ########################
    # Columns
    ########################

    def col(self, attr: str) -> int:
        try:
            return self.attributes.index(attr)
        except ValueError:
            raise AttributeNotFound(attr, self.name) from None

    def match(self, names: Names) -> List[int]:
        return [self.col(a) for a in _split(names)]

    def key_of(self, row: Row) -> KeyType:
        return KeyType.of(row, self._key_cols)

    def rename_attributes(self, mapping: Dict[int, str]) -> None:
        """Rename columns by position in place; primary-key names follow."""
        for pos, new in mapping.items():
            self.attributes[pos] = new
        self.key = [self.attributes[c] for c in self._key_cols]

    ########################
    # Insert
    ########################

    def check(self, row: Row) -> None:
        """Raise TypeMismatch if ``row`` cannot be stored in this table."""
        first = self.tuples[0] if self.tuples else None
        if self.factory.type_check is TypeCheck.FIRST_ROW:
            if first is None:
                _assert(len(row) == self.arity,
                        f"{self.name}: row length {len(row)} does not match arity {self.arity}", TypeMismatch)
                return
            _assert(len(row) == len(first),
                    f"{self.name}: row length {len(row)} does not match first row length {len(first)}",
                    TypeMismatch)
            for i, v in enumerate(row):
                if type(v) is not type(first[i]):
                    raise TypeMismatch(f"{self.name}: column {i} is {type(v).__name__}, "
                                       f"first row has {type(first[i]).__name__}", i)
            return

        _assert(len(row) == self.arity,
                f"{self.name}: row length {len(row)} does not match arity {self.arity}", TypeMismatch)
        for i, (v, dom) in enumerate(zip(row, self.domains)):
            if dom is None:
                # unset domain slot: fall back to the first stored row
                if first is not None and type(v) is not type(first[i]):
                    raise TypeMismatch(f"{self.name}: column {i} is {type(v).__name__}, "
                                       f"first row has {type(first[i]).__name__}", i)
            elif not dom.accepts(v):
                raise TypeMismatch(f"{self.name}: column {self.attributes[i]!r} expects "
                                   f"{dom.value}, got {type(v).__name__}", i)

    def insert(self, row: Row) -> bool:
        try:
            self.check(row)
        except TypeMismatch as e:
            logger.debug("insert rejected: %s", e)
            return False
        self.tuples.append(row)
        self.index.put(self.key_of(row), row)
        return True

    def rebuild_index(self) -> None:
        self.index = PrimaryKeyIndex()
        for row in self.tuples:
            self.index.put(self.key_of(row), row)
        self._indexed = True

    ########################
    # Core Operations
    ########################

    # pi - rows are copied, duplicates kept
    def project(self, attributes: Names) -> "Table":
        attrs = _split(attributes)
        _assert(attrs, "Project: empty attribute list")
        idxs = self.match(attrs)
        doms = [self.domains[i] for i in idxs]
        new_key = self.key if all(k in attrs for k in self.key) else attrs
        rows = [[row[i] for i in idxs] for row in self.tuples]
        return self.factory.derive(self, attrs, doms, new_key, rows)

    # sigma on the primary key, via the index
    def select(self, key_val: Union[KeyType, Sequence[Any]]) -> "Table":
        if isinstance(key_val, (list, tuple)):
            key_val = KeyType(*key_val)
        elif not isinstance(key_val, KeyType):
            key_val = KeyType(key_val)
        _assert(len(key_val) == len(self.key),
                f"Select: key has {len(key_val)} values, primary key {self.key} has {len(self.key)}")
        if not self.has_index:
            logger.debug("select on %s: only inserted rows are indexed", self.name)
        rows: List[Row] = []
        row = self.index.get(key_val)
        if row is not None:
            rows.append(row)
        return self.factory.derive(self, self.attributes, self.domains, self.key, rows)

    def compatible(self, other: "Table") -> bool:
        try:
            self._check_compatible(other, "compatible")
        except SchemaMismatch:
            return False
        return True

    def _check_compatible(self, other: "Table", op: str) -> None:
        if len(self.domains) != len(other.domains):
            raise SchemaMismatch(f"{op}: tables have different arity "
                                 f"({len(self.domains)} vs {len(other.domains)})")
        for j, (d1, d2) in enumerate(zip(self.domains, other.domains)):
            if d1 is not d2:
                raise SchemaMismatch(f"{op}: tables disagree on domain {j}", j)

    def union(self, other: "Table") -> "Table":
        self._check_compatible(other, "Union")
        rows = list(self.tuples)
        for r2 in other.tuples:
            if not any(_rows_equal(r1, r2) for r1 in rows):
                rows.append(r2)
        return self.factory.derive(self, self.attributes, self.domains, self.key, rows)

    def minus(self, other: "Table") -> "Table":
        self._check_compatible(other, "Minus")
        rows = [r1 for r1 in self.tuples
                if not any(_rows_equal(r1, r2) for r2 in other.tuples)]
        return self.factory.derive(self, self.attributes, self.domains, self.key, rows)

    # Right-hand names that collide with their paired left name get a "2" suffix.
    # Pairs are walked in order, so a column paired twice is renamed twice.
    # The map is keyed by right-hand column position.
    def disambiguate(self, left_cols: Names, right_cols: Names, other: "Table") -> Dict[int, str]:
        lnames, rnames = _split(left_cols), _split(right_cols)
        cols1, cols2 = self.match(lnames), other.match(rnames)
        current = list(other.attributes)
        for c1, c2 in zip(cols1, cols2):
            if current[c2] == self.attributes[c1]:
                current[c2] = current[c2] + "2"
        return {pos: new for pos, (old, new) in enumerate(zip(other.attributes, current)) if old != new}

    # Nested loop join on leftCols[i] == rightCols[i] for every i
    def equi_join(self, left_cols: Names, right_cols: Names, other: "Table",
                  rename_operand: bool = False) -> "Table":
        lnames, rnames = _split(left_cols), _split(right_cols)
        _assert(len(lnames) == len(rnames),
                f"EquiJoin: {len(lnames)} left columns but {len(rnames)} right columns")
        cols1, cols2 = self.match(lnames), other.match(rnames)
        pairs = list(zip(cols1, cols2))

        rows: List[Row] = []
        for lr in self.tuples:
            for rr in other.tuples:
                if all(lr[i] == rr[j] for i, j in pairs):
                    rows.append(_concat_rows(lr, rr))

        renames = self.disambiguate(lnames, rnames, other)
        right_attrs = [renames.get(pos, a) for pos, a in enumerate(other.attributes)]
        if rename_operand:
            other.rename_attributes(renames)
        return self.factory.derive(self, self.attributes + right_attrs, self.domains + other.domains,
                                   self.key, rows)

    # Join on every shared attribute name; no shared names means a cartesian product.
    def natural_join(self, other: "Table") -> "Table":
        common = [a for a in self.attributes if a in other.attributes]
        if not common:
            rows = [_concat_rows(lr, rr) for lr in self.tuples for rr in other.tuples]
            return self.factory.derive(self, self.attributes + other.attributes,
                                       self.domains + other.domains, self.key, rows)

        cols1, cols2 = self.match(common), other.match(common)
        skip = set(cols2)
        extra = [j for j in range(other.arity) if j not in skip]
        pairs = list(zip(cols1, cols2))

        rows = []
        for lr in self.tuples:
            for rr in other.tuples:
                if all(lr[i] == rr[j] for i, j in pairs):
                    rows.append(list(lr) + [rr[j] for j in extra])

        attrs = self.attributes + [other.attributes[j] for j in extra]
        doms = self.domains + [other.domains[j] for j in extra]
        return self.factory.derive(self, attrs, doms, self.key, rows)

    ########################
    # Rendering
    ########################

    def to_records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.attributes, row)) for row in self.tuples]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "attributes": list(self.attributes),
            "domains": [d.value if d else None for d in self.domains],
            "key": list(self.key),
            "rows": [list(r) for r in self.tuples],
        }

    def to_csv(self, delimiter: str = ",") -> str:
        out = [delimiter.join(self.attributes)]
        for r in self.tuples:
            out.append(delimiter.join(map(_to_str, r)))
        return "\n".join(out)

    def pretty(self, max_width: int = 24) -> str:
        cols = self.attributes
        data = [cols] + [list(map(_to_str, r)) for r in self.tuples]
        widths = [0] * len(cols)
        for row in data:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(str(cell)))
        widths = [min(w, max_width) for w in widths]

        def fmt(row):
            cells = []
            for i, cell in enumerate(row):
                s = str(cell)
                if len(s) > widths[i]:
                    s = s[: max(0, widths[i] - 1)] + "…"
                cells.append(s.ljust(widths[i]))
            return " | ".join(cells)

        lines = [fmt(cols), "-+-".join("-" * w for w in widths)]
        for r in self.tuples:
            lines.append(fmt(list(map(_to_str, r))))
        return "\n".join(lines)

    def __str__(self):
        return f"{self.name}\n{self.pretty()}"


def _to_str(x: Any) -> str:
    return x if isinstance(x, str) else str(x)

def _rows_equal(a: Row, b: Row) -> bool:
    return len(a) == len(b) and all(x == y for x, y in zip(a, b))

def _concat_rows(left_row: Row, right_row: Row) -> List[Any]:
    return list(left_row) + list(right_row)
