"""Tests for table construction, insertion and the primary-key index."""

import warnings

import pytest

from ra_table import (
    AttributeNotFound,
    Domain,
    DomainResolutionError,
    DomainResolutionWarning,
    KeyType,
    PrimaryKeyIndex,
    SchemaError,
    Table,
    TableFactory,
    TypeCheck,
    TypeMismatch,
)


class TestDomain:
    """Tests for domain resolution and value tags."""

    def test_resolve_tokens(self):
        assert Domain.resolve("Integer") is Domain.INTEGER
        assert Domain.resolve("Long") is Domain.INTEGER
        assert Domain.resolve("Double") is Domain.REAL
        assert Domain.resolve("String") is Domain.TEXT
        assert Domain.resolve("bool") is Domain.BOOLEAN
        assert Domain.resolve("Blob") is None

    def test_bool_is_not_integer(self):
        assert Domain.of(True) is Domain.BOOLEAN
        assert not Domain.INTEGER.accepts(True)
        assert Domain.INTEGER.accepts(3)
        assert not Domain.REAL.accepts(3)
        assert Domain.of(object()) is None

    def test_parse_literals(self):
        assert Domain.INTEGER.parse("1977") == 1977
        assert Domain.REAL.parse("2") == 2.0
        assert Domain.BOOLEAN.parse("false") is False
        assert Domain.TEXT.parse("Fox") == "Fox"
        with pytest.raises(ValueError):
            Domain.BOOLEAN.parse("yes")

    def test_unknown_token_warns_and_leaves_slot_unset(self):
        with pytest.warns(DomainResolutionWarning):
            table = Table("t", "a b", "Integer Blob", "a")
        assert table.domains == [Domain.INTEGER, None]

    def test_strict_domains_raise(self):
        factory = TableFactory(strict_domains=True)
        with pytest.raises(DomainResolutionError):
            factory.create("t", "a b", "Integer Blob", "a")

    def test_domain_list_accepted(self):
        table = Table("t", ["a", "b"], [Domain.TEXT, Domain.REAL], ["a"])
        assert table.domains == [Domain.TEXT, Domain.REAL]


class TestKeyType:
    """Tests for composite key values."""

    def test_equality_and_hash(self):
        assert KeyType("Star_Wars", 1977) == KeyType("Star_Wars", 1977)
        assert hash(KeyType("Star_Wars", 1977)) == hash(KeyType("Star_Wars", 1977))
        assert KeyType("Star_Wars", 1977) != KeyType("Star_Wars", 1980)

    def test_lexicographic_order(self):
        keys = [KeyType("b", 0), KeyType("a", 2), KeyType("a", 1)]
        assert sorted(keys) == [KeyType("a", 1), KeyType("a", 2), KeyType("b", 0)]
        assert KeyType("a", 1) <= KeyType("a", 1)

    def test_of_row(self):
        assert KeyType.of(["x", 1, "y"], [2, 0]) == KeyType("y", "x")


class TestPrimaryKeyIndex:
    """Tests for the ordered index."""

    def test_put_get_overwrite(self):
        index = PrimaryKeyIndex()
        first, second = ["a", 1], ["a", 2]
        index.put(KeyType("a"), first)
        index.put(KeyType("a"), second)
        assert len(index) == 1
        assert index.get(KeyType("a")) is second
        assert index.get(KeyType("b")) is None
        assert KeyType("a") in index

    def test_keys_are_ordered(self):
        index = PrimaryKeyIndex()
        for k in ("c", "a", "b"):
            index.put(KeyType(k), [k])
        assert index.keys() == [KeyType("a"), KeyType("b"), KeyType("c")]


class TestConstruction:
    """Tests for building tables."""

    def test_whitespace_strings(self, movie):
        assert movie.attributes == ["title", "year", "length", "genre", "studioName", "producerNo"]
        assert movie.domains[1] is Domain.INTEGER
        assert movie.key == ["title", "year"]
        assert movie.arity == 6
        assert movie.has_index

    def test_key_must_name_attributes(self):
        with pytest.raises(AttributeNotFound) as exc:
            Table("t", "a b", "Integer Integer", "c")
        assert exc.value.attribute == "c"

    def test_domain_count_must_match(self):
        with pytest.raises(SchemaError):
            Table("t", "a b", "Integer", "a")

    def test_table_from_rows_has_no_index(self):
        table = Table("t", "a", "Integer", "a", [[1], [2]])
        assert not table.has_index
        assert len(table.index) == 0

    def test_col(self, movie):
        assert movie.col("length") == 2
        with pytest.raises(AttributeNotFound):
            movie.col("budget")


class TestInsert:
    """Tests for insert and index maintenance."""

    def test_insert_populates_index_by_reference(self, movie):
        assert len(movie) == 4
        row = movie.index.get(KeyType("Star_Wars", 1977))
        assert row is movie.tuples[0]

    def test_equal_key_overwrites_index_entry(self, movie):
        again = ["Star_Wars", 1977, 121, "sciFi", "Fox", 12345]
        assert movie.insert(again)
        assert len(movie) == 5
        assert len(movie.index) == 4
        assert movie.index.get(KeyType("Star_Wars", 1977)) is again

    def test_declared_domains_reject_wrong_type(self, movie):
        assert not movie.insert(["Alien", "1979", 117, "sciFi", "Fox", 1])
        assert not movie.insert(["Alien", 1979, 117, "sciFi", "Fox", True])
        assert len(movie) == 4

    def test_wrong_arity_rejected(self, movie):
        assert not movie.insert(["Alien", 1979])
        assert len(movie) == 4
        assert len(movie.index) == 4

    def test_declared_check_applies_to_first_row(self):
        table = Table("t", "a", "Integer", "a")
        assert not table.insert(["one"])
        assert table.insert([1])

    def test_check_reports_position(self, movie):
        with pytest.raises(TypeMismatch) as exc:
            movie.check(["Alien", 1979, "long", "sciFi", "Fox", 1])
        assert exc.value.position == 2

    def test_first_row_mode(self):
        factory = TableFactory(type_check=TypeCheck.FIRST_ROW)
        table = factory.create("t", "a b", "Integer Integer", "a")
        # declared domains are not consulted; the first row sets the types
        assert table.insert(["x", 1.5])
        assert table.insert(["y", 2.5])
        assert not table.insert([1, 2.5])
        assert not table.insert(["z", 2.5, 3])

    def test_unset_domain_falls_back_to_first_row(self):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DomainResolutionWarning)
            table = Table("t", "a b", "Integer Blob", "a")
        assert table.insert([1, b"raw"])
        assert table.insert([2, b"more"])
        assert not table.insert([3, "text"])


class TestFactory:
    """Tests for derived-table naming and options."""

    def test_derived_names_count_up(self, factory, movie, studio):
        assert movie.project("title").name == "movie0"
        assert studio.project("name").name == "studio1"
        assert movie.select(KeyType("Rocky", 1985)).name == "movie2"

    def test_separate_factories_are_independent(self):
        a = TableFactory().create("t", "x", "Integer", "x")
        b = TableFactory().create("t", "x", "Integer", "x")
        assert a.project("x").name == "t0"
        assert b.project("x").name == "t0"

    def test_rebuild_index(self):
        table = Table("t", "a b", "Integer String", "a", [[1, "x"], [2, "y"]])
        table.rebuild_index()
        assert table.has_index
        assert table.select(KeyType(2)).tuples == [[2, "y"]]


class TestRendering:
    """Tests for the diagnostic output helpers."""

    def test_str_has_name_header_and_rows(self, studio):
        text = str(studio)
        lines = text.splitlines()
        assert lines[0] == "studio"
        assert "name" in lines[1] and "presNo" in lines[1]
        assert len(lines) == 2 + 1 + 3

    def test_csv_and_records(self, studio):
        assert studio.to_csv().splitlines()[1] == "Fox,Los_Angeles,7777"
        assert studio.to_records()[0] == {"name": "Fox", "address": "Los_Angeles", "presNo": 7777}
        assert studio.to_dict()["domains"] == ["Text", "Text", "Integer"]
