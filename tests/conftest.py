"""Shared sample tables."""

import pytest

from ra_table import TableFactory


MOVIES = [
    ["Star_Wars", 1977, 124, "sciFi", "Fox", 12345],
    ["Star_Wars_2", 1980, 124, "sciFi", "Fox", 12345],
    ["Rocky", 1985, 200, "action", "Universal", 12125],
    ["Rambo", 1978, 100, "action", "Universal", 32355],
]

STUDIOS = [
    ["Fox", "Los_Angeles", 7777],
    ["Universal", "Universal_City", 8888],
    ["DreamWorks", "Universal_City", 9999],
]

PRODUCERS = [
    [12345, 1977, "Producer_1"],
    [12125, 1985, "Producer_2"],
    [32356, 1978, "Producer_3"],
]


@pytest.fixture
def factory():
    return TableFactory()


@pytest.fixture
def movie(factory):
    table = factory.create("movie", "title year length genre studioName producerNo",
                           "String Integer Integer String String Integer", "title year")
    for row in MOVIES:
        assert table.insert(list(row))
    return table


@pytest.fixture
def studio(factory):
    table = factory.create("studio", "name address presNo", "String String Integer", "name")
    for row in STUDIOS:
        assert table.insert(list(row))
    return table


@pytest.fixture
def producer(factory):
    table = factory.create("producer", "producerNo year producerName", "Integer Integer String", "producerNo")
    for row in PRODUCERS:
        assert table.insert(list(row))
    return table
