"""Country to continent lookup."""

import pytest

from berse.badges.continents import COUNTRY_CONTINENTS, get_continent


@pytest.mark.parametrize(
    ("country", "continent"),
    [
        ("Malaysia", "Asia"),
        ("France", "Europe"),
        ("Kenya", "Africa"),
        ("Canada", "North America"),
        ("Brazil", "South America"),
        ("Australia", "Oceania"),
    ],
)
def test_mapped_countries(country, continent):
    assert get_continent(country) == continent


@pytest.mark.parametrize("country", ["Narnia", "", None, "malaysia"])
def test_unmapped_countries_return_none(country):
    assert get_continent(country) is None


def test_table_covers_six_inhabited_continents():
    assert set(COUNTRY_CONTINENTS.values()) == {
        "Africa",
        "Asia",
        "Europe",
        "North America",
        "South America",
        "Oceania",
    }
