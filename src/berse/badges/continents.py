"""Country of residence -> continent lookup for the Global Citizen badge."""

from __future__ import annotations

COUNTRY_CONTINENTS: dict[str, str] = {
    # Africa
    "Nigeria": "Africa",
    "Egypt": "Africa",
    "South Africa": "Africa",
    "Kenya": "Africa",
    "Ghana": "Africa",
    "Morocco": "Africa",
    "Ethiopia": "Africa",
    "Tanzania": "Africa",
    # Asia
    "China": "Asia",
    "India": "Asia",
    "Japan": "Asia",
    "South Korea": "Asia",
    "Indonesia": "Asia",
    "Malaysia": "Asia",
    "Singapore": "Asia",
    "Thailand": "Asia",
    "Philippines": "Asia",
    "Vietnam": "Asia",
    "Pakistan": "Asia",
    "Bangladesh": "Asia",
    # Europe
    "United Kingdom": "Europe",
    "Germany": "Europe",
    "France": "Europe",
    "Italy": "Europe",
    "Spain": "Europe",
    "Netherlands": "Europe",
    "Sweden": "Europe",
    "Poland": "Europe",
    # North America
    "United States": "North America",
    "Canada": "North America",
    "Mexico": "North America",
    # South America
    "Brazil": "South America",
    "Argentina": "South America",
    "Chile": "South America",
    "Colombia": "South America",
    "Peru": "South America",
    # Oceania
    "Australia": "Oceania",
    "New Zealand": "Oceania",
    "Fiji": "Oceania",
}


def get_continent(country: str | None) -> str | None:
    """Continent for an exact country name, or None if unmapped."""
    if not country:
        return None
    return COUNTRY_CONTINENTS.get(country)
