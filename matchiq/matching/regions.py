"""Country and region lookup for geography scoring.

Profiles list target countries as a mix of real countries ("Thailand",
"TH", "Viet Nam") and region groupings ("ASEAN", "GCC", "Global"). The
RegionTable resolves both to canonical names and answers which regions a
country belongs to.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)


# Region groupings and their member countries
DEFAULT_REGIONS: Dict[str, List[str]] = {
    "ASEAN": [
        "Brunei", "Cambodia", "Indonesia", "Laos", "Malaysia", "Myanmar",
        "Philippines", "Singapore", "Thailand", "Vietnam",
    ],
    "East Asia": [
        "China", "Hong Kong", "Japan", "Macau", "Mongolia", "South Korea", "Taiwan",
    ],
    "South Asia": [
        "Afghanistan", "Bangladesh", "Bhutan", "India", "Maldives", "Nepal",
        "Pakistan", "Sri Lanka",
    ],
    "Central Asia": [
        "Kazakhstan", "Kyrgyzstan", "Tajikistan", "Turkmenistan", "Uzbekistan",
    ],
    "Oceania": ["Australia", "Fiji", "New Zealand", "Papua New Guinea"],
    "Middle East": [
        "Bahrain", "Egypt", "Iran", "Iraq", "Israel", "Jordan", "Kuwait", "Lebanon",
        "Oman", "Qatar", "Saudi Arabia", "Turkey", "United Arab Emirates", "Yemen",
    ],
    "GCC": [
        "Bahrain", "Kuwait", "Oman", "Qatar", "Saudi Arabia", "United Arab Emirates",
    ],
    "Europe": [
        "Austria", "Belgium", "Czech Republic", "Denmark", "Finland", "France",
        "Germany", "Greece", "Hungary", "Iceland", "Ireland", "Italy", "Luxembourg",
        "Netherlands", "Norway", "Poland", "Portugal", "Romania", "Russia", "Spain",
        "Sweden", "Switzerland", "Ukraine", "United Kingdom",
    ],
    "Nordic Countries": ["Denmark", "Finland", "Iceland", "Norway", "Sweden"],
    "North America": ["Canada", "Mexico", "United States"],
    "South America": [
        "Argentina", "Bolivia", "Brazil", "Chile", "Colombia", "Ecuador",
        "Paraguay", "Peru", "Uruguay", "Venezuela",
    ],
    "Africa": [
        "Algeria", "Egypt", "Ethiopia", "Ghana", "Kenya", "Morocco", "Nigeria",
        "Rwanda", "South Africa", "Tanzania", "Tunisia", "Uganda",
    ],
}

# APAC spans several of the groupings above
DEFAULT_REGIONS["APAC"] = sorted(
    set(DEFAULT_REGIONS["ASEAN"])
    | set(DEFAULT_REGIONS["East Asia"])
    | set(DEFAULT_REGIONS["South Asia"])
    | set(DEFAULT_REGIONS["Oceania"])
)

# Region names that match every country
WILDCARD_REGIONS = {"global", "worldwide", "any", "all countries"}

# ISO codes and common alternative spellings
DEFAULT_ALIASES: Dict[str, str] = {
    "us": "United States",
    "usa": "United States",
    "u.s.": "United States",
    "u.s.a.": "United States",
    "united states of america": "United States",
    "america": "United States",
    "uk": "United Kingdom",
    "gb": "United Kingdom",
    "gbr": "United Kingdom",
    "great britain": "United Kingdom",
    "england": "United Kingdom",
    "uae": "United Arab Emirates",
    "ae": "United Arab Emirates",
    "are": "United Arab Emirates",
    "ksa": "Saudi Arabia",
    "sa": "Saudi Arabia",
    "sau": "Saudi Arabia",
    "kr": "South Korea",
    "kor": "South Korea",
    "korea": "South Korea",
    "republic of korea": "South Korea",
    "korea, republic of": "South Korea",
    "jp": "Japan",
    "jpn": "Japan",
    "cn": "China",
    "chn": "China",
    "prc": "China",
    "people's republic of china": "China",
    "hk": "Hong Kong",
    "hkg": "Hong Kong",
    "tw": "Taiwan",
    "twn": "Taiwan",
    "th": "Thailand",
    "tha": "Thailand",
    "vn": "Vietnam",
    "vnm": "Vietnam",
    "viet nam": "Vietnam",
    "sg": "Singapore",
    "sgp": "Singapore",
    "my": "Malaysia",
    "mys": "Malaysia",
    "id": "Indonesia",
    "idn": "Indonesia",
    "ph": "Philippines",
    "phl": "Philippines",
    "kh": "Cambodia",
    "khm": "Cambodia",
    "la": "Laos",
    "lao": "Laos",
    "lao pdr": "Laos",
    "mm": "Myanmar",
    "mmr": "Myanmar",
    "burma": "Myanmar",
    "bn": "Brunei",
    "brunei darussalam": "Brunei",
    "in": "India",
    "ind": "India",
    "bd": "Bangladesh",
    "bgd": "Bangladesh",
    "pk": "Pakistan",
    "pak": "Pakistan",
    "lk": "Sri Lanka",
    "lka": "Sri Lanka",
    "au": "Australia",
    "aus": "Australia",
    "nz": "New Zealand",
    "nzl": "New Zealand",
    "ca": "Canada",
    "can": "Canada",
    "mx": "Mexico",
    "mex": "Mexico",
    "br": "Brazil",
    "bra": "Brazil",
    "de": "Germany",
    "deu": "Germany",
    "fr": "France",
    "fra": "France",
    "ch": "Switzerland",
    "che": "Switzerland",
    "nl": "Netherlands",
    "nld": "Netherlands",
    "the netherlands": "Netherlands",
    "holland": "Netherlands",
    "se": "Sweden",
    "swe": "Sweden",
    "no": "Norway",
    "nor": "Norway",
    "dk": "Denmark",
    "dnk": "Denmark",
    "fi": "Finland",
    "fin": "Finland",
    "czechia": "Czech Republic",
    "cz": "Czech Republic",
    "pl": "Poland",
    "pol": "Poland",
    "tr": "Turkey",
    "tur": "Turkey",
    "turkiye": "Turkey",
    "za": "South Africa",
    "zaf": "South Africa",
    "eg": "Egypt",
    "egy": "Egypt",
    "il": "Israel",
    "isr": "Israel",
    "qa": "Qatar",
    "qat": "Qatar",
    "kw": "Kuwait",
    "kwt": "Kuwait",
    "om": "Oman",
    "omn": "Oman",
    "bh": "Bahrain",
    "bhr": "Bahrain",
    "ru": "Russia",
    "rus": "Russia",
    "russian federation": "Russia",
    "asia pacific": "APAC",
    "asia-pacific": "APAC",
    "southeast asia": "ASEAN",
    "south east asia": "ASEAN",
    "nordics": "Nordic Countries",
    "nordic": "Nordic Countries",
    "gulf": "GCC",
    "gulf states": "GCC",
    "worldwide": "Global",
    "international": "Global",
}


class RegionTable:
    """Resolves country and region names and region membership.

    Lookups are case-insensitive. Names that are neither a known country,
    a known region nor an alias resolve to None.
    """

    def __init__(
        self,
        regions: Optional[Dict[str, List[str]]] = None,
        aliases: Optional[Dict[str, str]] = None,
        extra_countries: Optional[Iterable[str]] = None,
    ):
        """Initialize the table.

        Args:
            regions: Region name -> member countries. Entries override the
                defaults with the same name; new names are added.
            aliases: Alias -> canonical name, merged over the defaults.
            extra_countries: Countries that belong to no region but should
                still resolve (e.g. rarely used HQ countries).
        """
        merged = {name: list(members) for name, members in DEFAULT_REGIONS.items()}
        for name, members in (regions or {}).items():
            merged[name] = list(members)

        self._regions: Dict[str, Set[str]] = {}
        self._region_names: Dict[str, str] = {}
        self._countries: Dict[str, str] = {}

        for name, members in merged.items():
            self._region_names[name.lower()] = name
            self._regions[name] = set()
            for country in members:
                self._countries[country.lower()] = country
                self._regions[name].add(country)

        for country in extra_countries or []:
            self._countries[country.strip().lower()] = country.strip()

        self._aliases = {k.lower(): v for k, v in DEFAULT_ALIASES.items()}
        for alias, canonical in (aliases or {}).items():
            self._aliases[alias.strip().lower()] = canonical

    def resolve(self, name: Optional[str]) -> Optional[str]:
        """Resolve a country or region name to its canonical form."""
        if not name:
            return None
        key = str(name).strip().lower()
        if not key:
            return None

        key = self._aliases.get(key, key).lower()
        if key in WILDCARD_REGIONS:
            return "Global"
        if key in self._countries:
            return self._countries[key]
        if key in self._region_names:
            return self._region_names[key]
        return None

    def resolve_country(self, name: Optional[str]) -> Optional[str]:
        """Resolve a name to a canonical country, or None for regions and unknowns."""
        resolved = self.resolve(name)
        if resolved is None or self.is_region(resolved):
            return None
        return resolved

    def is_region(self, name: Optional[str]) -> bool:
        if not name:
            return False
        key = str(name).strip().lower()
        return key in WILDCARD_REGIONS or key in self._region_names

    def is_wildcard(self, name: Optional[str]) -> bool:
        return self.resolve(name) == "Global"

    def members(self, region: str) -> Set[str]:
        """Return the member countries of a region (empty if unknown)."""
        canonical = self._region_names.get(region.strip().lower())
        if canonical is None:
            return set()
        return set(self._regions[canonical])

    def regions_for(self, country: str) -> Set[str]:
        """Return the names of all regions containing a country."""
        canonical = self.resolve_country(country)
        if canonical is None:
            return set()
        return {name for name, members in self._regions.items() if canonical in members}

    @property
    def region_names(self) -> List[str]:
        return sorted(self._regions)
