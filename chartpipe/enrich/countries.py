"""
Country reference directory.

Resolves free-form country names to ISO alpha-2 codes with pycountry (plus a
small alias table for informal names), then attaches continent and region
from config/countries.yaml. Also maps ISO codes to flag glyphs.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import pycountry
import yaml

from chartpipe.errors import ConfigError, LookupMiss

logger = logging.getLogger(__name__)

DEFAULT_COUNTRIES_PATH = Path(__file__).resolve().parents[2] / "config" / "countries.yaml"

# Offset from an ASCII capital letter to its regional indicator symbol
_REGIONAL_INDICATOR_OFFSET = 0x1F1E6 - ord("A")


@dataclass(frozen=True)
class CountryInfo:
    iso2: str
    continent: str
    region: str


def flag_glyph(iso2: str) -> str:
    """
    Map an ISO alpha-2 code to its flag glyph (pair of regional indicators).

    Raises:
        LookupMiss: If the code is not two ASCII letters
    """
    code = (iso2 or "").strip().upper()
    if len(code) != 2 or not code.isascii() or not code.isalpha():
        raise LookupMiss(str(iso2), "not an ISO alpha-2 code")
    return "".join(chr(ord(c) + _REGIONAL_INDICATOR_OFFSET) for c in code)


class CountryDirectory:
    """Read-only name -> (iso2, continent, region) lookup."""

    def __init__(self, regions: Dict[str, Dict[str, str]], aliases: Optional[Dict[str, str]] = None):
        self.regions = {str(k).upper(): v for k, v in regions.items()}
        self.aliases = {str(k).casefold(): str(v).upper() for k, v in (aliases or {}).items()}
        self._cache: Dict[str, Optional[CountryInfo]] = {}

    @classmethod
    def from_yaml(cls, path: Union[str, Path, None] = None) -> "CountryDirectory":
        """
        Load the directory from a YAML file.

        Args:
            path: YAML path; defaults to $CHARTPIPE_COUNTRIES or config/countries.yaml

        Returns:
            Loaded CountryDirectory

        Raises:
            ConfigError: If the file is missing or not valid YAML
        """
        path = Path(path or os.environ.get("CHARTPIPE_COUNTRIES") or DEFAULT_COUNTRIES_PATH)
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot load country directory {path}: {e}") from e
        directory = cls(config.get("regions", {}), config.get("aliases", {}))
        logger.debug(f"Loaded {len(directory.regions)} regions from {path}")
        return directory

    def _resolve_iso2(self, name: str) -> Optional[str]:
        key = name.strip()
        if not key:
            return None
        alias = self.aliases.get(key.casefold())
        if alias:
            return alias
        try:
            return pycountry.countries.lookup(key).alpha_2
        except LookupError:
            return None

    def by_country(self, name: str) -> CountryInfo:
        """
        Look up a country by name.

        Raises:
            LookupMiss: If the name does not resolve or has no region entry
        """
        info = self.get(name)
        if info is None:
            raise LookupMiss(str(name), "unknown country")
        return info

    def get(self, name: str) -> Optional[CountryInfo]:
        """Like by_country but returns None on a miss."""
        if name is None:
            return None
        if name in self._cache:
            return self._cache[name]

        info = None
        iso2 = self._resolve_iso2(name)
        if iso2 is not None:
            region = self.regions.get(iso2)
            if region:
                info = CountryInfo(
                    iso2=iso2,
                    continent=region.get("continent", ""),
                    region=region.get("region", ""),
                )
        self._cache[name] = info
        return info

    def flag(self, iso2: str) -> str:
        return flag_glyph(iso2)
