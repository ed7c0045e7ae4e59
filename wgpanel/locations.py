"""Display-only location labels derived from configuration file names.

The keyword table is a list of rows like::

    {"fileName": "us-newyork-01.conf", "countryCode": "us",
     "countryNameKey": "usa", "keywords": ["us", "us-newyork", "newyork"]}

The last keyword of a row is its display city when the row has more than one.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationMissing, PersistenceError

logger = logging.getLogger(__name__)

GENERIC_FALLBACKS = (
    ("server", "Generic Server"),
    ("test", "Test Config"),
    ("backup", "Backup Config"),
)
GENERIC_COUNTRY_CODE = "generic"


@dataclass(frozen=True)
class LocationLabel:
    country_code: str
    country_name_key: str
    city: str | None = None

    def display(self):
        if self.city:
            return f"{self.country_name_key}, {self.city}"
        return self.country_name_key


def capitalize_first(text):
    return text[:1].upper() + text[1:]


def flatten_keywords(table):
    rows = []
    for entry in table or []:
        if not isinstance(entry, dict):
            continue
        country_code = entry.get("countryCode")
        keywords = entry.get("keywords")
        if not country_code or not keywords:
            continue
        # a lone keyword is the country code itself, not a city
        city = capitalize_first(str(keywords[-1])) if len(keywords) > 1 else None
        for keyword in keywords:
            keyword = str(keyword).strip()
            if keyword:
                rows.append((keyword, country_code, entry.get("countryNameKey") or country_code, city))
    # sort is stable: equal-length keywords keep table order
    rows.sort(key=lambda row: len(row[0]), reverse=True)
    return rows


def resolve(file_name, table):
    """Return the LocationLabel for ``file_name`` or None when unresolved.

    Longer keywords are tried first so "us-newyork" wins over "us". A keyword
    must match as a whole token. When no keyword matches, the generic
    server/test/backup substrings are tried in that order.
    """
    if not file_name:
        return None

    name = file_name.lower()
    for keyword, country_code, country_name_key, city in flatten_keywords(table):
        if re.search(rf"\b{re.escape(keyword.lower())}\b", name):
            return LocationLabel(country_code, country_name_key, city)

    for needle, label in GENERIC_FALLBACKS:
        if needle in name:
            return LocationLabel(GENERIC_COUNTRY_CODE, label)
    return None


def load_location_table(path):
    path = Path(path)
    if not path.is_file():
        raise ConfigurationMissing(f"location table not found: {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise PersistenceError(f"failed to read {path}: {exc}") from exc
    except ValueError as exc:
        raise PersistenceError(f"invalid JSON in {path}: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("locations", [])
    if not isinstance(data, list):
        raise PersistenceError(f"{path} must contain a list of locations")

    logger.debug("loaded %d location rows from %s", len(data), path)
    return data
