import hashlib
import logging
import os
import stat
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .activation import ACTIVE_SLOT_NAME, slot_path_for
from .errors import ConfigurationMissing, SlotReadError
from .locations import resolve

logger = logging.getLogger(__name__)

CONFIG_SUFFIX = ".conf"


@dataclass(frozen=True)
class ConfigDescriptor:
    file_name: str
    full_path: str
    is_available: bool
    keywords: tuple = ()
    country_code: str = ""
    country_name_key: str = ""
    is_active: bool = False

    def to_dict(self, table=None):
        data = {
            "fileName": self.file_name,
            "fullPath": self.full_path,
            "isAvailable": self.is_available,
            "isActive": self.is_active,
            "keywords": list(self.keywords),
            "countryCode": self.country_code,
            "countryNameKey": self.country_name_key,
        }
        if table is not None:
            label = resolve(self.file_name, table)
            data["location"] = label.display() if label else None
        return data


@dataclass(frozen=True)
class ActiveConfigInfo:
    exists: bool
    name: str = ACTIVE_SLOT_NAME
    size_bytes: int = 0
    last_modified: datetime | None = None
    matches: tuple = field(default=())

    def to_dict(self):
        if not self.exists:
            return {"success": False, "reason": "not_found"}
        return {
            "success": True,
            "name": self.name,
            "size": self.size_bytes,
            "lastModified": self.last_modified.isoformat(),
        }


def file_digest(path):
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def is_regular_file(path):
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False


class ConfigCatalog:
    def __init__(self, config_dir):
        self.config_dir = config_dir

    @property
    def directory(self):
        if not self.config_dir:
            raise ConfigurationMissing("WIREGUARD_DIR is not configured on the server.")
        return Path(self.config_dir)

    @property
    def slot_path(self):
        return slot_path_for(self.config_dir)

    def list_files(self):
        """Return the ``*.conf`` files in the directory, the active slot excluded."""
        directory = self.directory
        try:
            names = sorted(os.listdir(directory))
        except OSError as exc:
            raise ConfigurationMissing(f"failed to read directory {directory}: {exc.strerror or exc}") from exc

        files = []
        for name in names:
            if not name.endswith(CONFIG_SUFFIX) or name == ACTIVE_SLOT_NAME:
                continue
            path = directory / name
            if is_regular_file(path):
                files.append(path)
        return files

    def list_candidates(self, table):
        """Describe every table row that names a file, in table order."""
        directory = self.directory
        active_digest = self._slot_digest()
        seen = set()
        candidates = []
        for entry in table or []:
            if not isinstance(entry, dict):
                continue
            file_name = os.path.basename(str(entry.get("fileName") or "").strip())
            if not file_name or file_name == ACTIVE_SLOT_NAME or file_name in seen:
                continue
            seen.add(file_name)

            path = directory / file_name
            available = is_regular_file(path)
            candidates.append(
                ConfigDescriptor(
                    file_name=file_name,
                    full_path=str(path),
                    is_available=available,
                    keywords=tuple(str(k) for k in entry.get("keywords") or ()),
                    country_code=str(entry.get("countryCode") or ""),
                    country_name_key=str(entry.get("countryNameKey") or ""),
                    is_active=bool(available and active_digest and self._digest_or_none(path) == active_digest),
                )
            )
        return candidates

    def get_active_info(self):
        slot = self.slot_path
        try:
            st = os.stat(slot)
        except FileNotFoundError:
            return ActiveConfigInfo(exists=False)
        except OSError as exc:
            raise SlotReadError(f"Error reading {ACTIVE_SLOT_NAME}: {exc.strerror or exc}") from exc

        if not stat.S_ISREG(st.st_mode):
            raise SlotReadError(f"Error reading {ACTIVE_SLOT_NAME}: not a regular file")
        if not os.access(slot, os.R_OK):
            raise SlotReadError(f"Error reading {ACTIVE_SLOT_NAME}: permission denied")

        matches = tuple(path.name for path in self._identical_candidates())
        return ActiveConfigInfo(
            exists=True,
            name=matches[0] if matches else ACTIVE_SLOT_NAME,
            size_bytes=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            matches=matches,
        )

    def resolve_source(self, name_or_path):
        value = str(name_or_path or "").strip()
        if not value:
            return value
        if os.sep in value or os.path.isabs(value):
            return value
        return str(self.directory / value)

    def _digest_or_none(self, path):
        try:
            return file_digest(path)
        except OSError as exc:
            logger.warning("cannot hash %s: %s", path, exc)
            return None

    def _slot_digest(self):
        slot = self.slot_path
        if not is_regular_file(slot):
            return None
        return self._digest_or_none(slot)

    def _identical_candidates(self):
        active_digest = self._slot_digest()
        if not active_digest:
            return []
        return [path for path in self.list_files() if self._digest_or_none(path) == active_digest]
