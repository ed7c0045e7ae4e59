"""Promotion of a candidate configuration into the active ``wg0.conf`` slot.

An activation validates the source, copies it over the slot with
write-then-rename semantics and then restarts the dependent containers or
services concurrently. Once the copy has landed the activation counts as a
success; restart failures only show up as sentences in the message.
"""

import logging
import os
import shutil
import stat
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from .errors import (
    ConfigurationMissing,
    InvalidRequest,
    PromotionFailed,
    SourceNotAFile,
    SourceNotFound,
)

logger = logging.getLogger(__name__)

ACTIVE_SLOT_NAME = "wg0.conf"


@dataclass(frozen=True)
class RestartOutcome:
    name: str
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class ActivationResult:
    success: bool
    message: str
    source_name: str
    restarts: list = field(default_factory=list)

    def to_dict(self):
        return {"success": self.success, "message": self.message}


def slot_path_for(config_dir):
    if not config_dir:
        raise ConfigurationMissing("WIREGUARD_DIR is not configured on the server.")
    return Path(config_dir) / ACTIVE_SLOT_NAME


def validate_source(source_path):
    try:
        st = os.stat(source_path)
    except FileNotFoundError:
        raise SourceNotFound(f"source file not found: {source_path}")
    except OSError as exc:
        raise SourceNotFound(f"cannot access {source_path}: {exc.strerror or exc}")
    except ValueError as exc:
        raise InvalidRequest(f"invalid source path: {exc}")
    if not stat.S_ISREG(st.st_mode):
        raise SourceNotAFile(f"source path is not a regular file: {source_path}")
    return st


def promote(source_path, slot_path):
    """Copy ``source_path`` over ``slot_path``; the slot is either fully replaced or untouched."""
    slot_dir = slot_path.parent
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{slot_path.name}.", suffix=".tmp", dir=slot_dir)
        with os.fdopen(fd, "wb") as dst, open(source_path, "rb") as src:
            shutil.copyfileobj(src, dst)
            dst.flush()
            os.fsync(dst.fileno())
        shutil.copymode(source_path, tmp_name)
        os.replace(tmp_name, slot_path)
    except OSError as exc:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PromotionFailed(f"failed to write {slot_path}: {exc.strerror or exc}", cause=exc) from exc


def restart_one(restarter, name):
    try:
        restarter.restart(name)
    except Exception as exc:
        logger.error("[ACTIVATE] restart of %s failed: %s", name, exc)
        return RestartOutcome(name, False, str(exc))
    return RestartOutcome(name, True)


def restart_all(restarter, names):
    """Restart every name concurrently and return the outcomes in request order."""
    if not names:
        return []
    with ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="restart") as pool:
        futures = [pool.submit(restart_one, restarter, name) for name in names]
        return [future.result() for future in futures]


def compose_message(source_name, outcomes, label="container"):
    parts = [f'"{source_name}" was copied and activated as "{ACTIVE_SLOT_NAME}".']
    for outcome in outcomes:
        if outcome.ok:
            parts.append(f' The {label} "{outcome.name}" was restarted.')
        else:
            parts.append(f' ERROR: could not restart {label} "{outcome.name}": {outcome.error}')
    return "".join(parts)


class ActivationOrchestrator:
    def __init__(self, config_dir, restarter=None, dependents=None):
        self.config_dir = config_dir
        self.restarter = restarter
        self.dependents = [name for name in (dependents or []) if name]

    def activate(self, source_path):
        logger.info("[ACTIVATE] Received request to activate: %s", source_path)
        if not source_path or not str(source_path).strip():
            raise InvalidRequest("The source file path is missing.")

        source_path = Path(str(source_path).strip())
        validate_source(source_path)
        slot_path = slot_path_for(self.config_dir)

        if source_path.resolve() == slot_path.resolve():
            raise InvalidRequest(f"{ACTIVE_SLOT_NAME} is already the active slot and cannot be activated onto itself.")

        logger.info("[ACTIVATE] Copying '%s' to '%s'", source_path, slot_path)
        promote(source_path, slot_path)
        logger.info("[ACTIVATE] Copy successful.")

        outcomes = []
        label = "container"
        if self.restarter is not None and self.dependents:
            label = getattr(self.restarter, "label", label)
            outcomes = restart_all(self.restarter, self.dependents)

        message = compose_message(source_path.name, outcomes, label=label)
        return ActivationResult(True, message, source_path.name, outcomes)
