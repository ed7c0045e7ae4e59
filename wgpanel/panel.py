import logging
from dataclasses import dataclass
from pathlib import Path

from .activation import ActivationOrchestrator
from .catalog import ConfigCatalog
from .errors import PanelError, PersistenceError
from .history import HistoryStore, JsonFileStore, OperationRecord
from .locations import load_location_table
from .restart import build_restarter

logger = logging.getLogger(__name__)


@dataclass
class Panel:
    catalog: ConfigCatalog
    orchestrator: ActivationOrchestrator
    history: HistoryStore
    locations_file: Path

    def location_table(self):
        return load_location_table(self.locations_file)

    def activate_and_record(self, source_path):
        """Activate ``source_path`` and append the outcome to the history log.

        A history that cannot be written is logged and skipped; it never masks
        the activation result or the activation error.
        """
        try:
            result = self.orchestrator.activate(source_path)
        except PanelError as exc:
            self._record(OperationRecord.error(f"Activation error: {exc}"))
            raise
        self._record(OperationRecord.success(result.message))
        return result

    def _record(self, record):
        try:
            self.history.append(record)
        except PersistenceError as exc:
            logger.warning("history not updated: %s", exc)


def build_panel(settings):
    restarter = None
    if settings.dependents:
        restarter = build_restarter(settings.restart_backend, timeout=settings.restart_timeout)
    return Panel(
        catalog=ConfigCatalog(settings.wireguard_dir),
        orchestrator=ActivationOrchestrator(settings.wireguard_dir, restarter, settings.dependents),
        history=HistoryStore(JsonFileStore(settings.history_dir)),
        locations_file=settings.locations_file,
    )
