from http import HTTPStatus


class PanelError(Exception):
    reason = "error"
    status = HTTPStatus.INTERNAL_SERVER_ERROR


class ConfigurationMissing(PanelError):
    reason = "config_error"


class InvalidRequest(PanelError):
    reason = "invalid_request"
    status = HTTPStatus.BAD_REQUEST


class SourceNotFound(PanelError):
    reason = "not_found"
    status = HTTPStatus.NOT_FOUND


class SourceNotAFile(PanelError):
    reason = "not_a_file"
    status = HTTPStatus.BAD_REQUEST


class PromotionFailed(PanelError):
    reason = "promotion_failed"

    def __init__(self, message, cause=None):
        super().__init__(message)
        self.cause = cause


class SlotReadError(PanelError):
    reason = "read_error"


class RestartError(PanelError):
    """Raised by a restarter for one dependent; collected, never propagated."""

    reason = "restart_error"


class PersistenceError(PanelError):
    reason = "persistence_error"
