import logging
import re
import subprocess

from .errors import RestartError

logger = logging.getLogger(__name__)

DEFAULT_RESTART_TIMEOUT = 30.0

NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.@-]{0,127}$")


def run_cmd(args, timeout=None):
    result = subprocess.run(args, text=True, capture_output=True, check=False, timeout=timeout)
    return result.returncode, (result.stdout or "").strip(), (result.stderr or "").strip()


def parse_names(raw):
    """Split a comma-separated list of dependent names, dropping blanks."""
    if not raw:
        return []
    return [name.strip() for name in str(raw).split(",") if name.strip()]


class CommandRestarter:
    label = "process"

    def __init__(self, timeout=DEFAULT_RESTART_TIMEOUT):
        self.timeout = timeout

    def command_for(self, name):
        raise NotImplementedError

    def restart(self, name):
        if not NAME_RE.fullmatch(name):
            raise RestartError(f"invalid {self.label} name")

        args = self.command_for(name)
        try:
            rc, out, err = run_cmd(args, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise RestartError(f"timed out after {self.timeout:g}s")
        except OSError as exc:
            raise RestartError(f"{args[0]} unavailable: {exc.strerror or exc}")

        if rc != 0:
            raise RestartError(err or out or f"{args[0]} exited with status {rc}")
        logger.info("restarted %s %s", self.label, name)


class DockerRestarter(CommandRestarter):
    label = "container"

    def command_for(self, name):
        return ["docker", "restart", name]


class SystemdRestarter(CommandRestarter):
    label = "service"

    def command_for(self, name):
        unit = name if name.endswith(".service") else f"{name}.service"
        return ["systemctl", "restart", unit]


RESTARTERS = {
    "docker": DockerRestarter,
    "systemd": SystemdRestarter,
}


def build_restarter(backend, timeout=DEFAULT_RESTART_TIMEOUT):
    key = str(backend or "docker").strip().lower()
    if key not in RESTARTERS:
        raise ValueError(f"unknown restart backend: {backend} (expected one of {', '.join(sorted(RESTARTERS))})")
    return RESTARTERS[key](timeout=timeout)
