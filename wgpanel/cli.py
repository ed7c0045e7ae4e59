#!/usr/bin/env python3
import argparse
import os
import shlex
import subprocess
import sys
from pathlib import Path

from .errors import PanelError
from .history import KIND_SUCCESS
from .locations import resolve
from .panel import build_panel
from .server import configure_logging, serve
from .settings import load_settings

SYSTEMD_DIR = "/etc/systemd/system"
PANEL_SERVICE_NAME = "wgpanel"


class Colors:
    HEADER = "\033[95m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


def print_header(text):
    print(f"{Colors.HEADER}{Colors.BOLD}{text}{Colors.ENDC}")


def print_success(text):
    print(f"{Colors.GREEN}[+] {text}{Colors.ENDC}")


def print_info(text):
    print(f"{Colors.BLUE}[*] {text}{Colors.ENDC}")


def print_warning(text):
    print(f"{Colors.WARNING}[-] {text}{Colors.ENDC}")


def print_error(text):
    print(f"{Colors.FAIL}[!] {text}{Colors.ENDC}", file=sys.stderr)


def run_command(command, check=True):
    try:
        subprocess.run(
            command,
            check=check,
            shell=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        return True
    except subprocess.CalledProcessError:
        return False


def format_size(size):
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


def cmd_list(panel, args):
    try:
        table = panel.location_table()
    except PanelError as exc:
        print_warning(f"location table unavailable: {exc}")
        table = []

    info = panel.catalog.get_active_info()
    files = panel.catalog.list_files()
    if not files:
        print_info("No configuration available (only .conf files are listed).")
        return 0

    print_header("WireGuard configurations")
    for path in files:
        label = resolve(path.name, table)
        location = label.display() if label else "WireGuard Config"
        marker = f" {Colors.GREEN}(active){Colors.ENDC}" if path.name in info.matches else ""
        print(f"  {path.name:<32} {location}{marker}")
    return 0


def cmd_status(panel, args):
    info = panel.catalog.get_active_info()
    if not info.exists:
        print_warning("No active configuration (wg0.conf not found).")
        return 1
    print_header("Active configuration")
    print(f"  name:     {info.name}")
    print(f"  size:     {format_size(info.size_bytes)}")
    print(f"  modified: {info.last_modified.isoformat()}")
    return 0


def cmd_activate(panel, args):
    source = panel.catalog.resolve_source(args.source)
    print_info(f"Activating {source} ...")
    result = panel.activate_and_record(source)
    failed = [outcome for outcome in result.restarts if not outcome.ok]
    if failed:
        print_warning(result.message)
    else:
        print_success(result.message)
    return 0


def cmd_history(panel, args):
    records = panel.history.read()
    if not records:
        print_info("No operation recorded.")
        return 0
    for record in records[: args.limit]:
        color = Colors.GREEN if record.kind == KIND_SUCCESS else Colors.FAIL
        stamp = record.timestamp.astimezone().strftime("%d/%m/%Y %H:%M:%S")
        print(f"{color}{stamp}{Colors.ENDC} {record.message}")
    return 0


def cmd_clear_history(panel, args):
    panel.history.clear()
    print_success("History cleared.")
    return 0


def build_unit(env_file, python=None):
    python = python or sys.executable
    exec_start = f"{python} -m wgpanel.server --env-file {shlex.quote(str(env_file))}"
    return f"""[Unit]
Description=WireGuard configuration panel
After=network.target docker.service

[Service]
Type=simple
User=root
WorkingDirectory={Path(env_file).resolve().parent}
ExecStart={exec_start}
Restart=always
RestartSec=3

[Install]
WantedBy=multi-user.target
"""


def cmd_install_service(args):
    if os.geteuid() != 0:
        print_error("This command must be run as root.")
        return 1
    env_file = Path(args.env_file or ".env").resolve()
    service_path = os.path.join(SYSTEMD_DIR, f"{PANEL_SERVICE_NAME}.service")
    with open(service_path, "w", encoding="utf-8") as f:
        f.write(build_unit(env_file))

    run_command("systemctl daemon-reload")
    run_command(f"systemctl enable {PANEL_SERVICE_NAME}")
    if not run_command(f"systemctl restart {PANEL_SERVICE_NAME}"):
        print_error(f"Failed to start {PANEL_SERVICE_NAME}.service")
        return 1
    print_success(f"Systemd service installed and started: {PANEL_SERVICE_NAME}.service")
    return 0


PANEL_COMMANDS = {
    "list": cmd_list,
    "status": cmd_status,
    "activate": cmd_activate,
    "history": cmd_history,
    "clear-history": cmd_clear_history,
}


def build_parser():
    parser = argparse.ArgumentParser(prog="wgpanel", description="Switch the active WireGuard configuration")
    parser.add_argument("--env-file", default=None, help="path to a .env file (default: ./.env)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="list candidate configurations")
    sub.add_parser("status", help="show the active configuration")
    activate = sub.add_parser("activate", help="promote a configuration to wg0.conf")
    activate.add_argument("source", help="file name inside WIREGUARD_DIR or a path")
    history = sub.add_parser("history", help="show the operation history")
    history.add_argument("-n", "--limit", type=int, default=20)
    sub.add_parser("clear-history", help="delete the operation history")
    serve_cmd = sub.add_parser("serve", help="run the HTTP panel")
    serve_cmd.add_argument("--host")
    serve_cmd.add_argument("--port", type=int)
    sub.add_parser("install-service", help="install the panel as a systemd service")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.env_file)
    except ValueError as exc:
        print_error(str(exc))
        return 1

    if args.command == "serve":
        if args.host:
            settings.host = args.host
        if args.port is not None:
            settings.port = args.port
        serve(settings)
        return 0
    if args.command == "install-service":
        return cmd_install_service(args)

    configure_logging("WARNING")
    try:
        return PANEL_COMMANDS[args.command](build_panel(settings), args)
    except (PanelError, ValueError) as exc:
        print_error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
