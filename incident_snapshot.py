#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Incident Snapshot Collector
===========================
One-shot triage snapshot of a Linux/Unix host for incident responders.
Runs the usual diagnostic commands and stores their combined output as
plain-text sections in a timestamped directory under the current directory.

License: MIT
Python: 3.8+

Features:
- system, users, processes, network, services and auth log hints
- prefers ss over netstat and skips systemd services when systemctl is absent
- falls back to psutil for process listings when ps is missing
- best-effort: a failing command never aborts the snapshot
- Dependencies: psutil
"""

from __future__ import annotations
import logging
import os
import shlex
import shutil
import subprocess
import sys
import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psutil

# =============================================================================
# CONSTANTS
# =============================================================================

VERSION = "1.0.0"
OUTPUT_PREFIX = "incident-snapshot-"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

CATEGORY_FILES: Dict[str, str] = {
    "system": "system.txt",
    "users": "users.txt",
    "processes": "processes.txt",
    "network": "network.txt",
    "services": "services.txt",
    "auth_hints": "auth_hints.txt",
}

TOP_PROCESS_LINES = 25
CPU_SAMPLE_INTERVAL = 0.5  # seconds between the two psutil cpu_percent readings
AUTH_TAIL_LINES = 50
AUTH_LOG_PATHS: Tuple[str, ...] = ("/var/log/auth.log", "/var/log/secure")

# (title, command) per unconditional category, in write order
COLLECTION_STEPS: Dict[str, List[Tuple[str, str]]] = {
    "system": [
        ("Date", "date"),
        ("Hostname", "hostname"),
        ("Uptime", "uptime"),
        ("Kernel/OS", "uname -a"),
    ],
    "users": [
        ("Logged in users (who)", "who"),
        ("Recent logins (last -n 20)", "last -n 20"),
        ("Current user (id)", "id"),
    ],
    "processes": [
        (f"Top CPU processes (ps aux --sort=-%cpu | head -n {TOP_PROCESS_LINES})",
         f"ps aux --sort=-%cpu | head -n {TOP_PROCESS_LINES}"),
        (f"Top MEM processes (ps aux --sort=-%mem | head -n {TOP_PROCESS_LINES})",
         f"ps aux --sort=-%mem | head -n {TOP_PROCESS_LINES}"),
    ],
}

SERVICES_COMMAND = "systemctl list-units --type=service --state=running --no-pager"
SERVICES_TITLE = "Running services (systemctl list-units --type=service --state=running)"

NO_OUTPUT = "(no output)"
NO_SYSTEMCTL = "systemctl not available on this system.\n"
NO_AUTH_LOG = (
    f"No auth log found at {' or '.join(AUTH_LOG_PATHS)} (or access is restricted).\n"
)
SUMMARY_TIP = "Tip: upload a sample run (folder contents) to GitHub under sample-output/."

# Setup logging
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)

# =============================================================================
# UTILITIES
# =============================================================================

class Capability(Enum):
    """Result of looking a tool up on the search path."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


def detect_tool(name: str) -> Capability:
    """Resolve ``name`` on PATH without running anything."""
    search_path = os.environ.get("PATH")
    if not search_path:
        return Capability.UNKNOWN
    try:
        found = shutil.which(name, path=search_path)
    except OSError as e:
        logger.debug(f"Lookup of {name} failed: {e}")
        return Capability.UNKNOWN
    return Capability.AVAILABLE if found else Capability.UNAVAILABLE


def run_capture(cmd: str) -> str:
    """Run a shell command line and return its stdout and stderr combined.

    The exit status is ignored; whatever the tool printed is returned.
    If the shell cannot be started an ``ERROR: <reason>`` line is returned.
    """
    full = f"{cmd} 2>&1"
    try:
        proc = subprocess.run(
            full,
            shell=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Could not start '{cmd}': {e}")
        return f"ERROR: {e}\n"

    logger.debug(f"'{cmd}' exited with {proc.returncode}")
    return (proc.stdout or b"").decode("utf-8", errors="replace")


def now_stamp(now: Optional[datetime] = None) -> str:
    """Format local wall-clock time as YYYY-MM-DD_HH-MM-SS."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def snapshot_dir_path(stamp: str, base_dir: Optional[str] = None) -> str:
    """Absolute path of ``<base_dir or cwd>/incident-snapshot-<stamp>``."""
    return os.path.abspath(os.path.join(base_dir or os.getcwd(), OUTPUT_PREFIX + stamp))


def create_output_dir(path: str) -> str:
    """Create ``path`` and any missing parents; OSError propagates."""
    os.makedirs(path, exist_ok=True)
    return path


def ensure_clean_file(path: str) -> None:
    """Create ``path`` or truncate it to zero length."""
    with open(path, "w", encoding="utf-8"):
        pass


def write_section(path: str, title: str, body: str) -> None:
    """Append a titled, underlined section to ``path``."""
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"{title}\n")
        f.write("=" * len(title) + "\n")
        if not body:
            f.write(f"{NO_OUTPUT}\n\n")
            return
        f.write(body)
        if not body.endswith("\n"):
            f.write("\n")
        f.write("\n")


def bytes_to_human(bytes_val: int) -> str:
    """Convert bytes to human-readable format."""
    if bytes_val < 0:
        raise ValueError("Bytes value cannot be negative.")
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_val < 1024.0:
            return f"{bytes_val:.2f} {unit}"
        bytes_val /= 1024.0
    return f"{bytes_val:.2f} PB"


def safe_get(func, default: Any = None) -> Any:
    """Safely execute a function and return default on error."""
    try:
        return func()
    except Exception as e:
        logger.debug(f"Safe_get error: {e}")
        return default


def format_process_table(procs: List[Dict[str, Any]], sort_key: str, limit: int) -> str:
    """Render the top ``limit`` processes by ``sort_key`` as a ps-like table."""
    top = sorted(procs, key=lambda p: p.get(sort_key) or 0.0, reverse=True)[:limit]
    lines = [f"{'USER':<16} {'PID':>7} {'%CPU':>6} {'%MEM':>6} COMMAND"]
    for p in top:
        lines.append(
            f"{(p.get('username') or '?')[:16]:<16} {p['pid']:>7} "
            f"{p.get('cpu_percent') or 0.0:>6.1f} {p.get('memory_percent') or 0.0:>6.1f} "
            f"{p.get('name') or '?'}"
        )
    return "\n".join(lines) + "\n"

# =============================================================================
# DATA COLLECTION
# =============================================================================

class SnapshotCollector:
    """Writes every category file of one snapshot run."""

    def __init__(self, output_dir: str, auth_log_paths: Sequence[str] = AUTH_LOG_PATHS):
        self.output_dir = output_dir
        self.auth_log_paths = tuple(auth_log_paths)
        self.files: Dict[str, str] = {
            category: os.path.join(output_dir, filename)
            for category, filename in CATEGORY_FILES.items()
        }
        self.errors: List[str] = []

    def prepare_files(self):
        """Create or truncate all six category files."""
        for path in self.files.values():
            ensure_clean_file(path)

    def collect_all(self) -> Dict[str, str]:
        """Run all collection methods in order."""
        self.prepare_files()
        methods = [
            ("system", self.collect_system),
            ("users", self.collect_users),
            ("processes", self.collect_processes),
            ("network", self.collect_network),
            ("services", self.collect_services),
            ("auth_hints", self.collect_auth_hints),
        ]
        for category, method in methods:
            try:
                method()
            except Exception as e:
                self.log_collection_error(method.__name__, str(e))
                safe_get(lambda: write_section(self.files[category], "Collection error", f"ERROR: {e}\n"))
        return self.files

    def log_collection_error(self, category: str, error: str):
        """Log an error during collection."""
        err_msg = f"[{category}] {error}"
        logger.error(err_msg)
        self.errors.append(err_msg)

    def _run_steps(self, category: str):
        for title, command in COLLECTION_STEPS[category]:
            write_section(self.files[category], title, run_capture(command))

    def collect_system(self):
        self._run_steps("system")

    def collect_users(self):
        self._run_steps("users")

    def collect_processes(self):
        """Top processes by CPU and memory; psutil stands in when ps is missing."""
        if detect_tool("ps") is Capability.AVAILABLE:
            self._run_steps("processes")
            return

        # first cpu_percent(None) call only starts the measurement and returns 0.0
        sampled = []
        for proc in psutil.process_iter(attrs=["pid", "name", "username"], ad_value=None):
            try:
                proc.cpu_percent(None)
                sampled.append(proc)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        time.sleep(CPU_SAMPLE_INTERVAL)

        procs = []
        for proc in sampled:
            try:
                info = dict(proc.info)
                info["cpu_percent"] = proc.cpu_percent(None)
                info["memory_percent"] = proc.memory_percent()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
            procs.append(info)

        path = self.files["processes"]
        limit = TOP_PROCESS_LINES - 1  # header row counts as one line
        write_section(path, f"Top CPU processes (psutil, top {limit})",
                      format_process_table(procs, "cpu_percent", limit))
        write_section(path, f"Top MEM processes (psutil, top {limit})",
                      format_process_table(procs, "memory_percent", limit))

    def collect_network(self):
        """Listening sockets and active connections, ss preferred over netstat."""
        tool = "ss" if detect_tool("ss") is Capability.AVAILABLE else "netstat"
        path = self.files["network"]
        write_section(path, f"Listening sockets ({tool} -lntup)", run_capture(f"{tool} -lntup"))
        write_section(path, f"Active connections ({tool} -ntup)", run_capture(f"{tool} -ntup"))

    def collect_services(self):
        path = self.files["services"]
        if detect_tool("systemctl") is Capability.AVAILABLE:
            write_section(path, SERVICES_TITLE, run_capture(SERVICES_COMMAND))
        else:
            write_section(path, "Running services", NO_SYSTEMCTL)

    def collect_auth_hints(self):
        """Tail whichever auth logs exist; os.path.exists reports unreadable paths as missing."""
        path = self.files["auth_hints"]
        found = False
        for log_path in self.auth_log_paths:
            if os.path.exists(log_path):
                found = True
                write_section(path, f"Last {AUTH_TAIL_LINES} lines of {log_path}",
                              run_capture(f"tail -n {AUTH_TAIL_LINES} {shlex.quote(log_path)}"))
        if not found:
            write_section(path, "Auth logs", NO_AUTH_LOG)

# =============================================================================
# SUMMARY
# =============================================================================

def print_summary(output_dir: str, files: Dict[str, str]):
    """Print where the snapshot went and which files it holds."""
    print("Incident snapshot saved to:")
    print(f"  {output_dir}")
    print("Files created:")
    for path in files.values():
        size = safe_get(lambda: os.path.getsize(path), 0)
        print(f"  - {os.path.basename(path)} ({bytes_to_human(size)})")
    print()
    print(SUMMARY_TIP)

# =============================================================================
# MAIN CLI
# =============================================================================

def main():
    """Main entry point."""
    print(f"\n{'='*70}")
    print(f"  Incident Snapshot Collector v{VERSION}")
    print(f"{'='*70}\n")

    output_dir = snapshot_dir_path(now_stamp())
    try:
        create_output_dir(output_dir)
    except OSError as e:
        logger.error(f"Failed to create output directory: {output_dir}")
        logger.error(f"Error: {e}")
        sys.exit(1)

    print("[1/2] Collecting snapshot...")
    collector = SnapshotCollector(output_dir)
    files = collector.collect_all()
    if collector.errors:
        logger.warning(f"{len(collector.errors)} collection step(s) failed; see errors above.")

    print("[2/2] Snapshot complete!\n")
    print_summary(output_dir, files)

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\n[!] Interrupted by user. Exiting...")
        sys.exit(130)
    except Exception as e:
        logger.critical(f"[FATAL ERROR] {e}")
        import traceback
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)
