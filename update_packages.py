#!/usr/bin/env python3
"""
===============================================================================
                              UPDATE PACKAGES
===============================================================================
Version: 1.0.0

Update Homebrew, uv and pip from a single command with consistent, colorful
and progress-annotated output.

Features:
• One section per package manager, skipped with a warning when the tool is missing
• Outdated counts before upgrading, from machine-readable listings where available
• Spinner while long commands run, per-section timing and a final summary
• --dry-run, --only=brew|uv|pip, --no-color and --quiet
"""

import argparse
import json
import logging
import os
import shlex
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.text import Text

__version__ = "1.0.0"

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


# ═══════════════════════════════════════════════════════════════════════════════
# CORE DATA MODELS
# ═══════════════════════════════════════════════════════════════════════════════


class SectionName(str, Enum):
    """Package managers handled by the updater, in execution order."""

    BREW = "brew"
    UV = "uv"
    PIP = "pip"


class SectionState(Enum):
    """Lifecycle of a single section."""

    NOT_STARTED = "not started"
    CHECKING_TOOL = "checking tool"
    SKIPPED = "skipped"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass(frozen=True)
class RunConfig:
    """Options resolved once at startup and passed to every component."""

    dry_run: bool = False
    quiet: bool = False
    color_enabled: bool = True
    only: Optional[SectionName] = None

    def selects(self, section: SectionName) -> bool:
        return self.only is None or self.only == section


@dataclass
class SectionResult:
    """Outcome of one package-manager section."""

    name: SectionName
    ran: bool = False
    elapsed_seconds: int = 0
    outdated_count: int = 0
    succeeded: bool = True
    state: SectionState = SectionState.NOT_STARTED


@dataclass(frozen=True)
class CommandOutcome:
    label: str
    exit_code: int

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass
class ToolStatus:
    """Version and installed counts reported in the summary."""

    name: SectionName
    installed: bool
    ran: bool = False
    version: Optional[str] = None
    counts: Dict[str, int] = field(default_factory=dict)
    queried: bool = False

    @property
    def count_metric(self) -> int:
        return sum(self.counts.values())


TOOL_LABELS = {
    SectionName.BREW: "Homebrew",
    SectionName.UV: "uv",
    SectionName.PIP: "pip",
}

SECTION_TITLES = {
    SectionName.BREW: "📦 Homebrew",
    SectionName.UV: "🐍 uv",
    SectionName.PIP: "🐍 pip",
}

# Metric names per tool, in display order
COUNT_KEYS = {
    SectionName.BREW: ("formulas", "casks"),
    SectionName.UV: ("tools",),
    SectionName.PIP: ("packages",),
}

UNKNOWN_VERSION = "unknown"
NOT_AVAILABLE = "N/A"


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION SYSTEM
# ═══════════════════════════════════════════════════════════════════════════════


class UpdaterSettings:
    """Settings merged from built-in defaults and an optional JSON file."""

    ENV_VAR = "UPDATE_PACKAGES_CONFIG"

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file
        self.problems: List[str] = []
        self.settings = {
            "commands": {
                "brew": "brew",
                "uv": "uv",
                "pip": "pip",
                "python": "python3",
            },
            "brew": {
                "cleanup": True,
                "doctor": True,
            },
            "uv": {
                "manifest": "pyproject.toml",
            },
            "pip": {
                "exclude": [],
            },
            "query_timeout_seconds": None,
            "log_file": None,
        }

    @staticmethod
    def default_file() -> Path:
        return Path.home() / ".config" / "update_packages" / "config.json"

    @classmethod
    def from_sources(
        cls, explicit: Optional[str] = None, environ: Optional[Dict[str, str]] = None
    ) -> "UpdaterSettings":
        """Resolve the settings file from --config, the environment or the default path."""
        environ = os.environ if environ is None else environ
        named = explicit or environ.get(cls.ENV_VAR)
        if named:
            settings = cls(Path(named).expanduser())
            settings.load(required=True)
        else:
            settings = cls(cls.default_file())
            settings.load(required=False)
        return settings

    def load(self, required: bool = False):
        """Load configuration from file; problems are recorded, never raised."""
        if self.config_file is None:
            return
        if not self.config_file.is_file():
            if required:
                self._problem(f"Config file not found: {self.config_file}")
            return
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded_settings = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self._problem(f"Failed to load config {self.config_file}: {e}")
            return
        if not isinstance(loaded_settings, dict):
            self._problem(f"Ignoring config {self.config_file}: expected a JSON object")
            return
        self._merge_settings(self.settings, loaded_settings)
        logger.debug(f"Loaded settings from {self.config_file}")

    def _problem(self, message: str):
        logger.warning(message)
        self.problems.append(message)

    def _merge_settings(self, base: dict, loaded: dict):
        """Recursively merge settings."""
        for key, value in loaded.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_settings(base[key], value)
            else:
                base[key] = value

    def get(self, group: str, key: str):
        values = self.settings.get(group)
        return values.get(key) if isinstance(values, dict) else None

    def command(self, name: str) -> str:
        return str(self.get("commands", name) or name)

    @property
    def query_timeout(self) -> Optional[float]:
        value = self.settings.get("query_timeout_seconds")
        return float(value) if isinstance(value, (int, float)) and value > 0 else None

    @property
    def pip_exclude(self) -> List[str]:
        value = self.get("pip", "exclude")
        if not isinstance(value, list):
            return []
        return [str(name) for name in value]

    @property
    def log_file(self) -> Optional[str]:
        value = self.settings.get("log_file")
        return str(value) if value else None


def setup_logging(log_file: Optional[str] = None, verbose: bool = False):
    """Attach handlers to the module logger; nothing reaches the terminal unless verbose."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.addHandler(logging.NullHandler())

    if verbose:
        rich_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            markup=False,
        )
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(Path(log_file).expanduser(), encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)


# ═══════════════════════════════════════════════════════════════════════════════
# CAPABILITY PROBING
# ═══════════════════════════════════════════════════════════════════════════════


class CapabilityProber:
    """Terminal and tool detection."""

    @staticmethod
    def supports_color(stream=None, environ: Optional[Dict[str, str]] = None) -> bool:
        """True when NO_COLOR is unset, the stream is a terminal and it has 8+ colors."""
        environ = os.environ if environ is None else environ
        if environ.get("NO_COLOR"):
            return False
        stream = sys.stdout if stream is None else stream
        isatty = getattr(stream, "isatty", None)
        if isatty is None or not isatty():
            return False
        # rich resolves TERM/COLORTERM; None means a dumb or colorless terminal
        return Console(file=stream).color_system is not None

    @staticmethod
    def tool_exists(name: str) -> bool:
        return shutil.which(name) is not None


# ═══════════════════════════════════════════════════════════════════════════════
# OUTPUT FORMATTING
# ═══════════════════════════════════════════════════════════════════════════════


class MessageLevel(Enum):
    HEADER = "header"
    SECTION = "section"
    INFO = "info"
    STEP = "step"
    DRY_RUN = "dry-run"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    COMMAND = "command"
    SUMMARY = "summary"


# level -> (prefix, style)
LEVEL_STYLES = {
    MessageLevel.HEADER: ("🔄 ", "bold blue"),
    MessageLevel.SECTION: ("", "bold magenta"),
    MessageLevel.INFO: ("ℹ️  ", "cyan"),
    MessageLevel.STEP: ("✓ ", "green"),
    MessageLevel.DRY_RUN: ("› ", "dim"),
    MessageLevel.SUCCESS: ("✅ ", "green"),
    MessageLevel.WARNING: ("⚠️  ", "yellow"),
    MessageLevel.ERROR: ("❌ ", "red"),
    MessageLevel.COMMAND: ("", "dim"),
    MessageLevel.SUMMARY: ("", "none"),
}

INFORMATIONAL_LEVELS = {
    MessageLevel.HEADER,
    MessageLevel.SECTION,
    MessageLevel.INFO,
    MessageLevel.STEP,
    MessageLevel.DRY_RUN,
}

RULE_WIDTH = 38


class OutputFormatter:
    """Renders status lines; informational levels are dropped in quiet mode."""

    def __init__(self, console: Console, quiet: bool = False):
        self.console = console
        self.quiet = quiet

    @staticmethod
    def render(level: MessageLevel, message: str) -> Text:
        prefix, style = LEVEL_STYLES[level]
        return Text(f"{prefix}{message}", style=style)

    def emit(self, level: MessageLevel, message: str):
        if self.quiet and level in INFORMATIONAL_LEVELS:
            return
        self.console.print(self.render(level, message))

    def _dim(self, message: str):
        if not self.quiet:
            self.console.print(Text(message, style="dim"))

    def _rule(self, char: str):
        self._dim(char * RULE_WIDTH)

    def header(self, message: str):
        self.emit(MessageLevel.HEADER, message)
        self._rule("=")

    def section(self, title: str):
        self.emit(MessageLevel.SECTION, title)
        self._rule("-")

    def info(self, message: str):
        self.emit(MessageLevel.INFO, message)

    def step(self, label: str):
        self.emit(MessageLevel.STEP, label)

    def dry_run(self, label: str, command: str):
        self.emit(MessageLevel.DRY_RUN, f"{label}: (dry-run)")
        self._dim(f"  {command}")

    def success(self, message: str):
        self.emit(MessageLevel.SUCCESS, message)

    def warn(self, message: str):
        self.emit(MessageLevel.WARNING, message)

    def error(self, message: str):
        self.emit(MessageLevel.ERROR, message)

    def command(self, command: str):
        self.emit(MessageLevel.COMMAND, command)

    def summary(self, message: str):
        self.emit(MessageLevel.SUMMARY, message)


# ═══════════════════════════════════════════════════════════════════════════════
# UTILITY FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════════


def run_command(cmd: Sequence[str], timeout: Optional[float] = None) -> Optional[str]:
    """Run a read-only query; return stripped stdout, or None when it fails."""
    try:
        result = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            check=False,  # exit code is checked manually
            encoding="utf-8",
            errors="ignore",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"Command timed out: {shlex.join(cmd)}")
        return None
    except OSError as e:
        logger.debug(f"Command could not start: {shlex.join(cmd)} - {e}")
        return None

    if result.returncode != 0:
        logger.debug(f"Command exited {result.returncode}: {shlex.join(cmd)}")
        return None
    return (result.stdout or "").strip()


def count_lines(output: Optional[str]) -> int:
    """Count non-blank lines; None counts as zero."""
    if not output:
        return 0
    return sum(1 for line in output.splitlines() if line.strip())


def count_tool_lines(output: Optional[str]) -> int:
    """Count tools in `uv tool list` output.

    Each tool is a line like ``ruff v0.6.0`` followed by ``- ruff`` lines for
    its executables, so only lines not starting with a dash are tools. This
    depends on uv's human-readable layout because uv has no JSON mode here.
    """
    if not output:
        return 0
    return sum(
        1
        for line in output.splitlines()
        if line.strip() and not line.lstrip().startswith("-")
    )


def parse_version(output: Optional[str]) -> str:
    """Pull the version from `<tool> X ...` output (Homebrew, uv and pip all use it)."""
    if not output:
        return UNKNOWN_VERSION
    tokens = output.splitlines()[0].split()
    if len(tokens) >= 2:
        return tokens[1]
    return tokens[0] if tokens else UNKNOWN_VERSION


def _json_length(value) -> int:
    return len(value) if isinstance(value, list) else 0


def normalize_name(name: str) -> str:
    return name.strip().lower().replace("_", "-")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND EXECUTION
# ═══════════════════════════════════════════════════════════════════════════════


class Spinner:
    """Transient spinner shown while a command runs.

    Wraps a rich Progress whose refresh thread draws a braille frame every
    100ms on a single line. Stopping ends the thread and erases the line; it
    is safe to stop more than once.
    """

    # rich's "dots" frames are 80ms apart; 0.8 stretches them to 100ms
    FRAME_SPEED = 0.8

    def __init__(self, console: Console, label: str, enabled: bool = True):
        self.console = console
        self.label = label
        self.enabled = enabled
        self._progress: Optional[Progress] = None

    @property
    def active(self) -> bool:
        return self._progress is not None

    def start(self):
        if not self.enabled or self._progress is not None:
            return
        progress = Progress(
            SpinnerColumn(spinner_name="dots", style="dim", speed=self.FRAME_SPEED),
            TextColumn("{task.description}...", style="dim", markup=False),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
            refresh_per_second=10,
        )
        progress.add_task(self.label, total=None)
        progress.start()
        self._progress = progress

    def stop(self):
        progress, self._progress = self._progress, None
        if progress is not None:
            progress.stop()

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False


class CommandRunner:
    """Runs external commands and reports a formatted result line for each."""

    def __init__(self, formatter: OutputFormatter, config: RunConfig):
        self.formatter = formatter
        self.config = config
        self.last_error = 0
        self.failures = 0

    @staticmethod
    def format_command(argv: Sequence[str]) -> str:
        return shlex.join(argv)

    def record_failure(self, exit_code: int):
        self.failures += 1
        self.last_error = exit_code

    def run(
        self, label: str, argv: Sequence[str], cwd: Optional[Path] = None
    ) -> CommandOutcome:
        if self.config.dry_run:
            return self._describe(label, argv)
        return self._report(label, argv, self._execute(argv, cwd))

    def run_with_spinner(
        self, label: str, argv: Sequence[str], cwd: Optional[Path] = None
    ) -> CommandOutcome:
        if self.config.dry_run:
            return self._describe(label, argv)
        with self._spinner(label):
            exit_code = self._execute(argv, cwd)
        return self._report(label, argv, exit_code)

    def attempt(self, label: str, argv: Sequence[str]) -> bool:
        """Run a command whose failure is not an error; nothing is printed or recorded."""
        with self._spinner(label):
            exit_code = self._execute(argv)
        return exit_code == 0

    def _spinner(self, label: str) -> Spinner:
        # Piped or redirected output gets no animation at all
        enabled = self.formatter.console.is_terminal and not (
            self.config.quiet or self.config.dry_run
        )
        return Spinner(self.formatter.console, label, enabled=enabled)

    def _describe(self, label: str, argv: Sequence[str]) -> CommandOutcome:
        logger.info(f"Dry run: {self.format_command(argv)}")
        self.formatter.dry_run(label, self.format_command(argv))
        return CommandOutcome(label, 0)

    def _execute(self, argv: Sequence[str], cwd: Optional[Path] = None) -> int:
        """Execute argv with its output discarded and return a shell-style exit code."""
        logger.debug(f"Running: {self.format_command(argv)}")
        try:
            result = subprocess.run(
                list(argv),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
                cwd=cwd,
            )
        except FileNotFoundError as e:
            logger.warning(f"Command not found: {self.format_command(argv)} - {e}")
            return 127
        except OSError as e:
            logger.warning(f"Command could not start: {self.format_command(argv)} - {e}")
            return 126

        # Killed by a signal: report it the way a shell does
        if result.returncode < 0:
            return 128 - result.returncode
        return result.returncode

    def _report(self, label: str, argv: Sequence[str], exit_code: int) -> CommandOutcome:
        outcome = CommandOutcome(label, exit_code)
        if outcome.succeeded:
            logger.debug(f"{label}: ok")
            self.formatter.step(label)
        else:
            logger.warning(f"{label} failed with exit code {exit_code}")
            self.record_failure(exit_code)
            self.formatter.error(f"{label} (exit {exit_code})")
            self.formatter.command(self.format_command(argv))
        return outcome


# ═══════════════════════════════════════════════════════════════════════════════
# UPDATE COUNTERS
# ═══════════════════════════════════════════════════════════════════════════════


class UpdateCounter:
    """Counts outdated and installed units by querying each tool.

    Every query failure (missing tool, non-zero exit, unparsable output)
    counts as zero and is only logged.
    """

    def __init__(self, settings: UpdaterSettings):
        self.settings = settings

    def _tool(self, name: str) -> Optional[str]:
        command = self.settings.command(name)
        return command if CapabilityProber.tool_exists(command) else None

    def _query(self, *argv: str) -> Optional[str]:
        return run_command(argv, timeout=self.settings.query_timeout)

    def _query_json(self, *argv: str):
        output = self._query(*argv)
        if output is None:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            logger.debug(f"Unparsable JSON from {shlex.join(argv)}: {e}")
            return None

    # Homebrew

    def brew_outdated(self) -> Tuple[int, int]:
        """Outdated (formulas, casks)."""
        brew = self._tool("brew")
        if brew is None:
            return 0, 0

        data = self._query_json(brew, "outdated", "--json=v2")
        if isinstance(data, dict):
            return _json_length(data.get("formulae")), _json_length(data.get("casks"))

        # Older Homebrew without --json=v2: one outdated name per line
        logger.debug("Falling back to line counts for brew outdated")
        return (
            count_lines(self._query(brew, "outdated", "--formula")),
            count_lines(self._query(brew, "outdated", "--cask")),
        )

    def brew_installed(self) -> Tuple[int, int]:
        brew = self._tool("brew")
        if brew is None:
            return 0, 0
        return (
            count_lines(self._query(brew, "list", "--formula", "-1")),
            count_lines(self._query(brew, "list", "--cask", "-1")),
        )

    # uv

    def uv_tool_listing(self) -> Optional[str]:
        uv = self._tool("uv")
        if uv is None:
            return None
        return self._query(uv, "tool", "list")

    def uv_tools_outdated(self) -> int:
        uv = self._tool("uv")
        if uv is None:
            return 0
        return count_tool_lines(self._query(uv, "tool", "list", "--outdated"))

    def uv_tools_installed(self) -> int:
        return count_tool_lines(self.uv_tool_listing())

    # pip

    def pip_outdated_names(self) -> List[str]:
        """Names of outdated packages, blank entries dropped."""
        pip = self._tool("pip")
        if pip is None:
            return []
        data = self._query_json(pip, "list", "--outdated", "--format=json")
        if not isinstance(data, list):
            return []
        names = []
        for item in data:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").strip()
            if name:
                names.append(name)
        return names

    def pip_outdated(self) -> int:
        return len(self.pip_outdated_names())

    def pip_installed(self) -> int:
        pip = self._tool("pip")
        if pip is None:
            return 0
        return _json_length(self._query_json(pip, "list", "--format=json"))

    def count_outdated(self, section: SectionName) -> int:
        """Combined outdated count for one tool."""
        if section == SectionName.BREW:
            return sum(self.brew_outdated())
        if section == SectionName.UV:
            return self.uv_tools_outdated()
        return self.pip_outdated()

    def version(self, section: SectionName) -> str:
        tool = self._tool(section.value)
        if tool is None:
            return NOT_AVAILABLE
        return parse_version(self._query(tool, "--version"))

    def installed_counts(self, section: SectionName) -> Dict[str, int]:
        if section == SectionName.BREW:
            formulas, casks = self.brew_installed()
            return {"formulas": formulas, "casks": casks}
        if section == SectionName.UV:
            return {"tools": self.uv_tools_installed()}
        return {"packages": self.pip_installed()}


# ═══════════════════════════════════════════════════════════════════════════════
# SECTION ORCHESTRATION
# ═══════════════════════════════════════════════════════════════════════════════


class SectionOrchestrator:
    """Runs the Homebrew, uv and pip sections in order.

    A section is skipped when --only names another one or its tool is not on
    PATH. Once running, a failing step is reported and the section moves on
    to its next step; every started section reaches COMPLETED.
    """

    def __init__(
        self,
        config: RunConfig,
        settings: UpdaterSettings,
        formatter: OutputFormatter,
        runner: CommandRunner,
        counter: UpdateCounter,
        workdir: Optional[Path] = None,
    ):
        self.config = config
        self.settings = settings
        self.formatter = formatter
        self.runner = runner
        self.counter = counter
        self.workdir = Path.cwd() if workdir is None else workdir
        self.results = {name: SectionResult(name) for name in SectionName}

    def run_all(self) -> List[SectionResult]:
        bodies: Dict[SectionName, Callable[[SectionResult], None]] = {
            SectionName.BREW: self._update_brew,
            SectionName.UV: self._update_uv,
            SectionName.PIP: self._update_pip,
        }
        for name in SectionName:
            self.run_section(name, bodies[name])
        return [self.results[name] for name in SectionName]

    def run_section(
        self, name: SectionName, body: Callable[[SectionResult], None]
    ) -> SectionResult:
        result = self.results[name]
        if not self.config.selects(name):
            logger.debug(f"Section {name.value} not selected")
            result.state = SectionState.SKIPPED
            return result

        self.formatter.section(SECTION_TITLES[name])
        result.state = SectionState.CHECKING_TOOL
        if not CapabilityProber.tool_exists(self.settings.command(name.value)):
            self.formatter.warn(f"{TOOL_LABELS[name]} not found. Skipping.")
            logger.info(f"Section {name.value} skipped: tool not found")
            result.state = SectionState.SKIPPED
            return result

        result.state = SectionState.RUNNING
        result.ran = True
        failures_before = self.runner.failures
        start = time.monotonic()
        logger.info(f"Section {name.value} started")

        body(result)

        result.elapsed_seconds = int(time.monotonic() - start)
        result.succeeded = self.runner.failures == failures_before
        result.state = SectionState.COMPLETED
        logger.info(
            f"Section {name.value} completed in {result.elapsed_seconds}s "
            f"(outdated={result.outdated_count}, succeeded={result.succeeded})"
        )
        self.formatter.info(f"Completed in {result.elapsed_seconds}s")
        return result

    # Homebrew

    def _update_brew(self, result: SectionResult):
        brew = self.settings.command("brew")
        self.runner.run_with_spinner("brew update", [brew, "update"])

        if self.config.dry_run:
            self.runner.run("brew upgrade", [brew, "upgrade"])
        else:
            self.formatter.info("Checking for outdated packages...")
            formulas, casks = self.counter.brew_outdated()
            result.outdated_count = formulas + casks
            if result.outdated_count > 0:
                self.formatter.info(
                    f"Found {formulas} formula(s) and {casks} cask(s) to update"
                )
                self.runner.run_with_spinner(
                    f"brew upgrade ({result.outdated_count} package(s))",
                    [brew, "upgrade"],
                )
            else:
                self.formatter.info("All packages are up to date")

        if self.settings.get("brew", "cleanup"):
            self.runner.run_with_spinner("brew cleanup", [brew, "cleanup"])
        else:
            self.formatter.info("brew cleanup disabled in settings")

        self._brew_doctor(brew)

    def _brew_doctor(self, brew: str):
        if self.config.dry_run:
            self.formatter.info("brew doctor (skipped in dry-run)")
        elif not self.settings.get("brew", "doctor"):
            self.formatter.info("brew doctor disabled in settings")
        elif self.runner.attempt("brew doctor", [brew, "doctor"]):
            self.formatter.success("brew doctor: no critical issues")
        else:
            self.formatter.warn("brew doctor reported issues (often normal in dev setups)")

    # uv

    def _update_uv(self, result: SectionResult):
        uv = self.settings.command("uv")
        if self.config.dry_run:
            self.runner.run("uv self update", [uv, "self", "update"])
        elif self.runner.attempt("uv self update", [uv, "self", "update"]):
            self.formatter.success("uv self-updated")
        else:
            self.formatter.info("uv self-update skipped (possibly managed by Homebrew)")

        manifest = self.workdir / str(self.settings.get("uv", "manifest") or "pyproject.toml")
        if manifest.is_file():
            if not self.config.dry_run:
                self.formatter.info("Checking project dependencies...")
            self.runner.run_with_spinner(
                "uv sync --upgrade", [uv, "sync", "--upgrade"], cwd=self.workdir
            )
            return

        self.formatter.info(f"No {manifest.name} here; checking uv tools")
        if self.config.dry_run:
            self.runner.run("uv tool upgrade --all", [uv, "tool", "upgrade", "--all"])
            return

        if count_tool_lines(self.counter.uv_tool_listing()) == 0:
            self.formatter.info("No global uv tools installed")
            return

        result.outdated_count = self.counter.count_outdated(SectionName.UV)
        if result.outdated_count > 0:
            self.formatter.info(f"Found {result.outdated_count} tool(s) to update")
            self.runner.run_with_spinner(
                f"uv tool upgrade --all ({result.outdated_count} tool(s))",
                [uv, "tool", "upgrade", "--all"],
            )
        else:
            self.formatter.info("All uv tools are up to date")

    # pip

    def _update_pip(self, result: SectionResult):
        pip = self.settings.command("pip")
        python = self.settings.command("python")
        self.runner.run_with_spinner(
            "upgrade pip itself", [python, "-m", "pip", "install", "--upgrade", "pip"]
        )

        if self.config.dry_run:
            self.formatter.info(
                "Would check: pip list --outdated --format=json and upgrade each"
            )
            return

        self.formatter.info("Checking for outdated pip packages...")
        names = self.counter.pip_outdated_names()
        result.outdated_count = len(names)
        if not names:
            self.formatter.info("All pip packages are up to date")
            return
        self.formatter.info(f"Found {len(names)} package(s) to update")

        excluded = {normalize_name(name) for name in self.settings.pip_exclude}
        skipped = [name for name in names if normalize_name(name) in excluded]
        targets = [name for name in names if normalize_name(name) not in excluded]
        if skipped:
            self.formatter.info(f"Skipping excluded package(s): {', '.join(skipped)}")
        if not targets:
            self.formatter.info("All outdated packages are excluded")
            return

        upgraded = failed = 0
        total = len(targets)
        for index, name in enumerate(targets, start=1):
            outcome = self.runner.run_with_spinner(
                f"pip install -U {name} ({index}/{total})", [pip, "install", "-U", name]
            )
            if outcome.succeeded:
                upgraded += 1
            else:
                failed += 1

        if failed:
            self.formatter.warn(
                f"pip packages updated ({upgraded} upgraded, {failed} failed)"
            )
        else:
            self.formatter.success(f"pip packages updated ({upgraded} upgraded)")


# ═══════════════════════════════════════════════════════════════════════════════
# SUMMARY
# ═══════════════════════════════════════════════════════════════════════════════


class SummaryAggregator:
    """Re-queries versions and counts for the sections that ran and prints them."""

    def __init__(
        self,
        config: RunConfig,
        settings: UpdaterSettings,
        formatter: OutputFormatter,
        counter: UpdateCounter,
    ):
        self.config = config
        self.settings = settings
        self.formatter = formatter
        self.counter = counter

    def collect(self, results: List[SectionResult]) -> List[ToolStatus]:
        statuses = []
        for result in results:
            status = ToolStatus(
                name=result.name,
                installed=CapabilityProber.tool_exists(
                    self.settings.command(result.name.value)
                ),
                ran=result.ran,
                counts={key: 0 for key in COUNT_KEYS[result.name]},
            )
            # Dry-run queries nothing, so ran sections stay unqueried
            if result.ran and not self.config.dry_run:
                status.version = self.counter.version(result.name)
                status.counts = self.counter.installed_counts(result.name)
                status.queried = True
            statuses.append(status)
        return statuses

    def format_status(self, status: ToolStatus) -> str:
        label = TOOL_LABELS[status.name]
        if status.ran and not status.queried:
            return f"- {label}: not queried (dry-run)"

        version = status.version or NOT_AVAILABLE
        version_text = version if version in (NOT_AVAILABLE, UNKNOWN_VERSION) else f"v{version}"
        counts = ", ".join(
            f"{status.counts.get(key, 0)} {key}" for key in COUNT_KEYS[status.name]
        )
        line = f"- {label} ({version_text}): {counts}"
        if status.installed and not status.ran:
            line += " (installed, not run)"
        return line

    def report(self, results: List[SectionResult], total_seconds: int) -> List[ToolStatus]:
        self.formatter.section("📊 Summary")
        statuses = self.collect(results)
        for status in statuses:
            self.formatter.summary(self.format_status(status))

        suffix = " (dry-run)" if self.config.dry_run else ""
        self.formatter.success(
            f"🎉 All requested updates completed in {total_seconds}s{suffix}"
        )
        return statuses


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN APPLICATION
# ═══════════════════════════════════════════════════════════════════════════════


class UpdateApp:
    """Main application controller."""

    def __init__(
        self,
        config: RunConfig,
        settings: UpdaterSettings,
        console: Console,
        workdir: Optional[Path] = None,
    ):
        self.config = config
        self.formatter = OutputFormatter(console, quiet=config.quiet)
        self.runner = CommandRunner(self.formatter, config)
        self.counter = UpdateCounter(settings)
        self.orchestrator = SectionOrchestrator(
            config, settings, self.formatter, self.runner, self.counter, workdir
        )
        self.summary = SummaryAggregator(config, settings, self.formatter, self.counter)

    def run(self) -> int:
        """Run every selected section and the summary; return the exit status."""
        start = time.monotonic()
        try:
            self.formatter.header("Starting package update process")
            results = self.orchestrator.run_all()
            self.summary.report(results, int(time.monotonic() - start))
        except KeyboardInterrupt:
            self.formatter.warn("Interrupted")
            self.runner.record_failure(130)
        finally:
            # Last recorded failure decides the exit status
            if self.runner.last_error:
                self.formatter.error(f"Failed with exit code {self.runner.last_error}")
            logger.info(f"Finished with exit code {self.runner.last_error}")
        return self.runner.last_error


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="update-packages",
        description="Update Homebrew, uv, and pip with pretty output",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
        epilog="""
Examples:
  update-packages                  # Update everything
  update-packages --dry-run        # Print what would run
  update-packages --only=pip       # Only upgrade pip packages
  update-packages --quiet          # Errors and summary only
        """,
    )

    parser.add_argument(
        "--dry-run", action="store_true", help="Print what would run, but don't execute"
    )
    parser.add_argument(
        "--only",
        choices=[name.value for name in SectionName],
        metavar="<section>",
        help="Only run one section: brew | uv | pip",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument(
        "--quiet", action="store_true", help="Reduce output (errors and summary only)"
    )

    # Ambient options
    parser.add_argument("--config", metavar="PATH", help="Settings file (JSON)")
    parser.add_argument("--log-file", metavar="PATH", help="Append log records to PATH")
    parser.add_argument("--verbose", action="store_true", help="Debug logging to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Application entry point."""
    # Emoji output needs UTF-8 even when the locale says otherwise
    if (getattr(sys.stdout, "encoding", None) or "").lower() != "utf-8":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
        except AttributeError:
            pass

    args = parse_arguments(argv)
    settings = UpdaterSettings.from_sources(args.config)

    color_enabled = not args.no_color and CapabilityProber.supports_color(sys.stdout)
    config = RunConfig(
        dry_run=args.dry_run,
        quiet=args.quiet,
        color_enabled=color_enabled,
        only=SectionName(args.only) if args.only else None,
    )
    console = Console(
        color_system="auto" if color_enabled else None,
        highlight=False,
        soft_wrap=True,
    )

    app = UpdateApp(config, settings, console)
    for problem in settings.problems:
        app.formatter.warn(problem)
    try:
        setup_logging(args.log_file or settings.log_file, args.verbose)
    except OSError as e:
        app.formatter.warn(f"Cannot open log file: {e}")

    return app.run()


if __name__ == "__main__":
    sys.exit(main())
