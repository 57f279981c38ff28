"""
Build-from-source collaborator.

Runs, in order and stopping at the first failure:
1. build dependency installation (package manager + install)
2. the optional prebuild command
3. the build command

Commands run in the configured source directory with inherited stdio, or
with output discarded in quiet mode.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from nativeprebuild.errors import ConfigurationError, SubprocessFailure

if TYPE_CHECKING:
    from nativeprebuild.config import PackageConfig, RunOptions

logger = logging.getLogger(__name__)

_SPECIFIER_PREFIXES = ("==", ">=", "<=", "~=", "!=", ">", "<", "@")

# (command, cwd, quiet) -> return code
RunFn = Callable[[str | Sequence[str], Path, bool], int]


def _fmt_command(command: str | Sequence[str]) -> str:
    if isinstance(command, str):
        return command
    return " ".join(shlex.quote(a) for a in command)


def run_command(command: str | Sequence[str], cwd: Path, quiet: bool) -> int:
    """Run one build step and return its exit code.

    String commands go through the shell; lists are executed directly.
    A command that cannot be started reports 127, like a shell would.
    """
    output = subprocess.DEVNULL if quiet else None
    try:
        p = subprocess.run(
            command if isinstance(command, str) else list(command),
            shell=isinstance(command, str),
            cwd=cwd,
            stdout=output,
            stderr=output,
            check=False,
        )
    except OSError as e:
        logger.error("Cannot start command", extra={"command": _fmt_command(command), "error": str(e)})
        return 127
    return p.returncode


def requirement(name: str, spec: str) -> str:
    """Format one dependency as a requirement string.

    A bare version pins exactly; an explicit specifier is kept as given.
    """
    spec = spec.strip()
    if not spec or spec == "*":
        return name
    if spec.startswith(_SPECIFIER_PREFIXES):
        return f"{name}{spec}"
    return f"{name}=={spec}"


@dataclass(frozen=True)
class BuildStep:
    """One command of the build sequence."""

    name: str
    command: str | Sequence[str]


class BuildRunner:
    """Executes the build sequence for a package."""

    def __init__(
        self,
        config: PackageConfig,
        options: RunOptions,
        *,
        run: RunFn = run_command,
    ) -> None:
        self._config = config
        self._options = options
        self._run = run

    def steps(self) -> list[BuildStep]:
        """Build sequence for this configuration.

        Raises:
            ConfigurationError: Dependencies declared but no package manager.
        """
        steps: list[BuildStep] = []
        deps = self._config.build_dependencies
        if deps:
            manager = self._options.package_manager
            if not manager:
                msg = "Build dependencies are declared but no package manager command is available"
                raise ConfigurationError(msg)
            requirements = [requirement(name, spec) for name, spec in deps.items()]
            steps.append(BuildStep("dependencies", [*manager, "install", *requirements]))
        if self._config.prebuild:
            steps.append(BuildStep("prebuild", self._config.prebuild))
        steps.append(BuildStep("build", self._config.build))
        return steps

    def run(self) -> None:
        """Run every step, raising on the first non-zero exit.

        Raises:
            SubprocessFailure: A step exited non-zero.
        """
        cwd = self._config.source_dir
        quiet = self._options.quiet_build
        for step in self.steps():
            command = _fmt_command(step.command)
            logger.info("Running build step", extra={"step": step.name, "command": command, "cwd": str(cwd)})
            returncode = self._run(step.command, cwd, quiet)
            if returncode != 0:
                logger.error(
                    "Build step failed",
                    extra={"step": step.name, "command": command, "returncode": returncode},
                )
                raise SubprocessFailure(step.name, command, returncode)
        logger.info("Build complete", extra={"package": self._config.name})
