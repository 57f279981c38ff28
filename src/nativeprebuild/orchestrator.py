"""
Install orchestration.

A small state machine decides between the prebuilt-binary path and the
build-from-source path:

    START -> DETECT_PLATFORM -> FETCH_CATALOG -> [RESOLVE_MINBUILD] ->
    SELECT_BINARY -> FETCH_BINARY -> DONE

Any ResolutionError on that path moves to FALLBACK_BUILD, which builds from
source unless fallback is disabled. Build-only runs go START -> BUILD_ONLY.
Configuration problems and build failures end in FAILED.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from nativeprebuild.build.runner import BuildRunner
from nativeprebuild.errors import (
    ConfigurationError,
    NoCompatibleBinaryError,
    PlatformDetectionError,
    PrebuildError,
    ResolutionError,
)
from nativeprebuild.host.detector import FingerprintDetector, parse_override
from nativeprebuild.release.catalog import AssetCatalog
from nativeprebuild.transfer.engine import TransferEngine
from nativeprebuild.transfer.extract import stage_minbuild
from nativeprebuild.transfer.verify import download_verified

if TYPE_CHECKING:
    from nativeprebuild.config import PackageConfig, RunOptions
    from nativeprebuild.host.fingerprint import PlatformFingerprint
    from nativeprebuild.release.models import Candidate, ReleaseResolution

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


class RunState(str, Enum):
    """Orchestrator states."""

    START = "start"
    DETECT_PLATFORM = "detect_platform"
    FETCH_CATALOG = "fetch_catalog"
    RESOLVE_MINBUILD = "resolve_minbuild"
    SELECT_BINARY = "select_binary"
    FETCH_BINARY = "fetch_binary"
    FALLBACK_BUILD = "fallback_build"
    BUILD_ONLY = "build_only"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RunState.DONE, RunState.FAILED})


@dataclass
class RunContext:
    """Mutable state of one run.

    Attributes:
        config: Package configuration.
        options: Run switches.
        fingerprint: Detected platform, once known.
        release: Classified release, fetched at most once per run.
        selected: Binary chosen for installation.
        degradations: Errors that pushed the run toward the fallback build.
        history: States visited, in order.
    """

    config: PackageConfig
    options: RunOptions
    fingerprint: PlatformFingerprint | None = None
    release: ReleaseResolution | None = None
    selected: Candidate | None = None
    degradations: list[str] = field(default_factory=list)
    history: list[RunState] = field(default_factory=list)

    def degrade(self, state: RunState, error: Exception) -> None:
        """Record a recoverable error."""
        self.degradations.append(f"{state.value}: {error}")
        logger.warning(
            "Prebuilt binary path degraded",
            extra={"state": state.value, "error_type": type(error).__name__, "error": str(error)},
        )


Handler = Callable[[RunContext], Awaitable[RunState]]


class Orchestrator:
    """Runs one install for one package."""

    def __init__(
        self,
        config: PackageConfig,
        options: RunOptions,
        *,
        engine: TransferEngine | None = None,
        detector: FingerprintDetector | None = None,
        builder: BuildRunner | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: Package configuration.
            options: Run switches.
            engine: Transfer engine (created and closed per run if omitted).
            detector: Fingerprint detector (built from options if omitted).
            builder: Build runner (built from config/options if omitted).
            environ: Environment for the release API token.
        """
        self._config = config
        self._options = options
        self._engine = engine
        self._owns_engine = engine is None
        self._detector = detector or FingerprintDetector.from_options(options)
        self._builder = builder or BuildRunner(config, options)
        self._environ = environ
        self._handlers: dict[RunState, Handler] = {
            RunState.START: self._start,
            RunState.DETECT_PLATFORM: self._detect_platform,
            RunState.FETCH_CATALOG: self._fetch_catalog,
            RunState.RESOLVE_MINBUILD: self._resolve_minbuild,
            RunState.SELECT_BINARY: self._select_binary,
            RunState.FETCH_BINARY: self._fetch_binary,
            RunState.FALLBACK_BUILD: self._fallback_build,
            RunState.BUILD_ONLY: self._build_only,
        }
        self.context = RunContext(config=config, options=options)

    @property
    def engine(self) -> TransferEngine:
        if self._engine is None:
            self._engine = TransferEngine()
        return self._engine

    async def run(self) -> int:
        """Drive the state machine to DONE or FAILED.

        Returns:
            Process exit code (0 on success, 1 on failure).
        """
        ctx = self.context
        state = RunState.START
        try:
            while state not in TERMINAL_STATES:
                ctx.history.append(state)
                next_state = await self._step(state, ctx)
                logger.debug("State transition", extra={"from": state.value, "to": next_state.value})
                state = next_state
        finally:
            if self._owns_engine and self._engine is not None:
                await self._engine.close()

        ctx.history.append(state)
        if state == RunState.DONE:
            logger.info(
                "Install finished",
                extra={
                    "package": self._config.name,
                    "prebuilt": ctx.selected is not None and not ctx.degradations,
                    "degradations": len(ctx.degradations),
                },
            )
            return EXIT_OK
        logger.error("Install failed", extra={"package": self._config.name, "degradations": ctx.degradations})
        return EXIT_FAILED

    async def _step(self, state: RunState, ctx: RunContext) -> RunState:
        try:
            return await self._handlers[state](ctx)
        except ResolutionError as e:
            if state in (RunState.FALLBACK_BUILD, RunState.BUILD_ONLY):
                logger.error("Build path failed", extra={"state": state.value, "error": str(e)})
                return RunState.FAILED
            ctx.degrade(state, e)
            return RunState.FALLBACK_BUILD
        except PrebuildError as e:
            logger.error("%s", e, extra={"state": state.value, "error_type": type(e).__name__})
            return RunState.FAILED

    async def _start(self, ctx: RunContext) -> RunState:
        for label, value in (
            ("arch", ctx.options.arch),
            ("libc", ctx.options.libc),
            ("platform", ctx.options.platform),
        ):
            if value:
                try:
                    parse_override(value)
                except ValueError as e:
                    raise ConfigurationError(f"Invalid {label} override: {e}") from e

        if ctx.options.build_only:
            logger.info("Build from source requested", extra={"package": ctx.config.name})
            return RunState.BUILD_ONLY
        return RunState.DETECT_PLATFORM

    async def _detect_platform(self, ctx: RunContext) -> RunState:
        fingerprint = self._detector.detect()
        ctx.fingerprint = fingerprint
        if not fingerprint.is_complete:
            missing = ", ".join(fingerprint.missing_axes())
            raise PlatformDetectionError(f"Incomplete platform fingerprint, missing: {missing}")
        return RunState.FETCH_CATALOG

    async def _resolution(self, ctx: RunContext) -> ReleaseResolution:
        if ctx.release is None:
            catalog = AssetCatalog(
                self.engine,
                ctx.config,
                ctx.fingerprint,
                build_only=ctx.options.build_only,
                environ=self._environ,
            )
            ctx.release = await catalog.resolve()
        return ctx.release

    async def _fetch_catalog(self, ctx: RunContext) -> RunState:
        release = await self._resolution(ctx)
        if release.minbuild is not None and not ctx.config.disable_minbuild:
            return RunState.RESOLVE_MINBUILD
        return RunState.SELECT_BINARY

    async def _resolve_minbuild(self, ctx: RunContext) -> RunState:
        release = await self._resolution(ctx)
        if release.minbuild is not None:
            await stage_minbuild(self.engine, release.minbuild, ctx.config.source_dir)
        return RunState.SELECT_BINARY

    async def _select_binary(self, ctx: RunContext) -> RunState:
        release = await self._resolution(ctx)
        best = release.best
        if best is None:
            raise NoCompatibleBinaryError(
                f"No compatible prebuilt binary for {ctx.config.name} {ctx.config.version}"
            )
        ctx.selected = best
        logger.info(
            "Selected binary",
            extra={"asset": best.name, "candidates": len(release.candidates)},
        )
        return RunState.FETCH_BINARY

    async def _fetch_binary(self, ctx: RunContext) -> RunState:
        candidate = ctx.selected
        if candidate is None:
            raise NoCompatibleBinaryError("No binary selected")
        await download_verified(
            self.engine,
            candidate.asset,
            candidate.checksum_url,
            ctx.config.destination,
            decompress=candidate.compressed,
        )
        logger.info(
            "Installed prebuilt binary",
            extra={"asset": candidate.name, "path": str(ctx.config.destination)},
        )
        return RunState.DONE

    async def _fallback_build(self, ctx: RunContext) -> RunState:
        if not ctx.options.fallback_to_build:
            logger.error(
                "No prebuilt binary could be installed and fallback build is disabled",
                extra={"package": ctx.config.name},
            )
            return RunState.FAILED
        logger.info("Falling back to build from source", extra={"package": ctx.config.name})
        self._builder.run()
        return RunState.DONE

    async def _build_only(self, ctx: RunContext) -> RunState:
        if not ctx.config.disable_minbuild:
            try:
                release = await self._resolution(ctx)
                if release.minbuild is not None:
                    await stage_minbuild(self.engine, release.minbuild, ctx.config.source_dir)
            except ResolutionError as e:
                ctx.degrade(RunState.BUILD_ONLY, e)
        self._builder.run()
        return RunState.DONE
