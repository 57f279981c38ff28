"""
Command-line entry point.

Usage:
    python -m nativeprebuild [--config FILE] [--json-logs] [-v] [install|fingerprint|artifact-name]

Exit codes: 0 on success, 1 on any unrecoverable failure.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

import orjson

from nativeprebuild import __version__
from nativeprebuild.artifacts.naming import build_artifact_name
from nativeprebuild.config import DEFAULT_CONFIG_FILE, PackageConfig, RunOptions, load_config
from nativeprebuild.errors import ConfigurationError, PlatformDetectionError
from nativeprebuild.host.detector import FingerprintDetector
from nativeprebuild.host.fingerprint import PlatformFingerprint
from nativeprebuild.logging_config import setup_logging
from nativeprebuild.orchestrator import EXIT_FAILED, EXIT_OK, Orchestrator

logger = logging.getLogger(__name__)

COMMANDS = ("install", "fingerprint", "artifact-name")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="native-prebuild",
        description="Install a prebuilt native extension module, or build it from source.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=COMMANDS,
        default="install",
        help="What to do (default: install)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path(DEFAULT_CONFIG_FILE),
        help=f"Package configuration file (default: {DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--build-from-source",
        action="store_true",
        help="Skip prebuilt binaries and build from source",
    )
    parser.add_argument(
        "--no-fallback",
        action="store_true",
        help="Fail instead of building when no prebuilt binary can be installed",
    )
    parser.add_argument(
        "--quiet-build",
        action="store_true",
        help="Discard build command output",
    )
    parser.add_argument("--arch", type=str, default=None, help="Architecture override (e.g. arm64)")
    parser.add_argument("--libc", type=str, default=None, help="libc override (e.g. musl or glibc_2.28)")
    parser.add_argument("--platform", type=str, default=None, help="Platform override (e.g. linux_5.4)")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_options(
    args: argparse.Namespace,
    package: str,
    environ: Mapping[str, str] | None = None,
) -> RunOptions:
    """Environment options with command-line flags applied on top."""
    options = RunOptions.from_env(package, environ)
    changes: dict[str, object] = {}
    if args.build_from_source:
        changes["build_only"] = True
    if args.no_fallback:
        changes["fallback_to_build"] = False
    if args.quiet_build:
        changes["quiet_build"] = True
    for name in ("arch", "libc", "platform"):
        value = getattr(args, name)
        if value:
            changes[name] = value
    return dataclasses.replace(options, **changes) if changes else options


def artifact_stem(config: PackageConfig, fingerprint: PlatformFingerprint) -> str:
    """Canonical artifact stem this host would install."""
    libc_version = fingerprint.libc_version
    if libc_version is None and fingerprint.libc_versions:
        libc_version = max(fingerprint.libc_versions)
    if (
        not fingerprint.is_complete
        or fingerprint.os_version is None
        or libc_version is None
        or fingerprint.libc_name is None
        or fingerprint.architecture is None
    ):
        missing = ", ".join(fingerprint.missing_axes()) or "libc_version"
        msg = f"Incomplete platform fingerprint, missing: {missing}"
        raise PlatformDetectionError(msg)
    return build_artifact_name(
        version=config.version,
        module_abi=fingerprint.module_abi,
        native_api=fingerprint.native_api,
        os_name=fingerprint.os_name,
        os_version=fingerprint.os_version,
        libc_name=fingerprint.libc_name,
        libc_version=libc_version,
        architecture=fingerprint.architecture,
    )


def _detect(options: RunOptions) -> PlatformFingerprint | None:
    try:
        return FingerprintDetector.from_options(options).detect()
    except ValueError as e:
        logger.error("Invalid platform override: %s", e)
        return None


def main(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.json_logs,
    )

    if args.command == "fingerprint":
        fingerprint = _detect(resolve_options(args, "", environ))
        if fingerprint is None:
            return EXIT_FAILED
        print(orjson.dumps(fingerprint.to_dict(), option=orjson.OPT_INDENT_2).decode())
        return EXIT_OK if fingerprint.is_complete else EXIT_FAILED

    try:
        config = load_config(args.config)
        options = resolve_options(args, config.name, environ)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_FAILED

    if args.command == "artifact-name":
        fingerprint = _detect(options)
        if fingerprint is None:
            return EXIT_FAILED
        try:
            print(artifact_stem(config, fingerprint))
        except PlatformDetectionError as e:
            logger.error("%s", e)
            return EXIT_FAILED
        return EXIT_OK

    logger.info(
        "Installing native module",
        extra={"package": config.name, "version": config.version, "destination": str(config.destination)},
    )
    return asyncio.run(Orchestrator(config, options, environ=environ).run())


if __name__ == "__main__":
    sys.exit(main())
