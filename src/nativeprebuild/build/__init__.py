"""Build-from-source fallback."""

from nativeprebuild.build.runner import BuildRunner, BuildStep, requirement, run_command

__all__ = [
    "BuildRunner",
    "BuildStep",
    "requirement",
    "run_command",
]
