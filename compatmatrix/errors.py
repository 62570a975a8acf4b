"""Error taxonomy for the reconciliation engine.

Only ``ExternalCommandFailure`` is fatal to the process. Everything else is
reported and turns into an early return at the runner level.
"""

from __future__ import annotations


class CompatMatrixError(Exception):
    """Base class for all compatmatrix errors."""


class MissingPrerequisite(CompatMatrixError):
    """A required package or file (core package, package.json) is missing."""


class MatrixParseError(CompatMatrixError):
    """The compatibility document is not a JSON object."""


class ManifestParseError(CompatMatrixError):
    """package.json could not be parsed as a JSON object."""


class ExternalCommandFailure(CompatMatrixError):
    """A package-manager or registry command failed.

    The dependency store is in an unknown state afterwards, so the CLI
    terminates the whole run when it sees this.
    """

    def __init__(self, cmd: str, output: str = ""):
        self.cmd = cmd
        self.output = output
        super().__init__(f'"{cmd}" run failed, please re-run by yourself.')
