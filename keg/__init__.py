from .error import KegError
from .error import KegCommandError
from .error import KegTimeoutError
from .error import BuildStepFailed
from .error import ChecksumMismatch
from .error import DependencyUnavailable
from .error import FetchFailure

from .formula import Checksum
from .formula import Dependency
from .formula import Formula
from .formula import FormulaRegistry
from .formula import Step

from .tools import Tools

from .version import __version__

__all__ = (
    "BuildStepFailed",
    "Checksum",
    "ChecksumMismatch",
    "Dependency",
    "DependencyUnavailable",
    "FetchFailure",
    "Formula",
    "FormulaRegistry",
    "KegCommandError",
    "KegError",
    "KegTimeoutError",
    "Step",
    "Tools",
    "__version__",
)

name = "keg"
