# promptbatch/cli/commands: Command modules for the promptbatch CLI.
#
# Each module in this package provides one CLI command.

from .run import run
from .status import status
from .validate import validate

__all__ = [
    "run",
    "status",
    "validate",
]
