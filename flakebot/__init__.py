"""flakebot: keeps flake.lock files up to date across a fleet of repositories.

Each run clones or refreshes every configured repository, runs the lock
updater on a dedicated update branch, and opens or refreshes a pull/merge
request whose body is a table of the changed root dependencies.
"""

__version__ = "0.1.0"
__description__ = "Dependency-update bot for flake.lock files"

from flakebot.core.orchestrator import UpdateOrchestrator
from flakebot.cli.app import app as cli

__all__ = ["UpdateOrchestrator", "cli", "__version__"]
