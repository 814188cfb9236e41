"""
Exceptions raised by cfn-deploy. Every fatal condition aborts the running action.
"""


class CfnDeployError(Exception):
    """Base class for all errors surfaced to the operator."""


class ConfigurationError(CfnDeployError):
    """Invalid command line or environment file input."""


class ToolNotFoundError(CfnDeployError):
    """A required executable (aws, git, sam, pipenv) is not on PATH."""


class NoNameError(CfnDeployError):
    """No repository name could be derived from the given reference."""


class GitError(CfnDeployError):
    """A git clone, fetch, checkout or commit failed."""


class ProviderCallError(CfnDeployError):
    """An AWS call failed for a reason other than "stack does not exist"."""


class DependencyUnsatisfiedError(CfnDeployError):
    """Configuration stack outputs are still missing after deploying it."""


class StackTimeoutError(CfnDeployError):
    """A stack did not reach its terminal state within the waiter budget."""


class DependencyViolationError(CfnDeployError):
    """Attempted to delete the configuration stack while an application stack exists."""
