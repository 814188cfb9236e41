"""
Runner for ``aws`` CLI commands that have no boto3 equivalent
(``cloudformation deploy`` changesets, ``s3 sync``).
"""
import logging
import subprocess
from typing import List

from cfn_deploy.errors import ProviderCallError, ToolNotFoundError
from cfn_deploy.settings import Settings

logger = logging.getLogger(__name__)


def build_command(settings: Settings, *args: str) -> List[str]:
    """Prefix args with ``aws`` and make profile and region explicit."""
    cmd = ["aws", *args, "--region", settings.region]
    if settings.profile:
        cmd += ["--profile", settings.profile]
    return cmd


def run_aws(settings: Settings, *args: str) -> None:
    """
    Run an aws CLI command, streaming its output to the terminal.
    Raises:
        ProviderCallError: on a non-zero exit code.
        ToolNotFoundError: if the aws CLI is not installed.
    """
    cmd = build_command(settings, *args)
    logger.info(f"Running {' '.join(cmd)}")
    try:
        subprocess.run(cmd, check=True, env=dict(settings.environment) or None)
    except subprocess.CalledProcessError as e:
        raise ProviderCallError(f"aws command failed with exit code {e.returncode}: {' '.join(cmd)}") from e
    except FileNotFoundError as e:
        raise ToolNotFoundError("aws cli not installed") from e
