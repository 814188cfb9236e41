"""
Module for deploying and managing the application CloudFormation stack.
"""
import logging
from pathlib import Path
from typing import List, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from cfn_deploy.cfn.aws_cli import run_aws
from cfn_deploy.errors import ProviderCallError
from cfn_deploy.settings import Settings

logger = logging.getLogger(__name__)

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]


def _build_parameter_overrides(parameters: Mapping[str, object]) -> List[str]:
    """Format parameters as Key=Value tokens for --parameter-overrides."""
    return [f"{k}={v}" for k, v in parameters.items()]


class ApplicationStackDeployer:
    """
    Deploys the application stack with the configuration stack's service role.
    """
    def __init__(self, settings: Settings, session=None):
        self.settings = settings
        self._session = session

    @property
    def client(self):
        if self._session is None:
            self._session = self.settings.session()
        return self._session.client("cloudformation")

    def deploy(self, stack_name: str, template_file: Path, role_arn: str, parameters: Mapping[str, object]) -> None:
        """
        Deploys or updates the application stack.
        Args:
            stack_name: Application stack name.
            template_file: Local template; nested templates are referenced via the bucket URL.
            role_arn: Service role CloudFormation assumes for the deployment.
            parameters: Stack parameter overrides.
        """
        logger.info(f"Deploying application stack {stack_name} from {template_file}")
        run_aws(
            self.settings,
            "cloudformation", "deploy",
            "--template-file", str(template_file),
            "--role-arn", role_arn,
            "--stack-name", stack_name,
            "--capabilities", *CAPABILITIES,
            "--parameter-overrides", *_build_parameter_overrides(parameters),
        )

    def delete(self, stack_name: str, role_arn: Optional[str] = None) -> None:
        """
        Requests deletion of the application stack, using role_arn when known.
        """
        kwargs = {"StackName": stack_name}
        if role_arn:
            kwargs["RoleARN"] = role_arn
        else:
            logger.warning(f"No service role found; deleting {stack_name} with caller permissions")
        logger.info(f"Deleting application stack {stack_name}")
        try:
            self.client.delete_stack(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise ProviderCallError(f"Failed to delete stack {stack_name}: {e}") from e
