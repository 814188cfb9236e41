"""
Module for deploying and managing the configuration CloudFormation stack
(S3 bucket + CloudFormation service role shared by application stacks).
"""
import logging
import shutil
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from cfn_deploy.cfn.aws_cli import run_aws
from cfn_deploy.errors import ProviderCallError
from cfn_deploy.settings import Settings
from cfn_deploy.source.resolver import ensure_build_root

logger = logging.getLogger(__name__)

CFN_TEMPLATE_PATH = Path(__file__).parent / "configuration_stack.yaml"
TEMPLATE_NAME = "configuration_stack.yaml"
CAPABILITIES = ["CAPABILITY_NAMED_IAM"]


class ConfigurationStackDeployer:
    """
    Handles deployment of the configuration stack.
    """
    def __init__(self, settings: Settings, session=None):
        self.settings = settings
        self._session = session

    @property
    def client(self):
        if self._session is None:
            self._session = self.settings.session()
        return self._session.client("cloudformation")

    def write_template(self) -> Path:
        """
        Copies the bundled configuration template to the build root.
        Returns:
            Path of the written template.
        """
        build_root = ensure_build_root(self.settings.build_root)
        target = build_root / TEMPLATE_NAME
        shutil.copyfile(CFN_TEMPLATE_PATH, target)
        return target

    def deploy(self, stack_name: str) -> None:
        """
        Deploys or updates the configuration stack. An empty changeset is
        not an error.
        """
        template = self.write_template()
        logger.info(f"Deploying configuration stack {stack_name}")
        run_aws(
            self.settings,
            "cloudformation", "deploy",
            "--no-fail-on-empty-changeset",
            "--template-file", str(template),
            "--capabilities", *CAPABILITIES,
            "--stack-name", stack_name,
            "--parameter-overrides", f"StackName={stack_name}",
        )

    def delete(self, stack_name: str) -> None:
        """
        Requests deletion of the configuration stack. Completion is observed
        with the deletion waiter.
        """
        logger.info(f"Deleting configuration stack {stack_name}")
        try:
            self.client.delete_stack(StackName=stack_name)
        except (ClientError, BotoCoreError) as e:
            raise ProviderCallError(f"Failed to delete stack {stack_name}: {e}") from e
