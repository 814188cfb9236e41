"""
Deployment orchestrator for the configuration and application stacks.

Each public method is one operator action. Actions run sequentially and fail
fast; ordering between the two stacks is enforced here:

* the application stack is only deployed once the configuration stack
  outputs (bucket, bucket URL, service role) are confirmed, and
* the configuration stack is only deleted once the application stack is gone.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from cfn_deploy.cfn.application_stack import ApplicationStackDeployer
from cfn_deploy.cfn.configuration_stack import ConfigurationStackDeployer
from cfn_deploy.cfn.inspector import ConfigurationOutputs, StackDescriptor, StackInspector
from cfn_deploy.cfn.waiter import DEFAULT_INTERVAL_SECONDS, DEFAULT_MAX_ATTEMPTS, wait_for_deletion
from cfn_deploy.errors import (
    ConfigurationError,
    DependencyUnsatisfiedError,
    DependencyViolationError,
    StackTimeoutError,
)
from cfn_deploy.s3.sync import DEFAULT_PREFIX, sync_to_bucket
from cfn_deploy.sam.build import SamBuilder
from cfn_deploy.settings import Settings
from cfn_deploy.source.git import GitClient, is_checkout
from cfn_deploy.source.reference import SourceReference
from cfn_deploy.source.resolver import SourceResolver
from cfn_deploy.sts.account import validate_account

logger = logging.getLogger(__name__)

LAST_CHANGE_FORMAT = "%Y%m%d%H%M%S"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeploymentSession:
    """What a single action resolved and observed."""
    action: str
    configuration_stack: str
    application_stack: str
    region: str
    profile: Optional[str] = None
    identity: Dict[str, str] = field(default_factory=dict)
    snapshot: Optional[Path] = None
    committed: bool = False
    stacks: Dict[str, StackDescriptor] = field(default_factory=dict)
    deleted: List[str] = field(default_factory=list)

    @property
    def configuration(self) -> Optional[StackDescriptor]:
        return self.stacks.get(self.configuration_stack)

    @property
    def application(self) -> Optional[StackDescriptor]:
        return self.stacks.get(self.application_stack)


class DeploymentOrchestrator:
    """
    Drives deploy, delete, status and the configuration stack lifecycle.

    Collaborators default to the real implementations built from settings
    and can be replaced, e.g. by stubs in tests.
    """
    def __init__(
        self,
        settings: Settings,
        session=None,
        inspector: Optional[StackInspector] = None,
        configuration: Optional[ConfigurationStackDeployer] = None,
        application: Optional[ApplicationStackDeployer] = None,
        git: Optional[GitClient] = None,
        resolver: Optional[SourceResolver] = None,
        builder: Optional[SamBuilder] = None,
        sync: Callable[..., None] = sync_to_bucket,
        clock: Callable[[], datetime] = _utcnow,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        self.settings = settings
        self._session = session
        self._inspector = inspector
        self.configuration = configuration or ConfigurationStackDeployer(settings, session=session)
        self.application = application or ApplicationStackDeployer(settings, session=session)
        self.git = git or GitClient(env=settings.environment or None)
        self.resolver = resolver or SourceResolver(settings.project_root, settings.build_root, git=self.git)
        self.builder = builder or SamBuilder(settings)
        self.sync = sync
        self.clock = clock
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds

    @property
    def session(self):
        # git-only actions never touch AWS
        if self._session is None:
            self._session = self.settings.session()
        return self._session

    @property
    def inspector(self) -> StackInspector:
        if self._inspector is None:
            self._inspector = StackInspector(self.session)
        return self._inspector

    def _new_session(self, action: str) -> DeploymentSession:
        return DeploymentSession(
            action=action,
            configuration_stack=self.settings.configuration_stack,
            application_stack=self.settings.application_stack,
            region=self.settings.region,
            profile=self.settings.profile,
        )

    def _begin(self, action: str) -> DeploymentSession:
        # output account used before anything is changed
        session = self._new_session(action)
        session.identity = validate_account(self.session)
        logger.info(
            f"{action}: configuration={session.configuration_stack} "
            f"application={session.application_stack} region={session.region}"
        )
        return session

    def _wait_for_deletion(self, stack_name: str) -> int:
        return wait_for_deletion(
            self.inspector,
            stack_name,
            max_attempts=self.max_attempts,
            interval_seconds=self.interval_seconds,
        )

    def _source_reference(self) -> SourceReference:
        ref = self.settings.source_reference
        if ref is None:
            raise ConfigurationError("A repository (URL, path or \".\") is required")
        return ref

    def _auto_commit(self, session: DeploymentSession) -> None:
        if self.settings.auto_commit:
            session.committed = self.git.auto_commit(self.settings.project_root)

    def validate_account(self) -> DeploymentSession:
        return self._begin("validate-account")

    def ensure_configuration(self) -> ConfigurationOutputs:
        """
        Return the configuration stack outputs, deploying the configuration
        stack once if any of them is missing.
        Raises:
            DependencyUnsatisfiedError: if outputs are still missing after the deploy.
        """
        stack_name = self.settings.configuration_stack
        outputs = self.inspector.configuration_outputs(stack_name)
        if outputs is not None:
            return outputs
        logger.info(f"Configuration stack {stack_name} missing or incomplete, deploying it")
        self.configuration.deploy(stack_name)
        outputs = self.inspector.configuration_outputs(stack_name)
        if outputs is None:
            raise DependencyUnsatisfiedError(
                f"Configuration stack {stack_name} has no bucket/role outputs after deployment"
            )
        return outputs

    def application_parameters(self, outputs: ConfigurationOutputs) -> Dict[str, str]:
        """Parameters for the application stack; LastChange forces a changeset on every deploy."""
        return {
            "S3BucketName": outputs.bucket_name,
            "S3BucketSecureURL": f"{outputs.bucket_url}/{DEFAULT_PREFIX}",
            "IAMServiceRole": outputs.role_arn,
            "LastChange": self.clock().strftime(LAST_CHANGE_FORMAT),
        }

    def deploy(self) -> DeploymentSession:
        """
        Deploy or update the application stack from the configured repository.
        """
        session = self._begin("deploy")
        ref = self._source_reference()
        self._auto_commit(session)
        session.snapshot = self.resolver.resolve(ref)

        outputs = self.ensure_configuration()
        app_dir = self.settings.app_dir
        templates = self.builder.build(app_dir, outputs.bucket_name)
        if templates:
            logger.info(f"Built {len(templates)} SAM template(s)")

        self.sync(self.settings, app_dir, outputs.bucket_name)
        self.application.deploy(
            self.settings.application_stack,
            app_dir / self.settings.template_file,
            outputs.role_arn,
            self.application_parameters(outputs),
        )
        session.stacks[session.application_stack] = self.inspector.describe(session.application_stack)
        logger.info(f"Finished successfully! Deployed {session.application_stack}")
        return session

    def deploy_configuration(self) -> DeploymentSession:
        session = self._begin("deploy-configuration")
        self.configuration.deploy(session.configuration_stack)
        session.stacks[session.configuration_stack] = self.inspector.describe(session.configuration_stack)
        return session

    def delete(self) -> DeploymentSession:
        """
        Delete the application stack and wait until it is gone.
        Raises:
            StackTimeoutError: if the stack is not deleted within the waiter budget.
        """
        session = self._begin("delete")
        role_arn = self.inspector.get_role_arn(session.configuration_stack)
        self.application.delete(session.application_stack, role_arn)
        try:
            self._wait_for_deletion(session.application_stack)
        except StackTimeoutError as e:
            raise StackTimeoutError(f"Failed to delete application stack {session.application_stack}") from e
        session.stacks[session.application_stack] = StackDescriptor.absent(session.application_stack)
        session.deleted.append(session.application_stack)
        return session

    def delete_configuration(self) -> DeploymentSession:
        """
        Delete the configuration stack once no application stack depends on it.
        A missing configuration stack is a no-op.
        Raises:
            DependencyViolationError: if the application stack still exists.
            StackTimeoutError: if the configuration stack is not deleted in time.
        """
        session = self._begin("delete-configuration")
        configuration = self.inspector.describe(session.configuration_stack)
        if not configuration.exists:
            logger.info(f"Configuration stack {session.configuration_stack} does not exist, nothing to delete")
            session.stacks[session.configuration_stack] = configuration
            return session

        try:
            self._wait_for_deletion(session.application_stack)
        except StackTimeoutError as e:
            raise DependencyViolationError(
                f"Cant delete {session.configuration_stack} because {session.application_stack} exists"
            ) from e

        self.configuration.delete(session.configuration_stack)
        try:
            self._wait_for_deletion(session.configuration_stack)
        except StackTimeoutError as e:
            raise StackTimeoutError(f"Failed to delete configuration stack {session.configuration_stack}") from e
        session.stacks[session.configuration_stack] = StackDescriptor.absent(session.configuration_stack)
        session.deleted.append(session.configuration_stack)
        return session

    def status(self) -> DeploymentSession:
        session = self._begin("status")
        session.stacks.update(self.inspector.describe_all(session.configuration_stack, session.application_stack))
        return session

    def checkout(self) -> DeploymentSession:
        """
        Make the project directory a git checkout of the configured repository.
        Only git is involved; no AWS call is made.
        """
        session = self._new_session("checkout")
        ref = self._source_reference()
        root = self.settings.project_root
        self._auto_commit(session)
        if is_checkout(root):
            logger.info(f"{root} is already a git checkout")
            return session
        if ref.is_local:
            self.git.init(root)
        else:
            self.git.init_from_remote(root, ref.repository_url, ref.branch)
        return session
