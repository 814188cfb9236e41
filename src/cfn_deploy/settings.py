"""
Run settings, built once per invocation from the environment, an optional
environment file and command line overrides.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError

from cfn_deploy.errors import ConfigurationError
from cfn_deploy.naming import normalize_stack_name
from cfn_deploy.source.git import is_checkout
from cfn_deploy.source.reference import SourceReference

logger = logging.getLogger(__name__)

DEFAULT_REGION = "eu-west-1"
DEFAULT_TEMPLATE_FILE = "main.yaml"
BUILD_DIR = "build"
APP_DIR = "app"
CONFIGURATION_SUFFIX = "-Configuration"
APPLICATION_SUFFIX = "-Application"

# variables an environment file may set; everything else is ignored
_ENV_FILE_KEY_RE = re.compile(
    r"^(AWS_[A-Z_]*|CONFIGURATION_STACKNAME|APPLICATION_STACKNAME|TEMPLATE_FILE)$"
)


def parse_env_file(path: Path) -> Dict[str, str]:
    """
    Read KEY=VALUE lines from path, keeping only the keys cfn-deploy uses.
    A missing or empty file yields an empty mapping.
    """
    env: Dict[str, str] = {}
    if not path.is_file() or path.stat().st_size == 0:
        logger.warning(f'File "{path}" is empty or does not exist')
        return env
    logger.info(f"Loading: {path}")
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip()
        if _ENV_FILE_KEY_RE.match(k):
            env[k] = v.strip().strip('"').strip("'")
    return env


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings passed to every component; nothing downstream reads
    the process environment.
    """
    project_root: Path
    configuration_stack_name: str
    application_stack_name: str
    region: str = DEFAULT_REGION
    profile: Optional[str] = None
    repository: Optional[str] = None
    template_file: str = DEFAULT_TEMPLATE_FILE
    auto_commit: bool = False
    environment: Mapping[str, str] = field(default_factory=dict)

    @property
    def build_root(self) -> Path:
        return self.project_root / BUILD_DIR

    @property
    def current_path(self) -> Path:
        return self.build_root / "current"

    @property
    def app_dir(self) -> Path:
        """Directory inside the resolved snapshot holding the application templates."""
        return self.current_path / APP_DIR

    @property
    def configuration_stack(self) -> str:
        return f"{self.configuration_stack_name}{CONFIGURATION_SUFFIX}"

    @property
    def application_stack(self) -> str:
        return f"{self.application_stack_name}{APPLICATION_SUFFIX}"

    @property
    def source_reference(self) -> Optional[SourceReference]:
        if not self.repository:
            return None
        return SourceReference.parse(self.repository)

    def session(self) -> boto3.session.Session:
        """
        Return a boto3 session for the configured profile and region.
        Explicit credentials are used only when no profile is set.
        """
        try:
            if self.profile:
                return boto3.session.Session(profile_name=self.profile, region_name=self.region)
            return boto3.session.Session(
                aws_access_key_id=self.environment.get("AWS_ACCESS_KEY_ID"),
                aws_secret_access_key=self.environment.get("AWS_SECRET_ACCESS_KEY"),
                aws_session_token=self.environment.get("AWS_SESSION_TOKEN"),
                region_name=self.region,
            )
        except BotoCoreError as e:
            raise ConfigurationError(f"Cannot create AWS session: {e}") from e


def load_settings(
    environ: Mapping[str, str],
    project_root: Path,
    repository: Optional[str] = None,
    env_file: Optional[Path] = None,
    profile: Optional[str] = None,
    region: Optional[str] = None,
    configuration_stack_name: Optional[str] = None,
    application_stack_name: Optional[str] = None,
    auto_commit: bool = False,
) -> Settings:
    """
    Merge environment, environment file and CLI options into Settings.

    Precedence, lowest first: environ, env_file, explicit arguments.
    """
    project_root = Path(project_root).resolve()
    env = dict(environ)
    if env_file is not None:
        env.update(parse_env_file(Path(env_file)))

    if profile:
        env["AWS_PROFILE"] = profile
    if region:
        env["AWS_DEFAULT_REGION"] = region
    if configuration_stack_name:
        env["CONFIGURATION_STACKNAME"] = configuration_stack_name
    if application_stack_name:
        env["APPLICATION_STACKNAME"] = application_stack_name

    if not env.get("AWS_PROFILE") and env.get("AWS_DEFAULT_PROFILE"):
        env["AWS_PROFILE"] = env["AWS_DEFAULT_PROFILE"]
    env.setdefault("AWS_DEFAULT_REGION", DEFAULT_REGION)
    if not env["AWS_DEFAULT_REGION"]:
        env["AWS_DEFAULT_REGION"] = DEFAULT_REGION

    configuration_seed = env.get("CONFIGURATION_STACKNAME") or project_root.name
    application_seed = env.get("APPLICATION_STACKNAME")
    if not application_seed:
        if repository:
            application_seed = SourceReference.parse(repository).namestring(project_root.name)
        else:
            application_seed = project_root.name

    # auto commit only applies to a local git checkout
    auto_commit = bool(auto_commit and repository and is_checkout(project_root / repository))

    return Settings(
        project_root=project_root,
        configuration_stack_name=normalize_stack_name(configuration_seed),
        application_stack_name=normalize_stack_name(application_seed),
        region=env["AWS_DEFAULT_REGION"],
        profile=env.get("AWS_PROFILE") or None,
        repository=repository,
        template_file=env.get("TEMPLATE_FILE") or DEFAULT_TEMPLATE_FILE,
        auto_commit=auto_commit,
        environment=env,
    )
