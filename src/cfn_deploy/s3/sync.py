"""
Copies the resolved application directory into the configuration bucket.
"""
import logging
from pathlib import Path
from typing import Sequence

from cfn_deploy.cfn.aws_cli import run_aws
from cfn_deploy.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "app"
DEFAULT_EXCLUDES = ("*.aws-*",)


def bucket_uri(bucket: str, prefix: str = DEFAULT_PREFIX) -> str:
    return f"s3://{bucket}/{prefix}" if prefix else f"s3://{bucket}"


def sync_to_bucket(
    settings: Settings,
    source: Path,
    bucket: str,
    prefix: str = DEFAULT_PREFIX,
    excludes: Sequence[str] = DEFAULT_EXCLUDES,
) -> None:
    """
    Copy or update files under source in s3://bucket/prefix.
    SAM build directories are excluded by default.
    """
    args = ["s3", "sync", str(source), bucket_uri(bucket, prefix)]
    for pattern in excludes:
        args += ["--exclude", pattern]
    logger.info(f"Syncing {source} to {bucket_uri(bucket, prefix)}")
    run_aws(settings, *args)
