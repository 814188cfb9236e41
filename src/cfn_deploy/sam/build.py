"""
Build and package nested SAM applications before the application deploy.

Every ``template.yaml`` two or three levels below the application directory
is treated as a SAM template: it is built with ``sam build`` and packaged
into the configuration bucket, producing ``packaged.yaml`` next to it.
"""
from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from cfn_deploy.errors import ProviderCallError, ToolNotFoundError
from cfn_deploy.settings import Settings

logger = logging.getLogger(__name__)

SAM_TEMPLATE = "template.yaml"
SAM_BUILD_DIR = ".aws-sam"
# sam default build output -- dont change this
SAM_BUILT_TEMPLATE = Path(SAM_BUILD_DIR) / "build" / "template.yaml"
PACKAGED_TEMPLATE = "packaged.yaml"
S3_PREFIX = "sam"


def find_templates(app_dir: Path) -> List[Path]:
    templates = []
    for path in sorted(app_dir.rglob(SAM_TEMPLATE)):
        rel = path.relative_to(app_dir)
        if 2 <= len(rel.parts) <= 3 and SAM_BUILD_DIR not in rel.parts:
            templates.append(path)
    return templates


def needs_build(template_dir: Path) -> bool:
    """True unless a build exists and no file changed since the last package."""
    built = template_dir / SAM_BUILT_TEMPLATE
    packaged = template_dir / PACKAGED_TEMPLATE
    if not built.is_file() or built.stat().st_size == 0 or not packaged.is_file():
        return True
    packaged_mtime = packaged.stat().st_mtime
    for path in template_dir.rglob("*"):
        if SAM_BUILD_DIR in path.relative_to(template_dir).parts or not path.is_file():
            continue
        if path.stat().st_mtime > packaged_mtime:
            return True
    return False


def _require(tool: str, message: str) -> None:
    if shutil.which(tool) is None:
        raise ToolNotFoundError(message)


class SamBuilder:
    """
    Runs sam build/package for each nested SAM application.
    """
    def __init__(self, settings: Settings):
        self.settings = settings

    def _profile_args(self) -> List[str]:
        return ["--profile", self.settings.profile] if self.settings.profile else []

    def _run(self, cmd: List[str], cwd: Path, stdout=None) -> None:
        logger.info(f"Running {' '.join(cmd)} in {cwd}")
        try:
            subprocess.run(cmd, cwd=str(cwd), check=True, stdout=stdout, env=dict(self.settings.environment) or None)
        except subprocess.CalledProcessError as e:
            raise ProviderCallError(f"{cmd[0]} failed with exit code {e.returncode}: {' '.join(cmd)}") from e

    def build(self, app_dir: Path, bucket: str) -> List[Path]:
        """
        Build and package every SAM template below app_dir.
        Args:
            app_dir: Application directory of the resolved snapshot.
            bucket: Configuration bucket receiving the packaged artifacts.
        Returns:
            The SAM templates found (empty when there are none).
        Raises:
            ToolNotFoundError: if templates exist but sam (or pipenv for
                Python packages) is not installed.
        """
        templates = find_templates(app_dir)
        if not templates:
            return []
        _require("sam", "sam cli not installed")

        for template in templates:
            template_dir = template.parent
            if not needs_build(template_dir):
                logger.info(f"No changes in {template_dir}, skipping sam build")
                continue
            if (template_dir / "__init__.py").exists():
                self._write_requirements(template_dir)
            self._run(["sam", "build", "-t", SAM_TEMPLATE, *self._profile_args()], cwd=template_dir)
            self._run(
                [
                    "sam", "package",
                    "--template-file", str(SAM_BUILT_TEMPLATE),
                    "--s3-bucket", bucket,
                    "--s3-prefix", S3_PREFIX,
                    "--output-template-file", PACKAGED_TEMPLATE,
                    *self._profile_args(),
                ],
                cwd=template_dir,
            )
        return templates

    def _write_requirements(self, template_dir: Path) -> Optional[Path]:
        _require("pipenv", "pipenv required for Python Packages")
        target = template_dir / "requirements.txt"
        with open(target, "w") as f:
            self._run(["pipenv", "requirements"], cwd=template_dir, stdout=f)
        return target
