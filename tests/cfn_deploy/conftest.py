from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from cfn_deploy.cfn.inspector import StackDescriptor
from cfn_deploy.settings import Settings


def not_found_error(stack_name: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": "ValidationError", "Message": f"Stack with id {stack_name} does not exist"}},
        "DescribeStacks",
    )


def stack(name: str, status: str = "CREATE_COMPLETE", **outputs) -> StackDescriptor:
    return StackDescriptor(name=name, status=status, outputs=outputs)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        project_root=tmp_path,
        configuration_stack_name="Demo",
        application_stack_name="Demo-master-latest",
        region="eu-west-1",
        profile="dev",
        repository="https://host/group/demo.git",
    )
