"""
Read-only queries against CloudFormation for stack status and outputs.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from botocore.exceptions import BotoCoreError, ClientError

from cfn_deploy.errors import ProviderCallError

logger = logging.getLogger(__name__)

BUCKET_NAME_OUTPUT = "S3BucketName"
BUCKET_URL_OUTPUT = "S3BucketSecureURL"
ROLE_ARN_OUTPUT = "IAMServiceRole"


@dataclass(frozen=True)
class StackDescriptor:
    """
    CloudFormation's view of a stack. A status of None means the stack
    does not exist, which is a valid state and not an error.
    """
    name: str
    status: Optional[str] = None
    outputs: Mapping[str, str] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def exists(self) -> bool:
        return self.status is not None

    @classmethod
    def absent(cls, name: str) -> "StackDescriptor":
        return cls(name=name)

    @classmethod
    def from_response(cls, name: str, stack: Mapping[str, Any]) -> "StackDescriptor":
        outputs = {o["OutputKey"]: o["OutputValue"] for o in stack.get("Outputs", [])}
        return cls(name=name, status=stack.get("StackStatus"), outputs=outputs, raw=stack)


@dataclass(frozen=True)
class ConfigurationOutputs:
    """The configuration stack outputs an application deploy depends on."""
    bucket_name: str
    bucket_url: str
    role_arn: str

    @classmethod
    def from_descriptor(cls, descriptor: StackDescriptor) -> Optional["ConfigurationOutputs"]:
        """Return the outputs, or None unless all three are present."""
        values = [descriptor.outputs.get(k) for k in (BUCKET_NAME_OUTPUT, BUCKET_URL_OUTPUT, ROLE_ARN_OUTPUT)]
        if not all(values):
            return None
        return cls(*values)


def _is_not_found(e: ClientError) -> bool:
    return "does not exist" in str(e)


class StackInspector:
    """
    Describes stacks through a boto3 CloudFormation client.
    """
    def __init__(self, session):
        self.client = session.client("cloudformation")

    def describe(self, stack_name: str) -> StackDescriptor:
        """
        Describe stack_name. A missing stack is returned as absent.
        Raises:
            ProviderCallError: for any failure other than "does not exist".
        """
        try:
            stacks = self.client.describe_stacks(StackName=stack_name).get("Stacks", [])
        except ClientError as e:
            if _is_not_found(e):
                return StackDescriptor.absent(stack_name)
            raise ProviderCallError(f"Failed to describe stack {stack_name}: {e}") from e
        except BotoCoreError as e:
            raise ProviderCallError(f"Failed to describe stack {stack_name}: {e}") from e
        if not stacks:
            return StackDescriptor.absent(stack_name)
        return StackDescriptor.from_response(stack_name, stacks[0])

    def get_output(self, stack_name: str, key: str) -> Optional[str]:
        return self.describe(stack_name).outputs.get(key)

    def get_bucket(self, stack_name: str) -> Optional[str]:
        """Name of the S3 bucket deployed by the configuration stack."""
        return self.get_output(stack_name, BUCKET_NAME_OUTPUT)

    def get_bucket_url(self, stack_name: str) -> Optional[str]:
        """Secure URL of the bucket, used to reference (nested) templates."""
        return self.get_output(stack_name, BUCKET_URL_OUTPUT)

    def get_role_arn(self, stack_name: str) -> Optional[str]:
        """ARN of the CloudFormation service role deployed by the configuration stack."""
        return self.get_output(stack_name, ROLE_ARN_OUTPUT)

    def configuration_outputs(self, stack_name: str) -> Optional[ConfigurationOutputs]:
        return ConfigurationOutputs.from_descriptor(self.describe(stack_name))

    def describe_all(self, *stack_names: str) -> Dict[str, StackDescriptor]:
        return {name: self.describe(name) for name in stack_names}
