"""
Polling waiter for stack deletion.

CloudFormation deletes stacks asynchronously; this polls at a fixed cadence
until the stack is gone. Default budget is 300 rounds of 3 seconds (~15 min).
"""
import logging
import time

from cfn_deploy.cfn.inspector import StackInspector
from cfn_deploy.errors import StackTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 300
DEFAULT_INTERVAL_SECONDS = 3


def wait_for_deletion(
    inspector: StackInspector,
    stack_name: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
) -> int:
    """
    Block until stack_name no longer exists.

    Returns:
        The number of describe calls it took to observe the stack as absent.
    Raises:
        StackTimeoutError: if the stack still exists after max_attempts polls.
        ProviderCallError: if a describe call fails.
    """
    for attempt in range(1, max_attempts + 1):
        descriptor = inspector.describe(stack_name)
        if not descriptor.exists:
            return attempt
        logger.info(f"WAITER ({attempt}/{max_attempts}):{stack_name}:{descriptor.status}")
        if attempt < max_attempts:
            time.sleep(interval_seconds)
    raise StackTimeoutError(
        f"Stack {stack_name} still exists after {max_attempts} attempts "
        f"({max_attempts * interval_seconds:g}s)"
    )
