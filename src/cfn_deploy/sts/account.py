"""
Caller identity check run before every action.
"""
import logging
from typing import Dict

from botocore.exceptions import BotoCoreError, ClientError

from cfn_deploy.errors import ProviderCallError

logger = logging.getLogger(__name__)


def validate_account(session) -> Dict[str, str]:
    """
    Return the caller identity (UserId, Account, Arn) of session.
    Raises:
        ProviderCallError: when credentials are missing or invalid.
    """
    sts = session.client("sts")
    try:
        identity = sts.get_caller_identity()
    except (ClientError, BotoCoreError) as e:
        raise ProviderCallError(f"Failed to validate account: {e}") from e
    identity = {k: identity[k] for k in ("UserId", "Account", "Arn") if k in identity}
    logger.info(f"Account used: {identity.get('Account')} ({identity.get('Arn')})")
    return identity
