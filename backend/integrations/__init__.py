"""External API integrations.

This package contains:
- Open Finance protocol: Normalized types exchanged with institutions
- Account information client: Accounts, balances and transactions
- Payment initiation client: PIX payments and their status
- OAuth client: Authorization code, refresh and revocation grants
- Retrying executor: Bounded retry on 5xx responses
"""

from integrations.account_information_client import AccountInformationClient
from integrations.oauth_client import OAuthClient
from integrations.payment_initiation_client import PaymentInitiationClient
from integrations.retrying_executor import RetryingHttpExecutor

__all__ = [
    "AccountInformationClient",
    "OAuthClient",
    "PaymentInitiationClient",
    "RetryingHttpExecutor",
]
