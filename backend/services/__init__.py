"""Backend services for bank sync, summaries, recommendations and billing."""

from .plaid_client import PlaidClient, PlaidConfigurationError, get_plaid_client
from .normalizer import NormalizedTransaction, normalize_transaction, to_milliunits
from .bank_sync import BankSync, SyncResult, NoConnectedBankError
from .summary import SummaryCalculator, resolve_period, calculate_percentage_change
from .recommendations import RecommendationEngine, build_recommendations, format_inr
from .billing import BillingService, LemonSqueezyClient, InvalidSignatureError, verify_webhook_signature

__all__ = [
    "PlaidClient",
    "PlaidConfigurationError",
    "get_plaid_client",
    "NormalizedTransaction",
    "normalize_transaction",
    "to_milliunits",
    "BankSync",
    "SyncResult",
    "NoConnectedBankError",
    "SummaryCalculator",
    "resolve_period",
    "calculate_percentage_change",
    "RecommendationEngine",
    "build_recommendations",
    "format_inr",
    "BillingService",
    "LemonSqueezyClient",
    "InvalidSignatureError",
    "verify_webhook_signature",
]
