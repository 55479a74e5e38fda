"""API gateway: product keys, credential pool, quota gate and usage ledger."""

from tryon_gateway.gateway.api_key_manager import APIKeyManager
from tryon_gateway.gateway.credential_store import CredentialStore, reset_credential_pool
from tryon_gateway.gateway.key_rotator import AllocatedCredential, KeyRotator
from tryon_gateway.gateway.quota_gate import AdmittedRequest, QuotaGate, parse_bearer_token
from tryon_gateway.gateway.quota_policy import (
    FreeTierPolicy,
    QuotaDecision,
    QuotaPolicy,
    SubscribedPolicy,
    evaluate_quota,
    resolve_quota_policy,
)
from tryon_gateway.gateway.rate_limiter import PlanRateLimiter, RateLimitStatus
from tryon_gateway.gateway.response_hooks import PostResponseTasks, ResponseOutcome
from tryon_gateway.gateway.usage_ledger import UsageLedger, UsageRecord, UsageSummary, record_usage

__all__ = [
    "APIKeyManager",
    "AdmittedRequest",
    "AllocatedCredential",
    "CredentialStore",
    "FreeTierPolicy",
    "KeyRotator",
    "PlanRateLimiter",
    "PostResponseTasks",
    "QuotaDecision",
    "QuotaGate",
    "QuotaPolicy",
    "RateLimitStatus",
    "ResponseOutcome",
    "SubscribedPolicy",
    "UsageLedger",
    "UsageRecord",
    "UsageSummary",
    "evaluate_quota",
    "parse_bearer_token",
    "record_usage",
    "reset_credential_pool",
]
