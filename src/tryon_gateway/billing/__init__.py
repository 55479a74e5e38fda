"""Subscription plans and subscription state writes."""

from tryon_gateway.billing.service import BillingService

__all__ = ["BillingService"]
