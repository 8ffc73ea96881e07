"""Call Center Services - Retell access, persistence and batch processing."""

from .call_processor import CallProcessor
from .call_reconciler import CallReconciler
from .customer_service import CustomerRepository, format_knowledge_base_context
from .eligibility import EligibilityDecision, filter_ended_with_phone, resolve_eligible_call
from .retell_client import RetellClient

__all__ = [
    "CallProcessor",
    "CallReconciler",
    "CustomerRepository",
    "format_knowledge_base_context",
    "EligibilityDecision",
    "filter_ended_with_phone",
    "resolve_eligible_call",
    "RetellClient",
]
