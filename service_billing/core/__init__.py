"""
Core modules for Service Billing.

This package contains adapters, pricing, billing reconciliation and
request orchestration.
"""
