"""
Infrastructure adapters: logging, Redis persistence, payments, the
subscription provider and resilience patterns.
"""
