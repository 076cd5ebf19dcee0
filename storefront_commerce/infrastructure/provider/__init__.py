"""
Subscription provider adapters.
"""

from .partner_center_client import (
    AadTokenProvider,
    PartnerCenterClient,
    counts_against_circuit,
    create_partner_center_http_client,
)

__all__ = [
    "AadTokenProvider",
    "PartnerCenterClient",
    "counts_against_circuit",
    "create_partner_center_http_client",
]
