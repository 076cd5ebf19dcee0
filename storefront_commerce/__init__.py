"""
storefront-commerce

Commerce core of a storefront reselling cloud subscriptions: purchases,
additional seats and renewals run as compensating transaction pipelines over
a payment gateway, a subscription provider and a customer store.
"""

__version__ = "1.0.0"
