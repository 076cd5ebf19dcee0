"""Service layer of storefront-commerce."""
