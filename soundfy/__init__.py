"""
Soundfy backend.

Keeps a shop's Shopify catalog (products, variants, collections) in sync
through webhook jobs and resumable GraphQL sync jobs.
"""

__version__ = "0.1.0"
