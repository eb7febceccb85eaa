"""
Storefront Analytics

Back-office analytics for a direct-to-consumer storefront: fetches raw
orders, carts, events and catalog records for a date window and folds
them into immutable KPI snapshots for dashboard widgets.
"""

__version__ = "1.0.0"
