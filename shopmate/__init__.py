"""
ShopMate catalog importer

Imports Shopify storefront catalogs from their public JSON feeds, streams
scrape progress to the browser, and keeps per-user cached snapshots, store
lists, saved product lists and CSV exports.
"""

__version__ = "1.0.0"
