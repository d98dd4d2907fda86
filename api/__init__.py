"""
eBay Ingestion HTTP API.
"""
