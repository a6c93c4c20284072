"""
Mail Indexer package.

Continuously ingests email from configured IMAP accounts into a PostgreSQL
backed search index and exposes the corpus through a small Flask API.
"""

__version__ = "1.0.0"
