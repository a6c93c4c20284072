"""
Ingestion of content sources.

- email/: IMAP account workers, message parsing and indexing
"""
