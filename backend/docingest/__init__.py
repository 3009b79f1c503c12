"""Document structure ingestion: upload → extract → segment → store."""

__version__ = "1.0.0"
