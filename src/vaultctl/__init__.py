"""vaultctl — schema-driven audit, repair and query for markdown vaults."""

__version__ = "0.1.0"
