"""Statement ingestion: tokenizing, normalizing and mapping raw rows."""
