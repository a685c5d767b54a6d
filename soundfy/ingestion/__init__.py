"""Catalog ingestion: bulk upserts, importers and resumable sync steps."""
