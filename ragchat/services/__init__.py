"""Pipeline services: ingestion, store lifecycle, retrieval and conversation."""
