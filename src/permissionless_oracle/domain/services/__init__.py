"""Domain services: the catalog, reputation, discovery, consensus and proof components."""
