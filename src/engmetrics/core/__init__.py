"""Domain core: models, ports, classification and aggregation."""
