"""Domain layer: models, interfaces and built-in dispatchers."""
