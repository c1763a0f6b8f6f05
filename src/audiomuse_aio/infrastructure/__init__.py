"""Infrastructure layer: persistence, processes, HTTP integrations, observability."""
