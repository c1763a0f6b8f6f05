"""Application layer: bootstrap sequencing, task lifecycle and workers."""
