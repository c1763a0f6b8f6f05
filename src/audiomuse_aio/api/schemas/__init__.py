"""Request and response models for the Task API."""
