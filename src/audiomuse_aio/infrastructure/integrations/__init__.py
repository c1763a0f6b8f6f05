"""HTTP clients for the music server, the analysis core and the Task API."""
