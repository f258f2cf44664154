"""Infrastructure shared by the refresh pipeline and the HTTP API."""
