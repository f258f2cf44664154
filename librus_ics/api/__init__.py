"""HTTP API: aiohttp server, feed and health routes, middleware."""
