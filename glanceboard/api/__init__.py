"""HTTP API: aiohttp server, routes and middleware."""
