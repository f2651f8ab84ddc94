"""CI Client module: HTTP client and CLI for a running notification server."""
