"""Services that drive the session engine."""
