"""Command-line interface for email2dm."""
