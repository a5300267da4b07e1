"""REST API for charter booking cancellations, edits and payments."""

__version__ = "0.1.0"
