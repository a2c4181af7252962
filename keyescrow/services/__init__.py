"""Protocol services."""
