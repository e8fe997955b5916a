"""Property-based tests for xflows guards, templates and expressions."""
