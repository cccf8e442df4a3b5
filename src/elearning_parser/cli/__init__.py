"""Command-line interface for inspecting content packages."""
