"""Library App - Utilities Package

Helpers shared by the CLI and the library facade:
- Input validators for members and catalog entries
- CLI output formatting (plain / json / rich)
"""
