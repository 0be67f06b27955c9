"""Command-line surface: click commands, terminal formatters, structured events."""
