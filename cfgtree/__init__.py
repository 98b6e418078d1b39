"""Schema-driven configuration file parser with typed options, lists and sections."""

__version__ = "3.2.0"
__all__ = ["options", "lexer", "parser", "printer", "config"]