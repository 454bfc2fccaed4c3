"""sgfind - find state groups that no event references."""

__version__ = "0.1.0"
