"""QR scan verification station — operator-side token scanning."""

__version__ = "0.1.0"
