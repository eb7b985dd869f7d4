"""Error types for termail."""


class TermailError(RuntimeError):
    """Raised for expected, user-facing termail failures."""
