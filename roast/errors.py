"""Base error type for roast.

Every error that reaches the user carries a numeric ``code`` (used as the
process exit status by the CLI) and a human-readable message. Concrete
errors live next to the code that raises them.
"""


class RoastError(Exception):
    """Base class for all roast errors."""

    code: int = 1

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
