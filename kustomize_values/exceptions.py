"""Exceptions related to kustomize-values."""

__all__ = [
    "ValuesException",
    "InputException",
    "MissingInputException",
    "MalformedInputException",
    "OutputException",
]


class ValuesException(Exception):
    """Generic base exception used for this library."""


class InputException(ValuesException):
    """Raised when the input tree can't be read at all."""


class MissingInputException(InputException):
    """Raised when a file required for a service or environment is absent."""


class MalformedInputException(InputException):
    """Raised when the input files are not formatted as expected."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class OutputException(ValuesException):
    """Raised when values files can't be written to the output directory."""
