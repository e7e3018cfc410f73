"""Exception types for the BART encoder pipeline.

None of these are transient: they mean a file is missing or corrupt, or the
weight file does not match the model architecture we assume.
"""


class BartEncoderError(Exception):
    """Base class for pipeline errors."""


class VocabularyFormatError(BartEncoderError, ValueError):
    """The vocabulary file could not be parsed."""


class InvalidTokenError(BartEncoderError, KeyError):
    """A token id or substring is not part of the vocabulary."""


class ContainerFormatError(BartEncoderError, ValueError):
    """The weight container header or payload is malformed."""


class TensorNotFoundError(BartEncoderError, KeyError):
    """A requested tensor name is absent from the container directory."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self):
        return f"Tensor '{self.name}' not found in container"


class ShapeMismatchError(BartEncoderError, ValueError):
    """A tensor's shape disagrees with the architecture's expectation."""


class SequenceTooLongError(BartEncoderError, ValueError):
    """The framed token sequence would exceed the maximum sequence length."""


class UnsupportedDtypeError(BartEncoderError, NotImplementedError):
    """The tensor encoding has no dequantizer."""
