"""BART encoder self-attention input pipeline."""

# Configuration and errors
from .config import BartConfig, BART_LARGE_CNN
from .errors import (
    BartEncoderError,
    VocabularyFormatError,
    InvalidTokenError,
    ContainerFormatError,
    TensorNotFoundError,
    ShapeMismatchError,
    SequenceTooLongError,
    UnsupportedDtypeError,
)

# Vocabulary and tokenization
from .vocabulary import Token, Vocabulary
from .tokenizer import WordPieceTokenizer

# Weight container
from .tensor_names import (
    Stack,
    TensorKind,
    Projection,
    TensorName,
    EmbedTokensName,
    EmbedPositionsName,
    SelfAttnName,
    OutProjName,
    parse_tensor_name,
    self_attn_names,
    check_shape,
)
from .container import TensorInfo, ContainerHeader, read_header, write_container
from .weights import QuantizedTensor, WeightStore

# Input pipeline
from .input_sequence import (
    Stage,
    RawText,
    Tokenized,
    Framed,
    Embedded,
    Positioned,
    InputSequence,
    prepare_input,
)

# Attention
from .attn_head import AttnHead, NeuralNet, Encoded, broadcast_bias, encode_layers

__all__ = [
    # Configuration and errors
    "BartConfig",
    "BART_LARGE_CNN",
    "BartEncoderError",
    "VocabularyFormatError",
    "InvalidTokenError",
    "ContainerFormatError",
    "TensorNotFoundError",
    "ShapeMismatchError",
    "SequenceTooLongError",
    "UnsupportedDtypeError",
    # Vocabulary and tokenization
    "Token",
    "Vocabulary",
    "WordPieceTokenizer",
    # Weight container
    "Stack",
    "TensorKind",
    "Projection",
    "TensorName",
    "EmbedTokensName",
    "EmbedPositionsName",
    "SelfAttnName",
    "OutProjName",
    "parse_tensor_name",
    "self_attn_names",
    "check_shape",
    "TensorInfo",
    "ContainerHeader",
    "read_header",
    "write_container",
    "QuantizedTensor",
    "WeightStore",
    # Input pipeline
    "Stage",
    "RawText",
    "Tokenized",
    "Framed",
    "Embedded",
    "Positioned",
    "InputSequence",
    "prepare_input",
    # Attention
    "AttnHead",
    "NeuralNet",
    "Encoded",
    "broadcast_bias",
    "encode_layers",
]
