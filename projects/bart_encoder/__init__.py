"""BART Encoder: layer-by-layer validation of a from-scratch attention input pipeline.

Loads quantized BART weights from a GGUF container, tokenizes text with a
greedy longest-match subword vocabulary, builds positioned token embeddings
and computes each encoder layer's query/key/value projections, so every
stage can be compared against a reference transformer.

Key components:
- Vocabulary/Token: id <-> subword mapping and validated token references
- WordPieceTokenizer: greedy longest-match tokenization and BART framing
- TensorName variants: canonical container names and expected shapes
- WeightStore/QuantizedTensor: lazy tensor reads and dequantization
- RawText -> Tokenized -> Framed -> Embedded -> Positioned: input stages
- AttnHead/Encoded: per-layer q/k/v projections with broadcast biases

Example usage:
    import torch
    from projects.bart_encoder import (
        BartConfig, WeightStore, WordPieceTokenizer, AttnHead, prepare_input,
    )

    config = BartConfig.from_yaml("projects/bart_encoder/configs/bart_large_cnn.yaml")
    device = torch.device("cpu")
    tokenizer = WordPieceTokenizer.from_file("bart-large-cnn/vocab.json", config)

    with WeightStore.open("bart-large-cnn/bart-large-cnn_f16.gguf") as store:
        positioned = prepare_input("The dominant sequence transduction models",
                                   tokenizer, store, device, config)
        encoded = AttnHead.from_store(0, store, device, config).encode(positioned, device)
"""

# Re-export everything from src
from .src import (
    # Configuration and errors
    BartConfig,
    BART_LARGE_CNN,
    BartEncoderError,
    VocabularyFormatError,
    InvalidTokenError,
    ContainerFormatError,
    TensorNotFoundError,
    ShapeMismatchError,
    SequenceTooLongError,
    UnsupportedDtypeError,
    # Vocabulary and tokenization
    Token,
    Vocabulary,
    WordPieceTokenizer,
    # Weight container
    Stack,
    TensorKind,
    Projection,
    TensorName,
    EmbedTokensName,
    EmbedPositionsName,
    SelfAttnName,
    OutProjName,
    parse_tensor_name,
    QuantizedTensor,
    WeightStore,
    # Input pipeline
    Stage,
    RawText,
    Tokenized,
    Framed,
    Embedded,
    Positioned,
    prepare_input,
    # Attention
    AttnHead,
    NeuralNet,
    Encoded,
    broadcast_bias,
    encode_layers,
)

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
    "QuantizedTensor",
    "WeightStore",
    # Input pipeline
    "Stage",
    "RawText",
    "Tokenized",
    "Framed",
    "Embedded",
    "Positioned",
    "prepare_input",
    # Attention
    "AttnHead",
    "NeuralNet",
    "Encoded",
    "broadcast_bias",
    "encode_layers",
]

__version__ = "0.1.0"
