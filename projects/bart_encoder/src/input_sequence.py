"""Input pipeline: raw text to positioned token embeddings.

Each stage is its own immutable class and only offers the transition to the
next stage, so operations cannot be applied out of order:

    RawText --tokenize--> Tokenized --frame--> Framed --embed--> Embedded
        --add_positions--> Positioned

Transitions return new objects; a stage is never modified in place.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Tuple, Union

import torch

from .config import BartConfig, BART_LARGE_CNN
from .errors import ShapeMismatchError
from .tensor_names import EmbedPositionsName, EmbedTokensName, Stack
from .tokenizer import WordPieceTokenizer
from .vocabulary import Token
from .weights import WeightStore

logger = logging.getLogger(__name__)


class Stage(Enum):
    RAW = "raw"
    TOKENIZED = "tokenized"
    FRAMED = "framed"
    EMBEDDED = "embedded"
    POSITIONED = "positioned"
    ENCODED = "encoded"


@dataclass(frozen=True)
class RawText:
    """Plain text; no processing applied yet."""

    text: str
    stage: ClassVar[Stage] = Stage.RAW

    def tokenize(self, tokenizer: WordPieceTokenizer) -> "Tokenized":
        tokens = tokenizer.tokenize(self.text)
        logger.info("Tokenization complete: %d tokens", len(tokens))
        return Tokenized(tuple(tokens), tokenizer)


@dataclass(frozen=True)
class Tokenized:
    """Subword tokens of the text, plus the tokenizer that produced them."""

    tokens: Tuple[Token, ...]
    tokenizer: WordPieceTokenizer = field(repr=False, compare=False)
    stage: ClassVar[Stage] = Stage.TOKENIZED

    def __len__(self) -> int:
        return len(self.tokens)

    def frame(self, max_seq_len: Optional[int] = None) -> "Framed":
        """Add <s>/</s> and pad to exactly ``max_seq_len`` tokens.

        Raises:
            SequenceTooLongError: the tokens do not fit
        """
        framed = self.tokenizer.frame_for_model(self.tokens, max_seq_len)
        logger.info(
            "Framing complete: %d content tokens, %d total", len(self.tokens), len(framed)
        )
        return Framed(tuple(framed))


@dataclass(frozen=True)
class Framed:
    """Fixed-length token sequence in the layout BART was trained on."""

    tokens: Tuple[Token, ...]
    stage: ClassVar[Stage] = Stage.FRAMED

    def __len__(self) -> int:
        return len(self.tokens)

    def token_ids(self, device: Union[str, torch.device] = "cpu") -> torch.Tensor:
        return torch.tensor([t.id for t in self.tokens], dtype=torch.long, device=device)

    def embed(self, token_embeddings: torch.Tensor) -> "Embedded":
        """Look up each token's row in the token embedding table.

        Args:
            token_embeddings: [vocab_size, hidden_dim]

        Returns:
            Embedded stage holding [seq_len, hidden_dim]

        Raises:
            ShapeMismatchError: the frame is empty or does not fit the table
        """
        if not self.tokens:
            raise ShapeMismatchError("Cannot embed an empty frame")
        if token_embeddings.dim() != 2:
            raise ShapeMismatchError(
                f"Token embedding table must be 2D, got shape {list(token_embeddings.shape)}"
            )
        max_id = max(t.id for t in self.tokens)
        if max_id >= token_embeddings.shape[0]:
            raise ShapeMismatchError(
                f"Token id {max_id} is outside the embedding table of "
                f"{token_embeddings.shape[0]} rows"
            )

        ids = self.token_ids(token_embeddings.device)
        embeddings = token_embeddings.index_select(0, ids)
        logger.debug("Assigned token embeddings %s", list(embeddings.shape))
        return Embedded(embeddings)


@dataclass(frozen=True, eq=False)
class Embedded:
    """Token embeddings, one row per framed position: [seq_len, hidden_dim]."""

    embeddings: torch.Tensor
    stage: ClassVar[Stage] = Stage.EMBEDDED

    def add_positions(self, position_embeddings: torch.Tensor, offset: int = 0) -> "Positioned":
        """Add position row ``offset + i`` to token row ``i``.

        Args:
            position_embeddings: [max_positions, hidden_dim]
            offset: First position row to use (HF BART uses 2)
        """
        seq_len, hidden_dim = self.embeddings.shape
        if position_embeddings.dim() != 2 or position_embeddings.shape[1] != hidden_dim:
            raise ShapeMismatchError(
                f"Position table {list(position_embeddings.shape)} does not match "
                f"hidden dimension {hidden_dim}"
            )
        if offset + seq_len > position_embeddings.shape[0]:
            raise ShapeMismatchError(
                f"Position table has {position_embeddings.shape[0]} rows; "
                f"{seq_len} positions from offset {offset} do not fit"
            )

        positions = position_embeddings[offset:offset + seq_len].to(
            device=self.embeddings.device, dtype=self.embeddings.dtype
        )
        return Positioned(self.embeddings + positions)


@dataclass(frozen=True, eq=False)
class Positioned:
    """Token plus position embeddings: [seq_len, hidden_dim]."""

    embeddings: torch.Tensor
    stage: ClassVar[Stage] = Stage.POSITIONED

    @property
    def shape(self) -> torch.Size:
        return self.embeddings.shape


InputSequence = Union[RawText, Tokenized, Framed, Embedded, Positioned]


def prepare_input(
    text: str,
    tokenizer: WordPieceTokenizer,
    store: WeightStore,
    device: Union[str, torch.device] = "cpu",
    config: BartConfig = BART_LARGE_CNN,
    dtype: torch.dtype = torch.float32,
) -> Positioned:
    """Run text through every stage using embedding tables from ``store``.

    Both tables are shape-checked against ``config`` before use.
    """
    stack = Stack(config.embedding_stack)
    token_embeddings = store.fetch_dequantized(EmbedTokensName(stack), device, dtype, config)
    position_embeddings = store.fetch_dequantized(EmbedPositionsName(stack), device, dtype, config)

    return (
        RawText(text)
        .tokenize(tokenizer)
        .frame(config.max_seq_len)
        .embed(token_embeddings)
        .add_positions(position_embeddings, config.position_offset)
    )
