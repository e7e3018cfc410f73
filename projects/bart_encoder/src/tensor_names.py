"""Structured names for the BART tensors stored in the weight container.

Each variant renders to the exact dotted string the container uses as its
lookup key, parses back from it, and knows the shape the architecture
expects for it.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from .config import BartConfig, BART_LARGE_CNN
from .errors import ShapeMismatchError

logger = logging.getLogger(__name__)


class Stack(Enum):
    ENCODER = "encoder"
    DECODER = "decoder"


class TensorKind(Enum):
    BIAS = "bias"
    WEIGHT = "weight"


class Projection(Enum):
    QUERY = "q_proj"
    KEY = "k_proj"
    VALUE = "v_proj"


class TensorName(ABC):
    """Base class for tensor name variants."""

    @abstractmethod
    def canonical(self) -> str:
        """Dotted name exactly as stored in the container."""

    @abstractmethod
    def expected_shape(self, config: BartConfig = BART_LARGE_CNN) -> Tuple[int, ...]:
        """Shape the architecture requires for this tensor."""

    def __str__(self) -> str:
        return self.canonical()


def _linear_shape(kind: TensorKind, config: BartConfig) -> Tuple[int, ...]:
    if kind is TensorKind.BIAS:
        return (config.hidden_dim,)
    return (config.hidden_dim, config.hidden_dim)


@dataclass(frozen=True)
class EmbedTokensName(TensorName):
    stack: Stack = Stack.DECODER

    def canonical(self) -> str:
        return f"model.{self.stack.value}.embed_tokens.weight"

    def expected_shape(self, config: BartConfig = BART_LARGE_CNN) -> Tuple[int, ...]:
        return (config.vocab_size, config.hidden_dim)


@dataclass(frozen=True)
class EmbedPositionsName(TensorName):
    stack: Stack = Stack.DECODER

    def canonical(self) -> str:
        return f"model.{self.stack.value}.embed_positions.weight"

    def expected_shape(self, config: BartConfig = BART_LARGE_CNN) -> Tuple[int, ...]:
        return (config.max_positions, config.hidden_dim)


@dataclass(frozen=True)
class SelfAttnName(TensorName):
    """Query/key/value projection of one layer's self-attention."""

    layer: int
    projection: Projection
    kind: TensorKind
    stack: Stack = Stack.ENCODER

    def canonical(self) -> str:
        return (
            f"model.{self.stack.value}.layers.{self.layer}"
            f".self_attn.{self.projection.value}.{self.kind.value}"
        )

    def expected_shape(self, config: BartConfig = BART_LARGE_CNN) -> Tuple[int, ...]:
        return _linear_shape(self.kind, config)


@dataclass(frozen=True)
class OutProjName(TensorName):
    """Output projection of one layer's self-attention."""

    layer: int
    kind: TensorKind
    stack: Stack = Stack.ENCODER

    def canonical(self) -> str:
        return f"model.{self.stack.value}.layers.{self.layer}.self_attn.out_proj.{self.kind.value}"

    def expected_shape(self, config: BartConfig = BART_LARGE_CNN) -> Tuple[int, ...]:
        return _linear_shape(self.kind, config)


_STACKS = "|".join(s.value for s in Stack)
_KINDS = "|".join(k.value for k in TensorKind)
_PROJECTIONS = "|".join(p.value for p in Projection)

_EMBED_RE = re.compile(rf"^model\.({_STACKS})\.(embed_tokens|embed_positions)\.weight$")
_SELF_ATTN_RE = re.compile(
    rf"^model\.({_STACKS})\.layers\.(\d+)\.self_attn\.({_PROJECTIONS})\.({_KINDS})$"
)
_OUT_PROJ_RE = re.compile(rf"^model\.({_STACKS})\.layers\.(\d+)\.self_attn\.out_proj\.({_KINDS})$")


def parse_tensor_name(name: str) -> TensorName:
    """Parse a canonical dotted string back into its structured name.

    Raises:
        ValueError: if the string is not one of the known tensor names
    """
    match = _EMBED_RE.match(name)
    if match:
        stack = Stack(match.group(1))
        if match.group(2) == "embed_tokens":
            return EmbedTokensName(stack)
        return EmbedPositionsName(stack)

    match = _SELF_ATTN_RE.match(name)
    if match:
        return SelfAttnName(
            layer=int(match.group(2)),
            projection=Projection(match.group(3)),
            kind=TensorKind(match.group(4)),
            stack=Stack(match.group(1)),
        )

    match = _OUT_PROJ_RE.match(name)
    if match:
        return OutProjName(
            layer=int(match.group(2)),
            kind=TensorKind(match.group(3)),
            stack=Stack(match.group(1)),
        )

    raise ValueError(f"Unrecognized tensor name: {name!r}")


def self_attn_names(layer: int, stack: Stack = Stack.ENCODER) -> List[SelfAttnName]:
    """The six q/k/v x bias/weight names of one layer, query first, bias before weight."""
    return [
        SelfAttnName(layer=layer, projection=projection, kind=kind, stack=stack)
        for projection in Projection
        for kind in (TensorKind.BIAS, TensorKind.WEIGHT)
    ]


def check_shape(
    name: TensorName, shape: Sequence[int], config: BartConfig = BART_LARGE_CNN
) -> None:
    """Fail unless ``shape`` is the architecture's expected shape for ``name``.

    Raises:
        ShapeMismatchError: the weight file does not match the assumed model
    """
    expected = name.expected_shape(config)
    actual = tuple(int(d) for d in shape)
    if actual != expected:
        raise ShapeMismatchError(
            f"Tensor {name} has shape {list(actual)}, expected {list(expected)}"
        )
    logger.debug("Validated shape of %s: %s", name, list(actual))
