"""Per-layer query/key/value projections over quantized weights."""

import logging
from dataclasses import dataclass
from typing import ClassVar, Dict, Iterable, Optional, Sequence, Tuple, Union

import torch
from tqdm import tqdm

from common.utils.tensors import to_precision

from .config import BartConfig, BART_LARGE_CNN
from .errors import ShapeMismatchError
from .input_sequence import Positioned, Stage
from .tensor_names import Projection, SelfAttnName, TensorKind, check_shape, self_attn_names
from .weights import QuantizedTensor, WeightStore

logger = logging.getLogger(__name__)

Device = Union[str, torch.device]


def broadcast_bias(
    target_shape: Sequence[int],
    bias: QuantizedTensor,
    device: Device,
    dtype: torch.dtype = torch.float16,
) -> torch.Tensor:
    """Repeat a 1D bias across every row of ``target_shape``.

    The bias is dequantized, reshaped to a [1, hidden] row and expanded
    (stride 0, no copy) so it can be added elementwise to a matmul result.

    Raises:
        ShapeMismatchError: bias is not 1D or its length differs from the
            trailing dimension of ``target_shape``
    """
    target_shape = tuple(int(d) for d in target_shape)
    if len(bias.shape) != 1:
        raise ShapeMismatchError(f"Bias {bias.name} must be 1D, got shape {list(bias.shape)}")
    if not target_shape or bias.shape[0] != target_shape[-1]:
        raise ShapeMismatchError(
            f"Bias {bias.name} of length {bias.shape[0]} cannot broadcast to {list(target_shape)}"
        )

    logger.debug("Reshaping bias %s to be 2D", list(bias.shape))
    bias_2d = bias.dequantize(device, dtype).unsqueeze(0)
    return bias_2d.expand(target_shape)


@dataclass(frozen=True, eq=False)
class NeuralNet:
    """Weight and bias of one linear projection, still quantized."""

    bias: QuantizedTensor
    weight: QuantizedTensor


@dataclass(frozen=True, eq=False)
class Encoded:
    """Query, key and value projections of one layer: each [seq_len, hidden_dim]."""

    q: torch.Tensor
    k: torch.Tensor
    v: torch.Tensor
    stage: ClassVar[Stage] = Stage.ENCODED

    def as_tuple(self) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        return self.q, self.k, self.v


class AttnHead:
    """Self-attention q/k/v projections of one encoder layer.

    Holds the six quantized tensors of the layer; they are only dequantized
    inside ``encode``.

    Args:
        layer: Encoder layer index
        nets: Projection -> weight/bias record
        config: Architecture used for shape checks and precision
    """

    def __init__(
        self,
        layer: int,
        nets: Dict[Projection, NeuralNet],
        config: BartConfig = BART_LARGE_CNN,
    ):
        self.layer = layer
        self.nets = nets
        self.config = config

    @property
    def q(self) -> NeuralNet:
        return self.nets[Projection.QUERY]

    @property
    def k(self) -> NeuralNet:
        return self.nets[Projection.KEY]

    @property
    def v(self) -> NeuralNet:
        return self.nets[Projection.VALUE]

    @classmethod
    def from_store(
        cls,
        layer: int,
        store: WeightStore,
        device: Device = "cpu",
        config: BartConfig = BART_LARGE_CNN,
    ) -> "AttnHead":
        """Fetch the layer's q/k/v weights and biases.

        Raises:
            TensorNotFoundError: any of the six tensors is missing
            ShapeMismatchError: a stored shape differs from the architecture
        """
        fetched: Dict[Tuple[Projection, TensorKind], QuantizedTensor] = {}
        for name in self_attn_names(layer):
            tensor = store.fetch(name, device)
            check_shape(name, tensor.shape, config)
            fetched[(name.projection, name.kind)] = tensor

        nets = {
            projection: NeuralNet(
                bias=fetched[(projection, TensorKind.BIAS)],
                weight=fetched[(projection, TensorKind.WEIGHT)],
            )
            for projection in Projection
        }
        logger.debug("Loaded attention tensors for layer %d", layer)
        return cls(layer, nets, config)

    def _project(
        self,
        inputs: torch.Tensor,
        projection: Projection,
        device: Device,
        dtype: torch.dtype,
    ) -> torch.Tensor:
        net = self.nets[projection]
        weight = net.weight.dequantize(device, dtype)
        check_shape(SelfAttnName(self.layer, projection, TensorKind.WEIGHT), weight.shape, self.config)
        if self.config.transpose_weights:
            # [out, in] storage; inputs @ W.T matches nn.functional.linear
            weight = weight.transpose(0, 1)

        logger.debug(
            "Multiplying input embeds %s with %s weights %s",
            list(inputs.shape), projection.value, list(weight.shape),
        )
        product = inputs.matmul(weight)
        bias = broadcast_bias(product.shape, net.bias, device, dtype)
        return product + bias

    def encode(
        self,
        input_seq: Positioned,
        device: Device = "cpu",
        dtype: Optional[torch.dtype] = None,
    ) -> Encoded:
        """Project positioned embeddings into queries, keys and values.

        Args:
            input_seq: Positioned embeddings [seq_len, hidden_dim]
            device: Where to compute
            dtype: Compute precision (defaults to ``config.compute_dtype``)

        Returns:
            Encoded q, k, v, each [seq_len, hidden_dim]
        """
        dtype = self.config.torch_dtype if dtype is None else dtype
        inputs = to_precision(input_seq.embeddings, dtype).to(device)

        q, k, v = (self._project(inputs, projection, device, dtype) for projection in Projection)
        logger.info("Encoded layer %d: q/k/v %s", self.layer, list(q.shape))
        return Encoded(q, k, v)


def encode_layers(
    input_seq: Positioned,
    store: WeightStore,
    device: Device = "cpu",
    config: BartConfig = BART_LARGE_CNN,
    layers: Optional[Iterable[int]] = None,
    dtype: Optional[torch.dtype] = None,
    progress: bool = False,
) -> Dict[int, Encoded]:
    """Encode the same input with every requested layer's attention head.

    Layers are independent: each only reads its own weights.
    """
    layers = range(config.encoder_layers) if layers is None else list(layers)
    results = {}
    for layer in tqdm(layers, desc="Encoding layers", disable=not progress):
        head = AttnHead.from_store(layer, store, device, config)
        results[layer] = head.encode(input_seq, device, dtype)
    return results
