"""Weight store: named, quantized tensors read on demand from a GGUF container."""

import logging
import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union

import numpy as np
import torch
from gguf import GGMLQuantizationType

from common.utils.tensors import to_precision

from .config import BartConfig, BART_LARGE_CNN
from .errors import ContainerFormatError, TensorNotFoundError
from .container import ContainerHeader, TensorInfo, dequantize, quantize, read_header
from .tensor_names import TensorName, check_shape

logger = logging.getLogger(__name__)

NameLike = Union[str, TensorName]


@dataclass(frozen=True, eq=False)
class QuantizedTensor:
    """A tensor still in its stored encoding, resident on a device.

    ``data`` holds the raw payload bytes as a uint8 tensor. Dequantizing
    never modifies it, so it can be repeated any number of times.
    """

    name: str
    dtype: GGMLQuantizationType
    shape: Tuple[int, ...]
    data: torch.Tensor = field(repr=False)

    @property
    def device(self) -> torch.device:
        return self.data.device

    @property
    def nbytes(self) -> int:
        return self.data.numel()

    @property
    def n_elements(self) -> int:
        return math.prod(self.shape)

    def dequantize(
        self,
        device: Optional[Union[str, torch.device]] = None,
        dtype: torch.dtype = torch.float32,
    ) -> torch.Tensor:
        """Decode to a ``dtype`` tensor of ``self.shape`` on ``device``.

        Values outside the target float range are clamped rather than
        becoming inf.
        """
        device = self.device if device is None else torch.device(device)
        values = dequantize(self.data, self.dtype, self.shape)
        return to_precision(values, dtype).to(device)

    def dequantize_f16(self, device: Optional[Union[str, torch.device]] = None) -> torch.Tensor:
        return self.dequantize(device, torch.float16)

    @classmethod
    def from_tensor(
        cls,
        name: str,
        tensor: torch.Tensor,
        dtype: GGMLQuantizationType = GGMLQuantizationType.F32,
        device: Optional[Union[str, torch.device]] = None,
    ) -> "QuantizedTensor":
        """Encode an in-memory tensor, e.g. for tests or ad hoc weights."""
        payload = quantize(tensor, dtype)
        data = torch.from_numpy(np.ascontiguousarray(payload).reshape(-1).view(np.uint8).copy())
        device = tensor.device if device is None else torch.device(device)
        return cls(
            name=name,
            dtype=dtype,
            shape=tuple(int(d) for d in tensor.shape),
            data=data.to(device),
        )


class WeightStore:
    """Read-only view of a weight container.

    Opening parses the directory with ``gguf.GGUFReader``; payload bytes are
    read per fetch. One file handle is held for the store's lifetime and
    seek+read pairs are serialized, so fetches from several threads are safe.

    Example:
        with WeightStore.open("bart-large-cnn/bart-large-cnn_f16.gguf") as store:
            q = store.fetch(SelfAttnName(0, Projection.QUERY, TensorKind.WEIGHT), device)
            weight = q.dequantize(device, torch.float16)
    """

    def __init__(self, path: Path, header: ContainerHeader, handle: BinaryIO):
        self.path = path
        self.header = header
        self._handle = handle
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: Union[str, Path]) -> "WeightStore":
        """Open a container and parse its directory.

        Raises:
            FileNotFoundError / OSError: file missing or unreadable
            ContainerFormatError: malformed header
        """
        path = Path(path)
        header = read_header(path)
        handle = open(path, "rb")
        logger.info(
            "Opened %s: GGUF v%d, %d tensors, %d metadata keys",
            path, header.version, len(header.tensors), len(header.metadata),
        )
        return cls(path, header, handle)

    def close(self) -> None:
        self._handle.close()

    def __enter__(self) -> "WeightStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # === Directory ===
    @property
    def version(self) -> int:
        return self.header.version

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.header.metadata

    def __len__(self) -> int:
        return len(self.header.tensors)

    def __contains__(self, name: NameLike) -> bool:
        return str(name) in self.header.tensors

    def tensor_names(self) -> List[str]:
        return sorted(self.header.tensors)

    def info(self, name: NameLike) -> TensorInfo:
        try:
            return self.header.tensors[str(name)]
        except KeyError:
            raise TensorNotFoundError(str(name)) from None

    def describe(self) -> Dict[str, Any]:
        """Summary of the container, for inspection scripts and logs."""
        tensors = self.header.tensors.values()
        return {
            "path": str(self.path),
            "version": self.version,
            "model_family": self.metadata.get("general.architecture", "unknown"),
            "file_type": self.metadata.get("general.file_type"),
            "num_tensors": len(self),
            "num_kv": len(self.metadata),
            "num_parameters": sum(info.n_elements for info in tensors),
            "dtypes": sorted({info.dtype.name for info in tensors}),
        }

    # === Fetching ===
    def fetch(self, name: NameLike, device: Union[str, torch.device] = "cpu") -> QuantizedTensor:
        """Read one tensor's payload onto ``device`` without dequantizing it.

        Raises:
            TensorNotFoundError: ``name`` is not in the directory
            ContainerFormatError: the payload is truncated
        """
        info = self.info(name)
        with self._lock:
            self._handle.seek(info.offset)
            raw = self._handle.read(info.size)
        if len(raw) != info.size:
            raise ContainerFormatError(
                f"Tensor {info.name} is truncated: expected {info.size} bytes at "
                f"offset {info.offset}, read {len(raw)}"
            )

        if raw:
            data = torch.frombuffer(bytearray(raw), dtype=torch.uint8)
        else:
            data = torch.empty(0, dtype=torch.uint8)
        tensor = QuantizedTensor(
            name=info.name,
            dtype=info.dtype,
            shape=info.shape,
            data=data.to(torch.device(device)),
        )
        logger.debug(
            "Fetched %s (%s, shape %s, %d bytes)",
            info.name, info.dtype.name, list(info.shape), info.size,
        )
        return tensor

    def fetch_dequantized(
        self,
        name: TensorName,
        device: Union[str, torch.device] = "cpu",
        dtype: torch.dtype = torch.float32,
        config: BartConfig = BART_LARGE_CNN,
    ) -> torch.Tensor:
        """Fetch, validate against the architecture, and dequantize.

        Raises:
            TensorNotFoundError: ``name`` is not in the directory
            ShapeMismatchError: stored or decoded shape differs from
                ``name.expected_shape(config)``
        """
        quantized = self.fetch(name, device)
        check_shape(name, quantized.shape, config)
        tensor = quantized.dequantize(device, dtype)
        check_shape(name, tensor.shape, config)
        return tensor
