"""GGUF weight container: directory parsing, tensor decoding and writing.

Parsing and writing go through the ``gguf`` package (llama.cpp's gguf-py).
Plain encodings are decoded by viewing the payload in torch, so they stay on
the payload's device; block-quantized encodings are decoded by
``gguf.quants`` on the CPU.

Shapes in this module are row-major (PyTorch order). GGUF stores dimensions
innermost first.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import gguf
import numpy as np
import torch
from gguf import GGML_QUANT_SIZES, GGMLQuantizationType

from .errors import ContainerFormatError, UnsupportedDtypeError

logger = logging.getLogger(__name__)

ARCHITECTURE = "bart"

# Payloads that are plain little-endian arrays
_PLAIN_DTYPES = {
    GGMLQuantizationType.F32: torch.float32,
    GGMLQuantizationType.F16: torch.float16,
    GGMLQuantizationType.BF16: torch.bfloat16,
    GGMLQuantizationType.F64: torch.float64,
    GGMLQuantizationType.I8: torch.int8,
    GGMLQuantizationType.I16: torch.int16,
    GGMLQuantizationType.I32: torch.int32,
    GGMLQuantizationType.I64: torch.int64,
}

DtypeSpec = Union[GGMLQuantizationType, Mapping[str, GGMLQuantizationType]]


@dataclass(frozen=True)
class TensorInfo:
    """Directory entry for one stored tensor."""

    name: str
    shape: Tuple[int, ...]
    dtype: GGMLQuantizationType
    offset: int  # absolute, in bytes from the start of the file
    size: int

    @property
    def n_elements(self) -> int:
        count = 1
        for dim in self.shape:
            count *= dim
        return count


@dataclass
class ContainerHeader:
    version: int
    metadata: Dict[str, Any]
    tensors: Dict[str, TensorInfo] = field(default_factory=dict)
    alignment: int = gguf.GGUF_DEFAULT_ALIGNMENT
    data_offset: int = 0


def block_size(ggml_type: GGMLQuantizationType) -> int:
    """Number of elements one encoded block holds (1 for plain types)."""
    return GGML_QUANT_SIZES[ggml_type][0]


def read_header(path: Union[str, Path]) -> ContainerHeader:
    """Parse the header, metadata and tensor directory of a GGUF file.

    Raises:
        FileNotFoundError: ``path`` does not exist
        ContainerFormatError: bad magic, unsupported version, unknown tensor
            type, duplicate tensor name or a truncated file
    """
    try:
        reader = gguf.GGUFReader(path, "r")
    except (ValueError, IndexError, KeyError) as e:
        raise ContainerFormatError(f"Malformed GGUF container {path}: {e}") from e

    metadata = {
        name: reader_field.contents()
        for name, reader_field in reader.fields.items()
        if not name.startswith("GGUF.")
    }
    header = ContainerHeader(
        version=int(reader.fields["GGUF.version"].contents()),
        metadata=metadata,
        alignment=int(reader.alignment),
        data_offset=int(reader.data_offset),
    )

    for tensor in reader.tensors:
        if tensor.name in header.tensors:
            raise ContainerFormatError(f"Duplicate tensor name {tensor.name!r} in {path}")
        header.tensors[tensor.name] = TensorInfo(
            name=tensor.name,
            shape=tuple(int(d) for d in reversed(tensor.shape.tolist())),
            dtype=GGMLQuantizationType(tensor.tensor_type),
            offset=int(tensor.data_offset),
            size=int(tensor.n_bytes),
        )
    return header


# =============================================================================
# Encodings
# =============================================================================

def dequantize(
    data: torch.Tensor, ggml_type: GGMLQuantizationType, shape: Tuple[int, ...]
) -> torch.Tensor:
    """Decode a uint8 payload into a tensor of ``shape``.

    Plain types keep their stored dtype and device. Block-quantized types
    decode to float32 and are moved back onto the payload's device.

    Raises:
        UnsupportedDtypeError: ``gguf.quants`` has no decoder for the type
    """
    shape = tuple(shape)
    if ggml_type in _PLAIN_DTYPES:
        return data.view(_PLAIN_DTYPES[ggml_type]).reshape(shape).clone()

    raw = data.detach().to("cpu").numpy()
    try:
        values = gguf.quants.dequantize(raw, ggml_type)
    except NotImplementedError as e:
        raise UnsupportedDtypeError(f"No dequantizer for {ggml_type.name} tensors") from e
    decoded = torch.from_numpy(np.ascontiguousarray(values, dtype=np.float32))
    return decoded.reshape(shape).to(data.device)


def quantize(tensor: torch.Tensor, ggml_type: GGMLQuantizationType) -> np.ndarray:
    """Encode a tensor into the array ``gguf.GGUFWriter.add_tensor`` expects.

    Plain numpy types come back in that dtype; everything else comes back as
    uint8 rows from ``gguf.quants.quantize``.

    Raises:
        ValueError: the last dimension is not a whole number of blocks
        UnsupportedDtypeError: ``gguf.quants`` has no encoder for the type
    """
    values = tensor.detach().to("cpu").contiguous()
    if ggml_type in _PLAIN_DTYPES and ggml_type != GGMLQuantizationType.BF16:
        return values.to(_PLAIN_DTYPES[ggml_type]).numpy()

    size = block_size(ggml_type)
    if values.dim() == 0 or values.shape[-1] % size != 0:
        raise ValueError(
            f"{ggml_type.name} encodes rows in blocks of {size}; "
            f"got shape {tuple(values.shape)}"
        )
    try:
        return gguf.quants.quantize(values.to(torch.float32).numpy(), ggml_type)
    except NotImplementedError as e:
        raise UnsupportedDtypeError(f"No quantizer for {ggml_type.name} tensors") from e


def _storage_type(tensor: torch.Tensor, requested: GGMLQuantizationType) -> GGMLQuantizationType:
    # Biases and rows that are not a whole number of blocks stay F32
    size = block_size(requested)
    if size > 1 and (tensor.dim() < 2 or tensor.shape[-1] % size != 0):
        return GGMLQuantizationType.F32
    return requested


# =============================================================================
# Writing
# =============================================================================

def _add_metadata(writer: gguf.GGUFWriter, key: str, value: Any) -> None:
    if isinstance(value, bool):
        writer.add_bool(key, value)
    elif isinstance(value, int):
        if 0 <= value < 2**32:
            writer.add_uint32(key, value)
        else:
            writer.add_int64(key, value)
    elif isinstance(value, float):
        writer.add_float32(key, value)
    elif isinstance(value, str):
        writer.add_string(key, value)
    elif isinstance(value, (list, tuple)):
        writer.add_array(key, list(value))
    else:
        raise TypeError(f"Cannot store metadata {key!r} of type {type(value).__name__}")


def write_container(
    path: Union[str, Path],
    tensors: Mapping[str, torch.Tensor],
    dtype: DtypeSpec = GGMLQuantizationType.F32,
    metadata: Optional[Mapping[str, Any]] = None,
    alignment: int = gguf.GGUF_DEFAULT_ALIGNMENT,
) -> List[TensorInfo]:
    """Write ``tensors`` into a GGUF v3 file with ``gguf.GGUFWriter``.

    Args:
        path: Output file, parent directories are created
        tensors: Name -> tensor, written in iteration order
        dtype: Storage type for every tensor, or a per-name mapping
            (missing names default to F32). Block types fall back to F32 for
            1D tensors and rows that are not a whole number of blocks.
        metadata: Extra key/values; ``general.architecture`` defaults to "bart"
        alignment: Payload alignment in bytes

    Returns:
        The directory as read back from the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    metadata = dict(metadata or {})
    arch = str(metadata.pop("general.architecture", ARCHITECTURE))

    writer = gguf.GGUFWriter(str(path), arch)
    if alignment != gguf.GGUF_DEFAULT_ALIGNMENT:
        writer.add_custom_alignment(alignment)
    for key, value in metadata.items():
        _add_metadata(writer, key, value)

    for name, tensor in tensors.items():
        if isinstance(dtype, Mapping):
            requested = dtype.get(name, GGMLQuantizationType.F32)
        else:
            requested = dtype
        storage = _storage_type(tensor, requested)
        writer.add_tensor(name, quantize(tensor, storage), raw_dtype=storage)

    writer.write_header_to_file()
    writer.write_kv_data_to_file()
    writer.write_tensors_to_file()
    writer.close()

    written = list(read_header(path).tensors.values())
    logger.info("Wrote %d tensors to %s", len(written), path)
    return written
