"""Small tensor helpers shared by the layer-by-layer validation projects."""

from typing import List, Sequence

import torch


def to_precision(tensor: torch.Tensor, dtype: torch.dtype) -> torch.Tensor:
    """Convert a floating tensor to ``dtype``, clamping to its finite range.

    Narrowing float32 -> float16 would otherwise turn values beyond +-65504
    into inf. Non-floating targets are converted as-is.
    """
    if tensor.dtype == dtype:
        return tensor
    if dtype.is_floating_point and tensor.is_floating_point():
        info = torch.finfo(dtype)
        if torch.finfo(tensor.dtype).max > info.max:
            tensor = tensor.clamp(min=info.min, max=info.max)
    return tensor.to(dtype)


def zero_rows(tensor: torch.Tensor) -> List[int]:
    """Indices of the rows of a 2D tensor that are entirely zero.

    A zero row in an embedding table usually means the tensor was misread.
    """
    if tensor.dim() != 2:
        raise ValueError(f"Expected a 2D tensor, got shape {tuple(tensor.shape)}")
    mask = ~torch.any(tensor != 0, dim=1)
    return torch.nonzero(mask, as_tuple=False).flatten().tolist()


def format_rows(tensor: torch.Tensor, max_cols: int = 5) -> List[str]:
    """Render a 1D or 2D tensor as printable rows, truncated to ``max_cols``."""
    if tensor.dim() == 1:
        rows: Sequence[torch.Tensor] = [tensor]
    elif tensor.dim() == 2:
        rows = list(tensor)
    else:
        raise ValueError(f"Got a tensor with unexpected number of dimensions {tensor.dim()}")

    lines = []
    for row in rows:
        values = row[:max_cols].to(torch.float32).tolist()
        text = " ".join(f"{v:.4f}" for v in values)
        if row.numel() > max_cols:
            text += " ..."
        lines.append(text)
    return lines
