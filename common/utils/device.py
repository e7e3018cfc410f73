"""Compute device selection."""

from typing import Optional, Union

import torch


def resolve_device(preferred: Optional[Union[str, torch.device]] = None) -> torch.device:
    """Resolve the device tensors should live on.

    An explicit choice always wins. Otherwise prefer CUDA, then Apple MPS,
    then CPU.

    Args:
        preferred: Device string ("cpu", "cuda", "cuda:1", "mps") or device.
            None or "auto" picks the best available device.

    Returns:
        torch.device
    """
    if isinstance(preferred, torch.device):
        return preferred
    if preferred and preferred != "auto":
        return torch.device(preferred)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")
