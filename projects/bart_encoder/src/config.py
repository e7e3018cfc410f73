"""Model configuration for the BART encoder pipeline."""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Union

import torch
import yaml


_DTYPES = {
    "float16": torch.float16,
    "bfloat16": torch.bfloat16,
    "float32": torch.float32,
    "float64": torch.float64,
}


@dataclass
class BartConfig:
    """Architecture and pipeline settings.

    Defaults describe facebook/bart-large-cnn as exported to GGUF.
    """

    # Architecture
    vocab_size: int = 50264
    hidden_dim: int = 1024
    max_positions: int = 1026
    max_seq_len: int = 1024
    encoder_layers: int = 12

    # Pipeline
    position_offset: int = 0  # HF BART looks positions up at index + 2
    compute_dtype: str = "float16"
    transpose_weights: bool = False  # true: multiply by W.T, as nn.Linear does
    embedding_stack: str = "decoder"  # stack whose embed_* tensors we read

    # Vocabulary conventions
    bos_token: str = "<s>"
    eos_token: str = "</s>"
    pad_token: str = "<pad>"
    unk_token: str = "<unk>"
    word_boundary: str = "Ġ"  # marks a preceding space

    def __post_init__(self):
        """Convert string values to proper types (handles YAML quirks)."""
        int_fields = ['vocab_size', 'hidden_dim', 'max_positions', 'max_seq_len',
                      'encoder_layers', 'position_offset']
        for field in int_fields:
            val = getattr(self, field)
            if isinstance(val, str):
                setattr(self, field, int(val))
        if isinstance(self.transpose_weights, str):
            self.transpose_weights = self.transpose_weights.lower() in ("1", "true", "yes")

        if self.compute_dtype not in _DTYPES:
            raise ValueError(
                f"Unknown compute_dtype '{self.compute_dtype}'. "
                f"Expected one of {sorted(_DTYPES)}"
            )
        if self.embedding_stack not in ("encoder", "decoder"):
            raise ValueError(f"embedding_stack must be 'encoder' or 'decoder', got '{self.embedding_stack}'")
        if self.max_seq_len < 2:
            raise ValueError("max_seq_len must leave room for the start and end tokens")
        if self.position_offset < 0:
            raise ValueError("position_offset must be non-negative")
        if self.position_offset + self.max_seq_len > self.max_positions:
            raise ValueError(
                f"Position table has {self.max_positions} rows, but offset "
                f"{self.position_offset} + max_seq_len {self.max_seq_len} needs more"
            )

    @property
    def torch_dtype(self) -> torch.dtype:
        return _DTYPES[self.compute_dtype]

    @property
    def special_tokens(self) -> dict:
        return {
            "bos": self.bos_token,
            "eos": self.eos_token,
            "pad": self.pad_token,
            "unk": self.unk_token,
        }

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: dict) -> "BartConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "BartConfig":
        """Load configuration from a YAML file.

        The file may hold the settings at the top level or under a ``model`` key.
        """
        with open(path) as f:
            values = yaml.safe_load(f) or {}
        if "model" in values and isinstance(values["model"], dict):
            values = values["model"]
        return cls.from_dict(values)


BART_LARGE_CNN = BartConfig()
