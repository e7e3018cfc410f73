"""Shared pytest fixtures for bart_encoder tests."""

import json
from pathlib import Path
from typing import Dict

import pytest
import torch

import sys
# Add project root to path for imports
project_root = Path(__file__).parent.parent.parent.parent
sys.path.insert(0, str(project_root))

from projects.bart_encoder.src.config import BartConfig
from projects.bart_encoder.src.container import write_container
from projects.bart_encoder.src.tensor_names import (
    EmbedPositionsName,
    EmbedTokensName,
    OutProjName,
    Stack,
    TensorKind,
    self_attn_names,
)
from projects.bart_encoder.src.tokenizer import WordPieceTokenizer
from projects.bart_encoder.src.vocabulary import Vocabulary
from projects.bart_encoder.src.weights import WeightStore


# ============================================================================
# Device Fixtures
# ============================================================================

@pytest.fixture
def device() -> torch.device:
    """Get CPU device for testing (consistent across platforms)."""
    return torch.device("cpu")


@pytest.fixture
def cuda_device() -> torch.device:
    """Get CUDA device if available, skip test otherwise."""
    if not torch.cuda.is_available():
        pytest.skip("CUDA not available")
    return torch.device("cuda")


# ============================================================================
# Seed Fixture
# ============================================================================

@pytest.fixture(autouse=True)
def set_seed():
    """Set random seed for reproducibility in all tests."""
    torch.manual_seed(42)
    yield


# ============================================================================
# Config Fixtures - Tiny Model for Fast Testing
# ============================================================================

TINY_TOKENS = [
    "<s>", "<pad>", "</s>", "<unk>",  # 0-3
    "Hello", "Ġworld", "Ġ", "w",  # 4-7
    "o", "r", "l", "d",  # 8-11
    "H", "e", "ll", "Ġwor",  # 12-15
    "the", "Ġthe", "ing", "Ġtest",  # 16-19
    ",", ".", "a", "Ġa",  # 20-23
]


@pytest.fixture
def tiny_config() -> BartConfig:
    """Tiny architecture: 24 tokens, hidden 8, frames of 12, two layers."""
    return BartConfig(
        vocab_size=len(TINY_TOKENS),
        hidden_dim=8,
        max_positions=14,
        max_seq_len=12,
        encoder_layers=2,
        compute_dtype="float32",
    )


# ============================================================================
# Vocabulary Fixtures
# ============================================================================

@pytest.fixture
def tiny_vocab_path(tmp_path) -> Path:
    """HuggingFace-style vocab.json ({token: id}) for the tiny vocabulary."""
    path = tmp_path / "vocab.json"
    path.write_text(
        json.dumps({token: i for i, token in enumerate(TINY_TOKENS)}, ensure_ascii=False),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def tiny_vocab(tiny_vocab_path) -> Vocabulary:
    return Vocabulary.load(tiny_vocab_path, special_tokens=["<s>", "</s>", "<pad>", "<unk>"])


@pytest.fixture
def tokenizer(tiny_vocab, tiny_config) -> WordPieceTokenizer:
    return WordPieceTokenizer(tiny_vocab, tiny_config)


# ============================================================================
# Weight Container Fixtures
# ============================================================================

def make_tiny_weights(config: BartConfig) -> Dict[str, torch.Tensor]:
    """Random weights under canonical names for every tensor the pipeline reads."""
    d = config.hidden_dim
    tensors = {
        str(EmbedTokensName(Stack.DECODER)): torch.randn(config.vocab_size, d),
        str(EmbedPositionsName(Stack.DECODER)): torch.randn(config.max_positions, d),
    }
    for layer in range(config.encoder_layers):
        for name in self_attn_names(layer):
            shape = name.expected_shape(config)
            tensors[str(name)] = torch.randn(*shape)
    tensors[str(OutProjName(0, TensorKind.WEIGHT))] = torch.randn(d, d)
    tensors[str(OutProjName(0, TensorKind.BIAS))] = torch.randn(d)
    return tensors


@pytest.fixture
def tiny_weights(tiny_config) -> Dict[str, torch.Tensor]:
    return make_tiny_weights(tiny_config)


@pytest.fixture
def tiny_gguf(tmp_path, tiny_weights) -> Path:
    """GGUF file holding ``tiny_weights`` as F32."""
    path = tmp_path / "tiny_f32.gguf"
    write_container(
        path,
        tiny_weights,
        metadata={"general.architecture": "bart", "general.name": "tiny-bart"},
    )
    return path


@pytest.fixture
def store(tiny_gguf):
    """Open WeightStore over the tiny container, closed after the test."""
    with WeightStore.open(tiny_gguf) as opened:
        yield opened
