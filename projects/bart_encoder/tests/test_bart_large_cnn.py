"""End-to-end tests against the real bart-large-cnn assets.

Skipped unless the vocabulary and f16 container are present. Point
BART_ENCODER_ASSETS at the directory holding them (default: bart-large-cnn/).
"""

import os
from pathlib import Path

import pytest
import torch

from common.utils.tensors import zero_rows
from projects.bart_encoder.src.attn_head import encode_layers
from projects.bart_encoder.src.config import BART_LARGE_CNN
from projects.bart_encoder.src.input_sequence import prepare_input
from projects.bart_encoder.src.tensor_names import (
    EmbedPositionsName,
    EmbedTokensName,
    self_attn_names,
)
from projects.bart_encoder.src.tokenizer import WordPieceTokenizer
from projects.bart_encoder.src.weights import WeightStore

ASSETS = Path(os.environ.get("BART_ENCODER_ASSETS", "bart-large-cnn"))
VOCAB_PATH = ASSETS / "vocab.json"
WEIGHTS_PATH = ASSETS / "bart-large-cnn_f16.gguf"

pytestmark = pytest.mark.skipif(
    not (VOCAB_PATH.exists() and WEIGHTS_PATH.exists()),
    reason=f"bart-large-cnn assets not found under {ASSETS}",
)

TEXT = (
    "The dominant sequence transduction models are based on complex recurrent "
    "or convolutional neural networks in an encoder-decoder configuration."
)


@pytest.fixture(scope="module")
def real_store():
    with WeightStore.open(WEIGHTS_PATH) as opened:
        yield opened


@pytest.fixture(scope="module")
def real_tokenizer():
    return WordPieceTokenizer.from_file(VOCAB_PATH, BART_LARGE_CNN)


class TestShapeContract:
    """Every tensor the pipeline reads has the bart-large-cnn shape."""

    def test_embeddings(self, real_store):
        assert real_store.fetch(EmbedTokensName()).shape == (50264, 1024)
        assert real_store.fetch(EmbedPositionsName()).shape == (1026, 1024)

    def test_every_layer(self, real_store):
        for layer in range(BART_LARGE_CNN.encoder_layers):
            for name in self_attn_names(layer):
                assert real_store.fetch(name).shape == name.expected_shape()


class TestEmbeddingTable:
    def test_no_zero_rows(self, real_store):
        """Test no token's embedding is the all-zero vector."""
        table = real_store.fetch_dequantized(EmbedTokensName(), dtype=torch.float16)
        assert zero_rows(table) == []


class TestEndToEnd:
    def test_encode_every_layer(self, real_store, real_tokenizer):
        positioned = prepare_input(TEXT, real_tokenizer, real_store, "cpu", BART_LARGE_CNN)
        results = encode_layers(positioned, real_store, "cpu", BART_LARGE_CNN)

        assert sorted(results) == list(range(12))
        for encoded in results.values():
            for tensor in encoded.as_tuple():
                assert tensor.shape == (1024, 1024)
                assert tensor.dtype == torch.float16
