"""Parity tests against a randomly initialized HuggingFace BartModel.

A tiny BART is exported into a GGUF container and run through this
pipeline; embeddings and q/k/v projections must match HuggingFace's own
modules.
"""

import pytest
import torch
from gguf import GGMLQuantizationType

transformers = pytest.importorskip("transformers")

from projects.bart_encoder.src.attn_head import AttnHead
from projects.bart_encoder.src.input_sequence import RawText, prepare_input
from projects.bart_encoder.src.reference import (
    HF_POSITION_OFFSET,
    canonical_state_dict,
    config_from_reference,
    export_container,
    max_abs_diff,
    reference_embeddings,
    reference_projections,
)
from projects.bart_encoder.src.tensor_names import parse_tensor_name
from projects.bart_encoder.src.tokenizer import WordPieceTokenizer
from projects.bart_encoder.src.vocabulary import Vocabulary
from projects.bart_encoder.src.weights import WeightStore


@pytest.fixture
def hf_model():
    """Tiny BART matching the 24-token test vocabulary."""
    config = transformers.BartConfig(
        vocab_size=24,
        d_model=32,
        encoder_layers=2,
        decoder_layers=1,
        encoder_attention_heads=2,
        decoder_attention_heads=2,
        encoder_ffn_dim=32,
        decoder_ffn_dim=32,
        max_position_embeddings=12,
    )
    model = transformers.BartModel(config)
    model.eval()
    return model


@pytest.fixture
def parity_config(hf_model):
    return config_from_reference(hf_model, compute_dtype="float32")


@pytest.fixture
def parity_tokenizer(tiny_vocab_path, parity_config):
    vocab = Vocabulary.load(tiny_vocab_path)
    return WordPieceTokenizer(vocab, parity_config)


def export(model, tmp_path, dtype=GGMLQuantizationType.F32):
    path = tmp_path / f"tiny_bart_{dtype.name.lower()}.gguf"
    export_container(model, path, dtype=dtype)
    return path


class TestReferenceConfig:
    """Tests for config_from_reference."""

    def test_fields(self, parity_config):
        assert parity_config.vocab_size == 24
        assert parity_config.hidden_dim == 32
        assert parity_config.max_positions == 12 + HF_POSITION_OFFSET
        assert parity_config.max_seq_len == 12
        assert parity_config.encoder_layers == 2
        assert parity_config.position_offset == HF_POSITION_OFFSET
        assert parity_config.embedding_stack == "encoder"
        assert parity_config.transpose_weights is True


class TestExport:
    """Tests for exporting HuggingFace weights under canonical names."""

    def test_canonical_names(self, hf_model):
        tensors = canonical_state_dict(hf_model)
        assert "model.encoder.layers.1.self_attn.v_proj.bias" in tensors
        assert "model.encoder.embed_positions.weight" in tensors
        for name in tensors:
            parse_tensor_name(name)

    def test_all_tensors(self, hf_model):
        known = canonical_state_dict(hf_model)
        everything = canonical_state_dict(hf_model, known_only=False)
        assert set(known) < set(everything)
        assert all(name.startswith("model.") for name in everything)

    def test_container_metadata(self, hf_model, tmp_path):
        with WeightStore.open(export(hf_model, tmp_path)) as store:
            assert store.metadata["general.architecture"] == "bart"
            assert store.metadata["bart.embedding_length"] == 32
            assert store.metadata["bart.encoder.block_count"] == 2


class TestParity:
    """Tests comparing this pipeline with HuggingFace's modules."""

    def test_embeddings(self, hf_model, tmp_path, parity_tokenizer, parity_config):
        text = "Hello world, the test."
        with WeightStore.open(export(hf_model, tmp_path)) as store:
            positioned = prepare_input(text, parity_tokenizer, store, "cpu", parity_config)

        framed = RawText(text).tokenize(parity_tokenizer).frame()
        expected = reference_embeddings(hf_model, framed.token_ids())
        assert torch.allclose(positioned.embeddings, expected, atol=1e-6)

    def test_projections(self, hf_model, tmp_path, parity_tokenizer, parity_config):
        with WeightStore.open(export(hf_model, tmp_path)) as store:
            positioned = prepare_input("Hello world", parity_tokenizer, store, "cpu", parity_config)
            for layer in range(parity_config.encoder_layers):
                ours = AttnHead.from_store(layer, store, "cpu", parity_config).encode(positioned)
                reference = reference_projections(hf_model, positioned.embeddings, layer)
                diffs = max_abs_diff(ours, reference)
                assert max(diffs.values()) < 1e-5, f"layer {layer}: {diffs}"

    def test_quantized_projections_stay_close(self, hf_model, tmp_path, parity_tokenizer, parity_config):
        """Test Q8_0 weights keep projections within quantization error."""
        q8_path = export(hf_model, tmp_path, GGMLQuantizationType.Q8_0)
        with WeightStore.open(q8_path) as store:
            q_weight = store.info("model.encoder.layers.0.self_attn.q_proj.weight")
            assert q_weight.dtype == GGMLQuantizationType.Q8_0
            positioned = prepare_input("Hello world", parity_tokenizer, store, "cpu", parity_config)
            ours = AttnHead.from_store(0, store, "cpu", parity_config).encode(positioned)

        reference = reference_projections(hf_model, positioned.embeddings, 0)
        diffs = max_abs_diff(ours, reference)
        assert max(diffs.values()) < 1e-2
