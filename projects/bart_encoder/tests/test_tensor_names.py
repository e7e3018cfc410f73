"""Tests for tensor_names.py - canonical names and expected shapes."""

import pytest

from projects.bart_encoder.src.config import BART_LARGE_CNN
from projects.bart_encoder.src.errors import ShapeMismatchError
from projects.bart_encoder.src.tensor_names import (
    EmbedPositionsName,
    EmbedTokensName,
    OutProjName,
    Projection,
    SelfAttnName,
    Stack,
    TensorKind,
    check_shape,
    parse_tensor_name,
    self_attn_names,
)


class TestCanonicalNames:
    """Tests for the dotted strings each variant renders to."""

    def test_embeddings(self):
        assert EmbedTokensName().canonical() == "model.decoder.embed_tokens.weight"
        assert EmbedPositionsName().canonical() == "model.decoder.embed_positions.weight"
        assert EmbedTokensName(Stack.ENCODER).canonical() == "model.encoder.embed_tokens.weight"

    def test_self_attention(self):
        name = SelfAttnName(3, Projection.KEY, TensorKind.BIAS)
        assert name.canonical() == "model.encoder.layers.3.self_attn.k_proj.bias"

    def test_out_proj(self):
        name = OutProjName(11, TensorKind.WEIGHT)
        assert name.canonical() == "model.encoder.layers.11.self_attn.out_proj.weight"

    def test_str_is_canonical(self):
        name = SelfAttnName(0, Projection.QUERY, TensorKind.WEIGHT)
        assert str(name) == name.canonical()

    def test_names_are_hashable_values(self):
        a = SelfAttnName(0, Projection.VALUE, TensorKind.WEIGHT)
        b = SelfAttnName(0, Projection.VALUE, TensorKind.WEIGHT)
        assert a == b
        assert len({a, b}) == 1


class TestExpectedShapes:
    """Tests for the bart-large-cnn shape contract."""

    def test_token_embeddings(self):
        assert EmbedTokensName().expected_shape() == (50264, 1024)

    def test_position_embeddings(self):
        assert EmbedPositionsName().expected_shape() == (1026, 1024)

    @pytest.mark.parametrize("layer", [0, 6, 11])
    def test_layer_projections(self, layer):
        for name in self_attn_names(layer):
            expected = (1024,) if name.kind is TensorKind.BIAS else (1024, 1024)
            assert name.expected_shape(BART_LARGE_CNN) == expected

    def test_out_proj_shapes(self):
        assert OutProjName(0, TensorKind.BIAS).expected_shape() == (1024,)
        assert OutProjName(0, TensorKind.WEIGHT).expected_shape() == (1024, 1024)

    def test_shapes_follow_config(self, tiny_config):
        assert EmbedTokensName().expected_shape(tiny_config) == (24, 8)
        assert EmbedPositionsName().expected_shape(tiny_config) == (14, 8)
        assert SelfAttnName(1, Projection.QUERY, TensorKind.WEIGHT).expected_shape(tiny_config) == (8, 8)


class TestParseTensorName:
    """Tests for parsing canonical strings back into names."""

    def test_round_trip(self):
        """Test every variant parses back to an equal name."""
        names = [
            EmbedTokensName(),
            EmbedPositionsName(),
            EmbedTokensName(Stack.ENCODER),
            OutProjName(5, TensorKind.BIAS),
            OutProjName(2, TensorKind.WEIGHT, Stack.DECODER),
            *self_attn_names(11),
            *self_attn_names(0, Stack.DECODER),
        ]
        for name in names:
            assert parse_tensor_name(name.canonical()) == name

    @pytest.mark.parametrize("text", [
        "model.encoder.layers.0.fc1.weight",
        "encoder.layers.0.self_attn.q_proj.weight",
        "model.encoder.layers.x.self_attn.q_proj.weight",
        "model.shared.weight",
        "",
    ])
    def test_unknown_names_rejected(self, text):
        with pytest.raises(ValueError):
            parse_tensor_name(text)


class TestSelfAttnNames:
    """Tests for the per-layer name list."""

    def test_order(self):
        """Test query, key, value order with bias before weight."""
        names = self_attn_names(2)
        assert [(n.projection, n.kind) for n in names] == [
            (Projection.QUERY, TensorKind.BIAS),
            (Projection.QUERY, TensorKind.WEIGHT),
            (Projection.KEY, TensorKind.BIAS),
            (Projection.KEY, TensorKind.WEIGHT),
            (Projection.VALUE, TensorKind.BIAS),
            (Projection.VALUE, TensorKind.WEIGHT),
        ]
        assert all(n.layer == 2 for n in names)


class TestCheckShape:
    """Tests for check_shape."""

    def test_matching_shape_passes(self):
        check_shape(EmbedTokensName(), (50264, 1024))

    def test_mismatch_raises(self):
        with pytest.raises(ShapeMismatchError, match="embed_tokens"):
            check_shape(EmbedTokensName(), (50265, 1024))

    def test_rank_mismatch_raises(self):
        with pytest.raises(ShapeMismatchError):
            check_shape(SelfAttnName(0, Projection.QUERY, TensorKind.BIAS), (1, 1024))
