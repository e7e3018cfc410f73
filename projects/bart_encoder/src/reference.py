"""HuggingFace BART as the reference implementation.

Helpers to export a HuggingFace checkpoint under our canonical tensor names
and to compute the reference q/k/v projections for a layer, so the pipeline
can be checked against it one stage at a time.
"""

import logging
from pathlib import Path
from typing import Dict, Mapping, Union

import torch
from gguf import GGMLQuantizationType
from transformers import BartModel, PreTrainedModel

from .attn_head import Encoded
from .config import BartConfig
from .container import write_container
from .tensor_names import parse_tensor_name

logger = logging.getLogger(__name__)

# HF BART looks learned positions up at index + 2
HF_POSITION_OFFSET = 2


def load_reference_model(name_or_path: Union[str, Path]) -> BartModel:
    """Load a pretrained BART encoder-decoder (without LM head) in eval mode."""
    model = BartModel.from_pretrained(str(name_or_path))
    model.eval()
    return model


def config_from_reference(model: PreTrainedModel, compute_dtype: str = "float32") -> BartConfig:
    """BartConfig describing a HuggingFace model, with the HF position offset.

    Embeddings are read from the encoder stack, which is what HF's encoder
    looks them up in. Linear weights are stored [out, in], so projections
    multiply by their transpose like ``nn.Linear``.
    """
    hf = model.config
    return BartConfig(
        vocab_size=hf.vocab_size,
        hidden_dim=hf.d_model,
        max_positions=hf.max_position_embeddings + HF_POSITION_OFFSET,
        max_seq_len=hf.max_position_embeddings,
        encoder_layers=hf.encoder_layers,
        position_offset=HF_POSITION_OFFSET,
        compute_dtype=compute_dtype,
        embedding_stack="encoder",
        transpose_weights=True,
    )


def canonical_state_dict(model: PreTrainedModel, known_only: bool = True) -> Dict[str, torch.Tensor]:
    """State dict keyed by the container's canonical names (``model.`` prefix).

    Args:
        model: BartModel or BartForConditionalGeneration
        known_only: Keep only tensors the pipeline has a TensorName for
    """
    tensors = {}
    for key, value in model.state_dict().items():
        name = key if key.startswith("model.") else f"model.{key}"
        if known_only:
            try:
                parse_tensor_name(name)
            except ValueError:
                continue
        tensors[name] = value.detach()
    return tensors


def export_container(
    model: PreTrainedModel,
    path: Union[str, Path],
    dtype: Union[GGMLQuantizationType, Mapping[str, GGMLQuantizationType]] = GGMLQuantizationType.F16,
    known_only: bool = True,
):
    """Write a HuggingFace BART checkpoint as a GGUF weight container."""
    hf = model.config
    metadata = {
        "general.architecture": "bart",
        "general.name": getattr(hf, "_name_or_path", "") or "bart",
        "bart.context_length": hf.max_position_embeddings,
        "bart.embedding_length": hf.d_model,
        "bart.encoder.block_count": hf.encoder_layers,
        "bart.decoder.block_count": hf.decoder_layers,
        "bart.attention.head_count": hf.encoder_attention_heads,
        "bart.vocab_size": hf.vocab_size,
    }
    tensors = canonical_state_dict(model, known_only=known_only)
    logger.info("Exporting %d tensors to %s", len(tensors), path)
    return write_container(path, tensors, dtype=dtype, metadata=metadata)


def _encoder(model: PreTrainedModel):
    return model.get_encoder()


def reference_embeddings(
    model: PreTrainedModel,
    token_ids: torch.Tensor,
    offset: int = HF_POSITION_OFFSET,
) -> torch.Tensor:
    """Token plus learned position embeddings as HF BART builds them.

    Stops before ``layernorm_embedding``, matching the Positioned stage.

    Args:
        token_ids: [seq_len] framed token ids

    Returns:
        [seq_len, d_model]
    """
    encoder = _encoder(model)
    scale = model.config.d_model ** 0.5 if model.config.scale_embedding else 1.0
    with torch.no_grad():
        tokens = encoder.embed_tokens.weight[token_ids] * scale
        positions = encoder.embed_positions.weight[offset:offset + token_ids.shape[0]]
    return tokens + positions


def reference_projections(
    model: PreTrainedModel,
    embeddings: torch.Tensor,
    layer: int,
) -> Encoded:
    """Run one encoder layer's q_proj/k_proj/v_proj on ``embeddings``.

    Note HF's attention also scales queries by head_dim ** -0.5 inside its
    forward pass; the bare projections used here do not.
    """
    attn = _encoder(model).layers[layer].self_attn
    x = embeddings.to(attn.q_proj.weight.dtype)
    with torch.no_grad():
        return Encoded(attn.q_proj(x), attn.k_proj(x), attn.v_proj(x))


def max_abs_diff(ours: Encoded, reference: Encoded) -> Dict[str, float]:
    """Largest absolute difference per projection."""
    diffs = {}
    for label, a, b in zip("qkv", ours.as_tuple(), reference.as_tuple()):
        diffs[label] = (a.to(torch.float32) - b.to(torch.float32).to(a.device)).abs().max().item()
    return diffs
