#!/usr/bin/env python3
"""Compare the pipeline's q/k/v projections with HuggingFace BART, layer by layer.

The container should hold the same checkpoint as the reference model, and the
config should use position_offset 2 (HF's learned-position offset) to make the
positioned embeddings comparable.

Usage:
    python projects/bart_encoder/scripts/validate.py --config projects/bart_encoder/configs/hf_parity.yaml

    # Stricter tolerance, first two layers only
    python projects/bart_encoder/scripts/validate.py --config configs/hf_parity.yaml --layers 0 1 --atol 1e-5
"""

import argparse
import sys
from pathlib import Path

import yaml
from tqdm import tqdm

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from common.utils import resolve_device, setup_logger
from projects.bart_encoder.src.attn_head import AttnHead
from projects.bart_encoder.src.config import BartConfig
from projects.bart_encoder.src.input_sequence import RawText
from projects.bart_encoder.src.reference import (
    load_reference_model,
    max_abs_diff,
    reference_embeddings,
    reference_projections,
)
from projects.bart_encoder.src.tensor_names import EmbedPositionsName, EmbedTokensName, Stack
from projects.bart_encoder.src.tokenizer import WordPieceTokenizer
from projects.bart_encoder.src.weights import WeightStore


def load_config(config_path: str) -> dict:
    """Load configuration from YAML file."""
    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def main():
    parser = argparse.ArgumentParser(description="Validate projections against HuggingFace BART")
    parser.add_argument("--config", type=str, required=True, help="Path to YAML config file")
    parser.add_argument("--text", type=str, default="Hello world, this is a test.")
    parser.add_argument("--layers", type=int, nargs="*", default=None)
    parser.add_argument("--atol", type=float, default=1e-3, help="Max abs difference allowed")
    parser.add_argument("--device", type=str, default=None)
    args = parser.parse_args()

    raw = load_config(args.config)
    paths = raw.get("paths", {})
    config = BartConfig.from_dict(raw.get("model", {}))
    device = resolve_device(args.device or raw.get("device"))
    setup_logger(log_path=raw.get("log_path"))

    print(f"Loading reference model: {paths['reference']}")
    model = load_reference_model(paths["reference"])
    tokenizer = WordPieceTokenizer.from_file(paths["vocab"], config)
    layers = range(config.encoder_layers) if args.layers is None else args.layers

    failures = []
    with WeightStore.open(paths["weights"]) as store:
        stack = Stack(config.embedding_stack)
        framed = RawText(args.text).tokenize(tokenizer).frame(config.max_seq_len)
        positioned = (
            framed
            .embed(store.fetch_dequantized(EmbedTokensName(stack), device, config=config))
            .add_positions(
                store.fetch_dequantized(EmbedPositionsName(stack), device, config=config),
                config.position_offset,
            )
        )

        expected = reference_embeddings(model, framed.token_ids(), config.position_offset)
        embed_diff = (positioned.embeddings.cpu() - expected).abs().max().item()
        print(f"\nEmbeddings max abs diff: {embed_diff:.2e}")
        if embed_diff > args.atol:
            failures.append("embeddings")

        print("\nProjections")
        print("-" * 60)
        for layer in tqdm(layers, desc="Validating layers"):
            ours = AttnHead.from_store(layer, store, device, config).encode(positioned, device)
            reference = reference_projections(model, expected, layer)
            diffs = max_abs_diff(ours, reference)
            status = "OK" if max(diffs.values()) <= args.atol else "MISMATCH"
            if status != "OK":
                failures.append(f"layer {layer}")
            tqdm.write(
                f"  layer {layer:2d}: q {diffs['q']:.2e}  k {diffs['k']:.2e}  v {diffs['v']:.2e}  {status}"
            )

    print("=" * 60)
    if failures:
        print(f"FAILED: {', '.join(failures)}")
        sys.exit(1)
    print("All layers match the reference")


if __name__ == "__main__":
    main()
