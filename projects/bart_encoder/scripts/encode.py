#!/usr/bin/env python3
"""Run text through the input pipeline and the encoder's q/k/v projections.

Prints the first values of every non-padding positioned row, then the
query/key/value shapes of each requested layer.

Usage:
    python projects/bart_encoder/scripts/encode.py --config projects/bart_encoder/configs/bart_large_cnn.yaml

    # Custom text, a subset of layers, on GPU
    python projects/bart_encoder/scripts/encode.py --config configs/bart_large_cnn.yaml \
        --text "The dominant sequence transduction models" --layers 0 5 11 --device cuda

    # Keep a log of the run
    python projects/bart_encoder/scripts/encode.py --config configs/bart_large_cnn.yaml --log-path logs/encode.log
"""

import argparse
import logging
import yaml
from pathlib import Path
import sys

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root.parent.parent))

from common.utils import format_rows, resolve_device, setup_logger
from projects.bart_encoder.src.attn_head import encode_layers
from projects.bart_encoder.src.config import BartConfig
from projects.bart_encoder.src.input_sequence import prepare_input
from projects.bart_encoder.src.tokenizer import WordPieceTokenizer
from projects.bart_encoder.src.weights import WeightStore

DEFAULT_TEXT = (
    "The dominant sequence transduction models are based on complex recurrent "
    "or convolutional neural networks in an encoder-decoder configuration."
)


def parse_args():
    parser = argparse.ArgumentParser(description="Encode text with BART self-attention projections")

    # Config file
    parser.add_argument("--config", type=str, help="Path to YAML config file")

    # Inputs
    parser.add_argument("--text", type=str, default=DEFAULT_TEXT)
    parser.add_argument("--vocab", type=str, default=None, help="Vocabulary file (overrides config)")
    parser.add_argument("--weights", type=str, default=None, help="GGUF weight file (overrides config)")

    # Pipeline
    parser.add_argument("--layers", type=int, nargs="*", default=None,
                        help="Encoder layers to run (default: all)")
    parser.add_argument("--max-seq-len", type=int, default=None)
    parser.add_argument("--compute-dtype", type=str, default=None,
                        choices=["float16", "bfloat16", "float32", "float64"])
    parser.add_argument("--device", type=str, default=None, help="cpu, cuda, mps or auto")
    parser.add_argument("--show-rows", type=int, default=8, help="Positioned rows to print")

    # Logging
    parser.add_argument("--log-path", type=str, default=None)
    parser.add_argument("--verbose", action="store_true", help="Log debug checkpoints")

    return parser.parse_args()


def load_config(config_path: str) -> dict:
    """Load config from YAML file."""
    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def main():
    args = parse_args()

    raw = load_config(args.config) if args.config else {}
    paths = raw.get("paths", {})

    # Override with command line arguments
    model_dict = dict(raw.get("model", {}))
    if args.max_seq_len is not None:
        model_dict["max_seq_len"] = args.max_seq_len
    if args.compute_dtype is not None:
        model_dict["compute_dtype"] = args.compute_dtype
    config = BartConfig.from_dict(model_dict)

    vocab_path = args.vocab or paths.get("vocab", "bart-large-cnn/vocab.json")
    weights_path = args.weights or paths.get("weights", "bart-large-cnn/bart-large-cnn_f16.gguf")
    log_path = args.log_path or raw.get("log_path")

    setup_logger(log_path=log_path, level=logging.DEBUG if args.verbose else logging.INFO)
    device = resolve_device(args.device or raw.get("device"))

    print("=" * 60)
    print("BART Encoder")
    print("=" * 60)
    print(f"Vocabulary: {vocab_path}")
    print(f"Weights: {weights_path}")
    print(f"Device: {device}")
    print(f"Compute dtype: {config.compute_dtype}")

    tokenizer = WordPieceTokenizer.from_file(vocab_path, config)

    with WeightStore.open(weights_path) as store:
        positioned = prepare_input(args.text, tokenizer, store, device, config)

        content_len = len(tokenizer.tokenize(args.text)) + 2
        print(f"\nPositioned embeddings {list(positioned.shape)} ({content_len} non-padding rows)")
        rows = positioned.embeddings[:min(content_len, args.show_rows)]
        for i, line in enumerate(format_rows(rows)):
            print(f"  [{i:4d}] {line}")

        encoded = encode_layers(
            positioned, store, device, config, layers=args.layers, progress=True
        )

    print("\nProjections")
    print("-" * 60)
    for layer, result in encoded.items():
        q, k, v = result.as_tuple()
        print(f"  layer {layer:2d}: q {list(q.shape)}  k {list(k.shape)}  v {list(v.shape)}  ({q.dtype})")


if __name__ == "__main__":
    main()
