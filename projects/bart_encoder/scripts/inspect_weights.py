#!/usr/bin/env python3
"""Inspect a GGUF weight container.

Usage:
    python projects/bart_encoder/scripts/inspect_weights.py bart-large-cnn/bart-large-cnn_f16.gguf
    python projects/bart_encoder/scripts/inspect_weights.py --metadata --filter encoder.layers.0 path/to/model.gguf
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from projects.bart_encoder.src.errors import BartEncoderError
from projects.bart_encoder.src.tensor_names import parse_tensor_name
from projects.bart_encoder.src.weights import WeightStore


def format_size(num_params):
    """Format parameter count in human-readable format."""
    if num_params >= 1e9:
        return f"{num_params/1e9:.2f}B"
    elif num_params >= 1e6:
        return f"{num_params/1e6:.2f}M"
    elif num_params >= 1e3:
        return f"{num_params/1e3:.2f}K"
    else:
        return str(num_params)


def format_value(value, max_items: int = 8):
    """Shorten long metadata arrays (e.g. tokenizer vocabularies)."""
    if isinstance(value, list) and len(value) > max_items:
        return f"[{', '.join(map(repr, value[:max_items]))}, ... ({len(value)} items)]"
    return repr(value)


def is_known(name: str) -> bool:
    try:
        parse_tensor_name(name)
    except ValueError:
        return False
    return True


def inspect_weights(path: str, show_metadata: bool = False, name_filter: str = ""):
    """Print the container summary and its tensor directory."""
    path = Path(path)
    if not path.exists():
        print(f"Error: Weight file not found at {path}")
        sys.exit(1)

    print(f"Loading container: {path}")
    print(f"File size: {path.stat().st_size / (1024*1024):.2f} MB")
    print("=" * 70)

    try:
        store = WeightStore.open(path)
    except BartEncoderError as e:
        print(f"Error: {e}")
        sys.exit(1)

    with store:
        summary = store.describe()

        print("\nBASIC INFO")
        print("-" * 70)
        print(f"GGUF version: {summary['version']}")
        print(f"Model family: {summary['model_family']}")
        print(f"File type: {summary['file_type']}")
        print(f"Tensors: {summary['num_tensors']}")
        print(f"Metadata keys: {summary['num_kv']}")
        print(f"Parameters: {format_size(summary['num_parameters'])}")
        print(f"Encodings: {', '.join(summary['dtypes'])}")

        if show_metadata:
            print("\nMETADATA")
            print("-" * 70)
            for key in sorted(store.metadata):
                print(f"  {key}: {format_value(store.metadata[key])}")

        print("\nTENSORS")
        print("-" * 70)
        for name in store.tensor_names():
            if name_filter and name_filter not in name:
                continue
            info = store.info(name)
            marker = " " if is_known(name) else "?"
            print(f"{marker} {name:60s} {info.dtype.name:6s} {str(list(info.shape)):16s} {info.size:>12,d} B")


def main():
    parser = argparse.ArgumentParser(description="Inspect a GGUF weight container")
    parser.add_argument("path", type=str, help="Path to the .gguf file")
    parser.add_argument("--metadata", action="store_true", help="Show all metadata key/values")
    parser.add_argument("--filter", type=str, default="", help="Only list tensors containing this text")
    args = parser.parse_args()

    inspect_weights(args.path, show_metadata=args.metadata, name_filter=args.filter)


if __name__ == "__main__":
    main()
