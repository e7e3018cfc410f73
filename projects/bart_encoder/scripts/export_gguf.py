#!/usr/bin/env python3
"""Export a HuggingFace BART checkpoint into a GGUF weight container.

Only tensors the pipeline knows by name (embeddings and self-attention
projections) are written unless --all is given.

Usage:
    python projects/bart_encoder/scripts/export_gguf.py facebook/bart-large-cnn bart-large-cnn/bart-large-cnn_f16.gguf
    python projects/bart_encoder/scripts/export_gguf.py facebook/bart-large-cnn out.gguf --dtype q8_0
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root.parent.parent))

from gguf import GGMLQuantizationType

from common.utils import setup_logger
from projects.bart_encoder.src.reference import export_container, load_reference_model

DTYPES = {
    "f32": GGMLQuantizationType.F32,
    "f16": GGMLQuantizationType.F16,
    "bf16": GGMLQuantizationType.BF16,
    "q8_0": GGMLQuantizationType.Q8_0,
    "q4_0": GGMLQuantizationType.Q4_0,
}


def parse_args():
    parser = argparse.ArgumentParser(description="Export HuggingFace BART weights to GGUF")
    parser.add_argument("model", type=str, help="HF model id or local checkpoint directory")
    parser.add_argument("output", type=str, help="Output .gguf path")
    parser.add_argument("--dtype", type=str, default="f16", choices=list(DTYPES),
                        help="Encoding for 2D tensors (1D tensors fall back to f32 for block types)")
    parser.add_argument("--all", action="store_true",
                        help="Write every tensor of the checkpoint, not only the known ones")
    return parser.parse_args()


def main():
    args = parse_args()
    setup_logger()

    print(f"Loading reference model: {args.model}")
    model = load_reference_model(args.model)

    written = export_container(
        model, args.output, dtype=DTYPES[args.dtype], known_only=not args.all
    )

    total_bytes = sum(info.size for info in written)
    print(f"\nWrote {len(written)} tensors ({total_bytes / (1024*1024):.1f} MB payload) to {args.output}")
    for info in written[:10]:
        print(f"  {info.name:60s} {info.dtype.name:6s} {list(info.shape)}")
    if len(written) > 10:
        print(f"  ... and {len(written) - 10} more")


if __name__ == "__main__":
    main()
