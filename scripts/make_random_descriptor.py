"""
scripts/make_random_descriptor.py

Write a random convolution layer descriptor (XML or JSON, chosen by the
output suffix). Useful for feeding the benchmark or for hand-testing
`create_convolution_layer_from_file`.

Usage
-----
python scripts/make_random_descriptor.py layer.xml --W 28 --H 28 --Cin 1 --K 5 --Cout 6
python scripts/make_random_descriptor.py layer.json --seed 3 --scale 0.05
"""

from __future__ import annotations

import argparse
import os
import sys

import numpy as np

THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from clconv.domain import ConfigurationError, ConvolutionDescriptor
from clconv.infrastructure.descriptor import save_descriptor_json, save_descriptor_xml


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("output", help="destination path ending in .xml or .json")
    ap.add_argument("--W", type=int, default=28)
    ap.add_argument("--H", type=int, default=28)
    ap.add_argument("--Cin", type=int, default=1)
    ap.add_argument("--K", type=int, default=5)
    ap.add_argument("--Cout", type=int, default=6)
    ap.add_argument("--scale", type=float, default=0.1, help="weight/offset std-dev")
    ap.add_argument("--seed", type=int, default=0)
    args = ap.parse_args()

    rng = np.random.default_rng(args.seed)
    try:
        desc = ConvolutionDescriptor(
            i_width=args.W,
            i_height=args.H,
            i_depth=args.Cin,
            kernel_size=args.K,
            o_depth=args.Cout,
            weight=rng.standard_normal(args.Cout * args.Cin * args.K * args.K)
            * args.scale,
            offset=rng.standard_normal(args.Cout) * args.scale,
        )
    except ConfigurationError as e:
        ap.error(str(e))

    suffix = os.path.splitext(args.output)[1].lower()
    if suffix == ".xml":
        save_descriptor_xml(desc, args.output)
    elif suffix == ".json":
        save_descriptor_json(desc, args.output)
    else:
        ap.error("output must end in .xml or .json")

    print(
        f"wrote {args.output}: in={desc.input_shape.as_tuple()} "
        f"K={desc.kernel_size} out={desc.output_shape.as_tuple()}"
    )


if __name__ == "__main__":
    main()
