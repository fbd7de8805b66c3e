"""
scripts/bench_conv2d_cpu_vs_opencl.py

CPU vs OpenCL convolution microbenchmark (NOT a unit test) for clconv.

Benchmarks the layer forward pass:
- ConvolutionLayer.forward_cpu(x)
- ConvolutionLayer.forward_gpu(x)

Timing policy
-------------
- Layer construction and OpenCL backend acquisition happen once per case,
  outside the timed region.
- Uses warmup iterations before timed repeats.
- Wall time of the OpenCL path includes buffer creation, upload and readback
  (that is what a forward call costs); the kernel-only time reported by the
  profiling event is printed alongside.

Usage
-----
python scripts/bench_conv2d_cpu_vs_opencl.py --presets --sanity
python scripts/bench_conv2d_cpu_vs_opencl.py --W 64 --H 64 --Cin 3 --Cout 16 --K 5 --device 0
python scripts/bench_conv2d_cpu_vs_opencl.py --descriptor layer.xml --sanity
"""

from __future__ import annotations

import argparse
import logging
import os
import statistics
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

# -------------------------
# Make repo_root/src importable
# -------------------------
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from clconv.domain import ConvolutionDescriptor, DeviceError
from clconv.infrastructure import ConvolutionLayer, OpenCLConfig
from clconv.infrastructure.descriptor import load_descriptor


def _median(xs: list[float]) -> float:
    return statistics.median(xs)


def _fmt_seconds(x: float) -> str:
    if x < 1e-6:
        return f"{x*1e9:.2f} ns"
    if x < 1e-3:
        return f"{x*1e6:.2f} µs"
    if x < 1:
        return f"{x*1e3:.2f} ms"
    return f"{x:.3f} s"


def _speedup(cpu_s: float, dev_s: float) -> float:
    return (cpu_s / dev_s) if dev_s > 0 else float("inf")


def _time_one(fn: Callable[[], None], *, warmup: int, repeats: int) -> list[float]:
    for _ in range(warmup):
        fn()
    ts: list[float] = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        fn()
        t1 = time.perf_counter()
        ts.append(t1 - t0)
    return ts


@dataclass(frozen=True)
class Case:
    name: str
    W: int
    H: int
    Cin: int
    K: int
    Cout: int


def _random_descriptor(rng: np.random.Generator, c: Case) -> ConvolutionDescriptor:
    return ConvolutionDescriptor(
        i_width=c.W,
        i_height=c.H,
        i_depth=c.Cin,
        kernel_size=c.K,
        o_depth=c.Cout,
        weight=(rng.standard_normal(c.Cout * c.Cin * c.K * c.K) * 0.1).astype(
            np.float32
        ),
        offset=(rng.standard_normal(c.Cout) * 0.1).astype(np.float32),
    )


def bench_case(
    name: str,
    desc: ConvolutionDescriptor,
    *,
    config: OpenCLConfig,
    device_index: int,
    warmup: int,
    repeats: int,
    sanity: bool,
    seed: int,
) -> None:
    rng = np.random.default_rng(seed)
    x = rng.standard_normal(desc.input_shape.size).astype(np.float32)

    cpu = ConvolutionLayer.from_descriptor(desc)
    with ConvolutionLayer.from_descriptor(
        desc, device=f"gpu:{device_index}", config=config
    ) as dev:
        # Acquire the backend (context, queue, program build) outside timing.
        dev.forward(x)

        if sanity:
            y_cpu = cpu.forward_cpu(x).copy()
            y_dev = dev.forward_gpu(x).copy()
            np.testing.assert_allclose(y_dev, y_cpu, rtol=1e-4, atol=1e-4)

        kernel_ns: list[int] = []

        def cpu_fwd() -> None:
            cpu.forward_cpu(x)

        def dev_fwd() -> None:
            dev.forward_gpu(x)
            kernel_ns.append(int(dev.last_kernel_ticks or 0))

        t_cpu = _time_one(cpu_fwd, warmup=warmup, repeats=repeats)
        t_dev = _time_one(dev_fwd, warmup=warmup, repeats=repeats)

    cpu_med = _median(t_cpu)
    dev_med = _median(t_dev)
    kernel_med = _median([ns * 1e-9 for ns in kernel_ns[warmup:]] or [0.0])

    print(
        f"{name}: "
        f"in={desc.input_shape.as_tuple()} K={desc.kernel_size} "
        f"out={desc.output_shape.as_tuple()} | "
        f"cpu={_fmt_seconds(cpu_med):>10}  opencl={_fmt_seconds(dev_med):>10}  "
        f"kernel={_fmt_seconds(kernel_med):>10}  "
        f"speedup={_speedup(cpu_med, dev_med):>7.2f}x"
    )


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--W", type=int, default=28)
    ap.add_argument("--H", type=int, default=28)
    ap.add_argument("--Cin", type=int, default=1)
    ap.add_argument("--K", type=int, default=5)
    ap.add_argument("--Cout", type=int, default=6)
    ap.add_argument("--descriptor", type=str, default=None, help=".xml or .json layer file")

    ap.add_argument("--warmup", type=int, default=2)
    ap.add_argument("--repeats", type=int, default=5)
    ap.add_argument("--presets", action="store_true")
    ap.add_argument("--sanity", action="store_true")
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--device", type=int, default=0, help="OpenCL device index")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = OpenCLConfig.from_env()
    rng = np.random.default_rng(args.seed)

    cases: list[tuple[str, ConvolutionDescriptor]]
    if args.descriptor is not None:
        cases = [(os.path.basename(args.descriptor), load_descriptor(args.descriptor))]
    elif args.presets:
        presets = [
            Case("lenet-c1", 32, 32, 1, 5, 6),
            Case("lenet-c3", 14, 14, 6, 5, 16),
            Case("rgb-3x3", 64, 64, 3, 3, 8),
            Case("wide-tile", 100, 20, 2, 3, 4),
        ]
        cases = [(c.name, _random_descriptor(rng, c)) for c in presets]
    else:
        c = Case("custom", args.W, args.H, args.Cin, args.K, args.Cout)
        cases = [(c.name, _random_descriptor(rng, c))]

    for name, desc in cases:
        try:
            bench_case(
                name,
                desc,
                config=config,
                device_index=args.device,
                warmup=args.warmup,
                repeats=args.repeats,
                sanity=args.sanity,
                seed=args.seed,
            )
        except DeviceError as e:
            print(f"{name}: OpenCL path unavailable ({e})", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
