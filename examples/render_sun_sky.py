#!/usr/bin/env python3
"""Render the outdoor demo scene under the sun and the sky.

This script builds the demo scene, sets up the sun disc and the sky dome,
and renders with progressive refinement. Without --sky-image a procedural
gradient sky is used.

Usage:
    python -m examples.render_sun_sky [options]

Options:
    --width WIDTH         Image width in pixels (default: 480)
    --height HEIGHT       Image height in pixels (default: 270)
    --samples SAMPLES     Number of samples per pixel (default: 64)
    --max-depth DEPTH     Path length limit (default: 8)
    --sampler KIND        independent or orthogonal_array (default: independent)
    --sky-image PATH      Equirectangular sky image (.npy, .png, float .tif)
    --settings PATH       JSON file with "render", "sun" and "sky" sections
    --output OUTPUT       Output file path (default: sun_sky.png)
    --quiet               Suppress progress output
    --verbose             Enable debug logging

Example:
    python -m examples.render_sun_sky --width 320 --height 180 --samples 32
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

import taichi as ti


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render the demo scene under the sun and the sky.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--width", type=int, default=480, help="Image width in pixels (default: 480)")
    parser.add_argument("--height", type=int, default=270, help="Image height in pixels (default: 270)")
    parser.add_argument("--samples", type=int, default=64, help="Samples per pixel (default: 64)")
    parser.add_argument("--max-depth", type=int, default=8, help="Path length limit (default: 8)")
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    parser.add_argument(
        "--sampler",
        choices=["independent", "orthogonal_array"],
        default="independent",
        help="Per-bounce sample source (default: independent)",
    )
    parser.add_argument("--no-nee", action="store_true", help="Disable next event estimation")
    parser.add_argument("--sun-elevation", type=float, default=35.0, help="Sun elevation in degrees")
    parser.add_argument("--sun-azimuth", type=float, default=30.0, help="Sun azimuth in degrees")
    parser.add_argument("--sun-strength", type=float, default=20000.0, help="Sun radiance multiplier")
    parser.add_argument("--sky-image", type=str, default=None, help="Equirectangular sky image")
    parser.add_argument("--sky-strength", type=float, default=1.0, help="Sky radiance multiplier")
    parser.add_argument("--settings", type=str, default=None, help="JSON settings file")
    parser.add_argument("--exposure", type=float, default=0.5, help="Exposure for the PNG (default: 0.5)")
    parser.add_argument("--output", type=str, default="sun_sky.png", help="Output file path")
    parser.add_argument("--batch-size", type=int, default=8, help="Samples per progress update")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def build_parameters(args: argparse.Namespace):
    """Collect RenderSettings, SunParameters and SkyParameters from the arguments.

    Values from --settings override the command-line defaults section by
    section.
    """
    import math

    from sunsky.config import RenderSettings, SamplerKind, SkyParameters, SunParameters

    settings = RenderSettings(
        max_depth=args.max_depth,
        seed=args.seed,
        nee=not args.no_nee,
        sampler=SamplerKind[args.sampler.upper()],
    )
    sun = SunParameters(
        enabled=True,
        elevation=math.radians(args.sun_elevation),
        azimuth=math.radians(args.sun_azimuth),
        strength=args.sun_strength,
    )
    sky = SkyParameters(enabled=True, strength=args.sky_strength)

    if args.settings is not None:
        data = json.loads(Path(args.settings).read_text())
        for key, section in data.items():
            match key:
                case "render":
                    settings = RenderSettings.from_dict({**settings.to_dict(), **section})
                case "sun":
                    sun = SunParameters.from_dict({**sun.to_dict(), **section})
                case "sky":
                    sky = SkyParameters.from_dict({**sky.to_dict(), **section})
                case _:
                    raise ValueError(f"Unknown settings section: {key!r}")
    return settings, sun, sky


def render_sun_sky(args: argparse.Namespace) -> Path:
    """Render the demo scene and save to file.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from sunsky.camera.pinhole import setup_camera
    from sunsky.core.progressive import ProgressiveRenderer
    from sunsky.lights.sky import load_sky_image, setup_sky
    from sunsky.lights.sun import setup_sun
    from sunsky.scene.demo import create_demo_scene, procedural_sky_image

    quiet = args.quiet
    settings, sun, sky = build_parameters(args)

    if not quiet:
        print(f"Creating demo scene ({args.width}x{args.height})...")
    scene, camera = create_demo_scene()
    setup_camera(camera)

    if args.sky_image is not None:
        image = load_sky_image(args.sky_image)
    else:
        image = procedural_sky_image()
    setup_sun(sun)
    setup_sky(sky, image)

    renderer = ProgressiveRenderer(args.width, args.height, settings)

    if not quiet:
        print(f"Rendering {args.samples} samples per pixel (max depth {settings.max_depth})...")

    start_time = time.time()

    def progress_callback(current: int, target: int) -> None:
        if not quiet:
            elapsed = time.time() - start_time
            progress_pct = (current / target) * 100 if target > 0 else 0
            samples_per_sec = current / elapsed if elapsed > 0 else 0
            print(
                f"\r  Progress: {current}/{target} samples "
                f"({progress_pct:.1f}%) - {samples_per_sec:.1f} spp/s",
                end="",
                flush=True,
            )

    renderer.render(num_samples=args.samples, batch_size=args.batch_size, callback=progress_callback)

    if not quiet:
        print()

    output_file = Path(args.output)
    renderer.save_image(str(output_file), gamma=2.2, exposure=args.exposure)

    total_time = time.time() - start_time
    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {total_time:.2f}s")

    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    # Use GPU if available, fall back to CPU
    try:
        ti.init(arch=ti.gpu)
        if not args.quiet:
            print("Using GPU backend")
    except Exception:
        ti.init(arch=ti.cpu)
        if not args.quiet:
            print("Using CPU backend")

    try:
        render_sun_sky(args)
        return 0
    except (OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
