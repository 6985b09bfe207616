"""
Command-line interface for pixel geolocation.

Usage:
    pixel-geolocate config.yaml --pixel U V [--pixel U V ...] [--output results.csv]
"""

import argparse
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd
from tqdm import tqdm

from .config import Config
from .dem import load_dem
from .intersect import FailureKind
from .projector import GroundProjector, ProjectionOutcome

RESULT_COLUMNS = [
    'pixel_u', 'pixel_v', 'lat', 'lon', 'ground_elevation_amsl',
    'slant_range_m', 'agl_m', 'converged', 'iterations', 'used_dem', 'status',
]


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def read_pixels_csv(path: str) -> List[Tuple[float, float]]:
    """Read pixel coordinates from a CSV with 'u' and 'v' columns."""
    df = pd.read_csv(path)
    missing = {'u', 'v'} - set(df.columns)
    if missing:
        raise ValueError(f"Pixel file {path} is missing columns: {sorted(missing)}")
    return list(zip(df['u'].astype(float), df['v'].astype(float)))


def outcomes_to_frame(
    pixels: List[Tuple[float, float]], outcomes: List[ProjectionOutcome]
) -> pd.DataFrame:
    """Tabulate projection outcomes, one row per pixel."""
    rows = []
    for (u, v), outcome in zip(pixels, outcomes):
        if outcome.ok:
            row = asdict(outcome.result)
            row['status'] = 'ok'
        else:
            row = {'pixel_u': u, 'pixel_v': v, 'status': outcome.message}
        rows.append(row)
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Geolocate image pixels on flat ground or a DEM',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
    # Project the image center and one other pixel
    pixel-geolocate config.yaml --pixel 3000 2000 --pixel 3500 2100

    # Batch projection from a CSV with u,v columns, written to a table
    pixel-geolocate config.yaml --pixels clicks.csv --output ground.csv

    # Resolve yaw/pitch/roll sign ambiguity first
    pixel-geolocate config.yaml --auto-fix --footprint
'''
    )

    parser.add_argument(
        'config',
        type=str,
        help='Path to YAML configuration file'
    )

    parser.add_argument(
        '--pixel', '-p',
        type=float,
        nargs=2,
        action='append',
        metavar=('U', 'V'),
        default=[],
        help='Pixel coordinate in sensor orientation (repeatable)'
    )

    parser.add_argument(
        '--pixels',
        type=str,
        default=None,
        help='CSV file with u,v columns'
    )

    parser.add_argument(
        '--dem',
        type=str,
        default=None,
        help='GeoTIFF DEM (overrides ground.dem_path)'
    )

    parser.add_argument(
        '--flat',
        action='store_true',
        help='Ignore the DEM and project on the flat ground elevation'
    )

    parser.add_argument(
        '--auto-fix',
        action='store_true',
        help='Pick the best yaw/pitch/roll sign combination before projecting'
    )

    parser.add_argument(
        '--footprint',
        action='store_true',
        help='Also project the four image corners'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help='Write results to this CSV file'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    dem = None
    projector = None
    try:
        config = Config.from_yaml(args.config)

        dem_path = args.dem or config.ground.dem_path
        if dem_path and not args.flat:
            if not Path(dem_path).exists():
                raise FileNotFoundError(f"DEM not found: {dem_path}")
            dem = load_dem(dem_path)
        if args.flat:
            config.ground.auto_sample_dem = False

        projector = GroundProjector.from_config(config, dem)

        if projector.uses_dem:
            sample = projector.ground_elevation_at_camera()
            if sample.ok:
                projector = projector.with_ground_elevation(sample.elevation)

        if args.auto_fix:
            correction = projector.auto_fix_pose()
            if correction is None:
                logger.error(f"Auto-fix: {FailureKind.POSE_AMBIGUOUS.message}; pose left unchanged")
                return 1
            projector = projector.with_pose(correction.apply(projector.pose))
            print(
                f"Auto-fix -> yaw={correction.yaw:.3f}  pitch={correction.pitch:.3f}  "
                f"roll={correction.roll:.3f}"
            )

        pixels = [tuple(p) for p in args.pixel]
        if args.pixels:
            pixels.extend(read_pixels_csv(args.pixels))
        if args.footprint:
            pixels.extend(projector.camera.corners())
        if not pixels:
            pixels.append(projector.camera.center)

        outcomes = [
            projector.project_pixel(u, v)
            for u, v in tqdm(pixels, desc='Projecting', disable=len(pixels) < 50)
        ]
        table = outcomes_to_frame(pixels, outcomes)

        if args.output:
            table.to_csv(args.output, index=False)
            logger.info(f"Results saved to {args.output}")

        n_ok = sum(o.ok for o in outcomes)
        print("\n" + "=" * 60)
        print("PROJECTION SUMMARY")
        print("=" * 60)
        print(f"Camera:                 ({projector.pose.lat:.7f}, {projector.pose.lon:.7f}) "
              f"{projector.pose.altitude_amsl:.2f} m AMSL")
        print(f"Ground model:           {'DEM' if projector.uses_dem else 'flat'} "
              f"(seed {projector.ground_elevation_amsl:.2f} m AMSL)")
        print(f"Pixels:                 {len(pixels)}")
        print(f"Hits:                   {n_ok}")
        print(f"Misses:                 {len(pixels) - n_ok}")
        print("-" * 60)
        for outcome, (u, v) in zip(outcomes, pixels):
            if outcome.ok:
                r = outcome.result
                flag = '' if r.converged else '  (not converged)'
                print(f"({u:8.1f}, {v:8.1f}) -> {r.lat:.7f}, {r.lon:.7f}  "
                      f"ground={r.ground_elevation_amsl:.2f} m  range={r.slant_range_m:.2f} m{flag}")
            else:
                print(f"({u:8.1f}, {v:8.1f}) -> {outcome.message}")
        print("=" * 60)

        return 0 if n_ok else 1

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    finally:
        if projector is not None and projector.sampler is not None:
            projector.sampler.close()
        if dem is not None:
            dem.close()


if __name__ == '__main__':
    sys.exit(main())
