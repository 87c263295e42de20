"""
Focal-Plane Simulation Script
=============================
Generates a synthetic star-field observation set for distortion calibration.

Usage:
    python -m fpa_distortion.run_simulation [--project FILE] [--exposures N] ...

Without a project file every exposure starts from a zero distortion model.
"""

import argparse

from .distortion_pipeline import SimulationConfig, SimulationPipeline

# =============================================================================
# DEFAULTS
# =============================================================================
OUTPUT_DIR = "./fpa_simulation"
FILE_ROOT = "fpa-observations"
ROWS = 5
COLS = 5
POINTS_PER_LINE = 5
N_EXPOSURES = 1
# =============================================================================


def build_parser():
    parser = argparse.ArgumentParser(
        description="Simulate star-field observations through a distorted focal plane."
    )
    parser.add_argument("--output_dir", default=OUTPUT_DIR, help="Dir for results")
    parser.add_argument("--file_root", default=FILE_ROOT, help="Prefix of output files")
    parser.add_argument("--project", default=None, help="Project JSON to load")
    parser.add_argument("--rows", type=int, default=ROWS, help="Horizontal lattice lines")
    parser.add_argument("--cols", type=int, default=COLS, help="Vertical lattice lines")
    parser.add_argument(
        "--points", type=int, default=POINTS_PER_LINE, help="Points per lattice line"
    )
    parser.add_argument(
        "--exposures", type=int, default=N_EXPOSURES, help="Exposures to add (no project)"
    )
    parser.add_argument("--pixel_shift", type=float, default=0.0, help="Shift in pixels")
    parser.add_argument("--pixel_noise", type=float, default=0.0, help="Noise in pixels")
    parser.add_argument("--phase_noise", type=float, default=0.0, help="Phase noise level")
    parser.add_argument(
        "--all_detectors", action="store_true", help="Observe with all four detectors"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    config = SimulationConfig(
        working_dir=args.output_dir,
        file_root=args.file_root,
        rows=args.rows,
        cols=args.cols,
        points_per_line=args.points,
        phase_noise=args.phase_noise,
        pixel_shift=args.pixel_shift,
        pixel_noise=args.pixel_noise,
        all_detectors=args.all_detectors,
        seed=args.seed,
        verbose=not args.quiet,
    )

    if args.project:
        pipeline = SimulationPipeline.load_project(args.project, config)
    else:
        pipeline = SimulationPipeline(config)
        for _ in range(args.exposures):
            pipeline.add_exposure()

    paths = pipeline.write_observations()
    print("\nSimulation Complete.")
    return paths


if __name__ == "__main__":
    main()
