"""
Focal-Plane Distortion Simulation Package
-----------------------------------------
Coordinate transforms between detector pixels, field angles and sky angles,
a 2D Legendre distortion model, and a simulator producing synthetic star-field
observations for calibrating multi-detector focal planes.

Modules:
    distortion_transforms: Coordinate transform pipeline.
    distortion_core: Legendre calibration model and fitter.
    distortion_mission: Focal-plane geometry records.
    distortion_pipeline: Observation simulation controller.
    run_simulation: Command-line driver.
"""

from .distortion_core import LegendreCalibration, LegendreFitter, legendre
from .distortion_mission import QUAD_DETECTOR_MISSION, SINGLE_DETECTOR_MISSION, Mission
from .distortion_pipeline import SimulationConfig, SimulationPipeline
from .distortion_quaternion import Quaternion
from .distortion_shapes import Exposure, create_lattice, flatten_unique
from .distortion_transforms import (
    Point,
    calibrate,
    clip,
    denormalize,
    normalize,
    observed_pixel,
    prepare,
    project,
    sky_coordinates,
    unproject,
)

__version__ = "1.1.0"
