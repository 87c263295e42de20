"""
Focal-Plane Simulation Pipeline Controller
------------------------------------------
This module orchestrates a synthetic calibration data set:
1. Builds the catalog star pattern and its sky coordinates.
2. Holds any number of exposures, each with its own distortion model.
3. Projects every exposure onto the detectors of the target mission,
   adding a per-exposure pixel shift and Gaussian pixel noise.
4. Writes the observation table and the mission/calibration document.
"""

import json
import os
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

import numpy as np
from astropy.io import ascii
from astropy.table import Table

from .distortion_mission import QUAD_DETECTOR_MISSION, SINGLE_DETECTOR_MISSION, Mission
from .distortion_quaternion import Quaternion
from .distortion_shapes import Exposure, make_phase_noise
from .distortion_transforms import calibrate, observed_pixel, sky_coordinates

PROJECT_VERSION = "1.1"
OBSERVATION_COLUMNS = [
    "Attitude",
    "ExposureID",
    "DetectorID",
    "ObservationID",
    "SourceID",
    "Upsilon",
    "Rho",
    "Kappa",
    "Mu",
]


@dataclass
class SimulationConfig:
    """Configuration parameters for the simulation pipeline."""

    working_dir: str
    file_root: str = "fpa-simulation"
    rows: int = 5
    cols: int = 5
    points_per_line: int = 5
    catalog_scale: float = 3.0
    exposure_scale: float = 3.0
    phase_noise: float = 0.0  # fraction of a line length
    pixel_shift: float = 0.0  # pixels
    pixel_noise: float = 0.0  # pixels, Gaussian sigma
    all_detectors: bool = False
    seed: Optional[int] = None
    verbose: bool = True

    def __post_init__(self):
        self.res_dir = os.path.join(self.working_dir, "results")
        os.makedirs(self.res_dir, exist_ok=True)


class SimulationPipeline:
    def __init__(
        self,
        config: SimulationConfig,
        default_mission: Mission = SINGLE_DETECTOR_MISSION,
        target_mission: Optional[Mission] = None,
    ):
        self.config = config
        self.default_mission = default_mission
        if target_mission is None:
            target_mission = (
                QUAD_DETECTOR_MISSION if config.all_detectors else SINGLE_DETECTOR_MISSION
            )
        self.target_mission = target_mission
        self.attitude = Quaternion.identity()
        self.rng = np.random.default_rng(config.seed)
        self.phase_noise = None
        self.exposures: List[Exposure] = [Exposure("Catalog", config.catalog_scale)]
        self.selected = 0
        self.n_sources = 0
        self.refresh_phase_noise()

    @property
    def catalog(self) -> Exposure:
        return self.exposures[0]

    def _log(self, msg: str):
        if self.config.verbose:
            print(msg)

    def refresh_phase_noise(self):
        """Draws new phase noise and rebuilds every pattern with it."""
        c = self.config
        count = c.points_per_line * (c.rows + c.cols)
        self.phase_noise = make_phase_noise(count, c.phase_noise, self.rng)
        for exposure in self.exposures:
            self._build(exposure)

    def _build(self, exposure: Exposure):
        c = self.config
        exposure.build(c.points_per_line, c.rows, c.cols, self.phase_noise)
        return exposure

    def add_exposure(self, copy_from: Optional[int] = None) -> Exposure:
        """Appends an exposure with a zero model, or a copy of an existing exposure's model."""
        name = f"Exposure {len(self.exposures)}"
        if copy_from is None:
            exposure = Exposure(name, self.config.exposure_scale)
        else:
            exposure = self.exposures[copy_from].copy(name)
            exposure.scale = self.config.exposure_scale
        self.exposures.append(self._build(exposure))
        self.selected = len(self.exposures) - 1
        return exposure

    def copy_exposure(self) -> Exposure:
        return self.add_exposure(copy_from=self.selected)

    def remove_exposure(self, index: int):
        if index == 0:
            raise ValueError("The catalog cannot be removed.")
        if not 0 < index < len(self.exposures):
            raise ValueError(f"No exposure {index}; exposures are 1..{len(self.exposures) - 1}.")
        del self.exposures[index]
        for i in range(1, len(self.exposures)):
            self.exposures[i].name = f"Exposure {i}"
        self.selected = index - 1

    def visible_source_count(self, index: Optional[int] = None) -> int:
        exposure = self.exposures[self.selected if index is None else index]
        return sum(
            exposure.count_visible(self.default_mission, 0, self.target_mission, n)
            for n in range(self.target_mission.detector_count)
        )

    def build_catalog(self) -> Table:
        """Sky coordinates of the catalog sources under the scene attitude."""
        rows = []
        for j, pt in enumerate(self.catalog.points()):
            field = calibrate(pt, self.catalog.calib, self.default_mission, 0)
            sky = sky_coordinates(field, self.attitude)
            rows.append((j, float(sky.alpha), float(sky.delta)))
        return Table(rows=rows, names=["SourceIndex", "Upsilon", "Rho"], dtype=[int, float, float])

    def simulate_observations(self) -> Table:
        """Observations of every exposure on every detector of the target mission."""
        if len(self.exposures) < 2:
            raise ValueError("Add at least one exposure before simulating observations.")
        c = self.config
        catalog = self.build_catalog()
        source_ids: Dict[int, int] = {}
        attitude = str(self.attitude)
        n_exposures = len(self.exposures)
        rows = []

        self._log(f"\n{'=' * 60}\nSIMULATING: {c.file_root}\n{'=' * 60}")
        for i in range(1, n_exposures):
            exposure = self.exposures[i]
            angle = (i - 1) / (n_exposures - 1) * 2.0 * np.pi
            sh_x = c.pixel_shift * np.cos(angle)
            sh_y = c.pixel_shift * np.sin(angle)
            n_before = len(rows)
            points = exposure.points()
            for n in range(self.target_mission.detector_count):
                for j, pt in enumerate(points):
                    pixel = observed_pixel(
                        pt, exposure.calib, self.default_mission, 0, self.target_mission, n
                    )
                    if pixel is None:
                        continue
                    if j not in source_ids:
                        source_ids[j] = len(source_ids) + 1
                    rows.append(
                        (
                            attitude,
                            i,
                            n + 1,
                            len(rows) + 1,
                            source_ids[j],
                            catalog["Upsilon"][j],
                            catalog["Rho"][j],
                            pixel.kappa + sh_x + c.pixel_noise * self.rng.standard_normal(),
                            pixel.mu + sh_y + c.pixel_noise * self.rng.standard_normal(),
                        )
                    )
            self._log(f"  {exposure.name}: {len(rows) - n_before} observations")

        self.n_sources = len(source_ids)
        self._log(f"  >>> {len(rows)} observations of {self.n_sources} sources")
        if not rows:
            return Table(
                names=OBSERVATION_COLUMNS,
                dtype=["U40", int, int, int, int, float, float, float, float],
            )
        return Table(rows=rows, names=OBSERVATION_COLUMNS)

    def calibration_data(self) -> List[List[Dict[str, float]]]:
        return [exposure.calib.data() for exposure in self.exposures[1:]]

    def write_observations(self) -> Dict[str, str]:
        """Writes the observation CSV and the mission/calibration document."""
        table = self.simulate_observations()
        mission = self.target_mission.with_counts(len(table), self.n_sources)

        csv_path = os.path.join(
            self.config.res_dir, f"{self.config.file_root}_observations.csv"
        )
        ascii.write(table, csv_path, format="csv", overwrite=True)

        doc_path = os.path.join(self.config.res_dir, f"{self.config.file_root}_mission.json")
        with open(doc_path, "w") as f:
            json.dump(
                {"Mission": mission.to_dict(), "Calibration": self.calibration_data()},
                f,
                indent=2,
            )
        self._log(f"Observations saved to: {csv_path}")
        self._log(f"Mission saved to: {doc_path}")
        return {"observations": csv_path, "mission": doc_path}

    def to_project(self) -> Dict:
        c = self.config
        return {
            "version": PROJECT_VERSION,
            "rowNum": c.rows,
            "colNum": c.cols,
            "srcNum": c.points_per_line,
            "pixelShift": c.pixel_shift,
            "pixelNoise": c.pixel_noise,
            "phaseNoise": c.phase_noise,
            "cmos2": not c.all_detectors,
            "contents": {
                "selected": self.selected,
                "shapes": [exposure.to_dict() for exposure in self.exposures],
            },
        }

    @classmethod
    def from_project(cls, project: Dict, config: SimulationConfig) -> "SimulationPipeline":
        """Restores a pipeline on a copy of `config` updated with the project's pattern settings."""
        version = project.get("version")
        if version != PROJECT_VERSION:
            raise ValueError(
                f"Project version mismatch: project is {version}, expected {PROJECT_VERSION}."
            )
        try:
            config = replace(
                config,
                rows=int(project["rowNum"]),
                cols=int(project["colNum"]),
                points_per_line=int(project["srcNum"]),
                pixel_shift=float(project["pixelShift"]),
                pixel_noise=float(project["pixelNoise"]),
                phase_noise=float(project["phaseNoise"]),
                all_detectors=not project["cmos2"],
            )
            shapes = project["contents"]["shapes"]
        except KeyError as e:
            raise ValueError(f"Project document is missing {e}.")
        if not shapes:
            raise ValueError("Project contains no catalog.")

        selected = int(project["contents"].get("selected", len(shapes) - 1))
        if not 0 <= selected < len(shapes):
            raise ValueError(f"Selected exposure {selected} is outside 0..{len(shapes) - 1}.")

        pipeline = cls(config)
        pipeline.exposures = [Exposure.from_dict(d) for d in shapes]
        pipeline.selected = selected
        pipeline.refresh_phase_noise()
        return pipeline

    def save_project(self, path: str):
        with open(path, "w") as f:
            json.dump(self.to_project(), f, indent=2)
        self._log(f"Project saved to: {path}")

    @classmethod
    def load_project(cls, path: str, config: SimulationConfig) -> "SimulationPipeline":
        with open(path) as f:
            project = json.load(f)
        return cls.from_project(project, config)
