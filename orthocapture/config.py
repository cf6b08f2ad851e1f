"""
Configuration module for planar capture and rectification.

Handles loading and validation of configuration from YAML files.
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# Resolution threshold used by the stricter capture preset.
STRICT_MIN_PIXELS_PER_METER = 640.0


@dataclass
class CameraIntrinsics:
    """
    Pinhole intrinsics of the synthetic camera, given for the landscape
    sensor buffer of image_width x image_height pixels.
    """
    fx: float  # Focal length in x (pixels)
    fy: float  # Focal length in y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)
    image_width: int = 1920  # Sensor buffer width in pixels
    image_height: int = 1440  # Sensor buffer height in pixels


@dataclass
class SolverSettings:
    """Parameters of the largest-visible-square search."""
    min_size: float = 0.2  # Smallest square side in meters
    max_size: float = 5.0  # Largest square side attempted in meters
    search_margin: float = 50.0  # Pixel inset required during the search
    max_iterations: int = 20
    tolerance: float = 0.01  # Stop when the bracket is this narrow (meters)


@dataclass
class QualitySettings:
    """
    Thresholds for the capture quality verdict.

    Both thresholds are strict: a capture at exactly min_camera_angle
    degrees is not good.
    """
    min_camera_angle: float = 20.0  # Degrees from the horizontal plane
    min_pixels_per_meter: float = 50.0
    visibility_margin: float = 10.0  # Pixel inset for the corner check


@dataclass
class OutputSettings:
    """Rectified output options."""
    max_width: float = 2048.0  # Upper bound on the rectified width in pixels
    interpolation_order: int = 1  # 1 = bilinear, 3 = bicubic
    directory: str = "captures"
    filename_prefix: str = "capture"


@dataclass
class SceneSettings:
    """Synthetic scene used by the `plan` command."""
    camera_position: Tuple[float, float, float] = (0.0, 1.0, 0.5)
    target: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    plane_height: float = 0.0  # World Y of the horizontal plane


@dataclass
class Config:
    """
    Main configuration class.

    Attributes:
        camera: Synthetic camera intrinsics (optional, only needed by `plan`)
        solver: Visible-region search parameters
        quality: Quality verdict thresholds
        output: Rectified output options
        scene: Synthetic scene for `plan`
    """
    camera: Optional[CameraIntrinsics] = None
    solver: SolverSettings = field(default_factory=SolverSettings)
    quality: QualitySettings = field(default_factory=QualitySettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    scene: SceneSettings = field(default_factory=SceneSettings)

    @classmethod
    def from_yaml(cls, config_path: str) -> "Config":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Config object with loaded parameters

        Example YAML structure:
            camera:
              fx: 1450.0
              fy: 1450.0
              cx: 960.0
              cy: 720.0
              image_width: 1920
              image_height: 1440
            solver:
              min_size: 0.2
              max_size: 5.0
              search_margin: 50
            quality:
              min_camera_angle: 20.0
              min_pixels_per_meter: 50.0
            output:
              max_width: 2048
              interpolation_order: 1
              directory: "captures"
            scene:
              camera_position: [0.0, 1.0, 0.5]
              target: [0.0, 0.0, 0.0]
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loading configuration from {config_path}")

        # Parse camera intrinsics (optional)
        camera = None
        cam_data = data.get('camera')
        if cam_data:
            try:
                camera = CameraIntrinsics(
                    fx=float(cam_data['fx']),
                    fy=float(cam_data['fy']),
                    cx=float(cam_data['cx']),
                    cy=float(cam_data['cy']),
                    image_width=int(cam_data.get('image_width', 1920)),
                    image_height=int(cam_data.get('image_height', 1440)),
                )
            except KeyError as e:
                raise ValueError(f"Missing camera parameter: {e}") from e

        solver_data = data.get('solver', {})
        solver = SolverSettings(
            min_size=float(solver_data.get('min_size', 0.2)),
            max_size=float(solver_data.get('max_size', 5.0)),
            search_margin=float(solver_data.get('search_margin', 50.0)),
            max_iterations=int(solver_data.get('max_iterations', 20)),
            tolerance=float(solver_data.get('tolerance', 0.01)),
        )
        if solver.min_size <= 0 or solver.min_size > solver.max_size:
            raise ValueError(
                f"Invalid solver size range: [{solver.min_size}, {solver.max_size}]"
            )

        quality_data = data.get('quality', {})
        quality = QualitySettings(
            min_camera_angle=float(quality_data.get('min_camera_angle', 20.0)),
            min_pixels_per_meter=float(quality_data.get('min_pixels_per_meter', 50.0)),
            visibility_margin=float(quality_data.get('visibility_margin', 10.0)),
        )

        output_data = data.get('output', {})
        output_dir = output_data.get('directory', 'captures')
        output = OutputSettings(
            max_width=float(output_data.get('max_width', 2048.0)),
            interpolation_order=int(output_data.get('interpolation_order', 1)),
            # Resolve paths relative to config file location
            directory=str(path.parent / output_dir),
            filename_prefix=output_data.get('filename_prefix', 'capture'),
        )
        if output.interpolation_order not in (0, 1, 3):
            raise ValueError(
                f"Unsupported interpolation order: {output.interpolation_order}"
            )

        scene_data = data.get('scene', {})
        scene = SceneSettings(
            camera_position=tuple(scene_data.get('camera_position', (0.0, 1.0, 0.5))),
            target=tuple(scene_data.get('target', (0.0, 0.0, 0.0))),
            plane_height=float(scene_data.get('plane_height', 0.0)),
        )

        return cls(
            camera=camera,
            solver=solver,
            quality=quality,
            output=output,
            scene=scene,
        )

    def to_yaml(self, config_path: str) -> None:
        """Save configuration to a YAML file."""
        data = {}
        if self.camera is not None:
            data['camera'] = {
                'fx': self.camera.fx,
                'fy': self.camera.fy,
                'cx': self.camera.cx,
                'cy': self.camera.cy,
                'image_width': self.camera.image_width,
                'image_height': self.camera.image_height,
            }
        data['solver'] = {
            'min_size': self.solver.min_size,
            'max_size': self.solver.max_size,
            'search_margin': self.solver.search_margin,
            'max_iterations': self.solver.max_iterations,
            'tolerance': self.solver.tolerance,
        }
        data['quality'] = {
            'min_camera_angle': self.quality.min_camera_angle,
            'min_pixels_per_meter': self.quality.min_pixels_per_meter,
            'visibility_margin': self.quality.visibility_margin,
        }
        data['output'] = {
            'max_width': self.output.max_width,
            'interpolation_order': self.output.interpolation_order,
            'directory': self.output.directory,
            'filename_prefix': self.output.filename_prefix,
        }
        data['scene'] = {
            'camera_position': [float(v) for v in self.scene.camera_position],
            'target': [float(v) for v in self.scene.target],
            'plane_height': self.scene.plane_height,
        }

        with open(config_path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")
