"""
Tests for YAML configuration loading.
"""

import pytest
import yaml

from orthocapture.config import Config, SolverSettings


CAMERA_YAML = {
    'camera': {
        'fx': 1450.0,
        'fy': 1450.0,
        'cx': 960.0,
        'cy': 720.0,
    },
}


def write_yaml(path, data):
    with open(path, 'w') as f:
        yaml.safe_dump(data, f)
    return path


class TestConfig:
    """Tests for Config.from_yaml / to_yaml."""

    def test_defaults(self, tmp_path):
        config = Config.from_yaml(str(write_yaml(tmp_path / "config.yaml", {})))

        assert config.camera is None
        assert config.solver == SolverSettings()
        assert config.quality.min_camera_angle == 20.0
        assert config.quality.min_pixels_per_meter == 50.0
        assert config.output.max_width == 2048.0

    def test_camera_section(self, tmp_path):
        config = Config.from_yaml(str(write_yaml(tmp_path / "config.yaml", CAMERA_YAML)))

        assert config.camera.fx == 1450.0
        assert config.camera.image_width == 1920
        assert config.camera.image_height == 1440

    def test_output_directory_relative_to_config(self, tmp_path):
        data = {'output': {'directory': 'shots'}}
        config = Config.from_yaml(str(write_yaml(tmp_path / "config.yaml", data)))
        assert config.output.directory == str(tmp_path / "shots")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(str(tmp_path / "nope.yaml"))

    def test_missing_camera_key(self, tmp_path):
        data = {'camera': {'fx': 1000.0, 'fy': 1000.0, 'cx': 960.0}}
        with pytest.raises(ValueError, match="cy"):
            Config.from_yaml(str(write_yaml(tmp_path / "config.yaml", data)))

    def test_invalid_size_range(self, tmp_path):
        data = {'solver': {'min_size': 3.0, 'max_size': 1.0}}
        with pytest.raises(ValueError):
            Config.from_yaml(str(write_yaml(tmp_path / "config.yaml", data)))

    def test_invalid_interpolation_order(self, tmp_path):
        data = {'output': {'interpolation_order': 2}}
        with pytest.raises(ValueError):
            Config.from_yaml(str(write_yaml(tmp_path / "config.yaml", data)))

    def test_round_trip(self, tmp_path):
        data = dict(CAMERA_YAML)
        data['solver'] = {'min_size': 0.3, 'max_size': 2.5}
        data['output'] = {'directory': str(tmp_path / "captures"), 'max_width': 1024.0}
        data['scene'] = {'camera_position': [0.1, 1.2, 0.4]}
        original = Config.from_yaml(str(write_yaml(tmp_path / "config.yaml", data)))

        original.to_yaml(str(tmp_path / "saved.yaml"))
        reloaded = Config.from_yaml(str(tmp_path / "saved.yaml"))

        assert reloaded == original
