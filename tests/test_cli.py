"""
Tests for the geomin command-line interface.

Run with: pytest tests/test_cli.py -v
"""

import json

import numpy as np
import pytest

from geomin_tools.cli import main


@pytest.fixture
def scene_path(tmp_path, anomaly_raster):
    path = tmp_path / 'scene.npy'
    np.save(path, anomaly_raster.data)
    return path


@pytest.fixture
def config_path(tmp_path):
    """Explicit config so user config files never leak into the tests."""
    path = tmp_path / 'geomin.yaml'
    path.write_text("processing:\n  n_workers: 1\n")
    return str(path)


class TestCommands:
    """Test subcommands end to end."""

    def test_anomalies(self, scene_path, config_path, tmp_path, capsys):
        output = tmp_path / 'rx.json'
        code = main(['-c', config_path, 'anomalies', str(scene_path), '--top', '5', '-o', str(output)])
        assert code == 0
        assert 'Anomaly pixels: 1' in capsys.readouterr().out

        document = json.loads(output.read_text())
        assert document['statistics']['method'] == 'rx_anomaly_detector'
        assert document['top_locations'][0]['coordinates'] == {'x': 2, 'y': 5}

    def test_local_rx(self, scene_path, config_path):
        assert main(['-c', config_path, 'anomalies', str(scene_path), '--window', '3']) == 0

    def test_isolation_forest(self, scene_path, config_path, capsys):
        assert main(['-c', config_path, 'anomalies', str(scene_path), '-a', 'isolation_forest']) == 0
        assert 'isolation_forest' in capsys.readouterr().out

    def test_clouds(self, scene_path, config_path, capsys):
        assert main(['-c', config_path, 'clouds', str(scene_path), '-a', 'threshold']) == 0
        assert 'Cloud mask (threshold)' in capsys.readouterr().out

    def test_index_list(self, config_path, capsys):
        assert main(['-c', config_path, 'index', '--list']) == 0
        assert 'ndvi' in capsys.readouterr().out

    def test_index(self, scene_path, config_path, tmp_path):
        output = tmp_path / 'indices.json'
        assert main(['-c', config_path, 'index', str(scene_path), 'ndvi', 'clay', '-o', str(output)]) == 0
        assert set(json.loads(output.read_text())) == {'ndvi', 'clay'}

    def test_unknown_index(self, scene_path, config_path):
        assert main(['-c', config_path, 'index', str(scene_path), 'evi']) == 1

    def test_minerals(self, scene_path, config_path):
        assert main(['-c', config_path, 'minerals', 'crosta', str(scene_path), '--target', 'iron']) == 0
        assert main(['-c', config_path, 'minerals', 'sam', str(scene_path), '-r', 'vegetation']) == 0
        assert main(['-c', config_path, 'minerals', 'unmix', str(scene_path),
                     '-e', 'vegetation', 'soil', 'water']) == 0

    def test_explore(self, scene_path, config_path, tmp_path):
        output = tmp_path / 'explore.json'
        assert main(['-c', config_path, 'explore', str(scene_path), '--targets', 'iron',
                     '--exclude-clouds', '-o', str(output)]) == 0
        document = json.loads(output.read_text())
        assert list(document['mineral_mapping']) == ['iron']

    def test_missing_file(self, config_path, tmp_path):
        assert main(['-c', config_path, 'anomalies', str(tmp_path / 'absent.npy')]) == 1

    def test_unknown_mineral(self, scene_path, config_path):
        assert main(['-c', config_path, 'minerals', 'sam', str(scene_path), '-r', 'unobtainium']) == 1


class TestConfigCommand:
    """Test the config subcommand."""

    def test_show(self, config_path, capsys):
        assert main(['-c', config_path, 'config', '--show']) == 0
        assert 'anomaly:' in capsys.readouterr().out

    def test_init(self, config_path, tmp_path):
        target = tmp_path / 'new' / 'config.yaml'
        assert main(['-c', config_path, 'config', '--init', '--path', str(target)]) == 0
        assert target.exists()

    def test_no_command(self, capsys):
        assert main([]) == 0
        assert 'usage' in capsys.readouterr().out.lower()
