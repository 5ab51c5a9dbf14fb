"""
Tests for utility modules.

Run with: pytest tests/test_utils.py -v
"""

import numpy as np
import pytest
import yaml

from geomin_tools.anomaly.rx import RXOptions
from geomin_tools.cloud.masker import CloudMaskOptions


class TestMemoryUtils:
    """Test memory limits for row chunking."""

    def test_available_memory_positive(self):
        """Available memory should be positive."""
        from geomin_tools.utils.memory import get_available_memory
        assert get_available_memory() > 0

    def test_array_nbytes(self):
        """1000x1000 float32 = 4MB."""
        from geomin_tools.utils.memory import array_nbytes
        assert array_nbytes((1000, 1000), np.float32) == 4_000_000
        assert array_nbytes((0, 6)) == 0

    def test_fits(self):
        from geomin_tools.utils.memory import MemoryManager

        mm = MemoryManager(limit_gb=1.0)
        assert mm.fits((100, 100, 10))
        assert not mm.fits((10000, 10000, 1000))

    def test_rows_per_chunk(self):
        """Half the limit goes to the chunk; the result stays within [1, n_rows]."""
        from geomin_tools.utils.memory import GB, MemoryManager

        mm = MemoryManager(limit_gb=16000 * 10.5 / GB)
        assert mm.rows_per_chunk(100, (1000,)) == 10
        assert mm.rows_per_chunk(4, (1000,)) == 4
        assert MemoryManager(limit_gb=1e-9).rows_per_chunk(100, (1000,)) == 1
        assert mm.rows_per_chunk(7, ()) == 7


def _row_sums(start, end, values):
    return values[start:end].sum(axis=1)


class TestParallel:
    """Test row-chunk planning and execution."""

    def test_resolve_workers(self):
        from geomin_tools.utils.parallel import resolve_workers
        assert resolve_workers(3) == 3
        assert resolve_workers(None) >= 1
        assert resolve_workers(0) >= 1

    def test_plan_chunks(self):
        """Four chunks per worker, covering every row once."""
        from geomin_tools.utils.parallel import plan_chunks
        assert plan_chunks(10, 2) == [(0, 2), (2, 4), (4, 6), (6, 8), (8, 10)]
        assert plan_chunks(3, 8) == [(0, 1), (1, 2), (2, 3)]
        assert plan_chunks(0, 4) == []

    def test_plan_chunks_memory_bound(self):
        from geomin_tools.utils.memory import MemoryManager
        from geomin_tools.utils.parallel import plan_chunks

        # One row of 1000 float64 values is ~7.5e-6 GB
        chunks = plan_chunks(100, 1, row_shape=(1000,), memory=MemoryManager(limit_gb=1e-4))
        assert max(end - start for start, end in chunks) <= 6
        assert chunks[-1][1] == 100

    def test_sequential_in_row_order(self):
        from geomin_tools.utils.parallel import map_row_chunks
        values = np.arange(20.0).reshape(10, 2)
        results = map_row_chunks(_row_sums, 10, args=(values,), n_workers=1)
        np.testing.assert_allclose(np.concatenate(results), values.sum(axis=1))


class TestConfig:
    """Test configuration management."""

    def test_config_defaults(self):
        from geomin_tools.utils.config import Config

        config = Config(search=False)
        assert config.source is None
        assert config.n_workers >= 1
        assert config.get('anomaly', 'rx', 'threshold') == 0.99
        assert config.get('nonexistent', 'key', default='fallback') == 'fallback'
        assert config.log_level == 'INFO'

    def test_env_overrides(self, monkeypatch):
        from geomin_tools.utils.config import Config

        monkeypatch.setenv('GEOMIN_TOP_N', '7')
        monkeypatch.setenv('GEOMIN_RX_THRESHOLD', '0.95')
        monkeypatch.setenv('GEOMIN_CLOUD_ALGORITHM', 'threshold')
        config = Config(search=False)
        assert config.rx_options().top_n == 7
        assert config.rx_options().threshold == 0.95
        assert config.cloud_options().algorithm == 'threshold'

    def test_option_builders(self):
        from geomin_tools.utils.config import Config

        config = Config(search=False)
        config.set('processing', 'n_workers', 2)
        rx = config.rx_options(window_size=5)
        assert isinstance(rx, RXOptions)
        assert rx.window_size == 5
        assert rx.n_workers == 2
        assert isinstance(config.cloud_options(), CloudMaskOptions)
        assert config.lof_options().max_pixels == 5000
        assert config.crosta_options(target='iron').n_components == 4
        assert config.sam_options().threshold == 0.1
        assert config.unmixing_options().sum_to_one is True
        assert config.isolation_forest_params()['trees'] == 100
        assert config.classifier_options().top_n == 100

    def test_save_and_load(self, tmp_path):
        from geomin_tools.utils.config import Config

        config = Config(search=False)
        config.set('mineralogy', 'sam', 'threshold', 0.05)
        path = config.save(tmp_path / 'geomin.yaml')

        with open(path) as f:
            assert yaml.safe_load(f)['mineralogy']['sam']['threshold'] == 0.05

        reloaded = Config(path)
        assert reloaded.source == path
        assert reloaded.sam_options().threshold == 0.05
        # Untouched sections keep their defaults
        assert reloaded.get('anomaly', 'lof', 'neighbors') == 20

    def test_partial_file_merges(self, tmp_path):
        from geomin_tools.utils.config import Config

        path = tmp_path / 'partial.yaml'
        path.write_text("anomaly:\n  rx:\n    window_size: 7\n")
        config = Config(path)
        assert config.rx_options().window_size == 7
        assert config.rx_options().threshold == 0.99

    def test_missing_file(self, tmp_path):
        from geomin_tools.utils.config import Config
        with pytest.raises(FileNotFoundError):
            Config(tmp_path / 'absent.yaml')
