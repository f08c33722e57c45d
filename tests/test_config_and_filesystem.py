"""
Unit tests for configuration loading, logging setup and dataset file handling.
"""

import logging

import pytest

from photocal_core.config import config_loader
from photocal_core.config.constants import DEFAULT_CONFIG
from photocal_core.config.logging_config import configure_logging
from photocal_core.utils.filesystem import (create_dataset_directories, assemble_image_filename, parse_image_filename,
                                            get_image_files)


@pytest.mark.usefixtures('default_config')
class TestConfigLoader:

    def test_defaults(self):
        assert config_loader.get('response.sample_count') == 120
        assert config_loader.get('vignette.total_frames') == 800
        assert config_loader.get('camera.frame_timeout_ms') == 1000
        assert config_loader.get('acquisition.max_retries_per_frame') == 10

    def test_missing_key_returns_default(self):
        assert config_loader.get('response.unknown') is None
        assert config_loader.get('unknown.key', 5) == 5

    def test_file_is_layered_over_defaults(self, tmp_path):
        config_file = tmp_path / 'cfg.yaml'
        config_file.write_text('response:\n  sample_count: 60\n  strategy: merged\ncamera:\n  backend: simulator\n')

        config_loader.load_config(config_file)

        assert config_loader.get('response.sample_count') == 60
        assert config_loader.get('response.strategy') == 'merged'
        assert config_loader.get('response.total_frames') == 1000
        assert config_loader.get('camera.backend') == 'simulator'
        assert config_loader.get('camera.frame_timeout_ms') == 1000

    def test_defaults_are_not_modified(self, tmp_path):
        config_file = tmp_path / 'cfg.yaml'
        config_file.write_text('vignette:\n  total_frames: 5\n')

        config_loader.load_config(config_file)
        config_loader.set_value('camera.backend', 'simulator')

        assert DEFAULT_CONFIG['vignette']['total_frames'] == 800
        assert DEFAULT_CONFIG['camera']['backend'] == 'spinnaker'

    def test_missing_required_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            config_loader.load_config(tmp_path / 'missing.yaml')

    def test_missing_optional_file(self, tmp_path):
        config = config_loader.load_config(tmp_path / 'missing.yaml', required=False)

        assert config == DEFAULT_CONFIG

    def test_file_without_mapping(self, tmp_path):
        config_file = tmp_path / 'cfg.yaml'
        config_file.write_text('- a\n- b\n')

        with pytest.raises(ValueError):
            config_loader.load_config(config_file)

    def test_set_value(self):
        config_loader.set_value('output.root_dir', '/data')

        assert config_loader.get('output.root_dir') == '/data'


class TestLoggingConfig:

    def test_log_file(self, tmp_path):
        log_file = tmp_path / 'logs' / 'collect.log'

        configure_logging(log_file=log_file)
        logging.info('collection started')
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert 'INFO - ' in log_file.read_text()
        assert 'collection started' in log_file.read_text()


class TestDatasetFiles:

    def test_create_dataset_directories(self, tmp_path):
        dataset_dir, image_dir = create_dataset_directories(tmp_path, 'response')

        assert dataset_dir == (tmp_path / 'response-dataset').resolve()
        assert image_dir == dataset_dir / 'images'
        assert image_dir.is_dir()

    def test_create_dataset_directories_without_subfolder(self, tmp_path):
        dataset_dir, image_dir = create_dataset_directories(tmp_path, 'vignette', images_subfolder=False)

        assert dataset_dir.name == 'vignette-dataset'
        assert image_dir == dataset_dir
        assert dataset_dir.is_dir()

    def test_existing_directories_are_kept(self, tmp_path):
        _, image_dir = create_dataset_directories(tmp_path, 'vignette')
        (image_dir / 'old.jpg').write_bytes(b'')

        create_dataset_directories(tmp_path, 'vignette')

        assert (image_dir / 'old.jpg').exists()

    def test_image_filename(self):
        name = assemble_image_filename(12, 1700000000123, 52.5, serial_number='12345678')

        assert name == 'ExposureQS-12345678-12-1700000000123_52.jpg'
        assert parse_image_filename(name) == (12, 1700000000123, 52)

    def test_image_filename_without_serial(self):
        name = assemble_image_filename(0, 1700000000000, 1500.0, extension='.png')

        assert name == 'ExposureQS-0-1700000000000_1500.png'
        assert parse_image_filename(name) == (0, 1700000000000, 1500)

    def test_foreign_filename(self):
        assert parse_image_filename('20240101120000_80.jpg') is None

    def test_get_image_files(self, tmp_path):
        for name in ['b.jpg', 'a.PNG', 'times.txt', '.hidden.jpg']:
            (tmp_path / name).write_bytes(b'')

        files = get_image_files(tmp_path)

        assert [f.name for f in files] == ['a.PNG', 'b.jpg']
