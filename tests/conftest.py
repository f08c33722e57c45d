"""
Shared fixtures of the photometric calibration dataset collection tests.
"""

import itertools

import pytest

from photocal_core.acquisition.capture_log import CaptureLog
from photocal_core.acquisition.session import AcquisitionSession
from photocal_core.camera.frame_source import FrameSource, CaptureIncomplete, ExposureBounds
from photocal_core.config import config_loader


class FakeFrameSource(FrameSource):
    """Camera double recording all calls. Frames are delivered as bytes, incomplete frames follow a pattern."""

    def __init__(self, bounds=ExposureBounds(50.0, 51200.0), exposure=1000.0, incomplete=None,
                 always_incomplete=False, serial_number='12345678'):
        self.bounds = bounds
        self.exposure = exposure
        self.incomplete = iter(incomplete or [])
        self.always_incomplete = always_incomplete
        self.serial_number = serial_number
        self.calls = []
        self.set_exposures = []
        self.failures = {}

    def _call(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    def open(self):
        self._call('open')

    def close(self):
        self._call('close')

    def set_continuous_acquisition(self):
        self._call('set_continuous_acquisition')

    def get_exposure_bounds(self):
        self._call('get_exposure_bounds')
        return self.bounds

    def get_exposure(self):
        self._call('get_exposure')
        return self.exposure

    def set_exposure(self, exposure):
        self._call('set_exposure')
        self.exposure = min(max(exposure, self.bounds.minimum), self.bounds.maximum)
        self.set_exposures.append(self.exposure)
        return self.exposure

    def reset_exposure(self):
        self._call('reset_exposure')

    def begin_acquisition(self):
        self._call('begin_acquisition')

    def end_acquisition(self):
        self._call('end_acquisition')

    def next_frame(self, timeout_ms=1000):
        self._call('next_frame')
        if self.always_incomplete or next(self.incomplete, False):
            raise CaptureIncomplete('frame incomplete')
        return b'frame'

    def save_frame(self, frame, path):
        self._call('save_frame')
        path.write_bytes(frame)


@pytest.fixture
def fake_source():
    return FakeFrameSource()


@pytest.fixture
def image_dir(tmp_path):
    path = tmp_path / 'images'
    path.mkdir()
    return path


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / 'times.txt'


@pytest.fixture
def make_session(image_dir, log_path):
    """Factory for sessions with a deterministic clock and no real sleeping."""

    def factory(frame_source, **kwargs):
        ticks = itertools.count()
        kwargs.setdefault('clock', lambda: 1700000000.0 + 0.05 * next(ticks))
        kwargs.setdefault('sleep', lambda seconds: None)
        return AcquisitionSession(frame_source, CaptureLog(log_path), image_dir, **kwargs)

    return factory


@pytest.fixture
def default_config():
    config_loader.load_config(None)
    yield
    config_loader.load_config(None)
