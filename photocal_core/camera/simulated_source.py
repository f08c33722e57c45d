# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
This module simulates a camera for the dataset collection without hardware.

Frames show a static scene darkened towards the image borders (vignetting) and mapped through a gamma shaped response,
so that collected datasets qualitatively resemble real vignette and response datasets.
"""

import logging

import cv2
import numpy as np

from photocal_core.camera.frame_source import FrameSource, FrameSourceError, CaptureIncomplete, ExposureBounds


def _make_radius_map(width, height):
    """
    Distance of every pixel to the image centre, relative to half the image diagonal.

    :param int width: Image width in pixels.
    :param int height: Image height in pixels.
    :returns: Array of shape (height, width) with values in [0, 1].
    :rtype: numpy.ndarray
    """
    yv, xv = np.meshgrid(np.arange(height), np.arange(width), indexing='ij')
    center_x, center_y = (width - 1) / 2, (height - 1) / 2
    radius = np.sqrt((xv - center_x) ** 2 + (yv - center_y) ** 2)
    return radius / np.sqrt(center_x ** 2 + center_y ** 2)


class SimulatedFrameSource(FrameSource):
    """
    Simulated camera with exposure control.

    :param exposure_min: minimum exposure time in microseconds
    :param exposure_max: maximum exposure time in microseconds
    :param width: image width in pixels
    :param height: image height in pixels
    :param incomplete_rate: probability that a frame is reported incomplete
    :param noise_std: standard deviation of the sensor noise in digital numbers
    :param seed: seed of the random generator, None for a random seed
    :param serial_number: serial number reported by the simulated camera
    :param gamma: exponent of the simulated response curve
    :param saturation_exposure: exposure time in microseconds at which the brightest scene point saturates
    """

    def __init__(self, exposure_min=20.0, exposure_max=32000.0, width=640, height=480, incomplete_rate=0.0,
                 noise_std=1.5, seed=None, serial_number='SIM0001', gamma=2.2, saturation_exposure=8000.0):
        if exposure_min <= 0 or exposure_max < exposure_min:
            raise ValueError(f'Invalid exposure range [{exposure_min}, {exposure_max}]')
        self.bounds = ExposureBounds(float(exposure_min), float(exposure_max))
        self.width = width
        self.height = height
        self.incomplete_rate = incomplete_rate
        self.noise_std = noise_std
        self.serial_number = serial_number
        self.gamma = gamma
        self.saturation_exposure = saturation_exposure
        self.rng = np.random.default_rng(seed)

        self.exposure = float(np.sqrt(exposure_min * exposure_max))
        self.auto_exposure = True
        self.is_open = False
        self.continuous = False
        self.acquiring = False

        radius = _make_radius_map(width, height)
        vignette = np.clip(1 - 0.6 * radius ** 2, 0, 1)
        gradient = np.linspace(0.3, 1.0, width)[None, :]
        self.irradiance = (vignette * gradient).astype(np.float32)

    def _require(self, condition, message):
        if not condition:
            raise FrameSourceError(message)

    def open(self):
        self.is_open = True
        logging.info(f'Simulated camera {self.serial_number} opened')

    def close(self):
        self.is_open = False
        logging.info(f'Simulated camera {self.serial_number} closed')

    def set_continuous_acquisition(self):
        self._require(self.is_open, 'Camera is not initialized')
        self.continuous = True

    def get_exposure_bounds(self):
        return self.bounds

    def get_exposure(self):
        return self.exposure

    def set_exposure(self, exposure):
        self._require(self.is_open, 'Camera is not initialized')
        self.auto_exposure = False
        self.exposure = float(min(max(exposure, self.bounds.minimum), self.bounds.maximum))
        logging.debug(f'Shutter time set to {self.exposure:.3f} us')
        return self.exposure

    def reset_exposure(self):
        self.auto_exposure = True

    def begin_acquisition(self):
        self._require(self.continuous, 'Acquisition mode is not continuous')
        self.acquiring = True

    def end_acquisition(self):
        self._require(self.acquiring, 'Camera is not streaming')
        self.acquiring = False

    def next_frame(self, timeout_ms=1000):
        self._require(self.acquiring, 'Camera is not streaming')
        if self.incomplete_rate > 0 and self.rng.random() < self.incomplete_rate:
            raise CaptureIncomplete('Simulated incomplete frame')

        relative_exposure = self.irradiance * (self.exposure / self.saturation_exposure)
        frame = 255 * np.clip(relative_exposure, 0, 1) ** (1 / self.gamma)
        frame += self.rng.normal(0, self.noise_std, size=frame.shape)
        return np.clip(np.round(frame), 0, 255).astype(np.uint8)

    def save_frame(self, frame, path):
        if not cv2.imwrite(str(path), frame):
            raise FrameSourceError(f'Could not write image {path}')
