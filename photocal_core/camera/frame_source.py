# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Interface of the camera collaborator used by the acquisition session, and the errors it signals.
"""

from collections import namedtuple


ExposureBounds = namedtuple('ExposureBounds', ['minimum', 'maximum'])


class FrameSourceError(RuntimeError):
    """Unexpected failure of the camera or its SDK."""


class DeviceInitError(FrameSourceError):
    """The camera could not be prepared for acquisition."""


class CaptureIncomplete(FrameSourceError):
    """A frame was not delivered completely or not within the timeout. Transient, the capture may be retried."""


class DeviceTeardownWarning(UserWarning):
    """Restoring the camera state after acquisition failed."""


class FrameSource:
    """
    Controls a camera for the acquisition of calibration datasets.

    Implementations translate SDK specific exceptions into FrameSourceError and its subclasses.
    """

    serial_number = ''

    def open(self):
        """Open the device handle."""
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def close(self):
        """Release the device handle."""
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def set_continuous_acquisition(self):
        """Configure the camera to stream frames until acquisition is stopped."""
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def get_exposure_bounds(self):
        """
        Read the exposure range of the camera.

        :return: ExposureBounds in microseconds
        """
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def get_exposure(self):
        """
        Read the current exposure time.

        :return: float, exposure time in microseconds
        """
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def set_exposure(self, exposure):
        """
        Disable automatic exposure and set a fixed exposure time.

        :param exposure: Exposure time in microseconds, clamped to the camera's range
        :return: float, exposure time actually set
        """
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def reset_exposure(self):
        """Return the camera to automatic exposure."""
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def begin_acquisition(self):
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def end_acquisition(self):
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def next_frame(self, timeout_ms=1000):
        """
        Wait for the next frame.

        :param timeout_ms: Time to wait for the frame in milliseconds
        :raises CaptureIncomplete: If no complete frame arrived within the timeout
        :return: frame object understood by save_frame
        """
        raise NotImplementedError('This method needs to be implemented in an inheriting class')

    def save_frame(self, frame, path):
        """
        Convert a frame to the output pixel format and store it as image file.

        :param frame: frame returned by next_frame
        :param path: target image file, the suffix defines the encoding
        """
        raise NotImplementedError('This method needs to be implemented in an inheriting class')
