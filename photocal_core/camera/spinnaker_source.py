# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Frame source for FLIR/Point Grey cameras controlled via the Spinnaker SDK (PySpin).

PySpin is distributed with the Spinnaker SDK and is imported only when a Spinnaker camera is used.
"""

import logging
from contextlib import contextmanager
from functools import wraps

import cv2

from photocal_core.camera.frame_source import (FrameSource, FrameSourceError, DeviceInitError, CaptureIncomplete,
                                               ExposureBounds)


def _import_pyspin():
    try:
        import PySpin
    except ImportError as e:
        raise DeviceInitError('PySpin is not available. Install the Spinnaker SDK and its Python bindings.') from e
    return PySpin


def translate_errors(error_cls=FrameSourceError):
    """
    Decorator turning exceptions of the Spinnaker SDK into FrameSourceError (or the given subclass).

    :param error_cls: FrameSourceError subclass raised instead
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except self.spin.SpinnakerException as e:
                raise error_cls(f'{func.__name__} failed: {e}') from e
        return wrapper
    return decorator


class SpinnakerFrameSource(FrameSource):
    """
    Controls a Spinnaker camera.

    :param camera: PySpin CameraPtr, e.g. from spinnaker_camera()
    :param pixel_format: name of the PySpin pixel format frames are converted to before saving. Default is 'Mono8'.
    """

    def __init__(self, camera, pixel_format='Mono8'):
        self.spin = _import_pyspin()
        self.camera = camera
        self.pixel_format = getattr(self.spin, f'PixelFormat_{pixel_format}')
        self.processor = None
        self.serial_number = ''

    def _check_access(self, node, name):
        if not self.spin.IsReadable(node) or not self.spin.IsWritable(node):
            raise DeviceInitError(f'Unable to access {name} of the camera.')

    @translate_errors(DeviceInitError)
    def open(self):
        self.camera.Init()
        self.processor = self.spin.ImageProcessor()
        self.serial_number = self.read_serial_number()

    @translate_errors()
    def close(self):
        self.camera.DeInit()

    def read_serial_number(self):
        """
        Read the serial number of the camera, used to make file names unique.

        :return: str, serial number or empty string if not readable
        """
        serial_node = self.camera.TLDevice.DeviceSerialNumber
        if not self.spin.IsReadable(serial_node):
            return ''
        serial_number = serial_node.GetValue()
        logging.info(f'Device serial number retrieved as {serial_number}')
        return serial_number

    @translate_errors(DeviceInitError)
    def set_continuous_acquisition(self):
        self._check_access(self.camera.AcquisitionMode, 'acquisition mode')
        self.camera.AcquisitionMode.SetValue(self.spin.AcquisitionMode_Continuous)
        logging.info('Acquisition mode set to continuous')

    @translate_errors(DeviceInitError)
    def get_exposure_bounds(self):
        if not self.spin.IsReadable(self.camera.ExposureTime):
            raise DeviceInitError('Unable to read exposure time of the camera.')
        return ExposureBounds(self.camera.ExposureTime.GetMin(), self.camera.ExposureTime.GetMax())

    @translate_errors()
    def get_exposure(self):
        return self.camera.ExposureTime.GetValue()

    @translate_errors()
    def set_exposure(self, exposure):
        self._check_access(self.camera.ExposureAuto, 'automatic exposure')
        self.camera.ExposureAuto.SetValue(self.spin.ExposureAuto_Off)
        self.camera.ExposureMode.SetValue(self.spin.ExposureMode_Timed)
        logging.debug('Automatic exposure disabled')

        self._check_access(self.camera.ExposureTime, 'exposure time')
        exposure = min(max(exposure, self.camera.ExposureTime.GetMin()), self.camera.ExposureTime.GetMax())
        self.camera.ExposureTime.SetValue(exposure)
        logging.info(f'Shutter time set to {exposure:.3f} us')
        return exposure

    @translate_errors()
    def reset_exposure(self):
        if not self.spin.IsReadable(self.camera.ExposureAuto) or not self.spin.IsWritable(self.camera.ExposureAuto):
            raise FrameSourceError('Unable to enable automatic exposure (node retrieval).')
        self.camera.ExposureAuto.SetValue(self.spin.ExposureAuto_Continuous)
        logging.info('Automatic exposure enabled')

    @translate_errors()
    def begin_acquisition(self):
        self.camera.BeginAcquisition()

    @translate_errors()
    def end_acquisition(self):
        self.camera.EndAcquisition()

    @translate_errors(CaptureIncomplete)
    def next_frame(self, timeout_ms=1000):
        image = self.camera.GetNextImage(timeout_ms)
        if image.IsIncomplete():
            status = image.GetImageStatus()
            image.Release()
            raise CaptureIncomplete(f'Image incomplete with image status {status}')
        return image

    @translate_errors()
    def save_frame(self, frame, path):
        try:
            converted = self.processor.Convert(frame, self.pixel_format)
            if not cv2.imwrite(str(path), converted.GetNDArray()):
                raise FrameSourceError(f'Could not write image {path}')
        finally:
            frame.Release()


@contextmanager
def spinnaker_camera(camera_index=0, pixel_format='Mono8'):
    """
    Acquire the Spinnaker system singleton and wrap one of its cameras in a SpinnakerFrameSource.

    The camera list is cleared and the system released on every exit path.

    :param camera_index: index of the camera in the list of detected cameras. Default is 0.
    :param pixel_format: see SpinnakerFrameSource
    :raises DeviceInitError: If PySpin is missing or fewer cameras than required are detected
    :return: SpinnakerFrameSource
    """
    spin = _import_pyspin()
    system = spin.System.GetInstance()
    cam_list = None
    try:
        version = system.GetLibraryVersion()
        logging.info(f'Spinnaker library version: {version.major}.{version.minor}.{version.type}.{version.build}')

        cam_list = system.GetCameras()
        num_cameras = cam_list.GetSize()
        logging.info(f'Number of cameras detected: {num_cameras}')
        if num_cameras <= camera_index:
            raise DeviceInitError('Not enough cameras!')

        frame_source = SpinnakerFrameSource(cam_list.GetByIndex(camera_index), pixel_format=pixel_format)
        try:
            yield frame_source
        finally:
            # all camera references must be gone before the system can be released
            frame_source.camera = None
    finally:
        if cam_list is not None:
            cam_list.Clear()
        system.ReleaseInstance()
        logging.debug('Spinnaker system released')
