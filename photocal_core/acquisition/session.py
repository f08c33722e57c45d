# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
This module runs the acquisition of a vignette or response calibration dataset with one camera.

The session moves through the states IDLE -> INITIALIZED -> ACQUIRING -> DRAINING -> CLOSED. Any failure of the camera,
an invalid exposure plan or an interruption by the user moves it to FAILED instead; the camera is restored and released
and the metadata log is closed on every path. Frames which could not be captured are collected as CaptureError in the
SessionResult instead of aborting the collection.
"""
from __future__ import annotations
import logging
import time
import warnings
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from photocal_core.acquisition.capture_log import CaptureRecord
from photocal_core.calibration.exposure_planner import InvalidRange
from photocal_core.camera.frame_source import (FrameSourceError, DeviceInitError, CaptureIncomplete,
                                               DeviceTeardownWarning, ExposureBounds)
from photocal_core.config.constants import VIGNETTE_MODE, RESPONSE_MODE, DATASET_MODES
from photocal_core.utils.filesystem import assemble_image_filename


class SessionState(Enum):
    IDLE = 'idle'
    INITIALIZED = 'initialized'
    ACQUIRING = 'acquiring'
    DRAINING = 'draining'
    CLOSED = 'closed'
    FAILED = 'failed'


_TRANSITIONS = {
    SessionState.IDLE: {SessionState.INITIALIZED},
    SessionState.INITIALIZED: {SessionState.ACQUIRING},
    SessionState.ACQUIRING: {SessionState.DRAINING},
    SessionState.DRAINING: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
    SessionState.FAILED: set(),
}


@dataclass(frozen=True)
class CaptureError:
    """
    A frame slot or session step which failed.

    :param frame_slot: index of the frame slot, None if the error is not related to a frame
    :param exposure: exposure time in microseconds active when the error occurred, None if unknown
    :param kind: 'incomplete', 'device', 'io', 'planner', 'init' or 'interrupted'
    :param message: description of the error
    :param attempts: number of capture attempts made for the frame slot
    """
    frame_slot: Optional[int]
    exposure: Optional[float]
    kind: str
    message: str
    attempts: int = 0


@dataclass
class SessionResult:
    mode: str
    frames_requested: int
    frames_captured: int = 0
    errors: List[CaptureError] = field(default_factory=list)
    state: SessionState = SessionState.IDLE

    @property
    def failed(self):
        return self.state is SessionState.FAILED

    @property
    def succeeded(self):
        """True if the session was not aborted and at least one frame was captured."""
        return not self.failed and self.frames_captured > 0


def distribute_shots(num_exposures: int, total_frames: int) -> List[int]:
    """
    Distribute the frames of a response dataset over the exposure times.

    Every exposure time gets ``total_frames // num_exposures`` frames, the last one additionally gets the remainder.
    E.g. 1000 frames over 121 exposure times: 8 frames for each of the first 120 and 40 for the last exposure time.

    :param num_exposures: Number of exposure times.
    :param total_frames: Number of frames of the dataset.
    :returns: Number of frames per exposure time, summing up to ``total_frames``.
    """
    if num_exposures < 1:
        raise ValueError('At least one exposure time is required.')
    base = total_frames // num_exposures
    shots = [base] * num_exposures
    shots[-1] = total_frames - base * (num_exposures - 1)
    return shots


def thin_plan(plan: Sequence[float], num_exposures: int) -> List[float]:
    """
    Select exposure times evenly spread over a plan, keeping its first and last entry.

    Used if a dataset has fewer frames than the plan has exposure times, e.g. 1000 frames over the ~3200 steps of a
    linear plan, so that the frames still cover the whole exposure range.

    :param plan: Exposure times in plan order.
    :param num_exposures: Number of exposure times to keep, at most ``len(plan)``.
    :returns: Selected exposure times in plan order.
    """
    idx = np.round(np.linspace(0, len(plan) - 1, num_exposures)).astype(int)
    return [plan[i] for i in idx]


class AcquisitionSession:
    """
    Acquisition of one calibration dataset.

    :param frame_source: FrameSource controlling the camera
    :param capture_log: CaptureLog receiving one record per saved frame
    :param image_dir: folder the images are saved to
    :param mode: 'vignette' or 'response'
    :param total_frames: number of frames to capture
    :param exposure_plan: exposure times (microseconds) of a response dataset
    :param exposure_planner: alternatively, callable creating the exposure plan from the camera's ExposureBounds
    :param fix_exposure_for_vignette: if True, automatic exposure is disabled for the vignette dataset and the exposure
        is fixed at vignette_exposure or, if not given, at the current exposure of the camera
    :param vignette_exposure: exposure time (microseconds) of the vignette dataset
    :param max_retries_per_frame: capture attempts per frame before the frame slot is skipped
    :param frame_timeout_ms: time to wait for a frame in milliseconds
    :param settling_time: timedelta, time to wait after setting a new exposure time
    :param positioning_delay: timedelta, time given to position the camera before a vignette dataset is recorded
    :param image_extension: file extension of the images, defines the encoding
    :param show_progress: show a progress bar over the frames
    :param clock: callable returning the current time in seconds since epoch
    :param sleep: callable sleeping the given number of seconds
    """

    def __init__(self, frame_source, capture_log, image_dir, mode=VIGNETTE_MODE, total_frames=800,
                 exposure_plan: Optional[Sequence[float]] = None,
                 exposure_planner: Optional[Callable[[ExposureBounds], Sequence[float]]] = None,
                 fix_exposure_for_vignette=True, vignette_exposure=None, max_retries_per_frame=10,
                 frame_timeout_ms=1000, settling_time=timedelta(seconds=0), positioning_delay=timedelta(seconds=0),
                 image_extension='.jpg', show_progress=False, clock=time.time, sleep=time.sleep):
        if mode not in DATASET_MODES:
            raise ValueError(f'Unknown dataset mode {mode}. Choose from {DATASET_MODES}.')
        if mode == RESPONSE_MODE and exposure_plan is None and exposure_planner is None:
            raise ValueError('A response dataset requires an exposure plan or an exposure planner.')
        if max_retries_per_frame < 1:
            raise ValueError('At least one capture attempt per frame is required.')
        if total_frames < 0:
            raise ValueError('Number of frames must not be negative.')

        self.frame_source = frame_source
        self.capture_log = capture_log
        self.image_dir = Path(image_dir)
        self.mode = mode
        self.total_frames = total_frames
        self.exposure_plan = exposure_plan
        self.exposure_planner = exposure_planner
        self.fix_exposure_for_vignette = fix_exposure_for_vignette
        self.vignette_exposure = vignette_exposure
        self.max_retries_per_frame = max_retries_per_frame
        self.frame_timeout_ms = frame_timeout_ms
        self.settling_time = settling_time
        self.positioning_delay = positioning_delay
        self.image_extension = image_extension
        self.show_progress = show_progress
        self.clock = clock
        self.sleep = sleep

        self.state = SessionState.IDLE
        self.result = SessionResult(mode=mode, frames_requested=total_frames)
        self.current_exposure = None
        self._next_slot = 0
        self._device_open = False
        self._streaming = False
        self._exposure_modified = False

    def _transition(self, new_state):
        if new_state is SessionState.FAILED:
            valid = self.state not in (SessionState.CLOSED, SessionState.FAILED)
        else:
            valid = new_state in _TRANSITIONS[self.state]
        if not valid:
            raise RuntimeError(f'Invalid session transition from {self.state.value} to {new_state.value}')
        logging.debug(f'Session state {self.state.value} -> {new_state.value}')
        self.state = new_state
        self.result.state = new_state

    def _fail(self, kind, message):
        logging.error(f'{self.mode.capitalize()} dataset collection failed ({kind}): {message}')
        self.result.errors.append(CaptureError(frame_slot=None, exposure=self.current_exposure, kind=kind,
                                               message=str(message)))
        self._transition(SessionState.FAILED)

    def run(self) -> SessionResult:
        """
        Collect the dataset.

        :return: SessionResult, also available as attribute result
        """
        logging.info(f'Running {self.mode} dataset collection of {self.total_frames} frames')
        self.capture_log.open()
        try:
            bounds = self.initialize()
            steps = self.build_iteration_plan(bounds)
            if self.mode == VIGNETTE_MODE and self.positioning_delay.total_seconds() > 0:
                logging.info(f'You have {self.positioning_delay.total_seconds():.0f} seconds to position your camera!')
                self.sleep(self.positioning_delay.total_seconds())
            self.acquire(steps)
        except InvalidRange as e:
            self._fail('planner', e)
        except DeviceInitError as e:
            self._fail('init', e)
        except FrameSourceError as e:
            self._fail('device', e)
        except OSError as e:
            self._fail('io', e)
        except KeyboardInterrupt:
            self._fail('interrupted', 'Interrupted by user')
        finally:
            self.drain()
            self.close()

        logging.info(f'{self.mode.capitalize()} dataset collection finished: {self.result.frames_captured} of '
                     f'{self.result.frames_requested} frames captured, {len(self.result.errors)} errors')
        return self.result

    def initialize(self) -> ExposureBounds:
        """
        Open the camera and prepare continuous acquisition.

        :raises DeviceInitError: If the camera rejects continuous acquisition or its exposure cannot be accessed
        :return: ExposureBounds of the camera
        """
        try:
            self.frame_source.open()
            self._device_open = True
            self.frame_source.set_continuous_acquisition()
            bounds = self.frame_source.get_exposure_bounds()
        except DeviceInitError:
            raise
        except FrameSourceError as e:
            raise DeviceInitError(str(e)) from e
        logging.info(f'Camera exposure range: {bounds.minimum:.3f} - {bounds.maximum:.3f} us')
        self._transition(SessionState.INITIALIZED)
        return bounds

    def build_iteration_plan(self, bounds: ExposureBounds) -> List[Tuple[Optional[float], int]]:
        """
        Pair exposure times with the number of frames captured at each of them.

        :param bounds: ExposureBounds of the camera
        :return: list of (exposure time or None, number of frames). None keeps the camera's exposure untouched.
        """
        if self.mode == VIGNETTE_MODE:
            exposure = None
            if self.fix_exposure_for_vignette:
                exposure = self.vignette_exposure
                if exposure is None:
                    exposure = self.frame_source.get_exposure()
            return [(exposure, self.total_frames)]

        plan = self.exposure_plan
        if plan is None:
            plan = self.exposure_planner(bounds)
        plan = [float(exposure) for exposure in plan]
        if not plan:
            raise InvalidRange('Exposure plan is empty.')
        if 0 < self.total_frames < len(plan):
            logging.warning(f'{self.total_frames} frames are fewer than {len(plan)} exposure times. '
                            f'Using {self.total_frames} exposure times evenly spread over the plan.')
            plan = thin_plan(plan, self.total_frames)
        shots = distribute_shots(len(plan), self.total_frames)
        logging.info(f'Planned {len(plan)} exposure times from {plan[0]:.3f} to {plan[-1]:.3f} us')
        return list(zip(plan, shots))

    def acquire(self, steps):
        """
        Capture the frames of all steps of the iteration plan.

        The exposure of each step is set while the camera is not streaming. Acquisition is started for the frames of
        the step and stopped again afterwards, so no buffered frame of a previous exposure is recorded.

        :param steps: list of (exposure time or None, number of frames) as returned by build_iteration_plan
        """
        self._transition(SessionState.ACQUIRING)
        logging.info('Acquiring images...')

        with tqdm(total=sum(shots for _, shots in steps), unit='frame', disable=not self.show_progress) as progress:
            for exposure, shots in steps:
                if shots == 0:
                    continue
                if exposure is None:
                    self.current_exposure = self.frame_source.get_exposure()
                else:
                    self.current_exposure = self.frame_source.set_exposure(exposure)
                    self._exposure_modified = True
                    if self.settling_time.total_seconds() > 0:
                        self.sleep(self.settling_time.total_seconds())

                self.frame_source.begin_acquisition()
                self._streaming = True
                for _ in range(shots):
                    self.capture_frame()
                    progress.update()
                self.frame_source.end_acquisition()
                self._streaming = False

    def capture_frame(self) -> Optional[CaptureRecord]:
        """
        Capture and save one frame at the current exposure time.

        Incomplete frames are retried up to max_retries_per_frame attempts. If no attempt succeeds, a CaptureError is
        recorded and the frame slot is skipped.

        :return: CaptureRecord of the saved frame or None if the frame slot was skipped
        """
        slot = self._next_slot
        self._next_slot += 1

        for attempt in range(1, self.max_retries_per_frame + 1):
            try:
                frame = self.frame_source.next_frame(self.frame_timeout_ms)
            except CaptureIncomplete as e:
                logging.debug(f'Frame slot {slot}, attempt {attempt}: {e}')
                continue

            capture_time_millis = int(round(self.clock() * 1000))
            frame_index = self.result.frames_captured
            filename = assemble_image_filename(frame_index, capture_time_millis, self.current_exposure,
                                               serial_number=self.frame_source.serial_number,
                                               extension=self.image_extension)
            self.frame_source.save_frame(frame, self.image_dir / filename)

            record = CaptureRecord(frame_index=frame_index, capture_time_millis=capture_time_millis,
                                   exposure_used=self.current_exposure)
            self.capture_log.append(record)
            self.result.frames_captured += 1
            logging.debug(f'Image saved at {filename}')
            return record

        message = f'No complete frame after {self.max_retries_per_frame} attempts'
        logging.warning(f'Frame slot {slot} skipped: {message}')
        self.result.errors.append(CaptureError(frame_slot=slot, exposure=self.current_exposure, kind='incomplete',
                                               message=message, attempts=self.max_retries_per_frame))
        return None

    def _teardown_step(self, action, description):
        try:
            action()
        except FrameSourceError as e:
            message = f'Unable to {description}. Non-fatal error: {e}'
            logging.warning(message)
            warnings.warn(message, DeviceTeardownWarning)

    def drain(self):
        """Stop the acquisition at the camera."""
        if self.state is SessionState.ACQUIRING:
            self._transition(SessionState.DRAINING)
        if self._streaming:
            self._teardown_step(self.frame_source.end_acquisition, 'end acquisition')
            self._streaming = False

    def close(self):
        """Restore automatic exposure, release the camera and close the metadata log."""
        if self._exposure_modified:
            self._teardown_step(self.frame_source.reset_exposure, 'enable automatic exposure')
            self._exposure_modified = False
        if self._device_open:
            self._teardown_step(self.frame_source.close, 'release the camera')
            self._device_open = False
        self.capture_log.close()
        if self.state is SessionState.DRAINING:
            self._transition(SessionState.CLOSED)
