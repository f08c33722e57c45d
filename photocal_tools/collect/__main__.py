# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Tool for the collection of photometric calibration datasets


Collects either a vignette dataset (many images at one fixed exposure time, camera stationary) or a response dataset
(images swept across exposure times from the camera's minimum to its maximum exposure). Images are stored in
'vignette-dataset' or 'response-dataset' together with a metadata log 'times.txt' listing frame index, capture time
and exposure time of every image.

Settings are read from a yaml config file, see photocal_collect_cfg.yaml.
"""

import argparse
import logging
import sys
from contextlib import contextmanager
from datetime import timedelta
from functools import partial
from pathlib import Path

from photocal_core.acquisition.capture_log import CaptureLog
from photocal_core.acquisition.session import AcquisitionSession
from photocal_core.calibration.exposure_planner import plan_exposures, STRATEGIES
from photocal_core.camera.frame_source import DeviceInitError
from photocal_core.camera.simulated_source import SimulatedFrameSource
from photocal_core.camera.spinnaker_source import spinnaker_camera
from photocal_core.config import config_loader
from photocal_core.config.constants import VIGNETTE_MODE, RESPONSE_MODE, DEFAULT_CONFIG_FILENAME
from photocal_core.config.logging_config import configure_logging
from photocal_core.utils.filesystem import create_dataset_directories


def parse_arguments(argv=None):
    """
    Parse command-line arguments for the dataset collection.

    :param argv: list of arguments, None to parse sys.argv
    :returns: Parsed arguments, the selected dataset is stored in ``mode``.
    :rtype: argparse.Namespace
    """
    parser = argparse.ArgumentParser(
        description="Collect a vignette or response dataset for photometric camera calibration."
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        '--vignette',
        dest='mode',
        action='store_const',
        const=VIGNETTE_MODE,
        help="Collect images at one fixed exposure time to measure the vignetting of the lens."
    )
    mode.add_argument(
        '--response',
        dest='mode',
        action='store_const',
        const=RESPONSE_MODE,
        help="Collect images across the exposure range of the camera to measure its response curve."
    )
    parser.add_argument(
        '-c', '--config',
        type=str,
        required=False,
        help=f"Path of the yaml config file. Defaults to {DEFAULT_CONFIG_FILENAME} in the working directory, if present."
    )
    parser.add_argument(
        '--output_dir',
        type=str,
        required=False,
        help="Folder in which the dataset folder is created. Overrides output.root_dir of the config."
    )
    parser.add_argument(
        '--log_file',
        type=str,
        required=False,
        help="Path of log file to write logs."
    )
    parser.add_argument(
        '--simulate',
        action='store_true',
        help="Use a simulated camera instead of a Spinnaker camera."
    )
    return parser.parse_args(argv)


@contextmanager
def open_frame_source(backend):
    """
    Provide the frame source of the configured camera backend.

    :param backend: 'spinnaker' or 'simulator'
    :return: FrameSource
    """
    if backend == 'simulator':
        yield SimulatedFrameSource(**config_loader.get('camera.simulator', {}))
    elif backend == 'spinnaker':
        with spinnaker_camera(pixel_format=config_loader.get('camera.pixel_format')) as frame_source:
            yield frame_source
    else:
        raise ValueError(f'Unknown camera backend {backend}. Choose from spinnaker, simulator.')


def create_session(mode, frame_source, capture_log, image_dir):
    """
    Set up the acquisition session of a dataset according to the loaded configuration.

    :param mode: 'vignette' or 'response'
    :param frame_source: FrameSource of the camera
    :param capture_log: CaptureLog of the dataset
    :param image_dir: folder the images are saved to
    :return: AcquisitionSession
    """
    session_kwargs = dict(
        max_retries_per_frame=config_loader.get('acquisition.max_retries_per_frame'),
        frame_timeout_ms=config_loader.get('camera.frame_timeout_ms'),
        settling_time=timedelta(seconds=config_loader.get('acquisition.settling_time') or 0),
        image_extension=config_loader.get('output.image_extension'),
        show_progress=config_loader.get('acquisition.show_progress'),
    )

    if mode == VIGNETTE_MODE:
        return AcquisitionSession(
            frame_source, capture_log, image_dir, mode=mode,
            total_frames=config_loader.get('vignette.total_frames'),
            fix_exposure_for_vignette=config_loader.get('vignette.fix_exposure'),
            vignette_exposure=config_loader.get('vignette.exposure'),
            positioning_delay=timedelta(seconds=config_loader.get('vignette.positioning_delay') or 0),
            **session_kwargs)

    response_cfg = config_loader.get('response')
    planner_kwargs = {k: response_cfg[k] for k in ['increment', 'reference_min', 'reference_ratio']
                      if response_cfg.get(k) is not None}
    planner = partial(_plan_from_bounds, sample_count=response_cfg['sample_count'],
                      strategy=response_cfg['strategy'], **planner_kwargs)
    return AcquisitionSession(
        frame_source, capture_log, image_dir, mode=mode,
        total_frames=response_cfg['total_frames'],
        exposure_planner=planner,
        **session_kwargs)


def _plan_from_bounds(bounds, **kwargs):
    return plan_exposures(bounds.minimum, bounds.maximum, **kwargs)


def collect_dataset(mode, frame_source):
    """
    Collect a dataset with the given camera into the configured output folder.

    :param mode: 'vignette' or 'response'
    :param frame_source: FrameSource of the camera
    :return: SessionResult
    """
    dataset_dir, image_dir = create_dataset_directories(config_loader.get('output.root_dir'), mode,
                                                        images_subfolder=config_loader.get('output.images_subfolder'))
    capture_log = CaptureLog(dataset_dir / config_loader.get('output.metadata_filename'))
    session = create_session(mode, frame_source, capture_log, image_dir)
    return session.run()


def main(argv=None):
    """
    Main execution function of the dataset collection.

    This function:

    1. Parses command-line arguments and loads the config.
    2. Acquires the camera (released again on every exit path).
    3. Runs the acquisition session of the selected dataset.
    4. Reports frames captured vs. requested.

    :param argv: list of arguments, None to parse sys.argv
    :returns: exit code, 0 if frames were captured and the collection was not aborted, 1 otherwise
    """
    args = parse_arguments(argv)
    configure_logging(log_file=args.log_file)

    if args.config is None:
        config_loader.load_config(Path.cwd() / DEFAULT_CONFIG_FILENAME, required=False)
    else:
        config_loader.load_config(args.config)
    if args.simulate:
        config_loader.set_value('camera.backend', 'simulator')
    if args.output_dir is not None:
        config_loader.set_value('output.root_dir', args.output_dir)

    logging.info(f'Running {args.mode} dataset collection!')
    strategy = config_loader.get('response.strategy')
    if args.mode == RESPONSE_MODE and strategy not in STRATEGIES:
        logging.error(f'Exposure strategy {strategy} is not implemented. Choose from {STRATEGIES}.')
        print(f'{args.mode} dataset: no frames captured, invalid exposure strategy {strategy}.')
        return 1

    try:
        with open_frame_source(config_loader.get('camera.backend')) as frame_source:
            result = collect_dataset(args.mode, frame_source)
    except DeviceInitError as e:
        logging.error(f'Camera could not be initialized: {e}')
        print(f'{args.mode} dataset: no frames captured, camera could not be initialized.')
        return 1

    print(f'{args.mode} dataset: {result.frames_captured} of {result.frames_requested} frames captured '
          f'({len(result.errors)} errors).')
    return 0 if result.succeeded else 1


if __name__ == '__main__':
    sys.exit(main())
