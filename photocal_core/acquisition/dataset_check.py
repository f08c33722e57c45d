# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Consistency check of a collected calibration dataset.
"""

import logging
from pathlib import Path

import numpy as np

from photocal_core.acquisition.capture_log import load_capture_log, summarize_capture_log
from photocal_core.config.constants import METADATA_FILENAME, IMAGES_SUBFOLDER
from photocal_core.utils.filesystem import get_image_files, parse_image_filename


def check_dataset(dataset_dir, metadata_filename=METADATA_FILENAME, images_subfolder=True):
    """
    Check that metadata log and images of a dataset match.

    Checked are: frame indices start at 0 and increase by one per line, capture times do not decrease and every
    logged frame has exactly one image file.

    :param dataset_dir: (str or Path) folder of the dataset containing the metadata log
    :param metadata_filename: (str) name of the metadata log. Default is METADATA_FILENAME.
    :param images_subfolder: (bool) If True, images are expected in the subfolder 'images'. Default is True.
    :return: (tuple) DataFrame with frames per exposure time and list of found problems (str)
    """
    dataset_dir = Path(dataset_dir)
    image_dir = dataset_dir / IMAGES_SUBFOLDER if images_subfolder else dataset_dir

    log = load_capture_log(dataset_dir / metadata_filename)
    summary = summarize_capture_log(log)
    problems = []

    if len(log) and not np.array_equal(log['frame_index'].to_numpy(), np.arange(len(log))):
        problems.append('Frame indices do not increase by one starting at 0.')
    if (log['capture_time'].diff().dropna() < 0).any():
        problems.append('Capture times are not in capture order.')

    image_indices = {}
    if not image_dir.is_dir():
        problems.append(f'Image folder {image_dir} does not exist.')
    image_files = get_image_files(image_dir) if image_dir.is_dir() else []
    for image_file in image_files:
        parsed = parse_image_filename(image_file.name)
        if parsed is None:
            logging.debug(f'Ignoring {image_file.name}, name does not follow the dataset convention.')
            continue
        image_indices.setdefault(parsed[0], []).append(image_file)

    logged_indices = set(log['frame_index'].tolist())
    missing = sorted(logged_indices - set(image_indices))
    unlogged = sorted(set(image_indices) - logged_indices)
    duplicates = sorted(idx for idx, files in image_indices.items() if len(files) > 1)
    if missing:
        problems.append(f'{len(missing)} logged frames without image, e.g. frame {missing[0]}.')
    if unlogged:
        problems.append(f'{len(unlogged)} images not in the metadata log, e.g. frame {unlogged[0]}.')
    if duplicates:
        problems.append(f'{len(duplicates)} frames with more than one image, e.g. frame {duplicates[0]}.')

    return summary, problems
