# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

import logging
import os
import re
from pathlib import Path

from photocal_core.config.constants import DATASET_DIRS, IMAGES_SUBFOLDER, IMAGE_EXTENSIONS, IMAGE_PREFIX

_IMAGE_NAME_RE = re.compile(r"-([0-9]+)-([0-9]+)_([0-9]+)\.[A-Za-z0-9]+$")


def get_absolute_path(filepath, root=None, as_string=False):
    """
    Make filepath an absolute path. It can be combined with a root path.

    :param filepath: (str) file path.
    :param root: (str) root path. Default is None.
    :param as_string: (bool) if True, return absolute path as a string. Default is False.
    :return: (Path or str) absolute path.
    """

    absolute_path = Path(filepath)

    if root is not None:
        absolute_path = Path(root) / filepath

    absolute_path = absolute_path.resolve()

    if as_string:
        absolute_path = str(absolute_path)

    return absolute_path


def _get_files(p, fs, extensions=None, substring=None):
    """
    Get all files in path with 'extensions' and a name containing a 'substring'.

    :param p: (str) directory path
    :param fs: (list str) filenames.
    :param extensions: (set str) File extensions to filter file list. Default is None.
    :param substring: (str) Substring in filename to filter file list. Default is None.
    :return: (list Path) File paths.
    """

    p = Path(p)
    res = [p / f for f in fs if not f.startswith('.')
           and ((not extensions) or f'.{f.split(".")[-1].lower()}' in extensions)
           and ((not substring) or substring in f)]

    return res


def get_image_files(path, extensions=IMAGE_EXTENSIONS, substring=None, recursive=False):
    """
    Get image files in `path`, optionally `recursive` and filtered by `substring`.

    :param path: (str) directory path
    :param extensions: (list str) File extensions to filter file list. Default is IMAGE_EXTENSIONS.
    :param substring: (str) Substring in filename to filter file list. Default is None.
    :param recursive: (bool) If True, visit files in subfolders. Default is False.
    :return: (list Path) Sorted image file paths.
    """

    path = Path(path)
    extensions = {e.lower() for e in extensions}

    if recursive:
        res = []
        for p, d, f in os.walk(path):
            d[:] = sorted(o for o in d if not o.startswith('.'))
            res += _get_files(p, sorted(f), extensions, substring)
    else:
        f = [o.name for o in os.scandir(path) if o.is_file()]
        res = _get_files(path, f, extensions, substring)
    res.sort(key=lambda p: str(p))
    return res


def create_dataset_directories(root_dir, mode, images_subfolder=True):
    """
    Create the output folder of a calibration dataset if it does not exist yet.

    :param root_dir: (str) folder in which the dataset folder is created.
    :param mode: (str) 'vignette' or 'response', selects the dataset folder name.
    :param images_subfolder: (bool) If True, images are stored in a subfolder 'images'. Default is True.
    :return: (tuple Path) dataset folder (holds the metadata log) and image folder.
    """

    dataset_dir = get_absolute_path(DATASET_DIRS[mode], root=root_dir)
    image_dir = dataset_dir / IMAGES_SUBFOLDER if images_subfolder else dataset_dir

    if not image_dir.is_dir():
        image_dir.mkdir(parents=True)
        logging.info(f'Directory {image_dir} has been created for the images.')

    return dataset_dir, image_dir


def assemble_image_filename(frame_index, capture_time_millis, exposure, serial_number='', extension='.jpg',
                            prefix=IMAGE_PREFIX):
    """
    Assemble a unique image file name.

    The exposure time is the last underscore separated field, i.e. <prefix>-<serial>-<index>-<millis>_<exposure>.jpg,
    which is the naming convention of exposure series expected by HDR tooling. The serial number is omitted if empty.

    :param frame_index: (int) index of the frame within the dataset.
    :param capture_time_millis: (int) capture time in milliseconds since epoch.
    :param exposure: (float) exposure time in microseconds, rounded to an integer in the name.
    :param serial_number: (str) serial number of the camera. Default is ''.
    :param extension: (str) file extension incl. dot. Default is '.jpg'.
    :param prefix: (str) file name prefix. Default is IMAGE_PREFIX.
    :return: (str) file name.
    """

    parts = [prefix]
    if serial_number:
        parts.append(str(serial_number))
    parts += [str(frame_index), str(capture_time_millis)]

    return f'{"-".join(parts)}_{exposure:.0f}{extension}'


def parse_image_filename(name):
    """
    Parse frame index, capture time and exposure time from an image file name created by assemble_image_filename.

    :param name: (str) file name
    :return: (tuple int) frame index, capture time in milliseconds, exposure time in microseconds; None if the name
        does not follow the convention.
    """
    m = _IMAGE_NAME_RE.search(name)
    return tuple(int(g) for g in m.groups()) if m else None
