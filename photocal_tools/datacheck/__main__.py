# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Tool to check a collected vignette or response dataset

Prints the number of frames per exposure time and reports inconsistencies between metadata log and image files.
"""

import argparse
import logging
import sys

from photocal_core.acquisition.dataset_check import check_dataset
from photocal_core.config.constants import METADATA_FILENAME
from photocal_core.config.logging_config import configure_logging


def parse_arguments(argv=None):
    """
    Parse command-line arguments for the dataset check.

    :returns: Parsed arguments.
    :rtype: argparse.Namespace
    """
    parser = argparse.ArgumentParser(
        description="Check metadata log and images of a photometric calibration dataset."
    )
    parser.add_argument(
        '--dataset_dir',
        type=str,
        required=True,
        help="Path of the dataset folder, e.g. response-dataset."
    )
    parser.add_argument(
        '--metadata_filename',
        type=str,
        default=METADATA_FILENAME,
        help="Name of the metadata log within the dataset folder."
    )
    parser.add_argument(
        '--no_images_subfolder',
        action='store_true',
        help="Images are stored directly in the dataset folder instead of its subfolder 'images'."
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_arguments(argv)
    configure_logging()

    summary, problems = check_dataset(args.dataset_dir, metadata_filename=args.metadata_filename,
                                      images_subfolder=not args.no_images_subfolder)

    print(f"{int(summary['num_frames'].sum())} frames at {len(summary)} exposure times")
    print(summary.to_string())
    for problem in problems:
        logging.warning(problem)

    return 1 if problems else 0


if __name__ == '__main__':
    sys.exit(main())
