# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Constants and default configuration of the photometric calibration dataset collection.
"""

VIGNETTE_MODE = 'vignette'
RESPONSE_MODE = 'response'
DATASET_MODES = [VIGNETTE_MODE, RESPONSE_MODE]

# folder names expected by downstream photometric calibration tooling
DATASET_DIRS = {VIGNETTE_MODE: 'vignette-dataset', RESPONSE_MODE: 'response-dataset'}
IMAGES_SUBFOLDER = 'images'
METADATA_FILENAME = 'times.txt'
IMAGE_PREFIX = 'ExposureQS'

DEFAULT_CONFIG_FILENAME = 'photocal_collect_cfg.yaml'

# reference exposure grid of the TUM monoVO calibration sequences (microseconds)
REFERENCE_EXPOSURE_MIN = 50.0
REFERENCE_EXPOSURE_RATIO = 1.05

DEFAULT_CONFIG = {
    'camera': {
        'backend': 'spinnaker',
        'frame_timeout_ms': 1000,
        'pixel_format': 'Mono8',
        'simulator': {
            'exposure_min': 20.0,
            'exposure_max': 32000.0,
            'width': 640,
            'height': 480,
            'incomplete_rate': 0.0,
            'noise_std': 1.5,
            'seed': None,
            'serial_number': 'SIM0001',
        },
    },
    'output': {
        'root_dir': '.',
        'images_subfolder': True,
        'image_extension': '.jpg',
        'metadata_filename': METADATA_FILENAME,
    },
    'acquisition': {
        'max_retries_per_frame': 10,
        'settling_time': 0.0,
        'show_progress': True,
    },
    'vignette': {
        'total_frames': 800,
        'fix_exposure': True,
        'exposure': None,
        'positioning_delay': 10,
    },
    'response': {
        'total_frames': 1000,
        'sample_count': 120,
        'strategy': 'geometric',
        'increment': 10.0,
        'reference_min': REFERENCE_EXPOSURE_MIN,
        'reference_ratio': REFERENCE_EXPOSURE_RATIO,
    },
}

IMAGE_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.bmp', '.tif', '.tiff', '.pgm']
