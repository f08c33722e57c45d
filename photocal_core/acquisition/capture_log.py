# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
Metadata log of a calibration dataset.

One line per saved frame, fields separated by a single space:

    <frame index> <capture time in seconds since epoch> <exposure time in microseconds>

Lines are appended in capture order and flushed immediately, so an aborted collection still leaves a consistent log.
"""

from dataclasses import dataclass
from pathlib import Path

import pandas as pd

LOG_COLUMNS = ['frame_index', 'capture_time', 'exposure']


@dataclass(frozen=True)
class CaptureRecord:
    """
    Metadata of one saved frame.

    :param frame_index: index of the frame within the dataset, starting at 0
    :param capture_time_millis: capture time in milliseconds since epoch
    :param exposure_used: exposure time of the frame in microseconds
    """
    frame_index: int
    capture_time_millis: int
    exposure_used: float

    def to_log_line(self):
        return f'{self.frame_index} {self.capture_time_millis / 1000:.3f} {self.exposure_used:.4f}\n'


class CaptureLog:
    """
    Append-only writer of the metadata log.

    :param log_filepath: (str or Path) file path of the metadata log
    :param write_mode: (str) 'w' to start a new log or 'a' to append to an existing one. Default is 'w'.
    """

    def __init__(self, log_filepath, write_mode='w'):
        self.log_filepath = log_filepath
        self.write_mode = write_mode
        self.num_records = 0
        self._file = None

    def open(self):
        if self._file is None:
            self._file = open(self.log_filepath, self.write_mode)
        return self

    @property
    def closed(self):
        return self._file is None

    def append(self, record):
        """
        Write a capture record to the log.

        :param record: (CaptureRecord) metadata of the saved frame
        """
        if self._file is None:
            raise ValueError(f'Metadata log {self.log_filepath} is not open.')
        self._file.write(record.to_log_line())
        self._file.flush()
        self.num_records += 1

    def close(self):
        if self._file is not None:
            self._file.flush()
            self._file.close()
            self._file = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def load_capture_log(log_filepath):
    """
    Read a metadata log.

    :param log_filepath: (str or Path) file path of the metadata log
    :return: (DataFrame) columns frame_index, capture_time (seconds since epoch) and exposure (microseconds)
    """
    if Path(log_filepath).stat().st_size == 0:
        return pd.DataFrame({'frame_index': pd.Series(dtype='int64'), 'capture_time': pd.Series(dtype='float64'),
                             'exposure': pd.Series(dtype='float64')})
    df = pd.read_csv(log_filepath, sep=r'\s+', header=None, names=LOG_COLUMNS,
                     dtype={'frame_index': 'int64', 'capture_time': 'float64', 'exposure': 'float64'})
    return df


def summarize_capture_log(df):
    """
    Count frames per exposure time.

    :param df: (DataFrame) metadata log as returned by load_capture_log
    :return: (DataFrame) indexed by exposure, columns num_frames, first_frame, last_frame and duration (seconds)
    """
    grouped = df.groupby('exposure', sort=False)
    summary = pd.DataFrame({
        'num_frames': grouped['frame_index'].count(),
        'first_frame': grouped['frame_index'].min(),
        'last_frame': grouped['frame_index'].max(),
        'duration': grouped['capture_time'].max() - grouped['capture_time'].min(),
    })
    return summary
