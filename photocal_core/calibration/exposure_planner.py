# Licensed under the Apache License: http://www.apache.org/licenses/LICENSE-2.0
# For details: https://github.com/DLR-SF/sky_imaging/blob/main/NOTICE.txt

"""
This module plans the exposure times swept through for the calibration of a camera's radiometric response.

All strategies take the exposure bounds reported by the camera and return a read-only array of exposure times in
microseconds which lie within these bounds.
"""
from __future__ import annotations
from typing import Callable, Dict
import math
import numpy as np

from photocal_core.config.constants import REFERENCE_EXPOSURE_MIN, REFERENCE_EXPOSURE_RATIO


class InvalidRange(ValueError):
    """Raised if exposure bounds or planning parameters do not allow a meaningful exposure plan."""


def _freeze(values) -> np.ndarray:
    values = np.asarray(values, dtype=np.float64)
    values.flags.writeable = False
    return values


def linear_exposures(exposure_min: float, exposure_max: float, increment: float = 10.0) -> np.ndarray:
    """
    Enumerate the exposure steps of the camera, starting at its minimum and adding a fixed increment.

    If the last step does not hit the maximum exactly, the maximum is appended as a final, shorter step.

    :param exposure_min: Minimum exposure time of the camera (microseconds).
    :type exposure_min: float
    :param exposure_max: Maximum exposure time of the camera (microseconds).
    :type exposure_max: float
    :param increment: Step between consecutive exposure times (microseconds). Default is ``10.0``.
    :type increment: float
    :returns: Strictly increasing exposure times.
    :rtype: numpy.ndarray
    """
    if increment <= 0 or not math.isfinite(increment):
        raise InvalidRange(f'Exposure increment needs to be positive, got {increment}.')
    num_steps = int(math.floor((exposure_max - exposure_min) / increment + 1e-9)) + 1
    values = exposure_min + increment * np.arange(num_steps, dtype=np.float64)
    values = values[values <= exposure_max]
    if values[-1] < exposure_max and not math.isclose(values[-1], exposure_max):
        values = np.append(values, exposure_max)
    return values


def geometric_exposures(exposure_min: float, exposure_max: float, sample_count: int) -> np.ndarray:
    """
    Log-equidistant exposure times from the minimum to the maximum exposure.

    :param exposure_min: Minimum exposure time (microseconds).
    :type exposure_min: float
    :param exposure_max: Maximum exposure time (microseconds).
    :type exposure_max: float
    :param sample_count: Number of ratio steps. ``sample_count + 1`` exposure times are returned.
    :type sample_count: int
    :returns: Exposure times with a constant ratio between neighbours.
    :rtype: numpy.ndarray
    """
    ratio = (exposure_max / exposure_min) ** (1.0 / sample_count)
    values = exposure_min * ratio ** np.arange(sample_count + 1, dtype=np.float64)
    # floating point drift may push the last value above the maximum
    values = np.minimum(values, exposure_max)
    values[-1] = exposure_max
    return values


def merged_exposures(exposure_min: float, exposure_max: float, increment: float = 10.0,
                     reference_min: float = REFERENCE_EXPOSURE_MIN,
                     reference_ratio: float = REFERENCE_EXPOSURE_RATIO) -> np.ndarray:
    """
    Approximate a geometric reference exposure grid with exposure steps the camera can achieve.

    For each value of the reference grid (``reference_min * reference_ratio ** k``) within the camera's range, the
    largest step of the camera's linear grid not above the reference value is selected. Neighbouring reference values
    may map to the same camera step, such duplicates are kept.

    Both grids start at their first value (``exposure_min`` and ``reference_min``), and a camera step equal to a
    reference value is selected itself rather than the step below it. The Flea3 collection program started both grids
    one step later and always picked the step strictly below, which can select exposures outside the camera's range.

    :param exposure_min: Minimum exposure time of the camera (microseconds).
    :param exposure_max: Maximum exposure time of the camera (microseconds).
    :param increment: Step of the camera's linear grid (microseconds). Default is ``10.0``.
    :param reference_min: First exposure time of the reference grid (microseconds). Default is ``50.0``.
    :param reference_ratio: Ratio between consecutive reference exposures. Default is ``1.05``.
    :returns: Non-decreasing exposure times.
    """
    if reference_ratio <= 1 or reference_min <= 0:
        raise InvalidRange(f'Reference grid needs a start > 0 and a ratio > 1, got {reference_min}, {reference_ratio}.')
    camera_grid = linear_exposures(exposure_min, exposure_max, increment)

    num_reference = int(math.floor(math.log(exposure_max / reference_min) / math.log(reference_ratio))) + 1
    reference_grid = reference_min * reference_ratio ** np.arange(max(num_reference, 0), dtype=np.float64)
    reference_grid = reference_grid[(reference_grid >= exposure_min) & (reference_grid <= exposure_max)]
    if reference_grid.size == 0:
        return camera_grid[:1]

    idx = np.searchsorted(camera_grid, reference_grid, side='right') - 1
    return camera_grid[np.clip(idx, 0, camera_grid.size - 1)]


_STRATEGIES: Dict[str, Callable[..., np.ndarray]] = {
    'linear': lambda lo, hi, n, **kw: linear_exposures(lo, hi, kw.get('increment', 10.0)),
    'geometric': lambda lo, hi, n, **kw: geometric_exposures(lo, hi, n),
    'merged': lambda lo, hi, n, **kw: merged_exposures(lo, hi, **kw),
}

STRATEGIES = list(_STRATEGIES.keys())


def plan_exposures(
    exposure_min: float,
    exposure_max: float,
    sample_count: int = 120,
    strategy: str = 'geometric',
    **kwargs,
) -> np.ndarray:
    """
    Plan the exposure times for a response dataset.

    Strategies:

    - ``'geometric'`` (default): ``sample_count + 1`` log-equidistant values from minimum to maximum.
    - ``'linear'``: every ``increment`` microseconds from the minimum up to the maximum.
    - ``'merged'``: linear camera steps snapped to a geometric reference grid.

    :param exposure_min: Minimum exposure time reported by the camera (microseconds).
    :type exposure_min: float
    :param exposure_max: Maximum exposure time reported by the camera (microseconds).
    :type exposure_max: float
    :param sample_count: Number of geometric steps. Default is ``120``.
    :type sample_count: int
    :param strategy: Planning strategy (``'geometric'`` | ``'linear'`` | ``'merged'``).
    :type strategy: str
    :param kwargs: Strategy parameters ``increment``, ``reference_min`` and ``reference_ratio``.
    :raises InvalidRange: If the strategy is unknown, the minimum is not positive, a bound is not finite or a
        parameter is out of range.
    :returns: Read-only array of exposure times within ``[exposure_min, exposure_max]``.
    :rtype: numpy.ndarray
    """
    if strategy not in _STRATEGIES:
        raise InvalidRange(f'Exposure strategy {strategy} is not implemented. Choose from {STRATEGIES}.')
    if not (math.isfinite(exposure_min) and math.isfinite(exposure_max)):
        raise InvalidRange(f'Exposure bounds need to be finite, got [{exposure_min}, {exposure_max}].')
    if exposure_min <= 0:
        raise InvalidRange(f'Minimum exposure needs to be positive, got {exposure_min}.')
    if sample_count < 1:
        raise InvalidRange(f'Sample count needs to be at least 1, got {sample_count}.')

    if exposure_max <= exposure_min:
        return _freeze([exposure_min])

    return _freeze(_STRATEGIES[strategy](exposure_min, exposure_max, sample_count, **kwargs))
