"""Two-frame smoothing of backend waveform samples for the spectrum bars."""

from __future__ import annotations

from collections.abc import Sequence

DEFAULT_BAND_COUNT = 70
DEFAULT_SCALE = 100.0
DEFAULT_FLOOR = 2.0

SpectrumFrame = tuple[float, ...]


class SpectrumSampler:
    """Averages each band's magnitude with the previous raw frame.

    ``out[i] = (|prev[i]| + |raw[i]|) / 2 * scale + floor``; the raw frame
    then becomes ``prev``. Frames always have ``band_count`` entries.
    """

    def __init__(
        self,
        band_count: int = DEFAULT_BAND_COUNT,
        *,
        scale: float = DEFAULT_SCALE,
        floor: float = DEFAULT_FLOOR,
    ) -> None:
        if band_count < 1:
            raise ValueError("band_count must be >= 1")
        self.band_count = band_count
        self.scale = scale
        self.floor = floor
        self._previous = [0.0] * band_count
        self._frame: SpectrumFrame = tuple(floor for _ in range(band_count))

    @property
    def frame(self) -> SpectrumFrame:
        return self._frame

    def sample(self, raw: Sequence[float]) -> SpectrumFrame:
        current = self._fit(raw)
        self._frame = tuple(
            (abs(prev) + abs(value)) / 2.0 * self.scale + self.floor
            for prev, value in zip(self._previous, current)
        )
        self._previous = current
        return self._frame

    def reset(self) -> None:
        self._previous = [0.0] * self.band_count
        self._frame = tuple(self.floor for _ in range(self.band_count))

    def _fit(self, raw: Sequence[float]) -> list[float]:
        values = [float(value) for value in raw[: self.band_count]]
        if len(values) < self.band_count:
            values.extend([0.0] * (self.band_count - len(values)))
        return values
