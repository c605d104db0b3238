"""
Per band and mode waterfall/power settings
"""

from dataclasses import replace

from .models import BAND_COUNT, AutomagicConfig, BandModeSettings, Mode


class BandModeStore:
    """Settings for every (band, mode) pair.

    Backed by the three per-mode lists of an AutomagicConfig, so edits land in
    the config that gets saved at shutdown. Callers must filter out the unknown
    band before calling in.
    """

    def __init__(self, config: AutomagicConfig):
        self.config = config
        for mode in Mode:
            _pad(config.settings_for(mode))

    def _check_index(self, band_index: int) -> None:
        if not 0 <= band_index < BAND_COUNT:
            raise IndexError(f"Band index out of range: {band_index}")

    def get(self, band_index: int, mode: Mode) -> BandModeSettings:
        """Copy of the settings for one band and mode"""
        self._check_index(band_index)
        return replace(self.config.settings_for(mode)[band_index])

    def set(self, band_index: int, mode: Mode, settings: BandModeSettings) -> None:
        self._check_index(band_index)
        self.config.settings_for(mode)[band_index] = replace(settings)

    def update(self, band_index: int, mode: Mode, **changes) -> BandModeSettings:
        """Change some fields of one entry, returns the new settings"""
        settings = replace(self.get(band_index, mode), **changes)
        self.set(band_index, mode, settings)
        return settings


def _pad(settings: list[BandModeSettings]) -> None:
    """Older config files know fewer bands"""
    while len(settings) < BAND_COUNT:
        settings.append(BandModeSettings())
    del settings[BAND_COUNT:]
