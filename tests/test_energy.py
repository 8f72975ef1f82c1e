import numpy as np
import pytest

from companion_voice.config import AudioConfig
from companion_voice.engine.energy import EnergyAnalyser
from companion_voice.errors import ConfigError

from conftest import silence, voice


def test_silence_reads_as_zero() -> None:
    analyser = EnergyAnalyser(AudioConfig())
    assert analyser.volume == 0.0
    assert analyser.process(silence()) == 0.0


def test_loud_noise_reads_well_above_default_threshold() -> None:
    analyser = EnergyAnalyser(AudioConfig())
    volume = analyser.process(voice())
    assert 0.5 < volume <= 1.0
    assert analyser.volume == volume


def test_volume_decays_within_one_chunk_of_silence() -> None:
    analyser = EnergyAnalyser(AudioConfig())
    analyser.process(voice())
    assert analyser.process(silence()) < 0.05


def test_short_chunks_shift_history() -> None:
    analyser = EnergyAnalyser(AudioConfig())
    first = analyser.process(voice(128))
    assert 0.0 < first < 1.0
    for seed in range(1, 8):
        analyser.process(voice(128, seed=seed))
    assert analyser.volume > first


def test_reset_forgets_history() -> None:
    analyser = EnergyAnalyser(AudioConfig())
    analyser.process(voice())
    analyser.reset()
    assert analyser.volume == 0.0
    assert analyser.process(silence(512)) == 0.0


def test_invalid_fft_size_raises() -> None:
    with pytest.raises(ConfigError):
        EnergyAnalyser(AudioConfig(fft_size=500))
