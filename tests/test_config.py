import numpy as np
import pytest

from chart_decision.config import DEFAULT_WEIGHTS, ComponentName, ComponentWeights, Settings, load_settings
from chart_decision.loaders import decode_image, encode_png, load_image
from chart_decision.types import RasterImage


def test_defaults():
    settings = load_settings({})
    assert settings == Settings()
    assert settings.weights.total() == pytest.approx(1.0)


def test_env_overrides():
    settings = load_settings(
        {
            "CHART_DECISION_MIN_ACTION_SCORE": "0.4",
            "CHART_DECISION_WEIGHT_PATTERNS": "0.5",
            "CHART_DECISION_TIMEFRAME": "5m",
            "CHART_DECISION_REMOTE_URL": "http://analyzer.local",
            "CHART_DECISION_MAX_CAPTURES_PER_MINUTE": "6",
        }
    )
    assert settings.min_action_score == 0.4
    assert settings.weights["patterns"] == 0.5
    assert settings.weights[ComponentName.VOLUME] == DEFAULT_WEIGHTS[ComponentName.VOLUME]
    assert settings.timeframe == "5m"
    assert settings.remote_url == "http://analyzer.local"
    assert settings.max_captures_per_minute == 6


def test_invalid_env_value_keeps_default(caplog):
    settings = load_settings({"CHART_DECISION_REMOTE_TIMEOUT": "soon"})
    assert settings.remote_timeout == Settings().remote_timeout
    assert "CHART_DECISION_REMOTE_TIMEOUT" in caplog.text


def test_weights_merge_and_clamp():
    weights = ComponentWeights({"volume": -1.0})
    assert weights["volume"] == 0.0
    assert weights["patterns"] == DEFAULT_WEIGHTS[ComponentName.PATTERNS]
    with pytest.raises(ValueError):
        ComponentWeights({"bogus": 1.0})


def test_with_weights():
    settings = Settings().with_weights(context_gate=0.3)
    assert settings.weights["context_gate"] == 0.3
    assert Settings().weights["context_gate"] == 0.10


class TestLoaders:
    def test_gray_and_rgba_arrays(self):
        gray = load_image(np.zeros((4, 5), dtype=np.uint8))
        assert (gray.height, gray.width) == (4, 5)
        assert gray.pixels.shape == (4, 5, 3)
        rgba = load_image(np.zeros((4, 5, 4), dtype=np.uint8))
        assert rgba.pixels.shape == (4, 5, 3)

    def test_garbage_bytes_decode_to_empty(self):
        assert decode_image(b"garbage").is_empty
        assert decode_image(b"").is_empty

    def test_png_bytes_decode(self, zigzag_chart):
        image = RasterImage.from_array(zigzag_chart)
        decoded = decode_image(encode_png(image))
        assert (decoded.pixels == image.pixels).all()

    def test_short_buffer_is_empty(self):
        assert RasterImage.from_buffer(b"\x00" * 10, 4, 4).is_empty
        assert RasterImage.from_buffer(b"\x00" * 48, "4", 4).width == 4
        assert RasterImage.from_buffer(b"", None, 4).is_empty

    def test_load_image_accepts_png_bytes(self, zigzag_chart):
        image = RasterImage.from_array(zigzag_chart)
        loaded = load_image(encode_png(image))
        assert (loaded.pixels == image.pixels).all()
        assert load_image(image) is image

    def test_load_image_rejects_garbage_bytes(self):
        with pytest.raises(ValueError):
            load_image(b"garbage")
