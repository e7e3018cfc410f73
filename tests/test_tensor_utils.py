"""Tests for common.utils - tensor helpers, device resolution and logging setup."""

import pytest
import torch

from common.utils import (
    format_rows,
    resolve_device,
    setup_logger,
    to_precision,
    zero_rows,
)


class TestToPrecision:
    def test_same_dtype_is_identity(self):
        x = torch.randn(3)
        assert to_precision(x, torch.float32) is x

    def test_narrowing_clamps(self):
        x = torch.tensor([1e5, -1e5, 1.0])
        out = to_precision(x, torch.float16)
        assert out.dtype == torch.float16
        assert out.tolist() == [65504.0, -65504.0, 1.0]

    def test_widening_keeps_values(self):
        x = torch.tensor([0.5, 2.0], dtype=torch.float16)
        assert to_precision(x, torch.float32).tolist() == [0.5, 2.0]


class TestZeroChecks:
    def test_zero_rows(self):
        x = torch.ones(4, 3)
        x[1] = 0
        x[3] = 0
        assert zero_rows(x) == [1, 3]

    def test_zero_rows_requires_2d(self):
        with pytest.raises(ValueError):
            zero_rows(torch.zeros(3))


class TestFormatRows:
    def test_truncates_columns(self):
        lines = format_rows(torch.arange(14, dtype=torch.float32).reshape(2, 7))
        assert lines == [
            "0.0000 1.0000 2.0000 3.0000 4.0000 ...",
            "7.0000 8.0000 9.0000 10.0000 11.0000 ...",
        ]

    def test_1d(self):
        assert format_rows(torch.tensor([0.5, 1.5])) == ["0.5000 1.5000"]

    def test_rejects_3d(self):
        with pytest.raises(ValueError):
            format_rows(torch.zeros(1, 1, 1))


class TestResolveDevice:
    def test_explicit_string(self):
        assert resolve_device("cpu") == torch.device("cpu")

    def test_device_object_passthrough(self):
        device = torch.device("cpu")
        assert resolve_device(device) is device

    def test_auto(self, monkeypatch):
        monkeypatch.setattr(torch.cuda, "is_available", lambda: False)
        monkeypatch.setattr(torch.backends.mps, "is_available", lambda: False)
        assert resolve_device("auto") == torch.device("cpu")
        assert resolve_device() == torch.device("cpu")


class TestSetupLogger:
    def test_file_handler(self, tmp_path):
        log_path = tmp_path / "logs" / "run.log"
        run_logger = setup_logger("bart_encoder_test", log_path)
        run_logger.info("layer encoded")
        for handler in run_logger.handlers:
            handler.flush()
        assert "| layer encoded" in log_path.read_text()
        for handler in run_logger.handlers:
            handler.close()
        run_logger.handlers.clear()

    def test_replaces_handlers(self):
        setup_logger("bart_encoder_test_twice")
        run_logger = setup_logger("bart_encoder_test_twice")
        assert len(run_logger.handlers) == 1
        for handler in run_logger.handlers:
            handler.close()
        run_logger.handlers.clear()
