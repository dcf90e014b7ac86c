"""Tests for ParamLogger."""

import csv
import json

import numpy as np
import pytest

from fc_device import ParamLogger


@pytest.fixture
def trained(known_layer, known_input):
    ctx = known_layer.context
    x = ctx.to_device(known_input)
    grad_in = ctx.empty((4, 2))
    known_layer.backward(x, ctx.ones((3, 2)), grad_in)
    return known_layer


class TestParamLogger:
    """Tests for per-step parameter statistics."""

    def test_creates_run_dir(self, tmp_path):
        log = ParamLogger(root=tmp_path, tag="fc")
        assert log.dir.exists()
        assert log.dir.parent == tmp_path
        assert log.dir.name.startswith("fc_")

    def test_log_step_row(self, tmp_path, trained):
        log = ParamLogger(root=tmp_path)
        row = log.log_step(1, trained, lr=0.1)
        assert row["step"] == 1
        assert row["lr"] == pytest.approx(0.1)
        assert row["db_norm"] == pytest.approx(np.sqrt(12.0))
        assert row["db_maxabs"] == pytest.approx(2.0)
        assert row["weights_maxabs"] == pytest.approx(2.0)

    def test_csv_history(self, tmp_path, trained):
        log = ParamLogger(root=tmp_path)
        for step in range(3):
            log.log_step(step, trained)
            trained.update_params(0.1)
        with open(log.csv_path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert [int(r["step"]) for r in rows] == [0, 1, 2]
        assert float(rows[2]["weights_norm"]) != float(rows[0]["weights_norm"])

    def test_fields_must_not_change(self, tmp_path, trained):
        log = ParamLogger(root=tmp_path)
        log.log_step(0, trained, lr=0.1)
        with pytest.raises(ValueError, match="fields changed"):
            log.log_step(1, trained)

    def test_save_json(self, tmp_path, trained):
        log = ParamLogger(root=tmp_path)
        log.log_step(0, trained)
        path = log.save_json()
        with open(path) as f:
            data = json.load(f)
        assert len(data) == 1
        assert data[0]["step"] == 0

    def test_plot_norms(self, tmp_path, trained):
        log = ParamLogger(root=tmp_path, tag="fc")
        assert log.plot_norms() is None
        log.log_step(0, trained)
        log.log_step(1, trained)
        path = log.plot_norms()
        assert path.endswith("norms_fc.png")
        assert (log.dir / "plots" / "norms_fc.png").exists()
