# helpers/logger.py
import csv
import datetime
import json
import logging
import pathlib

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)

_STAT_KEYS = ("weights", "bias", "dW", "db")


def _stats(ctx, name, buf):
    host = ctx.to_host(buf).astype(np.float64, copy=False)
    return {
        f"{name}_norm": float(np.linalg.norm(host.ravel())),
        f"{name}_maxabs": float(np.abs(host).max()) if host.size else 0.0,
    }


class ParamLogger:
    """Per-step parameter and gradient statistics for one layer, on disk."""

    def __init__(self, root="runs", tag="layer"):
        ts = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
        self.root = pathlib.Path(root)
        self.dir = self.root / f"{tag}_{ts}"
        self.dir.mkdir(parents=True, exist_ok=True)
        self.tag = tag
        self.csv_path = self.dir / "history.csv"
        self.json_path = self.dir / "history.json"
        self.metrics = []  # list of dicts per step
        self._fieldnames = None

    # ---------- logging ----------
    def log_step(self, step, layer, **extra):
        """Record norms and max-abs of W, b, dW, db plus numeric extras. Blocks on the layer's stream."""
        ctx = layer.context
        row = {"step": int(step)}
        for name in _STAT_KEYS:
            row.update(_stats(ctx, name, getattr(layer, name)))
        row.update({k: float(v) for k, v in extra.items()})

        if self._fieldnames is None:
            self._fieldnames = list(row.keys())
        elif list(row.keys()) != self._fieldnames:
            raise ValueError(f"log_step fields changed: {sorted(row)} vs {sorted(self._fieldnames)}")

        self.metrics.append(row)
        with open(self.csv_path, "a", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=self._fieldnames)
            if len(self.metrics) == 1:
                writer.writeheader()
            writer.writerow(row)
        logger.debug("step %d: |W|=%.6g |dW|=%.6g |db|=%.6g",
                     row["step"], row["weights_norm"], row["dW_norm"], row["db_norm"])
        return row

    def save_json(self):
        with open(self.json_path, "w") as f:
            json.dump(self.metrics, f, indent=2)
        return str(self.json_path)

    # ---------- plotting ----------
    def _plots_dir(self, subdir):
        out = self.dir / subdir
        out.mkdir(parents=True, exist_ok=True)
        return out

    def plot_norms(self, subdir="plots"):
        """
        Saves the L2 norm curves of W, b, dW and db as norms_<tag>.png.
        Returns the path, or None when nothing has been logged.
        """
        if not self.metrics:
            return None
        steps = [m["step"] for m in self.metrics]

        outdir = self._plots_dir(subdir)
        fig, (ax_p, ax_g) = plt.subplots(1, 2, figsize=(10, 4))
        ax_p.plot(steps, [m["weights_norm"] for m in self.metrics], label="|W|")
        ax_p.plot(steps, [m["bias_norm"] for m in self.metrics], label="|b|")
        ax_p.set_xlabel("Step")
        ax_p.set_ylabel("L2 norm")
        ax_p.set_title(f"Parameters ({self.tag})")
        ax_p.legend()

        ax_g.plot(steps, [m["dW_norm"] for m in self.metrics], label="|dW|")
        ax_g.plot(steps, [m["db_norm"] for m in self.metrics], label="|db|")
        ax_g.set_xlabel("Step")
        ax_g.set_title(f"Gradients ({self.tag})")
        ax_g.legend()

        fig.tight_layout()
        path = outdir / f"norms_{self.tag}.png"
        fig.savefig(path, dpi=160)
        plt.close(fig)
        logger.info("Saved norm plot to %s", path)
        return str(path)
