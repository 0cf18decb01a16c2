import json

import numpy as np

from blocksph.core import bootstrap
from blocksph.core.bootstrap import build_run_config, build_simulation, main
from blocksph.neighbors.block_backend import BlockGridBackend
from blocksph.neighbors.brute_force import BruteForceBackend


def _scene(backend: str = "bf") -> dict:
    return {
        "meta": {"name": "tiny", "version": 1, "dimensions": 2},
        "neighbors": {"backend": backend, "grid_resolution": 8, "block_size": 4},
        "smoothing": {"h": 0.06, "rho0": 0.06 ** 6, "k": 1e-10},
        "forces": {"gravity": [0.0, -10.0]},
        "time": {"dt": 0.005, "frame_dt": 0.01, "frames": 2, "log_every": 1},
        "domain": {"lower": [0.0, 0.0], "upper": [1.0, None]},
        "fluid": {"type": "block", "min": [0.4, 0.4], "max": [0.5, 0.5], "spacing": 0.05},
        "export": {"scale": 3.0, "radius": 0.3},
    }


def test_build_run_config_reads_scene():
    cfg = build_run_config(_scene())

    assert cfg.backend == "bf"
    assert cfg.grid is None
    assert cfg.params.h == 0.06
    assert np.allclose(cfg.params.gravity, [0.0, -10.0])
    assert not cfg.params.normalize_density
    assert cfg.box.upper[0] == 1.0 and np.isinf(cfg.box.upper[1])
    assert cfg.frames == 2
    assert cfg.csv_dir is None and cfg.vtk_dir is None


def test_build_run_config_grid_defaults_dx_from_resolution():
    cfg = build_run_config(_scene("grid"))
    assert cfg.grid.resolution == 8
    assert cfg.grid.inv_dx == 8.0
    assert cfg.grid.block_size == 4


def test_build_simulation_selects_backend():
    assert isinstance(build_simulation(_scene("bf")).backend, BruteForceBackend)
    assert isinstance(build_simulation(_scene("block_grid")).backend, BlockGridBackend)


def test_main_runs_scene_and_writes_frames(tmp_path, capsys):
    scene = _scene("grid")
    scene["export"]["csv"] = {"enable": True, "dir": str(tmp_path / "csv")}
    scene["export"]["vtk"] = {"enable": True, "dir": str(tmp_path / "vtk")}
    path = tmp_path / "scene.json"
    path.write_text(json.dumps(scene), encoding="utf-8")

    assert main([str(path)]) == 0

    out = capsys.readouterr().out
    assert "[BOOT] backend=grid" in out
    assert "[FRAME 0002]" in out
    assert (tmp_path / "csv" / "00002.csv").exists()
    assert (tmp_path / "vtk" / "00001.vtk").exists()


def test_main_backend_override(tmp_path, capsys):
    path = tmp_path / "scene.json"
    path.write_text(json.dumps(_scene("grid")), encoding="utf-8")

    assert main([str(path), "bf"]) == 0
    assert "[BOOT] backend=bf" in capsys.readouterr().out


def test_main_usage_and_missing_file(tmp_path):
    assert main([]) == 2
    assert main([str(tmp_path / "nope.json")]) == 1


def test_main_reads_run_config_once(tmp_path, monkeypatch, capsys):
    calls = []
    original = bootstrap.build_run_config

    def counting(scene):
        calls.append(scene)
        return original(scene)

    monkeypatch.setattr(bootstrap, "build_run_config", counting)

    path = tmp_path / "scene.json"
    path.write_text(json.dumps(_scene("grid")), encoding="utf-8")

    assert main([str(path)]) == 0
    assert len(calls) == 1
    assert "[GRID] blocks=" in capsys.readouterr().out
