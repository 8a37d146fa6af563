import pytest

from irisopt.comparison import ML_ROW, comparison_frame, derive_comparison
from irisopt.errors import MissingMetricsError
from irisopt.models import OptLevel, PerLevelMetrics


def _metrics(time_s, size):
    return PerLevelMetrics(execution_time_avg=time_s, binary_size=size)


def _baselines(times, sizes=None):
    sizes = sizes or {name: 10_000 for name in times}
    return {OptLevel.parse(name): _metrics(t, sizes[name]) for name, t in times.items()}


def test_end_to_end_o3_scenario():
    record = derive_comparison(_metrics(1.127, 12288), {OptLevel.O3: _metrics(1.289, 14336)})
    entry = record.levels[OptLevel.O3]
    assert entry.speedup == pytest.approx(1.144, abs=1e-3)
    assert entry.ml_faster is True
    assert entry.size_reduction == pytest.approx(0.1429, abs=1e-4)
    assert entry.ml_smaller is True


def test_vs_best_picks_fastest_level():
    baselines = _baselines({"O0": 2.8, "O1": 1.9, "O2": 1.4, "O3": 1.3})
    record = derive_comparison(_metrics(1.2, 9000), baselines)
    assert record.vs_best.best_standard == "O3"
    assert record.vs_best.ml_beats_best is True
    assert record.vs_best.speedup_vs_best == pytest.approx(1.3 / 1.2)


def test_best_level_ties_prefer_lowest_ordinal():
    baselines = _baselines(
        {"O1": 1.5, "O2": 1.5, "O3": 1.5},
        sizes={"O1": 8000, "O2": 8000, "O3": 9000},
    )
    record = derive_comparison(_metrics(2.0, 8000), baselines)
    assert record.vs_best.best_standard == "O1"
    assert record.vs_best.ml_beats_best is False
    assert record.vs_best_size.best_size_standard == "O1"
    # Equal size is not a win.
    assert record.vs_best_size.ml_beats_best_size is False


def test_counts_use_present_levels_not_four():
    baselines = _baselines({"O0": 2.8, "O2": 1.4, "O3": 1.3})
    record = derive_comparison(_metrics(1.35, 12_000), baselines)
    assert record.faster_than.total == 3
    assert record.faster_than.levels == (OptLevel.O0, OptLevel.O2)
    assert record.faster_than.label() == "2 / 3"
    assert record.smaller_than.label() == "0 / 3"
    assert OptLevel.O1 not in record.levels


def test_decreasing_ml_time_never_lowers_speedup():
    baselines = _baselines({"O0": 2.8, "O1": 1.9, "O2": 1.4, "O3": 1.3})
    previous = None
    for ml_time in (3.0, 2.0, 1.5, 1.35, 1.0, 0.5):
        record = derive_comparison(_metrics(ml_time, 10_000), baselines)
        if previous is not None:
            for level, entry in record.levels.items():
                before = previous.levels[level]
                assert entry.speedup >= before.speedup
                assert not (before.ml_faster and not entry.ml_faster)
        previous = record


def test_derivation_is_idempotent():
    baselines = _baselines({"O0": 2.8, "O1": 1.9, "O2": 1.4, "O3": 1.3})
    ml = _metrics(1.127, 12288)
    assert derive_comparison(ml, baselines) == derive_comparison(ml, baselines)


def test_zero_ml_time_is_flagged_not_infinite():
    baselines = _baselines({"O2": 1.4, "O3": 1.3})
    record = derive_comparison(_metrics(0.0, 9000), baselines)
    for entry in record.levels.values():
        assert entry.speedup is None
        assert entry.ml_faster is None
    assert record.faster_than.total == 0
    assert record.vs_best.speedup_vs_best is None
    assert record.vs_best.ml_beats_best is None
    flagged = {(d.level, d.metric) for d in record.degenerate}
    assert ("-O2", "speedup") in flagged
    assert ("vs_best", "speedup") in flagged


def test_zero_baseline_size_is_flagged():
    baselines = {OptLevel.O0: _metrics(2.0, 0), OptLevel.O1: _metrics(1.5, 10_000)}
    record = derive_comparison(_metrics(1.0, 8000), baselines)
    assert record.levels[OptLevel.O0].size_reduction is None
    assert record.levels[OptLevel.O0].ml_smaller is None
    assert record.levels[OptLevel.O0].ml_faster is True
    assert record.smaller_than.label() == "1 / 1"
    assert record.vs_best_size.best_size_standard == "O0"
    assert record.vs_best_size.size_reduction_vs_best is None


def test_failed_level_without_metrics_is_absent():
    baselines = _baselines({"O0": 2.8, "O3": 1.3})
    baselines[OptLevel.O2] = PerLevelMetrics(error="timeout")
    record = derive_comparison(_metrics(1.0, 9000), baselines)
    assert OptLevel.O2 not in record.levels
    assert record.faster_than.total == 2


def test_missing_ml_metrics_raises():
    with pytest.raises(MissingMetricsError):
        derive_comparison(PerLevelMetrics(binary_size=100), {OptLevel.O0: _metrics(1.0, 100)})


def test_to_dict_matches_service_shape():
    record = derive_comparison(_metrics(1.127, 12288), {OptLevel.O3: _metrics(1.289, 14336)})
    data = record.to_dict()
    assert set(data) == {"-O3", "vs_best", "vs_best_size"}
    assert data["-O3"]["ml_faster"] is True
    assert data["vs_best"]["best_standard"] == "O3"
    assert data["vs_best_size"]["ml_beats_best_size"] is True


def test_comparison_frame_has_ml_row():
    baselines = _baselines({"O0": 2.8, "O3": 1.3})
    ml = _metrics(1.0, 9000)
    df = comparison_frame(derive_comparison(ml, baselines), ml, baselines)
    assert list(df["level"]) == ["-O0", "-O3", ML_ROW]
    assert df.loc[df["level"] == "-O0", "speedup"].iloc[0] == pytest.approx(2.8)
