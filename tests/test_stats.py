import pytest

from segtensor.stats import (
    AggregatorState,
    CSVStatSink,
    HardcodedStats,
    Stat,
    StatAggregator,
    StatDescriptor,
    StatSink,
)


class _MemorySink(StatSink):
    def __init__(self):
        self.descriptors = None
        self.processed = []
        self.experiments = []

    def initialize(self, descriptors):
        self.descriptors = list(descriptors)

    def process(self, hardcoded, stats):
        self.processed.append([(s.value, s.is_null) for s in stats])

    def set_current_experiment(self, experiment):
        self.experiments.append(experiment)


def _clock(values):
    iterator = iter(values)
    return lambda: next(iterator)


def _aggregator(*descriptors):
    aggregator = StatAggregator()
    sink = _MemorySink()
    aggregator.register_sink(sink)
    for descriptor in descriptors:
        aggregator.register_stat(descriptor)
    return aggregator, sink


def test_register_stat_assigns_ids():
    aggregator = StatAggregator()
    first = StatDescriptor("a")
    second = StatDescriptor("b")
    assert aggregator.register_stat(first) == 0
    assert aggregator.register_stat(second) == 1
    assert (first.stat_id, second.stat_id) == (0, 1)


def test_initialize_informs_sinks_once():
    aggregator, sink = _aggregator(StatDescriptor("loss"))
    aggregator.hardcoded.current_experiment = "run"
    aggregator.initialize()
    aggregator.initialize()
    assert aggregator.state is AggregatorState.STOPPED
    assert sink.experiments == ["run"]
    assert [d.description for d in sink.descriptors] == ["loss"]


def test_update_ignored_unless_recording():
    aggregator, sink = _aggregator(StatDescriptor("loss"))
    aggregator.initialize()
    aggregator.update(0, 1.5)
    aggregator.generate()
    assert sink.processed == [[(0.0, False)]]


def test_snapshot_reports_and_resets():
    aggregator, sink = _aggregator(StatDescriptor("loss"))
    aggregator.initialize()
    aggregator.start_recording()
    aggregator.update(0, 1.5)
    aggregator.update(7, 9.0)
    aggregator.snapshot()
    assert aggregator.state is AggregatorState.RECORDING
    aggregator.stop_recording()
    aggregator.generate()
    assert sink.processed == [[(1.5, False)], [(0.0, False)]]


def test_elapsed_time_accumulates():
    aggregator, _ = _aggregator()
    aggregator.clock = _clock([10.0, 12.5])
    aggregator.initialize()
    aggregator.start_recording()
    aggregator.start_recording()
    aggregator.stop_recording()
    assert aggregator.hardcoded.seconds_elapsed == pytest.approx(2.5)
    aggregator.reset()
    assert aggregator.hardcoded.seconds_elapsed == 0.0


def test_experiment_change_ignored_while_recording():
    aggregator, sink = _aggregator()
    aggregator.clock = _clock([0.0, 1.0])
    aggregator.initialize()
    aggregator.start_recording()
    aggregator.set_current_experiment("ignored")
    aggregator.stop_recording()
    aggregator.set_current_experiment("second")
    assert sink.experiments[-1] == "second"
    assert "ignored" not in sink.experiments


def test_hardcoded_reset_keeps_epoch():
    stats = HardcodedStats(is_training=True, epoch=3, iterations=5, seconds_elapsed=1.0)
    stats.reset()
    assert (stats.epoch, stats.iterations, stats.seconds_elapsed) == (3, 0, 0.0)


def test_csv_header_strips_non_alphanumerics(tmp_path):
    aggregator = StatAggregator()
    with CSVStatSink(tmp_path) as sink:
        aggregator.register_sink(sink)
        aggregator.register_stat(StatDescriptor("Loss (avg)"))
        aggregator.hardcoded.current_experiment = "run"
        aggregator.initialize()
    lines = (tmp_path / "run.csv").read_text().splitlines()
    assert lines == ["IsTraining,Epoch,Iterations,SecondsElapsed,Lossavg"]


def test_csv_rows_follow_snapshots(tmp_path):
    aggregator = StatAggregator()
    aggregator.clock = _clock([0.0, 2.5, 2.5])
    sink = CSVStatSink(tmp_path)
    aggregator.register_sink(sink)
    aggregator.register_stat(StatDescriptor("Loss"))
    aggregator.register_stat(StatDescriptor(
        "Missing", output_function=lambda hardcoded, stat: Stat(is_null=True)))
    aggregator.hardcoded.current_experiment = "run"
    aggregator.initialize()
    aggregator.start_recording()
    aggregator.update(0, 1.5)
    aggregator.snapshot()
    sink.close()
    lines = (tmp_path / "run.csv").read_text().splitlines()
    assert lines[0] == "IsTraining,Epoch,Iterations,SecondsElapsed,Loss,Missing"
    assert lines[1] == "0,0,0,2.5,1.5,"
    assert len(lines) == 2


def test_csv_process_without_file_writes_nothing(tmp_path):
    sink = CSVStatSink(tmp_path)
    sink.initialize([StatDescriptor("Loss")])
    sink.process(HardcodedStats(), [Stat(1.0)])
    assert list(tmp_path.iterdir()) == []


def test_csv_unwritable_directory_raises(tmp_path):
    sink = CSVStatSink(tmp_path / "missing")
    with pytest.raises(OSError):
        sink.set_current_experiment("run")