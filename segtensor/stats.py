"""Collection of training statistics and their output to sinks such as CSV files."""

from __future__ import annotations

import enum
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, TextIO


@dataclass
class Stat:
    """One statistic value, possibly absent."""

    value: float = 0.0
    is_null: bool = False


@dataclass
class HardcodedStats:
    """Statistics every aggregator keeps regardless of registered ones."""

    is_training: bool = False
    epoch: int = 0
    iterations: int = 0
    seconds_elapsed: float = 0.0
    current_experiment: str = "experiment"

    def reset(self) -> None:
        """Clear the per-period counters."""
        self.iterations = 0
        self.seconds_elapsed = 0.0


def _init_stat(stat: Stat) -> None:
    stat.value = 0.0
    stat.is_null = False


def _accumulate(stat: Stat, value: float) -> None:
    stat.value += value


def _pass_through(hardcoded: HardcodedStats, stat: Stat) -> Stat:
    return Stat(stat.value, stat.is_null)


@dataclass
class StatDescriptor:
    """Describes a statistic and how it is reset, updated and reported."""

    description: str
    init_function: Callable[[Stat], None] = _init_stat
    update_function: Callable[[Stat, float], None] = _accumulate
    output_function: Callable[[HardcodedStats, Stat], Stat] = _pass_through
    stat_id: int = field(default=-1, compare=False)


class StatSink(ABC):
    """Receives generated statistics."""

    @abstractmethod
    def initialize(self, descriptors: list) -> None:
        """Learn the registered statistics."""

    @abstractmethod
    def process(self, hardcoded: HardcodedStats, stats: list) -> None:
        """Handle one set of generated statistics."""

    @abstractmethod
    def set_current_experiment(self, experiment: str) -> None:
        """Switch to a new experiment."""


def _header_name(description: str) -> str:
    return "".join(c for c in description if c.isascii() and c.isalnum())


class CSVStatSink(StatSink):
    """Writes one CSV file per experiment into ``directory``."""

    def __init__(self, directory="csv"):
        self.directory = Path(directory)
        self.descriptors: list = []
        self._stream: Optional[TextIO] = None

    def initialize(self, descriptors: list) -> None:
        self.descriptors = list(descriptors)

    def process(self, hardcoded: HardcodedStats, stats: list) -> None:
        if self._stream is None:
            return
        fields = [
            "1" if hardcoded.is_training else "0",
            str(hardcoded.epoch),
            str(hardcoded.iterations),
            f"{hardcoded.seconds_elapsed:.16g}",
        ]
        line = ",".join(fields) + ","
        line += ",".join("" if stat.is_null else f"{stat.value:.16g}"
                         for stat in stats[:len(self.descriptors)])
        self._stream.write(line + "\n")
        self._stream.flush()

    def set_current_experiment(self, experiment: str) -> None:
        self.close()
        self._stream = open(self.directory / f"{experiment}.csv", "w", encoding="utf-8")
        header = "IsTraining,Epoch,Iterations,SecondsElapsed,"
        header += ",".join(_header_name(d.description) for d in self.descriptors)
        self._stream.write(header + "\n")
        self._stream.flush()

    def close(self) -> None:
        """Close the current file, if any."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __enter__(self) -> "CSVStatSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class AggregatorState(enum.Enum):
    """Life cycle of a :class:`StatAggregator`."""

    INIT = "init"
    STOPPED = "stopped"
    RECORDING = "recording"


class StatAggregator:
    """Collects registered statistics while recording and hands them to sinks."""

    def __init__(self):
        self.sinks: list = []
        self.descriptors: list = []
        self.stats: list = []
        self.hardcoded = HardcodedStats()
        self.state = AggregatorState.INIT
        self.clock: Callable[[], float] = time.monotonic
        self._start_time = 0.0

    def register_sink(self, sink: StatSink) -> int:
        """Add a sink; return its number."""
        self.sinks.append(sink)
        return len(self.sinks) - 1

    def register_stat(self, descriptor: StatDescriptor) -> int:
        """Add a statistic; assign and return its id."""
        descriptor.stat_id = len(self.descriptors)
        self.descriptors.append(descriptor)
        return descriptor.stat_id

    def initialize(self) -> None:
        """Prepare sinks and statistics; only the first call has an effect."""
        if self.state is not AggregatorState.INIT:
            return
        for sink in self.sinks:
            sink.initialize(self.descriptors)
        self.stats = [Stat() for _ in self.descriptors]
        self.state = AggregatorState.STOPPED
        self.reset()
        self.set_current_experiment(self.hardcoded.current_experiment)

    def generate(self) -> None:
        """Compute output values and pass them to every sink."""
        output = [descriptor.output_function(self.hardcoded, stat)
                  for descriptor, stat in zip(self.descriptors, self.stats)]
        for sink in self.sinks:
            sink.process(self.hardcoded, output)

    def update(self, stat_id: int, value: float) -> None:
        """Feed a value to a statistic while recording."""
        if self.state is not AggregatorState.RECORDING:
            return
        if 0 <= stat_id < len(self.descriptors):
            self.descriptors[stat_id].update_function(self.stats[stat_id], value)

    def reset(self) -> None:
        """Reset all statistics while stopped."""
        if self.state is not AggregatorState.STOPPED:
            return
        self.hardcoded.reset()
        for descriptor, stat in zip(self.descriptors, self.stats):
            descriptor.init_function(stat)

    def start_recording(self) -> None:
        """Begin recording and timing."""
        if self.state is not AggregatorState.STOPPED:
            return
        self._start_time = self.clock()
        self.state = AggregatorState.RECORDING

    def stop_recording(self) -> None:
        """Stop recording and add the elapsed time."""
        if self.state is not AggregatorState.RECORDING:
            return
        self.hardcoded.seconds_elapsed += self.clock() - self._start_time
        self.state = AggregatorState.STOPPED

    def snapshot(self) -> None:
        """Output the statistics so far and start a fresh period."""
        if self.state is not AggregatorState.RECORDING:
            return
        self.stop_recording()
        self.generate()
        self.reset()
        self.start_recording()

    def set_current_experiment(self, experiment: str) -> None:
        """Tell every sink about a new experiment while stopped."""
        if self.state is not AggregatorState.STOPPED:
            return
        for sink in self.sinks:
            sink.set_current_experiment(experiment)