"""Typed intermediate representation of an FFmpeg filter graph.

A graph is an ordered list of chains. Each chain consumes labelled pads,
applies a comma-separated list of filter steps, and produces labelled pads:

    [0:v]scale=w=1920:h=1080,setsar=sar=1[v0]

Nothing is turned into a string until ``FilterGraph.serialize()``, which makes
label wiring and input positions checkable before any subprocess runs.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Union

# Characters that must be quoted inside a filter option value
_SPECIAL_CHARS = set(" ;:[],'\"\\")
_STREAM_REF = re.compile(r"^(\d+):([va])$")


def format_value(value: Any) -> str:
    """Render a filter option value the way FFmpeg expects it."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float):
        text = f"{value:.3f}".rstrip("0").rstrip(".")
        return text if text not in ("", "-0") else "0"
    text = str(value)
    if any(c in _SPECIAL_CHARS for c in text):
        return "'" + text.replace("'", "\\'") + "'"
    return text


@dataclass
class FilterStep:
    """Single filter operation, e.g. ``scale`` with its options."""

    name: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_string(self) -> str:
        if not self.params:
            return self.name
        opts = ":".join(f"{k}={format_value(v)}" for k, v in self.params.items())
        return f"{self.name}={opts}"


@dataclass
class FilterChain:
    """Linear chain of steps between input pads and output pads."""

    inputs: list[str]
    steps: list[FilterStep]
    outputs: list[str]

    def to_string(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs)
        outs = "".join(f"[{label}]" for label in self.outputs)
        return ins + ",".join(s.to_string() for s in self.steps) + outs


@dataclass
class InputSpec:
    """One positional ``-i`` input of a render job."""

    path: Union[Path, str]
    stream: str  # "v" or "a"
    role: str  # e.g. "image", "intro", "voice", "background", "qr_small"
    options: list[str] = field(default_factory=list)

    def args(self) -> list[str]:
        return [*self.options, "-i", str(self.path)]


def stream_ref(index: int, stream: str) -> str:
    """Label referencing a stream of a positional input."""
    return f"{index}:{stream}"


@dataclass
class FilterGraph:
    """Ordered chains forming one ``-filter_complex`` argument."""

    chains: list[FilterChain] = field(default_factory=list)

    def add(
        self,
        inputs: Iterable[str],
        steps: Iterable[FilterStep],
        outputs: Iterable[str],
    ) -> FilterChain:
        chain = FilterChain(list(inputs), list(steps), list(outputs))
        self.chains.append(chain)
        return chain

    @property
    def labels(self) -> list[str]:
        """Every output label created by the graph, in order."""
        return [label for chain in self.chains for label in chain.outputs]

    def find_step(self, name: str) -> list[FilterStep]:
        return [s for chain in self.chains for s in chain.steps if s.name == name]

    def serialize(self) -> str:
        return ";".join(chain.to_string() for chain in self.chains)

    def validate(
        self,
        inputs: list[InputSpec],
        mapped: Iterable[str],
    ) -> list[str]:
        """Check wiring and return a list of problems (empty when valid).

        Rules: each positional input is referenced exactly once and with its
        own stream type; each label is produced once and consumed at most once;
        every mapped label exists and is not consumed by a chain; no produced
        label is left dangling.
        """
        problems: list[str] = []
        input_uses: dict[int, int] = {}
        produced: dict[str, bool] = {}  # label -> consumed

        for position, chain in enumerate(self.chains):
            if not chain.steps:
                problems.append(f"chain {position} has no filter steps")
            for label in chain.inputs:
                match = _STREAM_REF.match(label)
                if match:
                    index, stream = int(match.group(1)), match.group(2)
                    if index >= len(inputs):
                        problems.append(
                            f"chain {position} references input {index} "
                            f"but only {len(inputs)} inputs exist"
                        )
                        continue
                    if inputs[index].stream != stream:
                        problems.append(
                            f"chain {position} reads {label} but input {index} "
                            f"({inputs[index].role}) carries '{inputs[index].stream}'"
                        )
                    input_uses[index] = input_uses.get(index, 0) + 1
                elif label not in produced:
                    problems.append(f"chain {position} consumes unknown label [{label}]")
                elif produced[label]:
                    problems.append(f"label [{label}] consumed more than once")
                else:
                    produced[label] = True
            for label in chain.outputs:
                if _STREAM_REF.match(label):
                    problems.append(f"output label [{label}] collides with an input reference")
                elif label in produced:
                    problems.append(f"label [{label}] produced more than once")
                else:
                    produced[label] = False

        for index, spec in enumerate(inputs):
            uses = input_uses.get(index, 0)
            if uses != 1:
                problems.append(f"input {index} ({spec.role}) referenced {uses} times")

        mapped = list(mapped)
        for label in mapped:
            if label not in produced:
                problems.append(f"mapped pin [{label}] was never created")
            elif produced[label]:
                problems.append(f"mapped pin [{label}] is already consumed by a chain")

        for label, consumed in produced.items():
            if not consumed and label not in mapped:
                problems.append(f"label [{label}] is produced but never used")

        return problems


def find_chain(graph: FilterGraph, output: str) -> Optional[FilterChain]:
    """Return the chain producing ``output``."""
    for chain in graph.chains:
        if output in chain.outputs:
            return chain
    return None
