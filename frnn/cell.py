"""LSTM cell record used by the bi-directional RNN layers."""

from dataclasses import dataclass


@dataclass
class Cell:
    """State of one Long Short-Term Memory cell.

    Attributes:
        input: Input gate value.
        output: Output gate value.
        forget: Forget gate value.
        state_t: Current cell state.
        state_t1: Previous cell state.
    """

    input: float = 0.0
    output: float = 0.0
    forget: float = 0.0
    state_t: float = 0.0
    state_t1: float = 0.0
