"""
Message model for the lossy broadcast channel.

Every round each process broadcasts its value to every other process over
independent directed links. A link delivers with probability p. The
outcome of one round is a delivery matrix; messages are derived from it
and only live for the duration of that round.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np


@dataclass(frozen=True)
class Message:
    """A single broadcast message on a directed link.

    Attributes:
        sender: Index of the sending process.
        receiver: Index of the receiving process.
        value: Value carried (the sender's value at the start of the round).
        delivered: Whether the link succeeded this round.
    """

    sender: int
    receiver: int
    value: Any
    delivered: bool

    def __repr__(self) -> str:
        arrow = "->" if self.delivered else "-x"
        return f"Message({self.sender}{arrow}{self.receiver}, value={self.value!r})"


def link_count(n: int) -> int:
    """Number of directed links among n processes, M = n(n-1)."""
    return n * (n - 1)


def draw_delivery_matrix(n: int, p: float, rng: np.random.Generator) -> np.ndarray:
    """Draw one round of independent Bernoulli(p) link outcomes.

    Args:
        n: Number of processes.
        p: Per-link delivery probability.
        rng: NumPy random number generator for reproducibility.

    Returns:
        Boolean (n, n) array where ``matrix[i, j]`` means the message from
        process i to process j was delivered. The diagonal is always False.
    """
    matrix = rng.random((n, n)) < p
    np.fill_diagonal(matrix, False)
    return matrix


def full_delivery_matrix(n: int) -> np.ndarray:
    """Delivery matrix with every directed link succeeding."""
    matrix = np.ones((n, n), dtype=bool)
    np.fill_diagonal(matrix, False)
    return matrix


def empty_delivery_matrix(n: int) -> np.ndarray:
    return np.zeros((n, n), dtype=bool)


def delivered_count(matrix: np.ndarray) -> int:
    """Number of delivered messages in a delivery matrix."""
    return int(np.count_nonzero(matrix))


def build_messages(values: Sequence[Any], matrix: np.ndarray) -> list[Message]:
    """Materialize messages in sender-major order.

    The order ``(0,1), (0,2), ..., (1,0), (1,2), ...`` is also the order in
    which a receiver sees its incoming values.
    """
    n = len(values)
    return [
        Message(sender=i, receiver=j, value=values[i], delivered=bool(matrix[i, j]))
        for i in range(n)
        for j in range(n)
        if i != j
    ]


def received_from(matrix: np.ndarray, receiver: int) -> list[int]:
    """Indices of senders whose message reached ``receiver``, in sender order."""
    return [int(i) for i in np.flatnonzero(matrix[:, receiver])]
