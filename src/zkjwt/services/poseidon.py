# src/zkjwt/services/poseidon.py
"""Poseidon permutation and sponge over the BN254 scalar field.

Parameters are never hardcoded: the nonce only matches the circuit's when both
use the same width, round counts, MDS matrix and round constants, so they are
loaded from the JSON file the circuit build produced.

JSON layout::

    {
      "t": 4,
      "R_F": 8,
      "R_P": 56,
      "alpha": 5,
      "mds": [[...t values...], ...t rows...],
      "rc":  [[...t values...], ...R_F + R_P rows...]
    }

Values may be JSON numbers, decimal strings or ``0x`` hex strings.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from zkjwt.core.errors import ConfigurationError
from zkjwt.utils.fields import BN254_SCALAR_MODULUS

_MOD = BN254_SCALAR_MODULUS


def _to_field(value: Any) -> int:
    if isinstance(value, int):
        return value % _MOD
    text = str(value).strip().lower()
    if text.startswith("0x"):
        return int(text, 16) % _MOD
    return int(text) % _MOD


@dataclass(frozen=True)
class PoseidonParams:
    """A complete Poseidon parameter set."""

    t: int
    full_rounds: int
    partial_rounds: int
    alpha: int
    mds: tuple[tuple[int, ...], ...]
    round_constants: tuple[tuple[int, ...], ...]

    def validate(self) -> None:
        if self.t < 2:
            raise ValueError("t must be >= 2")
        if self.full_rounds % 2 != 0:
            raise ValueError("full_rounds must be even")
        if self.alpha < 3 or self.alpha % 2 == 0:
            raise ValueError("alpha must be an odd integer >= 3")
        if len(self.mds) != self.t or any(len(row) != self.t for row in self.mds):
            raise ValueError("mds must be a t x t matrix")
        rounds = self.full_rounds + self.partial_rounds
        if len(self.round_constants) != rounds or any(
            len(row) != self.t for row in self.round_constants
        ):
            raise ValueError(f"round constants must be a {rounds} x {self.t} matrix")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PoseidonParams:
        try:
            params = cls(
                t=int(raw["t"]),
                full_rounds=int(raw["R_F"]),
                partial_rounds=int(raw["R_P"]),
                alpha=int(raw.get("alpha", 5)),
                mds=tuple(tuple(_to_field(v) for v in row) for row in raw["mds"]),
                round_constants=tuple(tuple(_to_field(v) for v in row) for row in raw["rc"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"invalid Poseidon parameter set: {exc}") from exc
        params.validate()
        return params


def load_params_json(path: str | Path) -> PoseidonParams:
    """Load and validate a parameter set from a JSON file."""
    with open(path, encoding="utf-8") as handle:
        raw = json.load(handle)
    return PoseidonParams.from_mapping(raw)


def _sbox(value: int, alpha: int) -> int:
    if alpha == 5:
        squared = value * value % _MOD
        return squared * squared % _MOD * value % _MOD
    return pow(value, alpha, _MOD)


def _mix(state: list[int], mds: tuple[tuple[int, ...], ...]) -> list[int]:
    return [sum(coef * item for coef, item in zip(row, state)) % _MOD for row in mds]


def poseidon_permute(state: Sequence[int], params: PoseidonParams) -> list[int]:
    """Apply the permutation: R_F/2 full rounds, R_P partial rounds, R_F/2 full rounds."""
    if len(state) != params.t:
        raise ValueError(f"state length {len(state)} != t={params.t}")

    current = [value % _MOD for value in state]
    half = params.full_rounds // 2
    for round_index, constants in enumerate(params.round_constants):
        current = [(value + const) % _MOD for value, const in zip(current, constants)]
        if round_index < half or round_index >= half + params.partial_rounds:
            current = [_sbox(value, params.alpha) for value in current]
        else:
            current[0] = _sbox(current[0], params.alpha)
        current = _mix(current, params.mds)
    return current


class PoseidonHasher:
    """Sponge with a capacity of one element and a rate of ``t - 1``.

    The capacity element sits at index 0 and starts at zero. Inputs are added
    into ``state[1:]`` one chunk at a time, permuting after each chunk, and the
    output is ``state[0]``. For ``t - 1`` inputs this is a single permutation
    of ``[0, *inputs]``, the layout circuit libraries use for fixed-arity hashes.
    """

    def __init__(self, params: PoseidonParams) -> None:
        params.validate()
        self._params = params

    @property
    def params(self) -> PoseidonParams:
        return self._params

    def __call__(self, inputs: Sequence[int]) -> int:
        return self.hash(inputs)

    def hash(self, inputs: Sequence[int]) -> int:
        if not inputs:
            raise ValueError("Poseidon needs at least one input")
        for value in inputs:
            if not 0 <= value < _MOD:
                raise ValueError("Poseidon inputs must be canonical field elements")

        rate = self._params.t - 1
        state = [0] * self._params.t
        for start in range(0, len(inputs), rate):
            chunk = inputs[start:start + rate]
            for offset, value in enumerate(chunk, start=1):
                state[offset] = (state[offset] + value) % _MOD
            state = poseidon_permute(state, self._params)
        return state[0]


def hasher_from_file(path: str | Path | None) -> PoseidonHasher:
    """Build the hasher for the configured parameter file."""
    if not path:
        raise ConfigurationError(
            "POSEIDON_PARAMS_PATH is not set; export the circuit's Poseidon parameters"
        )
    try:
        return PoseidonHasher(load_params_json(path))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"cannot load Poseidon parameters from {path}: {exc}") from exc
