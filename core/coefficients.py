"""
Complex coefficients built from real parameters.

Used both for resonance couplings and for the interference coefficient
``z`` that scales the cross term between direct and conjugate amplitudes.
"""

from __future__ import annotations

import cmath
from typing import List, Mapping, Union

from core.variables import Parameter, ParameterLike


class CoefExpr:
    """
    Complex number ``re + i·im`` or ``mod·exp(i·phase)`` over two parameters.

    Use :meth:`cartesian` or :meth:`polar` rather than the constructor.
    Phases are in radians.
    """

    CARTESIAN = "cartesian"
    POLAR = "polar"

    def __init__(self, first: ParameterLike, second: ParameterLike, form: str):
        if form not in (self.CARTESIAN, self.POLAR):
            raise ValueError(f"Unknown coefficient form '{form}'")
        self._first = first
        self._second = second
        self._form = form

    @classmethod
    def cartesian(cls, re: ParameterLike, im: ParameterLike) -> "CoefExpr":
        return cls(re, im, cls.CARTESIAN)

    @classmethod
    def polar(cls, mod: ParameterLike, phase: ParameterLike) -> "CoefExpr":
        return cls(mod, phase, cls.POLAR)

    @classmethod
    def constant(cls, value: complex, name: str = "coef") -> "CoefExpr":
        """Fixed coefficient with the given complex value."""

        value = complex(value)
        return cls.cartesian(
            Parameter(f"{name}_re", value.real, fixed=True),
            Parameter(f"{name}_im", value.imag, fixed=True),
        )

    @property
    def form(self) -> str:
        return self._form

    def evaluate(self) -> complex:
        first = self._first.evaluate()
        second = self._second.evaluate()
        if self._form == self.POLAR:
            return cmath.rect(first, second)
        return complex(first, second)

    def is_fixed(self) -> bool:
        return self._first.is_fixed() and self._second.is_fixed()

    def parameters(self) -> List[Parameter]:
        pars = self._first.parameters()
        for par in self._second.parameters():
            if all(par.name != known.name for known in pars):
                pars.append(par)
        return pars

    def set_pars(self, pars: Mapping[str, Union[Parameter, float]]) -> None:
        self._first.set_pars(pars)
        self._second.set_pars(pars)

    def __repr__(self) -> str:
        return f"CoefExpr({self._form}, value={self.evaluate()})"
