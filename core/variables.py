"""
Observables and parameters shared by every density model.

Parameters and parameter expressions expose the same small protocol
(``evaluate``, ``is_fixed``, ``parameters``, ``set_pars``) so that models
can treat them uniformly when collecting, updating and caching.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union


class Variable:
    """Named continuous observable with a current value."""

    def __init__(self, name: str, value: float = 0.0, error: float = -1.0):
        self.name = name
        self.value = float(value)
        self.error = float(error)

    def set(self, value: float, error: float = -1.0) -> None:
        self.value = float(value)
        if error >= 0.0:
            self.error = float(error)

    def __repr__(self) -> str:
        return f"Variable({self.name!r}, value={self.value})"


class Parameter:
    """
    Named scalar with an uncertainty and a fixed/floating flag.

    Parameters
    ----------
    name : str
        Unique name; models match parameters by name.
    value : float
        Current value.
    error : float
        Current uncertainty, also used as the optimizer's initial step scale.
    fixed : bool
        Whether the parameter is excluded from minimization.
    limits : tuple, optional
        (lower, upper) bounds handed to the optimizer. ``None`` entries mean
        unbounded on that side.
    """

    def __init__(
        self,
        name: str,
        value: float,
        error: float = 0.0,
        fixed: bool = False,
        limits: Optional[Tuple[Optional[float], Optional[float]]] = None,
    ):
        self.name = name
        self.value = float(value)
        self.error = float(error)
        self.fixed = bool(fixed)
        self.limits = limits

    def evaluate(self) -> float:
        return self.value

    def is_fixed(self) -> bool:
        return self.fixed

    def fix(self) -> None:
        self.fixed = True

    def release(self) -> None:
        self.fixed = False

    def set(self, value: float, error: float = -1.0) -> None:
        self.value = float(value)
        if error >= 0.0:
            self.error = float(error)

    def parameters(self) -> List["Parameter"]:
        return [self]

    def set_pars(self, pars: Mapping[str, Union["Parameter", float]]) -> None:
        """Update value (and error, fixed state) from a name-keyed mapping."""

        if self.name not in pars:
            return
        source = pars[self.name]
        if isinstance(source, Parameter):
            self.value = source.value
            self.error = source.error
            self.fixed = source.fixed
            self.limits = source.limits
        else:
            self.value = float(source)

    def __repr__(self) -> str:
        state = "fixed" if self.fixed else "floating"
        return f"Parameter({self.name!r}, value={self.value}, error={self.error}, {state})"


class ParameterExpr:
    """
    Scalar defined as a function of other parameters.

    Examples
    --------
    >>> mu = Parameter("mu", 1.0)
    >>> shift = Parameter("shift", 0.5, fixed=True)
    >>> shifted = ParameterExpr(lambda m, s: m + s, [mu, shift])
    >>> shifted.evaluate()
    1.5
    """

    def __init__(self, func: Callable[..., float], pars: Sequence[Parameter]):
        self._func = func
        self._pars = list(pars)

    def evaluate(self) -> float:
        return float(self._func(*[par.value for par in self._pars]))

    def is_fixed(self) -> bool:
        return all(par.is_fixed() for par in self._pars)

    def parameters(self) -> List[Parameter]:
        return list(self._pars)

    def set_pars(self, pars: Mapping[str, Union[Parameter, float]]) -> None:
        for par in self._pars:
            par.set_pars(pars)


ParameterLike = Union[Parameter, ParameterExpr]


def collect_parameters(terms: Sequence[ParameterLike]) -> Dict[str, Parameter]:
    """
    Gather the parameters of several parameter-like objects by name.

    The first occurrence of each name wins, which keeps declaration order.
    """

    collected: Dict[str, Parameter] = {}
    for term in terms:
        for par in term.parameters():
            collected.setdefault(par.name, par)
    return collected
