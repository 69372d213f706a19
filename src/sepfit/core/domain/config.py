"""Configuration model for the separable least-squares engine.

Every option accepts its snake_case field name or its camelCase alias, so
``SNLLSConfig(RegType="tv")`` and ``SNLLSConfig(reg_type="tv")`` are the same
configuration. Solver, criterion and penalty names are closed enums: unknown
names are rejected when the configuration is parsed, never at first use.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sepfit.core.shared.exceptions import ConfigurationError

RegParamSearch = Literal["grid", "refine"]


class RegularizationType(str, Enum):
    """Penalty functional applied to the linear coefficients."""

    TIKHONOV = "tikhonov"
    TV = "tv"
    HUBER = "huber"


class RegParamCriterion(str, Enum):
    """Selection criterion for the regularization parameter."""

    AIC = "aic"
    AICC = "aicc"
    BIC = "bic"
    CV = "cv"
    GCV = "gcv"
    RGCV = "rgcv"
    SRGCV = "srgcv"
    GML = "gml"
    RM = "rm"
    MCL = "mcl"
    LC = "lc"
    LR = "lr"


class LinearSolverName(str, Enum):
    """Box-constrained linear least-squares strategy."""

    BVLS = "bvls"
    TRF = "trf"


class NNLSSolverName(str, Enum):
    """Non-negative least-squares strategy."""

    FNNLS = "fnnls"
    NNLS = "nnls"


class NonlinearSolverName(str, Enum):
    """Outer nonlinear least-squares strategy."""

    TRF = "trf"
    DOGBOX = "dogbox"
    LM = "lm"


class CovarianceMethod(str, Enum):
    """Covariance construction used by the uncertainty quantifier."""

    FISHER = "fisher"
    HC0 = "hc0"
    HC1 = "hc1"
    HC2 = "hc2"
    HC3 = "hc3"
    HC4 = "hc4"
    HC5 = "hc5"


_REG_TYPE_SYNONYMS = {
    "total-variation": "tv",
    "total_variation": "tv",
    "totalvariation": "tv",
}


class SNLLSConfig(BaseModel):
    """Options of a single :func:`sepfit.snlls` call.

    Example:
        >>> SNLLSConfig(RegParam="gcv", MultiStart=5, seed=1)
        >>> SNLLSConfig(reg_param=0.2, force_penalty=True)
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    force_penalty: bool = Field(
        default=False,
        alias="forcePenalty",
        description="Regularize the linear subproblem even when it is well conditioned.",
    )
    reg_type: RegularizationType = Field(
        default=RegularizationType.TIKHONOV,
        alias="RegType",
        description="Penalty functional: tikhonov, tv (total variation) or huber.",
    )
    reg_order: Annotated[int, Field(ge=0)] = Field(
        default=2,
        alias="RegOrder",
        description="Order of the difference operator, clipped to M - 1.",
    )
    reg_param: RegParamCriterion | Annotated[float, Field(ge=0)] = Field(
        default=RegParamCriterion.AIC,
        alias="RegParam",
        description="Selection criterion name, or a literal regularization parameter.",
    )
    alpha_opt_threshold: Annotated[float, Field(gt=0)] = Field(
        default=1e-3,
        alias="alphaOptThreshold",
        description="Relative change of p below which the last parameter is reused.",
    )
    multi_start: Annotated[int, Field(ge=1)] = Field(
        default=1,
        alias="MultiStart",
        description="Number of nonlinear starting points.",
    )
    lin_solver: LinearSolverName = Field(
        default=LinearSolverName.BVLS,
        alias="LinSolver",
        description="Strategy for general box constraints on the linear coefficients.",
    )
    nnls_solver: NNLSSolverName = Field(
        default=NNLSSolverName.FNNLS,
        alias="NnlsSolver",
        description="Strategy for non-negativity constraints on the linear coefficients.",
    )
    nonlin_solver: NonlinearSolverName = Field(
        default=NonlinearSolverName.TRF,
        alias="nonLinSolver",
        description="Strategy for the outer nonlinear least-squares problem.",
    )
    lin_max_iter: Annotated[int, Field(ge=1)] = Field(default=10000, alias="LinMaxIter")
    lin_tol_fun: Annotated[float, Field(gt=0)] = Field(default=1e-10, alias="LinTolFun")
    nonlin_max_iter: Annotated[int, Field(ge=1)] = Field(default=10000, alias="nonLinMaxIter")
    nonlin_tol_fun: Annotated[float, Field(gt=0)] = Field(default=1e-5, alias="nonLinTolFun")
    huber_param: Annotated[float, Field(gt=0)] = Field(
        default=1.35,
        alias="HuberParam",
        description="Transition scale of the pseudo-Huber penalty.",
    )
    regparam_search: RegParamSearch = Field(
        default="grid",
        alias="RegParamSearch",
        description="'grid' scores a log-spaced grid; 'refine' adds a bounded Brent search.",
    )
    regparam_resolution: Annotated[float, Field(gt=0)] = Field(
        default=0.1,
        alias="RegParamResolution",
        description="Grid step of the regularization parameter, in decades.",
    )
    seed: int | None = Field(
        default=None,
        alias="Seed",
        description="Seed of the multi-start spread.",
    )
    workers: Annotated[int, Field(ge=1)] = Field(
        default=1,
        alias="Workers",
        description="Number of threads running multi-start runs.",
    )
    uncertainty: bool = Field(
        default=True,
        alias="Uncertainty",
        description="Compute the covariance-based uncertainty structure.",
    )
    covariance: CovarianceMethod = Field(
        default=CovarianceMethod.FISHER,
        alias="Covariance",
        description="fisher for sigma^2 (J^T J)^-1, or an HC0-HC5 sandwich estimator.",
    )

    @field_validator(
        "reg_type",
        "lin_solver",
        "nnls_solver",
        "nonlin_solver",
        "covariance",
        "regparam_search",
        mode="before",
    )
    @classmethod
    def normalize_name(cls, value: Any) -> Any:
        """Accept solver and criterion names case-insensitively."""
        if isinstance(value, str) and not isinstance(value, Enum):
            value = value.strip().lower()
            return _REG_TYPE_SYNONYMS.get(value, value)
        return value

    @field_validator("reg_param", mode="before")
    @classmethod
    def normalize_reg_param(cls, value: Any) -> Any:
        """Lower-case criterion names; numbers pass through."""
        if isinstance(value, str) and not isinstance(value, Enum):
            return value.strip().lower()
        if isinstance(value, bool):
            msg = "RegParam must be a criterion name or a number"
            raise ValueError(msg)
        return value

    @property
    def selects_regparam(self) -> bool:
        """Whether the regularization parameter is chosen by a criterion."""
        return isinstance(self.reg_param, RegParamCriterion)


def _field_name_map() -> dict[str, str]:
    names: dict[str, str] = {}
    for name, info in SNLLSConfig.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def parse_config(
    config: SNLLSConfig | Mapping[str, Any] | None = None,
    **options: Any,
) -> SNLLSConfig:
    """Build a validated configuration from a base config and overrides.

    Args:
        config: Base configuration, a mapping of options, or None for defaults
        **options: Option overrides by field name or camelCase alias

    Returns
    -------
        Validated, frozen configuration

    Raises
    ------
        ConfigurationError: If an option is unknown or has an invalid value
    """
    names = _field_name_map()
    if isinstance(config, SNLLSConfig):
        data: dict[str, Any] = config.model_dump()
    else:
        data = {}
        for key, value in (config or {}).items():
            data[names.get(key, key)] = value
    for key, value in options.items():
        data[names.get(key, key)] = value

    try:
        return SNLLSConfig.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid solver configuration: {exc}"
        raise ConfigurationError(msg) from exc


__all__ = [
    "CovarianceMethod",
    "LinearSolverName",
    "NNLSSolverName",
    "NonlinearSolverName",
    "RegParamCriterion",
    "RegParamSearch",
    "RegularizationType",
    "SNLLSConfig",
    "parse_config",
]
