"""Exception types raised by the resampling package."""


class ResampleError(Exception):
    pass


class InputValidationError(ResampleError, ValueError):
    """Record or composition table does not satisfy the input contract."""


class ConfigError(ResampleError, ValueError):
    """Unsupported or inconsistent run configuration."""


class ContractViolation(ResampleError, RuntimeError):
    """An internal invariant was broken after validation passed.

    Never caught inside the package: skipping the offending record would leave
    conflicting pairs among the survivors.
    """
