def require_positive_number(v: float, name: str = "value") -> None:
    if v <= 0:
        raise ValueError(f"{name} must be > 0")


def require_non_negative(v: float, name: str = "value") -> None:
    if v < 0:
        raise ValueError(f"{name} must be >= 0")


def require_percent(v: float, name: str = "percent") -> None:
    if v < 0 or v > 100:
        raise ValueError(f"{name} must be between 0 and 100")
