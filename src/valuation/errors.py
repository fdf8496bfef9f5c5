from __future__ import annotations


class ValuationValidationError(ValueError):
    """Client-side input problem. Never retryable."""

    status_code = 400
    code = "ValidationError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnknownModelError(ValuationValidationError):
    code = "UnknownModel"

    def __init__(self, model: str) -> None:
        super().__init__(f'Model "{model}" not in pricing database')
        self.model = model


class YearOutOfRangeError(ValuationValidationError):
    code = "YearOutOfRange"

    def __init__(self, year: int, min_year: int, max_year: int) -> None:
        super().__init__(f"Invalid year. Must be between {min_year} and {max_year}")
        self.year = year


class UnknownConditionError(ValuationValidationError):
    code = "UnknownCondition"

    def __init__(self, condition: str, allowed: list[str]) -> None:
        super().__init__(f"Invalid condition. Must be: {', '.join(allowed)}")
        self.condition = condition
