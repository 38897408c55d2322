"""
Exceptions shared by the scoring core and the HTTP functions.

Each error carries a technical message (logged) and a user-facing message
(returned in the JSON body).
"""


class BattleError(Exception):
    """Base exception for Battle of Platoons errors."""

    status_code = 400

    def __init__(self, message: str, user_message: str | None = None):
        super().__init__(message)
        self.user_message = user_message or message


class ConfigurationError(BattleError):
    """Raised when required settings are missing or unsafe."""

    status_code = 500


class AggregationInputError(BattleError, TypeError):
    """Raised when the aggregator receives something that is not a record collection."""

    def __init__(self, received: object):
        super().__init__(
            f"Expected an iterable of performance records, got {type(received).__name__}",
            "Invalid aggregation input.",
        )


class FormulaNotFoundError(BattleError):
    status_code = 404

    def __init__(self, formula_id: str):
        super().__init__(f"Scoring formula '{formula_id}' not found")


class FormulaStateError(BattleError):
    """Raised when a published (read-only) formula is edited or re-published."""

    status_code = 409

    def __init__(self, formula_id: str, status: str):
        super().__init__(
            f"Scoring formula '{formula_id}' is {status} and cannot be changed",
            "Published formulas are read-only.",
        )


class FormulaValidationError(BattleError):
    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors), "Scoring formula is invalid.")
        self.errors = errors
