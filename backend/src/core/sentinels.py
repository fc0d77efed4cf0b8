from typing import Any


class MissingType:
    """
    Marker for an argument the caller did not pass.

    Partial updates need to tell "leave this field alone" (MISSING) apart
    from "clear this field" (None), e.g. removing the special hours of an
    availability exception.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo: Any):
        return self


MISSING: Any = MissingType()
