from .passport import (
    BACValidationResult,
    DocumentRecord,
    Gender,
    IdentityInput,
    MRZRecord,
    PassportInfo,
    validate_bac_inputs,
)

__all__ = [
    "BACValidationResult",
    "DocumentRecord",
    "Gender",
    "IdentityInput",
    "MRZRecord",
    "PassportInfo",
    "validate_bac_inputs",
]
