from hera.urp.core.presentation.formatter import (
    SUPPORTED_FORMATS,
    FormattedOutput,
    PresentationFormatter,
)
from hera.urp.core.presentation.records import columns_of, to_records

__all__ = [
    "SUPPORTED_FORMATS",
    "FormattedOutput",
    "PresentationFormatter",
    "columns_of",
    "to_records",
]
