"""Display layer -- Rich terminal output and the JSON result record."""

from .dashboard import (
    ProgressDisplay,
    console,
    create_histogram,
    print_failure,
    print_final_results,
    print_header,
    print_latency_details,
    print_speed_result,
)
from .output import (
    RESULT_FIELDS,
    create_result_json,
    format_json,
    result_from_phases,
)

__all__ = [
    "ProgressDisplay",
    "RESULT_FIELDS",
    "console",
    "create_histogram",
    "create_result_json",
    "format_json",
    "print_failure",
    "print_final_results",
    "print_header",
    "print_latency_details",
    "print_speed_result",
    "result_from_phases",
]
