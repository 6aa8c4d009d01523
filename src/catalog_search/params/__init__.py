"""Raw query parameter validation."""

from .parser import Params, parse_query_parameters, restrict_param_filter_type


__all__ = [
    "Params",
    "parse_query_parameters",
    "restrict_param_filter_type",
]
