"""Parameter binding."""

from .binder import BoundStatement, ParameterBinder

__all__ = ["BoundStatement", "ParameterBinder"]
