"""
Backend integrations.

- sympy: SymPy symbols and expressions as symindex symbols (registered on import)
- casadi: casadi.Function evaluators, loaded by the compiler when the
  "casadi" backend is selected
"""

from symindex.backends import sympy

__all__ = ["sympy"]
