"""qdyn Model Plugins
------------------

Example physical systems for the qdyn package. Each model has a pydantic
configuration schema, builds a ``QuantumModel`` and exposes a module-level
``build(params)`` function that job files refer to.

Models:
    - JaynesCummings: Cavity mode coupled to a two-level atom
"""

from . import jaynes_cummings

__all__ = ["jaynes_cummings"]
