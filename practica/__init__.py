"""
Practica - forgetting-curve practice scheduling for musicians.

Packages:
- core: dates, shared value types, errors, feature flags
- study: retention model, feedback translation, adaptive sources
- delivery: session lifecycle, JSON stores, application service, CLI
"""

__version__ = "0.3.0"
