"""
Registry module: providers, model aliases and capabilities.

This module contains:
- models.py: alias registry mapping user tokens to concrete models

Public API:
- ProviderKind: Enum of supported providers
- ProviderFamily: Enum of wire protocols
- Capabilities: Model capability flags
- ModelRef: Immutable resolved model
- AliasRegistry: Token -> ModelRef lookup
- UnknownAlias: Raised for unrecognized tokens
"""

from cai.registry.models import (
    AliasRegistry,
    Capabilities,
    ModelRef,
    ProviderFamily,
    ProviderKind,
    UnknownAlias,
)

__all__ = [
    "ProviderKind",
    "ProviderFamily",
    "Capabilities",
    "ModelRef",
    "AliasRegistry",
    "UnknownAlias",
]
