"""
Dispatcher module: request building, provider calls and fan-out.

Turns one unified PromptRequest into provider-specific requests, sends
them concurrently, and returns every outcome in request order.

Key exports:
- build(): PromptRequest -> WireRequest for one model (pure)
- call(): Execute one WireRequest, returning Success or Failure
- ProviderClients: Per-call SDK/httpx client factory
- FanoutCoordinator: Concurrent dispatch to one or many models
"""

from cai.dispatcher.builder import (
    BuildError,
    CapabilityMismatch,
    SchemaUnsupported,
    WireRequest,
    build,
    check_capabilities,
)
from cai.dispatcher.fanout import FanoutCoordinator
from cai.dispatcher.handlers import (
    ProviderCallError,
    ProviderClients,
    call,
)

__all__ = [
    # Request building
    "WireRequest",
    "build",
    "check_capabilities",
    "BuildError",
    "CapabilityMismatch",
    "SchemaUnsupported",
    # Provider calls
    "ProviderClients",
    "ProviderCallError",
    "call",
    # Fan-out
    "FanoutCoordinator",
]
