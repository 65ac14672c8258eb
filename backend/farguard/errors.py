"""
Error taxonomy for the approval pipeline.

Only caller mistakes (bad address, unknown chain) escape to the HTTP layer as
client errors. Upstream explorer problems are recovered inside the services,
and missing records are reported as ``False``/404 rather than raised.
"""


class FarGuardError(Exception):
    """Base class for all service errors."""


class ClientInputError(FarGuardError):
    """Structurally invalid caller input, reported immediately."""


class UnsupportedChain(ClientInputError):
    def __init__(self, chain: str):
        self.chain = chain
        super().__init__(f"Unsupported chain: {chain}")


class InvalidAddress(ClientInputError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Invalid address: {address}")


class UpstreamFetchFailure(FarGuardError):
    """Explorer unreachable, timed out or returned an error payload."""

