from browserbridge.commands.formatting import render_result
from browserbridge.commands.router import CommandRouter, RequestDescriptor

__all__ = ["CommandRouter", "RequestDescriptor", "render_result"]
