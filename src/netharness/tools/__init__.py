"""Native dependency and cargo tool wrappers."""

from netharness.tools.base import InstalledPaths, NativeStack, StageHandle, run_step
from netharness.tools.dpdk import PACKET_LIBRARY_STAGE, DpdkStack
from netharness.tools.mtcp import TCP_STACK_STAGE, MtcpStack

__all__ = [
    "DpdkStack",
    "InstalledPaths",
    "MtcpStack",
    "NativeStack",
    "PACKET_LIBRARY_STAGE",
    "StageHandle",
    "TCP_STACK_STAGE",
    "run_step",
]
