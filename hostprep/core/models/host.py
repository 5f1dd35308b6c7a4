"""
Host model — OS version and CPU architecture of the machine.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

Architecture = Literal["x64", "arm64", "x86", "unknown"]


class HostInfo(BaseModel):
    major: int
    minor: int
    build: int
    architecture: Architecture = "unknown"
    product_name: str = ""

    @property
    def version_text(self) -> str:
        return f"{self.major}.{self.minor}.{self.build}"
