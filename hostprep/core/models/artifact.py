"""
Release and artifact models — what the resolver and fetcher pass around.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ReleaseAsset(BaseModel):
    """One downloadable file of a release."""

    file_name: str
    download_url: str
    expected_digest: str | None = None   # sha256, lowercase hex
    architecture_hint: str | None = None  # x64 | arm64 | x86, from the file name
    size: int | None = None


class ReleaseMetadata(BaseModel):
    """A release as published by the remote release index."""

    tag_version: str = ""
    assets: list[ReleaseAsset] = Field(default_factory=list)
    raw_body: str = ""      # release notes text
    raw_text: str = ""      # the full JSON document as received


class LocalArtifact(BaseModel):
    """A downloaded file whose digest has been verified.

    Only the fetcher creates these, and only after verification.
    """

    file_path: str
    computed_digest: str
    file_name: str = ""
    size: int = 0
