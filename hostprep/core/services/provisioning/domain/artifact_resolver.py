"""
L1 Domain — Release asset selection and expected-digest lookup (pure).

Given a release document, pick the asset that fits the host
architecture and find the SHA-256 the publisher declared for it.
No I/O, no subprocess.
"""

from __future__ import annotations

import json
import logging
import re

from hostprep.core.models.artifact import ReleaseAsset, ReleaseMetadata

logger = logging.getLogger(__name__)

_HEX64 = re.compile(r"(?<![0-9a-fA-F])([0-9a-fA-F]{64})(?![0-9a-fA-F])")

# Filename tokens per architecture, most specific first
_ARCH_TOKENS: dict[str, tuple[str, ...]] = {
    "arm64": ("arm64", "aarch64"),
    "x64": ("x64", "amd64", "x86_64"),
    "x86": ("x86", "i386", "i686", "win32"),
}


# ── Parsing ────────────────────────────────────────────────────


def architecture_hint(file_name: str) -> str | None:
    """Architecture named by a file name, if any."""
    name = file_name.lower()
    for arch in ("arm64", "x64"):
        if any(tok in name for tok in _ARCH_TOKENS[arch]):
            return arch
    if re.search(r"x86(?!_64)|i[36]86|win32", name):
        return "x86"
    return None


def parse_release(payload: dict, raw_text: str = "") -> ReleaseMetadata:
    """Build ReleaseMetadata from a GitHub-style release document.

    The ``digest`` field of each asset is read when present
    (``"sha256:<hex>"``); anything else leaves it unset.
    """
    tag = str(payload.get("tag_name") or payload.get("name") or "").strip()
    if tag[:1] in ("v", "V"):
        tag = tag[1:]

    assets: list[ReleaseAsset] = []
    for item in payload.get("assets") or []:
        if not isinstance(item, dict):
            continue
        name = item.get("name") or ""
        url = item.get("browser_download_url") or ""
        if not name or not url:
            continue
        assets.append(ReleaseAsset(
            file_name=name,
            download_url=url,
            expected_digest=_sha256_value(item.get("digest")),
            architecture_hint=architecture_hint(name),
            size=item.get("size"),
        ))

    return ReleaseMetadata(
        tag_version=tag,
        assets=assets,
        raw_body=payload.get("body") or "",
        raw_text=raw_text or json.dumps(payload),
    )


def _sha256_value(value: object) -> str | None:
    """Accept ``sha256:<hex>`` or bare hex; reject other algorithms."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if ":" in text:
        algo, _, text = text.partition(":")
        if algo.strip().lower() != "sha256":
            return None
    text = re.sub(r"\s+", "", text)
    if re.fullmatch(r"[0-9a-fA-F]{64}", text):
        return text.lower()
    return None


# ── Selection ──────────────────────────────────────────────────


def select_asset(
    release: ReleaseMetadata,
    architecture: str,
    extensions: list[str] | tuple[str, ...],
) -> ReleaseAsset | None:
    """Pick the asset for ``architecture`` among those with ``extensions``.

    Preference: a name carrying the host's architecture token; then,
    on arm64, an x64 build (runs under emulation); on x64, any asset
    without an ARM token; finally the first candidate in list order.
    Returns None only when no asset has a matching extension.
    """
    exts = tuple(e.lower() for e in extensions)
    candidates = [a for a in release.assets if a.file_name.lower().endswith(exts)]
    if not candidates:
        logger.debug("No assets ending in %s among %d", exts, len(release.assets))
        return None

    def named(arch: str) -> ReleaseAsset | None:
        for asset in candidates:
            if (asset.architecture_hint or architecture_hint(asset.file_name)) == arch:
                return asset
        return None

    choice = named(architecture)
    if choice is None and architecture == "arm64":
        choice = named("x64")
    if choice is None and architecture == "x64":
        choice = next(
            (a for a in candidates if architecture_hint(a.file_name) not in ("arm64",)),
            None,
        )
    if choice is None:
        choice = candidates[0]
        logger.debug("No %s-specific asset; falling back to %s", architecture, choice.file_name)

    return choice


# ── Expected digest ────────────────────────────────────────────


def extract_expected_digest(release: ReleaseMetadata, asset: ReleaseAsset) -> str | None:
    """The published SHA-256 of ``asset``, or None.

    Sources, first hit wins:
      1. the asset's structured ``digest`` field;
      2. a ``digest`` key colocated with the asset's exact download URL
         in the raw release document;
      3. a hash-manifest line in the release notes naming the file.
    """
    if asset.expected_digest:
        return _sha256_value(asset.expected_digest)

    digest = _digest_near_url(release.raw_text, asset.download_url)
    if digest:
        return digest

    return _digest_in_manifest(release.raw_body, asset.file_name)


def _digest_near_url(raw_text: str, url: str) -> str | None:
    """Find a ``"digest"`` in the same JSON object as ``url``.

    The digest may sit before or after the URL; the search never
    leaves the asset's own object, so a neighbouring asset's digest
    is never picked up.
    """
    if not raw_text or not url:
        return None

    # JSON may escape forward slashes
    url_pattern = re.escape(url).replace("/", r"\\?/")
    url_match = re.search(
        rf'"browser_download_url"\s*:\s*"{url_pattern}"', raw_text, re.IGNORECASE
    )
    if not url_match:
        return None

    scope = _enclosing_object(raw_text, url_match.start(), url_match.end())
    digest = re.search(
        r'"digest"\s*:\s*"(?:sha256:)?([0-9a-fA-F]{64})"', scope, re.IGNORECASE
    )
    return digest.group(1).lower() if digest else None


def _enclosing_object(text: str, start: int, end: int) -> str:
    """Text of the innermost ``{...}`` around ``text[start:end]``."""
    depth = 0
    i = start
    while i > 0:
        i -= 1
        if text[i] == "}":
            depth += 1
        elif text[i] == "{":
            if depth == 0:
                break
            depth -= 1

    depth = 0
    j = end
    while j < len(text):
        if text[j] == "{":
            depth += 1
        elif text[j] == "}":
            if depth == 0:
                break
            depth -= 1
        j += 1

    return text[i:j + 1]


def _digest_in_manifest(body: str, file_name: str) -> str | None:
    """Find ``<hex>  <file>`` or ``<file>: <hex>`` in release notes."""
    if not body or not file_name:
        return None

    name = re.compile(rf"(?<![\w.-]){re.escape(file_name)}(?![\w.-])", re.IGNORECASE)
    for line in body.splitlines():
        if not name.search(line):
            continue
        match = _HEX64.search(line)
        if match:
            return match.group(1).lower()
    return None


def resolve_asset(
    release: ReleaseMetadata,
    architecture: str,
    extensions: list[str] | tuple[str, ...],
) -> ReleaseAsset | None:
    """Select the asset and attach its expected digest (possibly None)."""
    asset = select_asset(release, architecture, extensions)
    if asset is None:
        return None
    digest = extract_expected_digest(release, asset)
    if digest is None:
        logger.warning("No published SHA-256 found for %s", asset.file_name)
    return asset.model_copy(update={"expected_digest": digest})
