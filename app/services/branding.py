# app/services/branding.py
import logging
import os
from dataclasses import dataclass

import requests

logger = logging.getLogger("branding")


@dataclass(frozen=True)
class BrandingAssets:
    frame: str | None = None
    watermark: str | None = None


def _first_set(*values: str | None) -> str | None:
    for value in values:
        if value:
            return value
    return None


def _pick(template, defaults, field: str, is_portrait: bool) -> str | None:
    tpl_landscape = getattr(template, f"{field}_url", None) if template else None
    def_landscape = getattr(defaults, f"{field}_url", None) if defaults else None
    if not is_portrait:
        return _first_set(tpl_landscape, def_landscape)
    tpl_portrait = getattr(template, f"{field}_portrait_url", None) if template else None
    def_portrait = getattr(defaults, f"{field}_portrait_url", None) if defaults else None
    return _first_set(tpl_portrait, def_portrait, tpl_landscape, def_landscape)


def resolve_branding(template, defaults, is_portrait: bool) -> BrandingAssets:
    """Choose the frame and watermark for one photo.

    Each asset is resolved on its own: the event template's field for the
    photo's orientation, then the global default for that orientation, then
    (portrait only) the template's and the global landscape fields.
    """
    return BrandingAssets(
        frame=_pick(template, defaults, "frame", is_portrait),
        watermark=_pick(template, defaults, "watermark", is_portrait),
    )


def is_remote(ref: str) -> bool:
    return ref.startswith(("http://", "https://"))


def local_asset_path(ref: str, public_root: str) -> str:
    if ref.startswith("/") and not ref.startswith("//"):
        candidate = os.path.join(public_root, ref.lstrip("/"))
        # Absolute paths outside the public root are taken as they are
        if os.path.exists(candidate) or not os.path.exists(ref):
            return candidate
        return ref
    if os.path.isabs(ref):
        return ref
    return os.path.join(public_root, ref)


def fetch_asset(ref: str | None, public_root: str, timeout: float = 15.0) -> bytes | None:
    """Load a branding asset. A missing or unreachable asset yields None."""
    if not ref:
        return None

    if is_remote(ref):
        try:
            response = requests.get(ref, timeout=timeout)
            response.raise_for_status()
            return response.content
        except requests.RequestException as e:
            logger.warning(f"Branding asset {ref} unavailable, continuing without it: {e}")
            return None

    path = local_asset_path(ref, public_root)
    if not os.path.isfile(path):
        logger.warning(f"Branding asset {ref} not found at {path}, continuing without it")
        return None
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        logger.warning(f"Could not read branding asset {path}: {e}")
        return None
