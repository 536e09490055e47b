"""
Typed views over the open metadata / outputs bags of a module activation.

Consuming code only ever inspects a handful of keys (legal structure and
incorporation state, brand colours, website domain). Those keys get a
sparse dataclass each; everything else stays in a plain string-keyed dict.

Also home of ``merge_metadata`` — the single read-modify-write rule for
metadata bags: patch values override matching keys, existing keys absent
from the patch are kept.
"""

from dataclasses import dataclass, field

LEGAL_SETUP_MODULE = "MOD_201"
BRAND_IDENTITY_MODULE = "MOD_301"
WEBSITE_MODULE = "MOD_501"

DEFAULT_BRAND_COLORS = ("#6ad040", "#161616")


def merge_metadata(existing: dict | None, patch: dict | None) -> dict:
    """Return a new dict: ``existing`` overlaid with ``patch``. Never mutates inputs."""
    merged = dict(existing or {})
    if patch:
        merged.update(patch)
    return merged


@dataclass
class LegalSetupMetadata:
    legal_structure: str | None = None
    legal_reason: str | None = None
    state: str | None = None
    state_reason: str | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_bag(cls, bag: dict | None) -> "LegalSetupMetadata":
        bag = dict(bag or {})
        known = {k: bag.pop(k, None) for k in ("legal_structure", "legal_reason", "state", "state_reason")}
        return cls(**known, extra=bag)


@dataclass
class BrandingOutputs:
    colors: list[str] | None = None
    brand_name: str | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_bag(cls, bag: dict | None) -> "BrandingOutputs":
        bag = dict(bag or {})
        colors = bag.pop("colors", None)
        return cls(
            colors=list(colors) if colors else None,
            brand_name=bag.pop("brand_name", None),
            extra=bag,
        )


@dataclass
class WebsiteOutputs:
    domain: str | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_bag(cls, bag: dict | None) -> "WebsiteOutputs":
        bag = dict(bag or {})
        return cls(domain=bag.pop("domain", None), extra=bag)


def output_documents(outputs: dict | None) -> list[str]:
    """Documents a module recorded in its outputs bag (always a list of str)."""
    docs = (outputs or {}).get("documents") or []
    if isinstance(docs, str):
        return [docs]
    return [str(d) for d in docs]
