"""
Module: policy
Purpose: Transformation policy dataclasses keyed by rating.
"""

from dataclasses import dataclass, field

POLICY_BYPASS = "BYPASS"
POLICY_CONVERT = "CONVERT"

RESIZE_PRESERVE = "preserve"
RESIZE_PERCENTAGE = "percentage"
RESIZE_MEGAPIXELS = "megapixels"

FORMAT_PRESERVE = "preserve"
FORMAT_JPEG = "jpeg"
FORMAT_HEIC = "heic"
FORMAT_AVIF = "avif"


@dataclass(frozen=True)
class Resize:
    """Resize directive. `value` is a percentage or a megapixel count."""
    kind: str = RESIZE_PRESERVE
    value: int = 0

    @classmethod
    def preserve(cls) -> "Resize":
        return cls()

    @classmethod
    def percentage(cls, value: int) -> "Resize":
        return cls(RESIZE_PERCENTAGE, value)

    @classmethod
    def megapixels(cls, value: int) -> "Resize":
        return cls(RESIZE_MEGAPIXELS, value)


@dataclass(frozen=True)
class Quality:
    """Quality directive. `percentage` of None means preserve."""
    percentage: int | None = None


@dataclass(frozen=True)
class Policy:
    """
    Either a bypass or a conversion with three independent directives.
    """

    action: str = POLICY_BYPASS
    resize: Resize = field(default_factory=Resize)
    format: str = FORMAT_PRESERVE
    quality: Quality = field(default_factory=Quality)

    @property
    def is_bypass(self) -> bool:
        return self.action == POLICY_BYPASS


BYPASS = Policy()
