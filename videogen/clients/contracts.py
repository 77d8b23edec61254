"""Provider contracts: the parameter limits each provider version enforces.

Validation in the job orchestrator and the wire mapping in the HTTP client
both read from the active contract.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ProviderContract:
    """Limits and size tables for one provider version."""

    name: str
    model: str
    max_prompt_length: int
    min_duration: int
    max_duration: int
    # resolution label -> short side in pixels
    resolutions: dict[str, int] = field(default_factory=dict)
    # aspect ratio label -> default (width, height)
    aspect_ratios: dict[str, tuple[int, int]] = field(default_factory=dict)
    default_size: tuple[int, int] = (1080, 1080)

    def resolve_size(
        self, resolution: Optional[str] = None, aspect_ratio: Optional[str] = None
    ) -> tuple[int, int]:
        """
        Map a resolution label and/or aspect ratio to concrete width and height.

        With both given, the resolution fixes the short side and the aspect
        ratio the orientation. A resolution alone is landscape 16:9. Unknown
        labels fall back to the contract default.
        """
        short_side = self.resolutions.get(resolution) if resolution else None
        ratio = self.aspect_ratios.get(aspect_ratio) if aspect_ratio else None

        if short_side is None:
            return ratio if ratio is not None else self.default_size

        ratio_w, ratio_h = ratio if ratio is not None else (16, 9)
        if ratio_w >= ratio_h:
            return _even(short_side * ratio_w / ratio_h), short_side
        return short_side, _even(short_side * ratio_h / ratio_w)


def _even(value: float) -> int:
    rounded = int(round(value))
    return rounded - (rounded % 2)


_ASPECT_RATIOS = {
    "16:9": (1280, 720),
    "9:16": (720, 1280),
    "1:1": (1080, 1080),
    "4:3": (1024, 768),
}

SORA_1 = ProviderContract(
    name="sora-1",
    model="sora-1-turbo",
    max_prompt_length=1000,
    min_duration=1,
    max_duration=20,
    resolutions={"480p": 480, "720p": 720, "1080p": 1080},
    aspect_ratios=_ASPECT_RATIOS,
)

SORA_LEGACY = ProviderContract(
    name="sora-legacy",
    model="sora",
    max_prompt_length=1000,
    min_duration=5,
    max_duration=60,
    resolutions={"480p": 480, "720p": 720, "1080p": 1080, "4k": 2160},
    aspect_ratios=_ASPECT_RATIOS,
)

CONTRACTS: dict[str, ProviderContract] = {
    SORA_1.name: SORA_1,
    SORA_LEGACY.name: SORA_LEGACY,
}


def get_contract(name: str) -> ProviderContract:
    """
    Look up a provider contract by name.

    Raises:
        ValueError: If no contract has that name
    """
    try:
        return CONTRACTS[name]
    except KeyError:
        raise ValueError(
            f"Unknown provider contract '{name}'. Known: {', '.join(sorted(CONTRACTS))}"
        ) from None
