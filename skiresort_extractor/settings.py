"""Runtime settings read from environment variables.

Only contour generation reads the environment; everything else is passed
explicitly or comes from constants.py.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from skiresort_extractor.constants import USER_AGENT, ContourConfig, EnvVars
from skiresort_extractor.errors import InvalidInputError


def resolve_smoothing_mode(env: Mapping[str, str]) -> str:
    """Contour smoothing mode from PTK_CONTOUR_SMOOTHING (default super-hard)."""
    raw = env.get(EnvVars.CONTOUR_SMOOTHING, ContourConfig.DEFAULT_SMOOTHING).strip().lower()
    if raw not in ContourConfig.SMOOTHING_ITERATIONS:
        supported = ", ".join(ContourConfig.SMOOTHING_ITERATIONS)
        raise InvalidInputError(f"Invalid {EnvVars.CONTOUR_SMOOTHING} '{raw}'. Supported: {supported}.")
    return raw


def _env_or_default(env: Mapping[str, str], name: str, default: str) -> str:
    # Blank values count as unset
    return env.get(name, "").strip() or default


@dataclass(frozen=True)
class ContourProviderSettings:
    """Elevation provider and gdal_contour settings for contour sync.

    Attributes:
        provider: DEM provider id (only "opentopography")
        api_key: Provider API key
        dataset: DEM dataset id (e.g. COP30)
        base_url: Global DEM endpoint
        user_agent: User-Agent sent with the DEM download
        gdal_contour_bin: gdal_contour executable name or path
        gdal_contour_bin_overridden: True when set through the environment
        smoothing_mode: off, low, medium, hard or super-hard
    """

    provider: str
    api_key: str
    dataset: str = ContourConfig.DEFAULT_DATASET
    base_url: str = ContourConfig.GLOBALDEM_URL
    user_agent: str = USER_AGENT
    gdal_contour_bin: str = ContourConfig.GDAL_CONTOUR_BIN
    gdal_contour_bin_overridden: bool = False
    smoothing_mode: str = ContourConfig.DEFAULT_SMOOTHING

    @property
    def smoothing_iterations(self) -> int:
        return ContourConfig.SMOOTHING_ITERATIONS[self.smoothing_mode]

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ContourProviderSettings":
        """Read settings from the environment.

        Raises:
            InvalidInputError: Unsupported provider, missing API key or bad smoothing mode.
        """
        env = os.environ if env is None else env

        provider = env.get(EnvVars.CONTOUR_DEM_PROVIDER, ContourConfig.DEFAULT_PROVIDER).strip().lower()
        if provider not in ContourConfig.PROVIDERS:
            supported = ", ".join(ContourConfig.PROVIDERS)
            raise InvalidInputError(f"Unsupported contour DEM provider '{provider}'. Supported: {supported}.")

        api_key = env.get(EnvVars.OPENTOPO_API_KEY, "").strip()
        if not api_key:
            raise InvalidInputError(f"{EnvVars.OPENTOPO_API_KEY} is required for automated contour generation.")

        gdal_bin_override = env.get(EnvVars.GDAL_CONTOUR_BIN, "").strip()
        return cls(
            provider=provider,
            api_key=api_key,
            dataset=_env_or_default(env, EnvVars.OPENTOPO_DATASET, ContourConfig.DEFAULT_DATASET),
            base_url=_env_or_default(env, EnvVars.OPENTOPO_GLOBALDEM_URL, ContourConfig.GLOBALDEM_URL),
            user_agent=_env_or_default(env, EnvVars.CONTOUR_USER_AGENT, USER_AGENT),
            gdal_contour_bin=gdal_bin_override or ContourConfig.GDAL_CONTOUR_BIN,
            gdal_contour_bin_overridden=bool(gdal_bin_override),
            smoothing_mode=resolve_smoothing_mode(env),
        )
