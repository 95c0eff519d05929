"""Application configuration pulled from environment variables via pydantic."""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from degen_frame.domain import DataField, FramePolicy
from utils.logging_utils import get_tagged_logger, mask_secret
logger = get_tagged_logger(__name__, tag="config")

_DEFAULT_BACKGROUND = (
    "https://bafybeig776f35t7q6fybqfe4zup2kmiqychy4rcdncjjl5emahho6rqt6i.ipfs.w3s.link/Thumbnail%20(31).png"
)


class Settings(BaseSettings):
    """Environment-driven configuration for the allowance frame service."""
    model_config = SettingsConfigDict(env_prefix="FRAME_", extra="ignore")

    title: str = "DEGEN Allowance Checker"
    base_path: str = "/api"
    public_base_url: str = "http://localhost:8000"
    image_renderer_url: str = "http://localhost:3000/render"

    identity_api_url: str = "https://api.airstack.xyz/gql"
    identity_api_key: str | None = None
    allowance_api_url: str = "https://www.degen.tips/api/airdrop2/tip-allowance"
    allowance_season: str | None = None
    allowance_limit: int | None = None
    allowance_offset: int | None = None

    upstream_timeout_seconds: float = Field(default=5.0, gt=0)
    upstream_max_retries: int = Field(default=2, ge=0)
    upstream_backoff_seconds: float = Field(default=0.2, ge=0)

    # allowance required, identity optional
    required_fields: list[DataField] = Field(default_factory=lambda: [DataField.ALLOWANCE])
    landing_asset: str = _DEFAULT_BACKGROUND
    zero_balance_asset: str = _DEFAULT_BACKGROUND + "?state=exhausted"
    asset_palette: list[str] = Field(default_factory=lambda: [_DEFAULT_BACKGROUND])
    display_timezone: str = "UTC"
    unavailable_text: str = "unavailable"

    log_level: str = "INFO"
    skip_upstream_check: bool = False

    @field_validator(
        "public_base_url", "image_renderer_url", "identity_api_url", "allowance_api_url", mode="after"
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize URLs to avoid double slashes."""
        return str(v).rstrip("/")

    @field_validator("base_path", mode="after")
    @classmethod
    def normalize_base_path(cls, v: str) -> str:
        """Base path always starts with a slash and never ends with one."""
        v = "/" + str(v).strip("/")
        return "" if v == "/" else v

    def to_policy(self) -> FramePolicy:
        """Build the render/transition policy from the configured values."""
        return FramePolicy(
            required_fields=frozenset(self.required_fields),
            asset_palette=tuple(self.asset_palette),
            zero_balance_asset=self.zero_balance_asset,
            landing_asset=self.landing_asset,
            display_timezone=self.display_timezone,
            unavailable_text=self.unavailable_text,
        )

    def route(self, path: str = "") -> str:
        """Return the public URL of a frame route under the base path."""
        return f"{self.public_base_url}{self.base_path}/{path.strip('/')}"


settings = Settings()


if __name__ == "__main__":
    logger.logger.setLevel("DEBUG")
    dumped = settings.model_dump(exclude={"identity_api_key"})
    logger.debug(f"Loaded settings: {dumped} identity_api_key={mask_secret(settings.identity_api_key)}")
