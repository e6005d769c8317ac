"""Checkout request/response bodies."""
from pydantic import BaseModel, ConfigDict, Field

from trackroster.models.provisioning_event import ProvisioningMode


class CheckoutRequest(BaseModel):
    """Either {teamId} for an existing team, or the new-team fields. The team itself is only
    created after Stripe confirms payment."""
    model_config = ConfigDict(populate_by_name=True)

    team_id: int | None = Field(default=None, alias="teamId")

    team_name: str | None = Field(default=None, alias="teamName", max_length=255)
    school_name: str | None = Field(default=None, alias="schoolName", max_length=255)
    slug: str | None = Field(default=None, max_length=100)
    primary_color: str | None = Field(default=None, alias="primaryColor", max_length=20)
    secondary_color: str | None = Field(default=None, alias="secondaryColor", max_length=20)
    logo_url: str | None = Field(default=None, alias="logoUrl", max_length=500)

    trial: bool = False

    @property
    def mode(self) -> ProvisioningMode:
        if self.team_id is not None:
            return ProvisioningMode.existing_tenant
        return ProvisioningMode.new_tenant


class CheckoutResponse(BaseModel):
    url: str
