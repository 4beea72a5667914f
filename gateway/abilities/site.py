from pydantic import BaseModel, Field

from gateway.services.abilities import annotations
from gateway.services.abilities.registry import READ, Ability, AbilityContext


class SiteInfoInput(BaseModel):
    pass


class SiteInfoOutput(BaseModel):
    name: str
    url: str
    post_count: int = Field(0, ge=0)
    user_count: int = Field(0, ge=0)


def can_view_site(ctx: AbilityContext, args: SiteInfoInput) -> bool:
    return ctx.can("read")


async def site_info(ctx: AbilityContext, args: SiteInfoInput) -> SiteInfoOutput:
    return SiteInfoOutput(**ctx.host.site_info())


ABILITIES = [
    Ability(
        name="core/site-info",
        label="Site Info",
        description="Basic information about the site: name, address and content totals.",
        input_model=SiteInfoInput,
        output_model=SiteInfoOutput,
        permission=can_view_site,
        handler=site_info,
        classification=READ,
        group="site",
        annotations=annotations.read(),
    ),
]
