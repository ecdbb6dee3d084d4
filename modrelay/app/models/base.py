from pydantic import BaseModel, ConfigDict


class BaseWebhookModel(BaseModel):
    """Base model for provider payloads; unknown fields are dropped."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )
