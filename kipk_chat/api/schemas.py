from pydantic import BaseModel, ConfigDict, Field


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    remaining_quota: int = Field(alias="remainingQuota")


class ErrorResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    remaining_quota: int = Field(default=0, alias="remainingQuota")
