from pydantic import BaseModel, Field


class SubscribeRequest(BaseModel):
    # Both fields are optional at the schema level so a missing value maps to a
    # domain error (InvalidEmail / ChallengeFailed) instead of a generic 422.
    email: str | None = Field(default=None, max_length=1024)
    token: str | None = Field(default=None, max_length=5000)


class SubscribeResponse(BaseModel):
    ok: bool = True


class ChallengeConfigResponse(BaseModel):
    site_key: str = Field(serialization_alias="siteKey")
    theme: str = "auto"
    enabled: bool = True
