from pydantic import BaseModel, Field


class PublicTokenExchange(BaseModel):
    public_token: str = Field(min_length=1)
