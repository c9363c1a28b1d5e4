from pydantic import BaseModel, Field


class PromptPayUpdate(BaseModel):
    """Phone number, national id or ewallet id; dashes are allowed"""
    prompt_pay_id: str = Field(..., min_length=1, max_length=32)


class PromptPayResponse(BaseModel):
    platform_id: str
    prompt_pay_id: str
